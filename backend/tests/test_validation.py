"""
Tests for request validation utilities.
"""
import base64
import pytest
import requests
from unittest.mock import patch

from imgpress.errors import UpstreamFetchFailed
from imgpress.models import ResizeOptions
from imgpress.utils.validation import (
    ValidationError,
    decode_image_base64,
    fetch_source_image,
    parse_compression_request,
    parse_options,
    sanitize_filename,
    validate_mime_type,
)


@pytest.fixture
def valid_payload(image_bytes):
    return {
        'imageBase64': 'data:image/jpeg;base64,' + base64.b64encode(image_bytes()).decode('utf-8'),
        'filename': 'photo.jpg',
        'mimeType': 'image/jpeg',
        'outputFormat': 'image/webp',
    }


class TestMimeValidation:

    @pytest.mark.parametrize('mime_type', ['image/png', 'image/jpeg', 'image/jpg', 'image/webp', 'image/avif'])
    def test_supported_types(self, mime_type):
        assert validate_mime_type(mime_type, 'mimeType') == mime_type

    @pytest.mark.parametrize('mime_type', ['image/gif', 'text/plain', None, ''])
    def test_unsupported_types(self, mime_type):
        with pytest.raises(ValidationError) as exc_info:
            validate_mime_type(mime_type, 'outputFormat')
        assert 'outputFormat' in str(exc_info.value)


class TestDecodeImageBase64:

    def test_plain_base64(self):
        assert decode_image_base64(base64.b64encode(b'hello').decode()) == b'hello'

    def test_data_uri_prefix_stripped(self):
        assert decode_image_base64('data:image/png;base64,aGVsbG8=') == b'hello'

    def test_invalid_base64(self):
        with pytest.raises(ValidationError):
            decode_image_base64('not*base64!')

    def test_empty(self):
        with pytest.raises(ValidationError):
            decode_image_base64('')


class TestFetchSourceImage:

    @patch('imgpress.utils.validation.requests.get')
    def test_fetch_success(self, mock_get, make_response):
        mock_get.return_value = make_response(content=b'image-bytes', content_type='image/png')

        assert fetch_source_image('https://example.com/a.png') == b'image-bytes'

    @patch('imgpress.utils.validation.requests.get')
    def test_fetch_status_failure(self, mock_get, make_response):
        mock_get.return_value = make_response(status_code=404, content_type='text/html')

        with pytest.raises(UpstreamFetchFailed):
            fetch_source_image('https://example.com/a.png')

    @patch('imgpress.utils.validation.requests.get')
    def test_fetch_network_failure(self, mock_get):
        mock_get.side_effect = requests.ConnectionError('unreachable')

        with pytest.raises(UpstreamFetchFailed):
            fetch_source_image('https://example.com/a.png')

    def test_non_http_url_rejected(self):
        with pytest.raises(ValidationError):
            fetch_source_image('file:///etc/passwd')


class TestParseOptions:

    def test_none_gives_defaults(self):
        options = parse_options(None)
        assert options.resize is None
        assert options.preserve_metadata is False
        assert options.quality is None

    def test_full_options(self):
        options = parse_options({
            'quality': 80,
            'preserveMetadata': True,
            'resize': {'width': 640, 'height': 480, 'method': 'cover'},
        })

        assert options.quality == 80
        assert options.preserve_metadata is True
        assert options.resize == ResizeOptions(width=640, height=480, method='cover')

    @pytest.mark.parametrize('raw', [
        {'quality': 0},
        {'quality': 101},
        {'quality': 'high'},
        {'preserveMetadata': 'yes'},
        {'resize': {'width': -1}},
        {'resize': {'method': 'stretch'}},
        {'resize': 'big'},
        'not a dict',
    ])
    def test_invalid_options(self, raw):
        with pytest.raises(ValidationError):
            parse_options(raw)


class TestSanitizeFilename:

    def test_strips_directories_and_null_bytes(self):
        assert sanitize_filename('../../etc/pass\x00wd.png') == 'passwd.png'
        assert sanitize_filename('C:\\Users\\me\\photo.jpg') == 'photo.jpg'

    def test_empty(self):
        assert sanitize_filename(None) == ""

    def test_truncates(self):
        assert len(sanitize_filename('a' * 500)) == 256

    @pytest.mark.parametrize('raw', [5, ['a.png'], {'name': 'a.png'}, True])
    def test_rejects_non_string(self, raw):
        with pytest.raises(ValidationError) as exc_info:
            sanitize_filename(raw)
        assert 'filename' in str(exc_info.value)


class TestParseCompressionRequest:

    def test_valid_payload(self, valid_payload, image_bytes):
        request, filename = parse_compression_request(valid_payload)

        assert filename == 'photo.jpg'
        assert request.source.data == image_bytes()
        assert request.source.mime_type == 'image/jpeg'
        assert request.output_format == 'image/webp'
        assert request.needs_conversion

    @patch('imgpress.utils.validation.fetch_source_image')
    def test_url_source(self, mock_fetch, valid_payload):
        del valid_payload['imageBase64']
        valid_payload['imageUrl'] = 'https://example.com/photo.jpg'
        mock_fetch.return_value = b'remote'

        request, _ = parse_compression_request(valid_payload)

        assert request.source.data == b'remote'
        mock_fetch.assert_called_once_with('https://example.com/photo.jpg')

    def test_missing_source(self, valid_payload):
        del valid_payload['imageBase64']

        with pytest.raises(ValidationError) as exc_info:
            parse_compression_request(valid_payload)
        assert 'image source' in str(exc_info.value)

    def test_not_an_object(self):
        with pytest.raises(ValidationError):
            parse_compression_request(['imageBase64'])

    @pytest.mark.parametrize('filename', [5, ['photo.jpg'], {'name': 'photo.jpg'}])
    def test_non_string_filename(self, valid_payload, filename):
        valid_payload['filename'] = filename

        with pytest.raises(ValidationError) as exc_info:
            parse_compression_request(valid_payload)
        assert 'filename must be a string' in str(exc_info.value)
