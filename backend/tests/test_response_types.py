"""
Tests for compression service response classification.
"""
import pytest

from imgpress.errors import InternalError
from imgpress.utils.response_types import (
    BinaryPayload,
    JsonDescriptor,
    classify_response,
    parse_descriptor,
)


class TestClassifyResponse:
    """Tests for classify_response."""

    def test_json_response_is_descriptor(self, make_response):
        response = make_response(json_body={
            'output': {'size': 1234, 'type': 'image/webp', 'url': 'https://api.tinify.com/output/abc'}
        })

        result = classify_response(response)

        assert result == JsonDescriptor(location='https://api.tinify.com/output/abc', size=1234, mime_type='image/webp')

    def test_json_with_charset_is_descriptor(self, make_response):
        response = make_response(
            json_body={'output': {'url': 'https://api.tinify.com/output/abc'}},
            content_type='application/json; charset=utf-8',
        )

        assert isinstance(classify_response(response), JsonDescriptor)

    def test_image_response_is_binary(self, make_response):
        response = make_response(content=b'RIFF....WEBP', content_type='image/webp')

        result = classify_response(response)

        assert result == BinaryPayload(content=b'RIFF....WEBP', mime_type='image/webp')

    def test_missing_content_type_is_binary(self, make_response):
        response = make_response(content=b'\x89PNG', content_type='')

        result = classify_response(response)

        assert isinstance(result, BinaryPayload)
        assert result.mime_type is None

    def test_failure_status_raises(self, make_response):
        response = make_response(status_code=500, json_body={'message': 'boom'})

        with pytest.raises(InternalError):
            classify_response(response)


class TestParseDescriptor:
    """Tests for parse_descriptor."""

    def test_location_header_fallback(self, make_response):
        response = make_response(
            json_body={'output': {'size': 10, 'type': 'image/png'}},
            headers={'Location': 'https://api.tinify.com/output/xyz'},
        )

        assert parse_descriptor(response).location == 'https://api.tinify.com/output/xyz'

    def test_invalid_json_raises(self, make_response):
        response = make_response(content=b'<html>', json_body=None)

        with pytest.raises(InternalError) as exc_info:
            parse_descriptor(response)
        assert 'invalid JSON' in exc_info.value.message

    def test_missing_location_raises(self, make_response):
        response = make_response(json_body={'output': {'size': 10}})

        with pytest.raises(InternalError):
            parse_descriptor(response)

    def test_negative_size_raises(self, make_response):
        response = make_response(json_body={'output': {'size': -5, 'url': 'https://x/y'}})

        with pytest.raises(InternalError):
            parse_descriptor(response)
