"""
Input validation utilities for the compression API.
"""
import base64
import binascii
import re
from typing import Optional, Tuple

import requests

from imgpress.errors import UpstreamFetchFailed
from imgpress.models import (
    CompressionOptions,
    CompressionRequest,
    ImageAsset,
    ResizeOptions,
    SUPPORTED_MIME_TYPES,
    RESIZE_METHODS,
)


DATA_URI_PREFIX = re.compile(r'^data:image/[\w.+-]+;base64,')
SOURCE_FETCH_TIMEOUT = 30


class ValidationError(ValueError):
    """Raised when the inbound payload does not describe a valid request."""


def validate_mime_type(value, field_name: str) -> str:
    """
    Validates a MIME type against the supported set.

    Args:
        value: Raw value from the payload
        field_name: Name of the field, used in the error message

    Returns:
        The MIME type
    """
    if value not in SUPPORTED_MIME_TYPES:
        raise ValidationError(
            f'Invalid {field_name}. Must be one of: {", ".join(SUPPORTED_MIME_TYPES)}'
        )
    return value


def decode_image_base64(value: str) -> bytes:
    """
    Decodes a base64 image, with or without a ``data:`` URI prefix.

    Args:
        value: Base64 string or data URI

    Returns:
        Decoded image bytes
    """
    if not isinstance(value, str) or not value:
        raise ValidationError('imageBase64 must be a non-empty string')

    payload = DATA_URI_PREFIX.sub('', value, count=1)
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f'Invalid base64 image data: {str(e)}')

    if not data:
        raise ValidationError('Image data is empty')
    return data


def fetch_source_image(url: str, timeout: float = SOURCE_FETCH_TIMEOUT) -> bytes:
    """
    Downloads the source image for URL-based requests.

    Raises:
        UpstreamFetchFailed: On network failure or a non-success status
    """
    if not isinstance(url, str) or not url.startswith(('http://', 'https://')):
        raise ValidationError('imageUrl must be an http(s) URL')

    try:
        response = requests.get(url, timeout=timeout)
    except requests.RequestException as e:
        raise UpstreamFetchFailed(f'Failed to fetch image: {str(e)}', cause=e)

    if not response.ok:
        raise UpstreamFetchFailed(f'Failed to fetch image (status {response.status_code})')
    return response.content


def parse_options(raw) -> CompressionOptions:
    """
    Parses the optional ``options`` object.

    Args:
        raw: Options dict from the payload, or None

    Returns:
        CompressionOptions
    """
    if raw is None:
        return CompressionOptions()
    if not isinstance(raw, dict):
        raise ValidationError('options must be an object')

    quality = raw.get('quality')
    if quality is not None:
        if isinstance(quality, bool) or not isinstance(quality, (int, float)) or not 1 <= quality <= 100:
            raise ValidationError('options.quality must be a number between 1 and 100')

    preserve_metadata = raw.get('preserveMetadata', False)
    if not isinstance(preserve_metadata, bool):
        raise ValidationError('options.preserveMetadata must be a boolean')

    resize = None
    raw_resize = raw.get('resize')
    if raw_resize is not None:
        if not isinstance(raw_resize, dict):
            raise ValidationError('options.resize must be an object')

        for key in ('width', 'height'):
            dimension = raw_resize.get(key)
            if dimension is not None and (isinstance(dimension, bool) or not isinstance(dimension, int) or dimension <= 0):
                raise ValidationError(f'options.resize.{key} must be a positive integer')

        method = raw_resize.get('method')
        if method is not None and method not in RESIZE_METHODS:
            raise ValidationError(f'options.resize.method must be one of: {", ".join(RESIZE_METHODS)}')

        resize = ResizeOptions(width=raw_resize.get('width'), height=raw_resize.get('height'), method=method)

    return CompressionOptions(resize=resize, preserve_metadata=preserve_metadata, quality=quality)


def sanitize_filename(input_str: Optional[str]) -> str:
    """
    Sanitize a client supplied filename.

    Args:
        input_str: Filename to sanitize

    Returns:
        Sanitized filename

    Raises:
        ValidationError: If the filename is not a string
    """
    if input_str is None or input_str == "":
        return ""
    if not isinstance(input_str, str):
        raise ValidationError('filename must be a string')

    # Remove null bytes and any directory components
    sanitized = input_str.replace('\x00', '')
    sanitized = sanitized.replace('\\', '/').rsplit('/', 1)[-1]

    sanitized = sanitized.strip()

    max_length = 256
    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length]

    return sanitized


def parse_compression_request(payload) -> Tuple[CompressionRequest, str]:
    """
    Builds a CompressionRequest from the inbound JSON payload.

    Args:
        payload: Decoded JSON body

    Returns:
        Tuple of (request, filename)

    Raises:
        ValidationError: If the payload is invalid
        UpstreamFetchFailed: If a URL source cannot be downloaded
    """
    if not isinstance(payload, dict):
        raise ValidationError('Request body must be a JSON object')

    mime_type = validate_mime_type(payload.get('mimeType'), 'mimeType')
    output_format = validate_mime_type(payload.get('outputFormat'), 'outputFormat')
    options = parse_options(payload.get('options'))
    filename = sanitize_filename(payload.get('filename'))

    if payload.get('imageBase64'):
        data = decode_image_base64(payload['imageBase64'])
    elif payload.get('imageUrl'):
        data = fetch_source_image(payload['imageUrl'])
    else:
        raise ValidationError('Missing image source: provide imageBase64 or imageUrl')

    source = ImageAsset(data=data, mime_type=mime_type, filename=filename or None)
    return CompressionRequest(source=source, output_format=output_format, options=options), filename
