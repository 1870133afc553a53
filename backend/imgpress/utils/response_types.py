"""
Classification of compression service responses.

The convert phase answers either with a JSON descriptor pointing at the
converted artifact or with the converted image bytes directly. The
``Content-Type`` header decides which.
"""
from dataclasses import dataclass
from typing import Optional, Union

from imgpress.errors import InternalError


@dataclass(frozen=True)
class JsonDescriptor:
    """Artifact descriptor that still has to be fetched from ``location``."""
    location: str
    size: Optional[int] = None
    mime_type: Optional[str] = None


@dataclass(frozen=True)
class BinaryPayload:
    """Response body that already holds the final image bytes."""
    content: bytes
    mime_type: Optional[str] = None


ServiceResponse = Union[JsonDescriptor, BinaryPayload]


def content_type_of(response) -> str:
    return (response.headers.get('Content-Type') or '').split(';')[0].strip().lower()


def parse_descriptor(response) -> JsonDescriptor:
    """
    Parse an artifact descriptor from a JSON response body.

    The service returns ``{"output": {"size", "type", "url"}}`` and also sets
    a ``Location`` header pointing at the same artifact.

    Args:
        response: HTTP response with a JSON body

    Returns:
        JsonDescriptor for the artifact

    Raises:
        InternalError: If the body is not JSON or names no location
    """
    try:
        body = response.json()
    except ValueError as e:
        raise InternalError('Compression service returned invalid JSON', cause=e)

    output = body.get('output') if isinstance(body, dict) else None
    if not isinstance(output, dict):
        output = {}

    location = output.get('url') or response.headers.get('Location')
    if not location:
        raise InternalError('Compression service response is missing an output location')

    size = output.get('size')
    if size is not None and (not isinstance(size, int) or size < 0):
        raise InternalError(f'Compression service reported an invalid size: {size!r}')

    return JsonDescriptor(location=location, size=size, mime_type=output.get('type'))


def classify_response(response) -> ServiceResponse:
    """
    Decide whether a response is a descriptor or the final image bytes.

    Args:
        response: HTTP response (``requests.Response`` or compatible)

    Returns:
        JsonDescriptor when the declared content type is ``application/json``,
        BinaryPayload otherwise

    Raises:
        InternalError: If the response status indicates failure
    """
    if not response.ok:
        raise InternalError(f'Unexpected response status {response.status_code} from compression service')

    content_type = content_type_of(response)
    if content_type == 'application/json':
        return parse_descriptor(response)

    return BinaryPayload(content=response.content, mime_type=content_type or None)
