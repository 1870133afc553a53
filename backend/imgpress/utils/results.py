"""
Result assembly for finished compression requests.
"""
import base64
import logging
from typing import Optional, Tuple

from imgpress.models import CompressionResult


logger = logging.getLogger(__name__)


def compute_savings(original_size: int, compressed_size: int) -> Tuple[int, int]:
    """
    Compute saved bytes and the compression ratio.

    Args:
        original_size: Size of the image sent for compression
        compressed_size: Size of the image returned

    Returns:
        Tuple of (saved_bytes, compression_ratio) where the ratio is a whole
        percentage in [0, 100]
    """
    if original_size < 0 or compressed_size < 0:
        raise ValueError('Sizes must be non-negative')

    saved_bytes = max(0, original_size - compressed_size)
    if original_size == 0:
        return saved_bytes, 0

    # round half up, matching how percentages are displayed to users
    ratio = int(saved_bytes * 100 / original_size + 0.5)
    return saved_bytes, min(ratio, 100)


def to_data_uri(data: bytes, mime_type: str) -> str:
    encoded = base64.b64encode(data).decode('utf-8')
    return f'data:{mime_type};base64,{encoded}'


def assemble_result(
    original_size: int,
    content: bytes,
    original_type: str,
    output_type: str,
    declared_size: Optional[int] = None,
) -> CompressionResult:
    """
    Build the result envelope for a finished request.

    The delivered byte count is authoritative; a disagreeing size from the
    service descriptor is only logged.

    Args:
        original_size: Byte length of the image sent to the service
        content: Final image bytes
        original_type: MIME type of the source image
        output_type: MIME type of the final image
        declared_size: Output size reported by the compress phase, if any

    Returns:
        CompressionResult
    """
    compressed_size = len(content)
    if declared_size is not None and declared_size != compressed_size:
        logger.warning(
            f'Declared output size {declared_size} differs from delivered size {compressed_size}',
            extra={'original_size': original_size, 'compressed_size': compressed_size},
        )

    saved_bytes, compression_ratio = compute_savings(original_size, compressed_size)

    return CompressionResult(
        original_size=original_size,
        compressed_size=compressed_size,
        saved_bytes=saved_bytes,
        compression_ratio=compression_ratio,
        compressed_image=to_data_uri(content, output_type),
        original_type=original_type,
        output_type=output_type,
    )


def assemble_passthrough_result(
    original_size: int,
    content: bytes,
    original_type: str,
    output_type: str,
) -> CompressionResult:
    """
    Build the result for a convert phase that returned image bytes inline.

    No comparison against the source is made on this path, so savings are
    reported as zero whatever the actual sizes are.
    """
    return CompressionResult(
        original_size=original_size,
        compressed_size=len(content),
        saved_bytes=0,
        compression_ratio=0,
        compressed_image=to_data_uri(content, output_type),
        original_type=original_type,
        output_type=output_type,
    )
