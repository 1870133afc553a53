"""
Image processing utilities for the compression pipeline.
"""
import io
import logging
from PIL import Image
from typing import Tuple

from imgpress.models import ImageAsset


logger = logging.getLogger(__name__)

PREPROCESS_THRESHOLD_BYTES = 5 * 1024 * 1024  # 5MB
MAX_DIMENSION = 2048
DEFAULT_QUALITY = 0.8

PIL_FORMATS = {
    'image/png': 'PNG',
    'image/jpeg': 'JPEG',
    'image/jpg': 'JPEG',
    'image/webp': 'WEBP',
    'image/avif': 'AVIF',
}


def compute_target_dimensions(width: int, height: int, max_dimension: int = MAX_DIMENSION) -> Tuple[int, int]:
    """
    Computes the dimensions an image is rendered at before upload.

    The longer side is clamped to ``max_dimension`` and the shorter side is
    scaled by the same ratio, rounded half up.

    Args:
        width: Source width in pixels
        height: Source height in pixels
        max_dimension: Maximum length of the longer side

    Returns:
        Tuple of (width, height)
    """
    if width <= max_dimension and height <= max_dimension:
        return width, height

    if width > height:
        return max_dimension, max(1, int(height / width * max_dimension + 0.5))
    return max(1, int(width / height * max_dimension + 0.5)), max_dimension


def _render(image_bytes: bytes, mime_type: str, max_dimension: int, quality: float) -> bytes:
    img = Image.open(io.BytesIO(image_bytes))
    img.load()

    target_size = compute_target_dimensions(img.width, img.height, max_dimension)
    if target_size != img.size:
        img = img.resize(target_size, Image.Resampling.LANCZOS)

    pil_format = PIL_FORMATS[mime_type]

    # JPEG has no alpha channel
    if pil_format == 'JPEG' and img.mode not in ('RGB', 'L'):
        img = img.convert('RGB')

    output = io.BytesIO()
    img.save(output, format=pil_format, quality=int(round(quality * 100)))
    return output.getvalue()


def preprocess_image(
    asset: ImageAsset,
    threshold_bytes: int = PREPROCESS_THRESHOLD_BYTES,
    max_dimension: int = MAX_DIMENSION,
    quality: float = DEFAULT_QUALITY,
) -> ImageAsset:
    """
    Downsamples an oversized image before it is sent for compression.

    Images at or under the size threshold are returned untouched. Larger
    images are re-rendered so neither side exceeds ``max_dimension`` and
    re-encoded in their original format. Any decode or encode failure
    returns the original asset.

    Args:
        asset: Source image
        threshold_bytes: Assets larger than this are re-encoded
        max_dimension: Maximum length of the longer side
        quality: Encoder quality factor in [0, 1]

    Returns:
        ImageAsset with the same MIME type as the input
    """
    if asset.size <= threshold_bytes:
        return asset

    try:
        data = _render(asset.data, asset.mime_type, max_dimension, quality)
    except Exception as e:
        logger.warning(f'Image preprocessing failed, using original: {str(e)}')
        return asset

    logger.info('Image preprocessed', extra={
        'image_filename': asset.filename,
        'original_size': asset.size,
        'compressed_size': len(data),
    })
    return ImageAsset(data=data, mime_type=asset.mime_type, filename=asset.filename)
