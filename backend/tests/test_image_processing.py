"""
Tests for image preprocessing.
"""
import io
import os
import pytest
from PIL import Image

from imgpress.models import ImageAsset
from imgpress.utils.image_processing import (
    compute_target_dimensions,
    preprocess_image,
    PREPROCESS_THRESHOLD_BYTES,
)


@pytest.fixture(scope='module')
def oversized_jpeg():
    """A 4096x2048 noise JPEG, which does not compress below 5MB."""
    img = Image.frombytes('RGB', (4096, 2048), os.urandom(4096 * 2048 * 3))
    output = io.BytesIO()
    img.save(output, format='JPEG', quality=100, subsampling=0)
    return output.getvalue()


class TestComputeTargetDimensions:
    """Tests for the downsampling geometry."""

    def test_within_limit_unchanged(self):
        assert compute_target_dimensions(1920, 1080) == (1920, 1080)
        assert compute_target_dimensions(2048, 2048) == (2048, 2048)

    def test_landscape_clamped(self):
        assert compute_target_dimensions(4096, 2048) == (2048, 1024)

    def test_portrait_clamped_and_rounded(self):
        # 1000 / 3000 * 2048 = 682.67
        assert compute_target_dimensions(1000, 3000) == (683, 2048)

    def test_square_clamped(self):
        assert compute_target_dimensions(3000, 3000) == (2048, 2048)

    def test_one_side_over_limit(self):
        assert compute_target_dimensions(2500, 100) == (2048, 82)

    def test_custom_max_dimension(self):
        assert compute_target_dimensions(800, 400, max_dimension=200) == (200, 100)


class TestPreprocessImage:
    """Tests for preprocess_image."""

    def test_small_image_returned_unchanged(self, image_bytes):
        """Test that images at or under 5MB are passed through as-is."""
        asset = ImageAsset(data=image_bytes(), mime_type='image/jpeg')

        result = preprocess_image(asset)

        assert result is asset

    def test_exactly_threshold_returned_unchanged(self):
        asset = ImageAsset(data=b'\x00' * PREPROCESS_THRESHOLD_BYTES, mime_type='image/png')
        assert preprocess_image(asset) is asset

    def test_oversized_image_downsampled(self, oversized_jpeg):
        """Test that a large 4096x2048 image is resized to 2048 on the long side."""
        assert len(oversized_jpeg) > PREPROCESS_THRESHOLD_BYTES
        asset = ImageAsset(data=oversized_jpeg, mime_type='image/jpeg', filename='big.jpg')

        result = preprocess_image(asset)

        assert result is not asset
        assert result.mime_type == 'image/jpeg'
        assert result.filename == 'big.jpg'
        img = Image.open(io.BytesIO(result.data))
        assert img.format == 'JPEG'
        assert max(img.size) == 2048
        assert abs(img.width - img.height * 4096 / 2048) <= 1

    def test_reencodes_in_original_format(self, image_bytes):
        """Test that re-encoding keeps the declared format."""
        data = image_bytes(size=(3000, 1500), fmt='PNG', mode='RGBA', color=(0, 0, 255, 128))
        asset = ImageAsset(data=data, mime_type='image/png')

        result = preprocess_image(asset, threshold_bytes=10)

        img = Image.open(io.BytesIO(result.data))
        assert img.format == 'PNG'
        assert img.mode == 'RGBA'
        assert img.size == (2048, 1024)

    def test_alpha_dropped_for_jpeg(self, image_bytes):
        """Test that an RGBA source declared as JPEG still encodes."""
        data = image_bytes(size=(50, 50), fmt='PNG', mode='RGBA')
        asset = ImageAsset(data=data, mime_type='image/jpeg')

        result = preprocess_image(asset, threshold_bytes=10)

        img = Image.open(io.BytesIO(result.data))
        assert img.format == 'JPEG'
        assert img.size == (50, 50)

    def test_decode_failure_returns_original(self):
        """Test that undecodable data falls back to the original asset."""
        asset = ImageAsset(data=b'not an image' * 100, mime_type='image/png')

        result = preprocess_image(asset, threshold_bytes=10)

        assert result is asset

    def test_unknown_mime_returns_original(self, image_bytes):
        asset = ImageAsset(data=image_bytes(), mime_type='image/gif')
        assert preprocess_image(asset, threshold_bytes=10) is asset
