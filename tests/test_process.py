"""Tests for process.py module.

Tests crop-box padding, region extraction, optimization,
thumbnails, and encoding.
"""

import pytest
from io import BytesIO
from unittest.mock import patch

from PIL import Image

from cloud_images.models import BoundingBox
from cloud_images.process import (
    DEFAULT_BOUND,
    ImageProcessingError,
    calculate_padded_box,
    create_thumbnail,
    crop_region,
    encode_image,
    optimize_image,
)


def make_image(size=(800, 600), mode='RGB', color=(255, 0, 0), fmt='PNG') -> bytes:
    """Encode a solid-color image."""
    buffer = BytesIO()
    Image.new(mode, size, color=color).save(buffer, fmt)
    return buffer.getvalue()


def decode(data: bytes) -> Image.Image:
    return Image.open(BytesIO(data))


@pytest.fixture
def sample_image():
    """800x600 RGB PNG."""
    return make_image()


@pytest.fixture
def large_image():
    """4000x3000 RGB PNG, larger than the optimize box."""
    return make_image((4000, 3000), color=(0, 0, 255))


@pytest.fixture
def rgba_image():
    """RGBA PNG with transparency."""
    return make_image((400, 300), mode='RGBA', color=(0, 255, 0, 128))


class TestCalculatePaddedBox:
    """Tests for calculate_padded_box function."""

    def test_unknown_bounds_uses_default(self):
        """Padding near the origin clamps to zero and grows the size."""
        box = calculate_padded_box(BoundingBox(5, 5, 100, 100), padding=10)

        assert box == BoundingBox(x=0, y=0, width=120, height=120)

    def test_interior_box(self):
        """Boxes away from the edges grow by padding on every side."""
        box = calculate_padded_box(BoundingBox(50, 60, 100, 80), padding=10, bounds=(800, 600))

        assert box == BoundingBox(x=40, y=50, width=120, height=100)

    def test_caps_at_image_edge(self):
        """Box never extends past the right or bottom edge."""
        box = calculate_padded_box(BoundingBox(750, 550, 100, 100), padding=10, bounds=(800, 600))

        assert box.x + box.width <= 800
        assert box.y + box.height <= 600
        assert box == BoundingBox(x=740, y=540, width=60, height=60)

    def test_default_bound_caps_width(self):
        """Oversized boxes are capped at the default bound."""
        box = calculate_padded_box(BoundingBox(0, 0, 3000, 3000), padding=10)

        assert box.width == DEFAULT_BOUND
        assert box.height == DEFAULT_BOUND

    def test_zero_padding(self):
        """Zero padding returns the same box."""
        bbox = BoundingBox(10, 20, 30, 40)

        assert calculate_padded_box(bbox, padding=0, bounds=(100, 100)) == bbox

    def test_negative_padding_rejected(self):
        """Negative padding should raise ValueError."""
        with pytest.raises(ValueError):
            calculate_padded_box(BoundingBox(0, 0, 10, 10), padding=-1)

    def test_box_outside_image_is_empty(self):
        """A box beyond the image collapses to zero size."""
        box = calculate_padded_box(BoundingBox(900, 10, 50, 50), padding=10, bounds=(800, 600))

        assert box.width == 0

    @pytest.mark.parametrize("x, y, width, height, padding", [
        (0, 0, 1, 1, 0),
        (3, 7, 500, 20, 25),
        (790, 590, 50, 50, 10),
        (100, 100, 5000, 5000, 100),
        (0, 599, 800, 1, 3),
    ])
    def test_always_within_bounds(self, x, y, width, height, padding):
        """Origin stays non-negative and size stays inside the bounds."""
        box = calculate_padded_box(BoundingBox(x, y, width, height), padding, (800, 600))

        assert box.x >= 0 and box.y >= 0
        assert box.width <= 800 and box.height <= 600
        assert box.x + box.width <= 800
        assert box.y + box.height <= 600


class TestCropRegion:
    """Tests for crop_region function."""

    def test_returns_png_of_padded_size(self, sample_image):
        """Should extract the padded region as PNG."""
        data, padded = crop_region(sample_image, BoundingBox(100, 100, 50, 40), padding=10)

        image = decode(data)
        assert image.format == 'PNG'
        assert image.size == (70, 60)
        assert padded == BoundingBox(90, 90, 70, 60)

    def test_uses_real_dimensions(self, sample_image):
        """Padded box is clamped to the decoded image size."""
        _, padded = crop_region(sample_image, BoundingBox(780, 580, 100, 100), padding=10)

        assert padded == BoundingBox(770, 570, 30, 30)

    def test_region_outside_image(self, sample_image):
        """Should raise when nothing of the box lies inside the image."""
        with pytest.raises(ImageProcessingError):
            crop_region(sample_image, BoundingBox(1000, 1000, 10, 10))

    def test_invalid_bytes(self):
        """Should raise for data that is not an image."""
        with pytest.raises(ImageProcessingError):
            crop_region(b'not an image', BoundingBox(0, 0, 10, 10))


class TestOptimizeImage:
    """Tests for optimize_image function."""

    def test_converts_to_webp(self, sample_image):
        """Should convert image to WebP format."""
        result = optimize_image(sample_image)

        assert result[:4] == b'RIFF'
        assert b'WEBP' in result[:12]

    def test_fits_inside_box(self, large_image):
        """Large images shrink to fit, keeping aspect ratio."""
        result = optimize_image(large_image, max_width=1920, max_height=1080)

        width, height = decode(result).size
        assert width <= 1920 and height <= 1080
        assert width / height == pytest.approx(4 / 3, rel=0.01)

    def test_does_not_enlarge(self, sample_image):
        """Small images keep their size."""
        result = optimize_image(sample_image, max_width=1920, max_height=1080)

        assert decode(result).size == (800, 600)

    def test_jpeg_output(self, rgba_image):
        """RGBA input can be encoded as JPEG."""
        result = optimize_image(rgba_image, target_format='jpeg', quality=70)

        assert decode(result).format == 'JPEG'

    def test_returns_original_on_invalid_input(self):
        """Undecodable data is returned unchanged."""
        data = b'definitely not an image'

        assert optimize_image(data) is data

    def test_returns_original_when_encoder_fails(self, sample_image):
        """Encoder failures fall back to the original bytes."""
        with patch('cloud_images.process.encode_image', side_effect=OSError("encoder broke")):
            result = optimize_image(sample_image)

        assert result is sample_image


class TestCreateThumbnail:
    """Tests for create_thumbnail function."""

    @pytest.mark.parametrize("size", [(300, 300), (120, 80), (50, 400), (1200, 900)])
    def test_exact_dimensions(self, sample_image, size):
        """Thumbnail always has exactly the requested size."""
        result = create_thumbnail(sample_image, width=size[0], height=size[1])

        assert decode(result).size == size

    def test_default_format_is_webp(self, sample_image):
        """Default output is WebP."""
        result = create_thumbnail(sample_image)

        assert decode(result).format == 'WEBP'

    def test_png_output(self, rgba_image):
        """PNG keeps transparency."""
        result = create_thumbnail(rgba_image, width=100, height=100, target_format='png')

        image = decode(result)
        assert image.format == 'PNG'
        assert image.mode == 'RGBA'

    def test_center_crop(self):
        """Cover crop keeps the center of the image."""
        image = Image.new('RGB', (300, 100), color=(0, 0, 255))
        image.paste((255, 0, 0), (100, 0, 200, 100))
        buffer = BytesIO()
        image.save(buffer, 'PNG')

        result = decode(create_thumbnail(buffer.getvalue(), 100, 100, target_format='png'))

        assert result.getpixel((50, 50)) == (255, 0, 0)

    def test_raises_on_invalid_input(self):
        """Unlike optimize, thumbnail errors propagate."""
        with pytest.raises(ImageProcessingError):
            create_thumbnail(b'garbage')

    def test_raises_on_invalid_size(self, sample_image):
        """Zero-sized thumbnails are rejected."""
        with pytest.raises(ImageProcessingError):
            create_thumbnail(sample_image, width=0, height=100)


class TestEncodeImage:
    """Tests for encode_image function."""

    def test_unknown_format_falls_back_to_webp(self):
        """Unknown target formats produce WebP."""
        result = encode_image(Image.new('RGB', (10, 10)), 'tiff')

        assert decode(result).format == 'WEBP'

    def test_jpg_alias(self):
        """jpg is accepted as JPEG."""
        result = encode_image(Image.new('RGB', (10, 10)), 'jpg')

        assert decode(result).format == 'JPEG'

    def test_jpeg_flattens_alpha_on_white(self):
        """Transparent pixels become white in JPEG output."""
        result = encode_image(Image.new('RGBA', (10, 10), (0, 0, 0, 0)), 'jpeg', quality=95)

        r, g, b = decode(result).convert('RGB').getpixel((5, 5))
        assert min(r, g, b) > 240
