"""Local image processing for Cloud Images.

Handles crop-box padding, region extraction, fit-inside optimization,
cover thumbnails, and re-encoding to WebP, JPEG or PNG with Pillow.
"""

import io
import logging

from PIL import Image, ImageOps

from .models import BoundingBox

logger = logging.getLogger(__name__)

# Assumed image bound when the caller cannot supply real dimensions
DEFAULT_BOUND = 2048

# Crops are stored losslessly
CROP_QUALITY = 90

_PIL_FORMATS = {
    "webp": "WEBP",
    "jpeg": "JPEG",
    "jpg": "JPEG",
    "png": "PNG",
}


class ImageProcessingError(Exception):
    """Raised when an image cannot be decoded, transformed or encoded."""
    pass


def calculate_padded_box(
    bbox: BoundingBox,
    padding: int = 10,
    bounds: tuple[int, int] | None = None,
) -> BoundingBox:
    """Grow a bounding box by padding on every side, clamped to the image.

    The origin is clamped at zero and the size is capped so the box never
    extends past the image's right or bottom edge.

    Args:
        bbox: Region of interest
        padding: Margin to add on each side (>= 0)
        bounds: Image (width, height); DEFAULT_BOUND on both axes if unknown

    Returns:
        Padded BoundingBox

    Raises:
        ValueError: If padding is negative
    """
    if padding < 0:
        raise ValueError(f"Padding must be >= 0, got {padding}")

    bound_width, bound_height = bounds or (DEFAULT_BOUND, DEFAULT_BOUND)

    x = max(0, bbox.x - padding)
    y = max(0, bbox.y - padding)
    width = max(0, min(bound_width - x, bbox.width + 2 * padding))
    height = max(0, min(bound_height - y, bbox.height + 2 * padding))

    return BoundingBox(x=x, y=y, width=width, height=height)


def open_image(data: bytes) -> Image.Image:
    """Decode image bytes.

    Raises:
        ImageProcessingError: If the bytes are not a readable image
    """
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise ImageProcessingError(f"Cannot decode image: {e}") from e
    return image


def _prepare_mode(image: Image.Image, pil_format: str) -> Image.Image:
    """Convert image mode to one the target encoder accepts."""
    has_alpha = image.mode in ('RGBA', 'LA') or (
        image.mode == 'P' and 'transparency' in image.info
    )

    if pil_format == 'JPEG':
        if has_alpha:
            # JPEG has no alpha channel, composite on white
            rgba = image.convert('RGBA')
            background = Image.new('RGB', rgba.size, (255, 255, 255))
            background.paste(rgba, mask=rgba.split()[3])
            return background
        if image.mode != 'RGB':
            return image.convert('RGB')
        return image

    if has_alpha:
        return image if image.mode == 'RGBA' else image.convert('RGBA')
    if image.mode not in ('RGB', 'L'):
        return image.convert('RGB')
    return image


def encode_image(
    image: Image.Image,
    target_format: str = "webp",
    quality: int = 85,
) -> bytes:
    """Encode a PIL image.

    Args:
        image: Image to encode
        target_format: webp, jpeg (jpg) or png; anything else falls back to webp
        quality: Quality 0-100 (ignored by the lossless PNG encoder)

    Returns:
        Encoded bytes
    """
    pil_format = _PIL_FORMATS.get(target_format.lower(), "WEBP")
    image = _prepare_mode(image, pil_format)

    output_buffer = io.BytesIO()

    if pil_format == 'WEBP':
        image.save(output_buffer, format='WEBP', quality=quality, method=6)
    elif pil_format == 'JPEG':
        image.save(output_buffer, format='JPEG', quality=quality, optimize=True)
    else:
        image.save(output_buffer, format='PNG', optimize=True)

    return output_buffer.getvalue()


def crop_region(
    data: bytes,
    bbox: BoundingBox,
    padding: int = 10,
) -> tuple[bytes, BoundingBox]:
    """Extract a padded region of an image as PNG.

    The padded box is computed against the decoded image dimensions.

    Args:
        data: Encoded source image
        bbox: Region of interest
        padding: Margin to add on each side

    Returns:
        Tuple of (PNG bytes, padded bounding box)

    Raises:
        ImageProcessingError: If the image cannot be decoded or the padded
            region is empty
        ValueError: If padding is negative
    """
    image = open_image(data)
    padded = calculate_padded_box(bbox, padding, image.size)

    if padded.width == 0 or padded.height == 0:
        raise ImageProcessingError(
            f"Bounding box {bbox.as_dict()} lies outside the "
            f"{image.width}x{image.height} image"
        )

    region = image.crop((
        padded.x,
        padded.y,
        padded.x + padded.width,
        padded.y + padded.height,
    ))

    return encode_image(region, "png", CROP_QUALITY), padded


def optimize_image(
    data: bytes,
    max_width: int = 1920,
    max_height: int = 1080,
    quality: int = 85,
    target_format: str = "webp",
) -> bytes:
    """Shrink an image to fit a box and re-encode it for web delivery.

    Aspect ratio is preserved and images are never enlarged. If anything
    goes wrong the original bytes are returned unchanged.

    Args:
        data: Encoded source image
        max_width: Maximum output width
        max_height: Maximum output height
        quality: Quality 0-100
        target_format: webp, jpeg or png

    Returns:
        Optimized bytes, or the original bytes on failure
    """
    try:
        image = open_image(data)
        original_size = image.size

        # thumbnail() only ever shrinks
        image.thumbnail((max_width, max_height), Image.Resampling.LANCZOS)

        output = encode_image(image, target_format, quality)
    except (ImageProcessingError, OSError, ValueError) as e:
        logger.warning("Image optimization failed, keeping original: %s", e)
        return data

    logger.debug(
        "Optimized %sx%s -> %sx%s %s (%d -> %d bytes)",
        *original_size, *image.size, target_format, len(data), len(output),
    )
    return output


def create_thumbnail(
    data: bytes,
    width: int = 300,
    height: int = 300,
    quality: int = 80,
    target_format: str = "webp",
) -> bytes:
    """Create a thumbnail of exactly width x height.

    The image is scaled to cover the box and center-cropped.

    Args:
        data: Encoded source image
        width: Thumbnail width
        height: Thumbnail height
        quality: Quality 0-100
        target_format: webp, jpeg or png

    Returns:
        Encoded thumbnail bytes

    Raises:
        ImageProcessingError: If the image cannot be processed
    """
    if width <= 0 or height <= 0:
        raise ImageProcessingError(f"Invalid thumbnail size {width}x{height}")

    image = open_image(data)

    try:
        thumb = ImageOps.fit(
            image,
            (width, height),
            method=Image.Resampling.LANCZOS,
            centering=(0.5, 0.5),
        )
        return encode_image(thumb, target_format, quality)
    except (OSError, ValueError) as e:
        raise ImageProcessingError(f"Cannot create thumbnail: {e}") from e
