"""Storage naming utilities for Cloud Images.

Handles public id generation, folder/tag normalization, and the
transformation list sent with every upload.
"""

import re
import time
import uuid
from typing import Any, Iterable

# Default folders for plain uploads and crops
DEFAULT_FOLDER = "cloud-images"
CROP_FOLDER = "cloud-images/crops"

# Default tags for crops; "cropped" is always appended
CROP_TAGS = ("crop", "evidence")
CROPPED_TAG = "cropped"

# Applied before any caller-supplied directives
DEFAULT_TRANSFORMATION = (
    {"quality": "auto:good"},
    {"fetch_format": "auto"},
)


def generate_public_id(prefix: str = "img") -> str:
    """Generate a unique public id.

    Combines a random UUID with a millisecond timestamp, e.g.
    img_1b4e28ba-2fa1-11d2-883f-0016d3cca427_1700000000000

    Args:
        prefix: Leading component (img, crop, ...)

    Returns:
        Public id string
    """
    return f"{prefix}_{uuid.uuid4()}_{int(time.time() * 1000)}"


def build_transformation(extra: Iterable[dict[str, Any]] = ()) -> list[dict[str, Any]]:
    """Build the upload transformation list.

    Automatic quality and format always come first; caller directives
    are applied in addition to them.

    Args:
        extra: Caller-supplied transformation directives

    Returns:
        New list of transformation dicts
    """
    return [dict(step) for step in DEFAULT_TRANSFORMATION] + [dict(step) for step in extra]


def merge_tags(tags: Iterable[str], *extra: str) -> list[str]:
    """Combine tag lists, dropping blanks and duplicates.

    Order of first appearance is preserved.

    Args:
        tags: Caller tags
        *extra: Tags to append

    Returns:
        List of unique tags
    """
    merged: list[str] = []
    for tag in (*tags, *extra):
        tag = tag.strip()
        if tag and tag not in merged:
            merged.append(tag)
    return merged


def sanitize_name(name: str, max_length: int = 50) -> str:
    """Sanitize a string for use in a public id.

    Converts to snake_case, removes special characters,
    and truncates to max length.

    Args:
        name: String to sanitize
        max_length: Maximum length of result

    Returns:
        Sanitized string
    """
    result = name.lower()

    # Replace spaces and hyphens with underscores
    result = re.sub(r'[\s-]+', '_', result)

    # Remove non-alphanumeric characters (except underscores)
    result = re.sub(r'[^\w]', '', result)

    # Collapse multiple underscores
    result = re.sub(r'_+', '_', result)

    result = result.strip('_')

    if len(result) > max_length:
        result = result[:max_length].rstrip('_')

    return result


def normalize_folder(folder: str | None) -> str:
    """Strip surrounding slashes and empty segments from a folder path."""
    if not folder:
        return ""
    return "/".join(part for part in folder.split("/") if part.strip())

