"""Cloud Images - Upload, crop and manage images on Cloudinary.

Thin helpers over the Cloudinary SDK and Pillow: uploads, padded crops,
resource info, deletion, signed URLs, usage statistics, and local
optimize/thumbnail transforms.
"""

__version__ = "0.1.0"
__author__ = "Cloud Images"

from .models import (
    BoundingBox,
    CloudinaryConfig,
    ErrorKind,
    ImageInfo,
    Outcome,
    OutcomeError,
    UploadResult,
    UsageQuota,
    UsageStats,
)

__all__ = [
    "__version__",
    "BoundingBox",
    "CloudinaryConfig",
    "ErrorKind",
    "ImageInfo",
    "Outcome",
    "OutcomeError",
    "UploadResult",
    "UsageQuota",
    "UsageStats",
]
