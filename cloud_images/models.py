"""Data models for Cloud Images.

Contains data classes for credentials, bounding boxes, upload results,
resource info, usage statistics, and the outcome record returned by
every remote operation.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class CloudinaryConfig:
    """Cloudinary account credentials.

    Attributes:
        cloud_name: Cloudinary cloud (account) name
        api_key: API key
        api_secret: API secret, used for signing
        secure: Build https URLs (default: True)
    """
    cloud_name: str
    api_key: str
    api_secret: str
    secure: bool = True


@dataclass(frozen=True)
class BoundingBox:
    """Rectangular pixel region of an image."""
    x: int
    y: int
    width: int
    height: int

    def as_dict(self) -> dict[str, int]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class UploadResult:
    """Result of a successful upload.

    Attributes:
        public_id: Identifier the image is stored under
        url: Secure delivery URL
        width: Stored width in pixels
        height: Stored height in pixels
        format: Stored format (e.g. png, webp)
        size: Stored size in bytes, as reported by the service
        uploaded_at: Local UTC time the upload completed
        tags: Tags attached to the image
        bbox: Original bounding box (crops only)
        padded_bbox: Padded bounding box that was extracted (crops only)
    """
    public_id: str
    url: str
    width: int
    height: int
    format: str
    size: int
    uploaded_at: datetime
    tags: tuple[str, ...] = ()
    bbox: Optional[BoundingBox] = None
    padded_bbox: Optional[BoundingBox] = None


@dataclass(frozen=True)
class ImageInfo:
    """Metadata of an image stored at Cloudinary."""
    public_id: str
    url: str
    width: int
    height: int
    format: str
    size: int
    created_at: Optional[str]
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class UsageQuota:
    """Consumption of one account resource."""
    used: float
    limit: float

    @property
    def remaining(self) -> float:
        return self.limit - self.used


@dataclass(frozen=True)
class UsageStats:
    """Account usage snapshot, fetched fresh on every call."""
    plan: str
    credits: UsageQuota
    objects: UsageQuota
    bandwidth: UsageQuota


class ErrorKind(str, Enum):
    """Category of a failed operation."""
    CONFIG = "config"
    PROCESSING = "processing"
    NOT_FOUND = "not_found"
    REJECTED = "rejected"
    REMOTE = "remote"


class OutcomeError(Exception):
    """Raised by Outcome.unwrap() on a failed outcome."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Success value or categorized error.

    Build with Outcome.ok() or Outcome.fail(); check `success` before
    reading `value`.
    """
    success: bool
    value: Optional[T] = None
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, value: T) -> "Outcome[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str, **details: Any) -> "Outcome[T]":
        return cls(success=False, error=message, kind=kind, details=details)

    def unwrap(self) -> T:
        """Return the value, or raise OutcomeError for a failure."""
        if not self.success:
            raise OutcomeError(self.kind or ErrorKind.REMOTE, self.error or "Unknown error")
        return self.value
