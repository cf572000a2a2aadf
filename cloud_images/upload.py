"""Cloudinary upload logic and resource management.

Manages client initialization, single and batch uploads, cropped
uploads, resource lookup, deletion, URL signing and usage statistics.
Every remote operation returns an Outcome instead of raising. The SDK
boundary catches Exception, since besides cloudinary.exceptions.Error the
Admin API raises a bare Exception for HTTP statuses it does not map
(502, 504).
"""

import dataclasses
import io
import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

import cloudinary.api
import cloudinary.exceptions
import cloudinary.uploader
import cloudinary.utils

from .models import (
    BoundingBox,
    CloudinaryConfig,
    ErrorKind,
    ImageInfo,
    Outcome,
    UploadResult,
    UsageQuota,
    UsageStats,
)
from .process import ImageProcessingError, crop_region
from .storage import (
    CROP_FOLDER,
    CROP_TAGS,
    CROPPED_TAG,
    DEFAULT_FOLDER,
    build_transformation,
    generate_public_id,
    merge_tags,
    normalize_folder,
)

logger = logging.getLogger(__name__)

# Default lifetime of a signed URL in seconds
SIGNED_URL_TTL = 3600


class CloudinaryClient:
    """Cloudinary SDK calls bound to one set of credentials.

    Credentials are passed with every call, so several clients with
    different accounts can coexist and the SDK's global configuration
    is never touched.
    """

    def __init__(self, config: CloudinaryConfig):
        self.config = config

    def _options(self, options: Mapping[str, Any]) -> dict[str, Any]:
        return {
            **options,
            "cloud_name": self.config.cloud_name,
            "api_key": self.config.api_key,
            "api_secret": self.config.api_secret,
        }

    def upload(self, data: bytes, **options: Any) -> dict[str, Any]:
        return cloudinary.uploader.upload(io.BytesIO(data), **self._options(options))

    def resource(self, public_id: str, **options: Any) -> dict[str, Any]:
        return cloudinary.api.resource(public_id, **self._options(options))

    def destroy(self, public_id: str, **options: Any) -> dict[str, Any]:
        return cloudinary.uploader.destroy(public_id, **self._options(options))

    def usage(self, **options: Any) -> dict[str, Any]:
        return cloudinary.api.usage(**self._options(options))

    def ping(self, **options: Any) -> dict[str, Any]:
        return cloudinary.api.ping(**self._options(options))

    def download_url(self, public_id: str, format: str = "", **options: Any) -> str:
        """Build a signed download URL locally.

        Unlike delivery URLs, the signature covers expires_at, so the
        link stops working once that time has passed.
        """
        return cloudinary.utils.private_download_url(public_id, format, **self._options(options))


def init_client(config: CloudinaryConfig) -> CloudinaryClient:
    """Create a client bound to the given credentials.

    Args:
        config: Cloudinary configuration with credentials

    Returns:
        Configured CloudinaryClient
    """
    logger.debug("Initialized Cloudinary client for cloud %s", config.cloud_name)
    return CloudinaryClient(config)


def upload_image(
    client: CloudinaryClient,
    data: bytes,
    folder: str = DEFAULT_FOLDER,
    public_id: str | None = None,
    tags: Iterable[str] = (),
    transformation: Iterable[dict[str, Any]] = (),
) -> Outcome[UploadResult]:
    """Upload image bytes to Cloudinary.

    Automatic quality and format selection are always requested; caller
    transformations are applied in addition to them.

    Args:
        client: Configured Cloudinary client
        data: Encoded image bytes
        folder: Destination folder
        public_id: Public id; generated when omitted
        tags: Tags to attach
        transformation: Extra transformation directives

    Returns:
        Outcome with an UploadResult, or a REMOTE failure
    """
    if public_id is None:
        public_id = generate_public_id("img")

    params = {
        'resource_type': 'image',
        'public_id': public_id,
        'folder': normalize_folder(folder),
        'tags': list(tags),
        'transformation': build_transformation(transformation),
    }

    try:
        response = client.upload(data, **params)
    except Exception as e:
        logger.error("Image upload error for %s: %s", public_id, e)
        return Outcome.fail(ErrorKind.REMOTE, str(e), public_id=public_id)

    result = UploadResult(
        public_id=response['public_id'],
        url=response['secure_url'],
        width=response.get('width', 0),
        height=response.get('height', 0),
        format=response.get('format', ''),
        size=response.get('bytes', 0),
        uploaded_at=datetime.now(timezone.utc),
        tags=tuple(response.get('tags', params['tags'])),
    )
    logger.info("Uploaded %s (%d bytes)", result.public_id, result.size)
    return Outcome.ok(result)


def crop_and_upload(
    client: CloudinaryClient,
    data: bytes,
    bbox: BoundingBox,
    padding: int = 10,
    folder: str = CROP_FOLDER,
    tags: Iterable[str] = CROP_TAGS,
) -> Outcome[UploadResult]:
    """Crop a padded region out of an image and upload it as PNG.

    Args:
        client: Configured Cloudinary client
        data: Encoded source image
        bbox: Region of interest
        padding: Margin added on each side, clamped to the image
        folder: Destination folder
        tags: Caller tags; "cropped" is always added

    Returns:
        Outcome with an UploadResult carrying bbox and padded_bbox,
        a PROCESSING failure if extraction failed, or the upload failure
    """
    try:
        cropped, padded = crop_region(data, bbox, padding)
    except (ImageProcessingError, ValueError) as e:
        logger.error("Create cropped image error: %s", e)
        return Outcome.fail(ErrorKind.PROCESSING, str(e))

    outcome = upload_image(
        client,
        cropped,
        folder=folder,
        public_id=generate_public_id("crop"),
        tags=merge_tags(tags, CROPPED_TAG),
        transformation=[{'fetch_format': 'png'}],
    )
    if not outcome.success:
        return outcome

    return Outcome.ok(dataclasses.replace(outcome.value, bbox=bbox, padded_bbox=padded))


def get_image_info(client: CloudinaryClient, public_id: str) -> Outcome[ImageInfo]:
    """Fetch metadata for a stored image.

    Args:
        client: Configured Cloudinary client
        public_id: Full public id including folder

    Returns:
        Outcome with ImageInfo, NOT_FOUND, or a REMOTE failure
    """
    try:
        response = client.resource(public_id)
    except cloudinary.exceptions.NotFound as e:
        logger.error("Image not found: %s", public_id)
        return Outcome.fail(ErrorKind.NOT_FOUND, str(e), public_id=public_id)
    except Exception as e:
        logger.error("Get image info error for %s: %s", public_id, e)
        return Outcome.fail(ErrorKind.REMOTE, str(e), public_id=public_id)

    return Outcome.ok(ImageInfo(
        public_id=response['public_id'],
        url=response['secure_url'],
        width=response.get('width', 0),
        height=response.get('height', 0),
        format=response.get('format', ''),
        size=response.get('bytes', 0),
        created_at=response.get('created_at'),
        tags=tuple(response.get('tags') or ()),
    ))


def delete_image(client: CloudinaryClient, public_id: str) -> Outcome[str]:
    """Delete a stored image.

    Deleting an id that does not exist is reported as NOT_FOUND, so
    callers that want idempotent deletes must treat that as success.

    Args:
        client: Configured Cloudinary client
        public_id: Full public id including folder

    Returns:
        Outcome with the deleted public id, or NOT_FOUND, REJECTED or
        REMOTE failure
    """
    try:
        response = client.destroy(public_id)
    except Exception as e:
        logger.error("Delete image error for %s: %s", public_id, e)
        return Outcome.fail(ErrorKind.REMOTE, str(e), public_id=public_id)

    result = response.get('result')
    if result == 'ok':
        logger.info("Deleted %s", public_id)
        return Outcome.ok(public_id)
    if result == 'not found':
        return Outcome.fail(ErrorKind.NOT_FOUND, f"Image not found: {public_id}", public_id=public_id)

    logger.warning("Delete of %s returned %r", public_id, result)
    return Outcome.fail(
        ErrorKind.REJECTED,
        f"Failed to delete image: {result}",
        public_id=public_id,
    )


def generate_signed_url(
    client: CloudinaryClient,
    public_id: str,
    expires_at: int | None = None,
    transformation: Iterable[dict[str, Any]] = (),
    format: str = "",
    attachment: bool = False,
) -> Outcome[str]:
    """Build a signed download URL that expires.

    Signing happens locally with the account secret; no request is made.
    The expiry is part of the signature, so the URL cannot be extended
    by editing it.

    The download endpoint serves the stored original. Transformations
    cannot be signed into an expiring URL, so asking for any is a
    REJECTED failure.

    Args:
        client: Configured Cloudinary client
        public_id: Full public id including folder
        expires_at: Unix timestamp; defaults to one hour from now
        transformation: Must be empty
        format: File extension to deliver, e.g. "jpg"; stored format if empty
        attachment: Ask the browser to save the file instead of showing it

    Returns:
        Outcome with the URL, a CONFIG failure if signing is impossible,
        or a REJECTED failure if transformations were requested
    """
    steps = [dict(step) for step in transformation]
    if steps:
        return Outcome.fail(
            ErrorKind.REJECTED,
            "Expiring URLs deliver the original image; transformations are not supported",
            public_id=public_id,
        )

    if expires_at is None:
        expires_at = int(time.time()) + SIGNED_URL_TTL

    try:
        url = client.download_url(
            public_id,
            format,
            type='upload',
            expires_at=expires_at,
            attachment=attachment or None,
        )
    except ValueError as e:
        # SDK raises ValueError when a credential is missing
        logger.error("Generate signed URL error for %s: %s", public_id, e)
        return Outcome.fail(ErrorKind.CONFIG, str(e), public_id=public_id)
    except Exception as e:
        logger.error("Generate signed URL error for %s: %s", public_id, e)
        return Outcome.fail(ErrorKind.REMOTE, str(e), public_id=public_id)

    return Outcome.ok(url)


def _quota(section: Mapping[str, Any] | None) -> UsageQuota:
    section = section or {}
    used = section.get('usage', section.get('used', 0)) or 0
    limit = section.get('limit', 0) or 0
    return UsageQuota(used=used, limit=limit)


def get_usage_stats(client: CloudinaryClient) -> Outcome[UsageStats]:
    """Fetch account usage.

    Args:
        client: Configured Cloudinary client

    Returns:
        Outcome with UsageStats, or a REMOTE failure
    """
    try:
        response = client.usage()
    except Exception as e:
        logger.error("Get usage stats error: %s", e)
        return Outcome.fail(ErrorKind.REMOTE, str(e))

    return Outcome.ok(UsageStats(
        plan=response.get('plan', 'unknown'),
        credits=_quota(response.get('credits')),
        objects=_quota(response.get('objects')),
        bandwidth=_quota(response.get('bandwidth')),
    ))


def verify_connection(client: CloudinaryClient) -> Outcome[dict[str, Any]]:
    """Verify credentials by pinging the API.

    Args:
        client: Configured Cloudinary client

    Returns:
        Outcome with the ping response, or a REMOTE failure
    """
    try:
        response = client.ping()
    except Exception as e:
        logger.error("Cloudinary connection test failed: %s", e)
        return Outcome.fail(ErrorKind.REMOTE, str(e))

    logger.info("Cloudinary connection test successful")
    return Outcome.ok(dict(response))


def batch_upload(
    client: CloudinaryClient,
    images: list[tuple[bytes, str | None]],
    max_workers: int = 4,
    **options: Any,
) -> list[Outcome[UploadResult]]:
    """Upload multiple images in parallel.

    Args:
        client: Configured Cloudinary client
        images: List of (data, public_id) tuples; a None id is generated
        max_workers: Maximum number of parallel uploads
        **options: Passed to upload_image (folder, tags, transformation)

    Returns:
        List of outcomes (in same order as input)
    """
    results: list[Outcome[UploadResult] | None] = [None] * len(images)

    def upload_single(index: int, data: bytes, public_id: str | None):
        return index, upload_image(client, data, public_id=public_id, **options)

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = [
            executor.submit(upload_single, i, data, public_id)
            for i, (data, public_id) in enumerate(images)
        ]

        for future in as_completed(futures):
            index, outcome = future.result()
            results[index] = outcome

    return results
