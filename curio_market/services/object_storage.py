"""Object storage for uploaded images (S3-compatible bucket, presigned URLs)."""

import asyncio
import uuid
from typing import Optional
from urllib.parse import urlparse

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from curio_market.core.config import settings
from curio_market.core.logging import get_logger

logger = get_logger(__name__)

OBJECTS_PREFIX = "/objects/"

# Hosts that serve raw bucket URLs from older uploads
_RAW_STORAGE_HOSTS = ("storage.googleapis.com",)


class ObjectStorageError(Exception):
    """Raised when the bucket cannot be reached or is not configured."""


class ObjectNotFoundError(ObjectStorageError):
    """The path is malformed or no object is stored under it."""


# S3 error codes for a missing key
_MISSING_CODES = ("404", "NoSuchKey", "NotFound")


def normalize_image_url(url: Optional[str]) -> Optional[str]:
    """
    Map any stored image reference onto the `/objects/uploads/<id>` scheme.

    Already-normalized paths pass through; raw bucket URLs and bare
    `uploads/<id>` keys are rewritten. Unrelated external URLs are left alone.
    """
    if not url:
        return url
    if url.startswith(OBJECTS_PREFIX):
        return url

    upload_prefix = settings.OBJECT_STORAGE_UPLOAD_PREFIX.strip("/")
    if url.startswith(f"{upload_prefix}/") or url.startswith(f"/{upload_prefix}/"):
        return f"{OBJECTS_PREFIX}{upload_prefix}/{url.rstrip('/').split('/')[-1]}"

    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        return url

    host = parsed.hostname or ""
    endpoint_host = urlparse(settings.OBJECT_STORAGE_ENDPOINT_URL or "").hostname
    from_bucket = (
        host in _RAW_STORAGE_HOSTS
        or host.endswith(".amazonaws.com")
        or (endpoint_host is not None and host == endpoint_host)
        or f"/{upload_prefix}/" in parsed.path
    )
    if not from_bucket:
        return url

    upload_id = parsed.path.rstrip("/").split("/")[-1]
    if not upload_id:
        return url
    return f"{OBJECTS_PREFIX}{upload_prefix}/{upload_id}"


class ObjectStorageService:
    """
    Issues presigned PUT/GET URLs against the configured bucket.

    boto3 is synchronous, so signing runs in a worker thread.
    """

    def __init__(self):
        self._client = None

    @property
    def configured(self) -> bool:
        return bool(settings.OBJECT_STORAGE_BUCKET)

    def _get_client(self):
        if not self.configured:
            raise ObjectStorageError("Object storage bucket is not configured")
        if self._client is None:
            self._client = boto3.client(
                "s3",
                endpoint_url=settings.OBJECT_STORAGE_ENDPOINT_URL,
                region_name=settings.OBJECT_STORAGE_REGION,
                aws_access_key_id=settings.OBJECT_STORAGE_ACCESS_KEY_ID,
                aws_secret_access_key=settings.OBJECT_STORAGE_SECRET_ACCESS_KEY,
                config=BotoConfig(signature_version="s3v4"),
            )
        return self._client

    def new_upload_key(self) -> str:
        return f"{settings.OBJECT_STORAGE_UPLOAD_PREFIX.strip('/')}/{uuid.uuid4()}"

    async def get_upload_url(self) -> dict:
        """Presigned PUT URL for a fresh upload key plus its normalized path."""
        key = self.new_upload_key()
        client = self._get_client()
        try:
            upload_url = await asyncio.to_thread(
                client.generate_presigned_url,
                "put_object",
                Params={"Bucket": settings.OBJECT_STORAGE_BUCKET, "Key": key},
                ExpiresIn=settings.OBJECT_STORAGE_URL_TTL_SECONDS,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to sign upload URL: {e}")
            raise ObjectStorageError("Failed to create upload URL") from e

        return {"upload_url": upload_url, "object_path": f"{OBJECTS_PREFIX}{key}"}

    async def get_download_url(self, object_path: str) -> str:
        """Presigned GET URL for an `/objects/...` path or a bare key."""
        key = object_path
        if key.startswith(OBJECTS_PREFIX):
            key = key[len(OBJECTS_PREFIX):]
        key = key.lstrip("/")
        if not key or ".." in key.split("/"):
            raise ObjectNotFoundError("Invalid object path")

        client = self._get_client()
        try:
            await asyncio.to_thread(client.head_object, Bucket=settings.OBJECT_STORAGE_BUCKET, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _MISSING_CODES:
                raise ObjectNotFoundError(f"No object stored at {key}") from e
            logger.error(f"Failed to look up {key}: {e}")
            raise ObjectStorageError("Failed to look up object") from e
        except BotoCoreError as e:
            logger.error(f"Failed to look up {key}: {e}")
            raise ObjectStorageError("Failed to look up object") from e

        try:
            return await asyncio.to_thread(
                client.generate_presigned_url,
                "get_object",
                Params={"Bucket": settings.OBJECT_STORAGE_BUCKET, "Key": key},
                ExpiresIn=settings.OBJECT_STORAGE_URL_TTL_SECONDS,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to sign download URL for {key}: {e}")
            raise ObjectStorageError("Failed to create download URL") from e


# Singleton instance
object_storage = ObjectStorageService()
