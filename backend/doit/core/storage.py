"""
core/storage.py

Object storage adapter (AWS S3) used when the object-storage image strategy
is enabled:
- Uploads compressed image bytes under structured key prefixes
- Builds avatar, task image and chat image keys
- Translates S3 client errors into storage backend errors
"""

import logging
import os
import time

import boto3
from botocore.exceptions import ClientError, NoCredentialsError, PartialCredentialsError

from doit.core.config import Settings
from doit.core.exceptions import BackendError, StorageUnavailableError

logger = logging.getLogger(__name__)

# S3 error codes mapped onto the storage/* backend error codes
S3_ERROR_CODES: dict[str, str] = {
    "AccessDenied": "storage/unauthorized",
    "InvalidAccessKeyId": "storage/unauthorized",
    "SignatureDoesNotMatch": "storage/unauthorized",
    "NoSuchBucket": "storage/bucket-not-found",
    "BadDigest": "storage/invalid-checksum",
    "InvalidDigest": "storage/invalid-checksum",
    "IncompleteBody": "storage/server-file-wrong-size",
    "RequestTimeout": "storage/retry-limit-exceeded",
    "SlowDown": "storage/retry-limit-exceeded",
    "ServiceUnavailable": "storage/retry-limit-exceeded",
}


# ---------------------------------------------------
# Key Builders
# ---------------------------------------------------
def safe_filename(filename: str | None, fallback: str = "image") -> str:
    """Strips directories and anything outside [A-Za-z0-9_.-] from a filename."""
    name = os.path.basename(filename or fallback).replace(" ", "_")
    name = "".join(c for c in name if c.isalnum() or c in ("_", "-", "."))
    return name or fallback


def _timestamp_ms() -> int:
    return int(time.time() * 1000)


def avatar_key(user_id: str, filename: str | None) -> str:
    return f"avatars/{user_id}/avatar_{user_id}_{_timestamp_ms()}_{safe_filename(filename)}"


def task_image_key(task_id: str | None, filename: str | None) -> str:
    ts = _timestamp_ms()
    if task_id:
        return f"tasks/{task_id}/images/{ts}_{safe_filename(filename)}"
    return f"tasks/images/{ts}/{safe_filename(filename)}"


IMAGE_EXTENSIONS = {"image/jpeg": "jpg", "image/png": "png", "image/webp": "webp", "image/gif": "gif"}


def chat_image_key(chat_id: str, mime: str = "image/jpeg") -> str:
    return f"chat-images/chat_{chat_id}_{_timestamp_ms()}.{IMAGE_EXTENSIONS.get(mime, 'jpg')}"


# ---------------------------------------------------
# S3 Adapter
# ---------------------------------------------------
class ObjectStorage:
    """Thin wrapper around a boto3 S3 client bound to one bucket."""

    def __init__(self, bucket: str, region: str, client=None) -> None:
        self.bucket = bucket
        self.region = region
        self._client = client

    def public_url(self, key: str) -> str:
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def upload_bytes(self, key: str, data: bytes, content_type: str) -> str:
        """
        Uploads an object and returns its public HTTPS URL.

        Raises:
            StorageUnavailableError: If no S3 client is configured.
            BackendError: If S3 rejects the upload, with a storage/* code when known.
        """
        if not self._client:
            logger.error("[STORAGE] S3 client is not available. Check AWS configuration.")
            raise StorageUnavailableError()

        logger.info(f"[STORAGE] Uploading {len(data)} bytes ({content_type}) to s3://{self.bucket}/{key}")
        try:
            self._client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code")
            logger.error(f"[STORAGE] S3 ClientError uploading '{key}': {error_code} - {e}")
            raise BackendError(S3_ERROR_CODES.get(error_code), f"Upload failed: {error_code or 'unknown'}") from e

        url = self.public_url(key)
        logger.debug(f"[STORAGE] Uploaded object available at {url}")
        return url


def build_object_storage(config: Settings) -> ObjectStorage | None:
    """Creates the S3 adapter when the object-storage strategy is enabled."""
    if not config.USE_OBJECT_STORAGE or not config.AWS_S3_BUCKET:
        return None
    try:
        client = boto3.client(
            "s3",
            aws_access_key_id=config.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=config.AWS_SECRET_ACCESS_KEY,
            region_name=config.AWS_REGION,
        )
        logger.info("[STORAGE] Boto3 S3 client initialized successfully.")
    except (NoCredentialsError, PartialCredentialsError):
        logger.error("[STORAGE] AWS credentials not found or incomplete in environment settings.")
        client = None
    return ObjectStorage(config.AWS_S3_BUCKET, config.AWS_REGION, client=client)
