"""
tests/images/test_image_services.py

Test cases for the image service and the S3 storage adapter.
Covers the inline and object-storage strategies, key layout and
translation of S3 client errors.
"""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError
from fastapi import status

from doit.core.exceptions import BackendError, InvalidUploadError, StorageUnavailableError, ValidationFailure
from doit.core.storage import ObjectStorage, avatar_key, safe_filename, task_image_key
from doit.images.services import ImageService, ImageUpload


@pytest.fixture
def s3_client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def storage_images(s3_client: MagicMock) -> ImageService:
    return ImageService(use_object_storage=True, storage=ObjectStorage("doit-test", "eu-central-1", s3_client))


# Key Builders


def test_safe_filename_strips_paths_and_symbols() -> None:
    """Test that uploaded filenames cannot escape their key prefix."""
    assert safe_filename("../../etc/my photo!.png") == "my_photo.png"
    assert safe_filename(None) == "image"


def test_key_layouts() -> None:
    """Test avatar and task image key prefixes."""
    assert avatar_key("u1", "me.png").startswith("avatars/u1/avatar_u1_")
    assert task_image_key("t1", "a.jpg").startswith("tasks/t1/images/")
    assert task_image_key(None, "a.jpg").startswith("tasks/images/")


# Inline Strategy


@pytest.mark.asyncio
async def test_prepare_avatar_inline_returns_data_uri(inline_images: ImageService, small_png: bytes) -> None:
    """Test that the inline strategy embeds a JPEG data URI."""
    prepared = await inline_images.prepare_avatar("u1", ImageUpload(small_png, "me.png"))

    assert prepared.inline is True
    assert prepared.url.startswith("data:image/jpeg;base64,")


@pytest.mark.asyncio
async def test_prepare_avatar_requires_user(inline_images: ImageService, small_png: bytes) -> None:
    """Test that avatars need an owner."""
    with pytest.raises(ValidationFailure):
        await inline_images.prepare_avatar("", ImageUpload(small_png, "me.png"))


@pytest.mark.asyncio
async def test_prepare_chat_image_rejects_invalid_upload(inline_images: ImageService) -> None:
    """Test that validation runs before any processing."""
    with pytest.raises(InvalidUploadError):
        await inline_images.prepare_chat_image("c1", ImageUpload(b"plain text", "notes.txt"))


@pytest.mark.asyncio
async def test_prepare_task_images_skips_failures(inline_images: ImageService, small_png: bytes) -> None:
    """Test that failed task images are dropped while the rest succeed in order."""
    urls = await inline_images.prepare_task_images(
        "t1", [ImageUpload(b"", "empty.png"), ImageUpload(small_png, "ok.png"), ImageUpload(b"junk", "x.bin")]
    )

    assert len(urls) == 1
    assert urls[0].startswith("data:image/jpeg;base64,")


# Object Storage Strategy


def test_object_storage_requires_adapter() -> None:
    """Test that the object-storage strategy cannot be built without an adapter."""
    with pytest.raises(ValueError):
        ImageService(use_object_storage=True)


@pytest.mark.asyncio
async def test_prepare_avatar_uploads_to_object_storage(
    storage_images: ImageService, s3_client: MagicMock, small_png: bytes
) -> None:
    """Test that the object-storage strategy uploads a JPEG and returns its URL."""
    prepared = await storage_images.prepare_avatar("u1", ImageUpload(small_png, "me.png"))

    assert prepared.inline is False
    kwargs = s3_client.put_object.call_args.kwargs
    assert kwargs["Bucket"] == "doit-test"
    assert kwargs["Key"].startswith("avatars/u1/avatar_u1_")
    assert kwargs["ContentType"] == "image/jpeg"
    assert prepared.url == f"https://doit-test.s3.eu-central-1.amazonaws.com/{kwargs['Key']}"


@pytest.mark.asyncio
async def test_prepare_chat_image_uses_chat_prefix(
    storage_images: ImageService, s3_client: MagicMock, small_png: bytes
) -> None:
    """Test the chat image key layout."""
    await storage_images.prepare_chat_image("c9", ImageUpload(small_png, "pic.png"))

    key = s3_client.put_object.call_args.kwargs["Key"]
    assert key.startswith("chat-images/chat_c9_")
    assert key.endswith(".jpg")


@pytest.mark.asyncio
async def test_prepare_chat_gif_keeps_gif_extension(
    storage_images: ImageService, s3_client: MagicMock, make_image
) -> None:
    """Test that a passed-through GIF is stored under a .gif key."""
    await storage_images.prepare_chat_image("c9", ImageUpload(make_image((20, 10), "GIF"), "wave.gif"))

    kwargs = s3_client.put_object.call_args.kwargs
    assert kwargs["ContentType"] == "image/gif"
    assert kwargs["Key"].endswith(".gif")


@pytest.mark.parametrize(
    ("error_code", "backend_code", "expected_status"),
    [
        ("AccessDenied", "storage/unauthorized", status.HTTP_403_FORBIDDEN),
        ("InvalidAccessKeyId", "storage/unauthorized", status.HTTP_403_FORBIDDEN),
        ("NoSuchBucket", "storage/bucket-not-found", status.HTTP_404_NOT_FOUND),
        ("BadDigest", "storage/invalid-checksum", status.HTTP_400_BAD_REQUEST),
        ("IncompleteBody", "storage/server-file-wrong-size", status.HTTP_502_BAD_GATEWAY),
        ("SlowDown", "storage/retry-limit-exceeded", status.HTTP_503_SERVICE_UNAVAILABLE),
        ("EntityTooLarge", None, status.HTTP_502_BAD_GATEWAY),
    ],
)
def test_upload_translates_client_errors(error_code: str, backend_code: str | None, expected_status: int) -> None:
    """Test that S3 client errors become storage backend errors with a matching status."""
    client = MagicMock()
    client.put_object.side_effect = ClientError({"Error": {"Code": error_code, "Message": "x"}}, "PutObject")
    storage = ObjectStorage("doit-test", "eu-central-1", client)

    with pytest.raises(BackendError) as exc_info:
        storage.upload_bytes("k", b"data", "image/jpeg")

    assert exc_info.value.code == backend_code
    assert exc_info.value.status_code == expected_status


def test_upload_without_client_is_unavailable() -> None:
    """Test that a storage adapter without a client refuses uploads."""
    with pytest.raises(StorageUnavailableError):
        ObjectStorage("doit-test", "eu-central-1").upload_bytes("k", b"data", "image/jpeg")
