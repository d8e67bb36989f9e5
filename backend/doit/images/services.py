"""
images/services.py

Prepares avatar, task and chat images for storage.

The storage strategy is fixed when the service is constructed:
- Object storage: compress to the looser budget and upload, store the URL
- Inline: compress to the tight budget and embed a data URI in the document
"""

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from doit.core.exceptions import APIError, ValidationFailure
from doit.core.storage import ObjectStorage, avatar_key, chat_image_key, task_image_key
from doit.images.pipeline import (
    AVATAR_INLINE,
    AVATAR_STORAGE,
    CHAT,
    DEFAULT_SAFETY_MARGIN_BYTES,
    TASK_INLINE,
    TASK_STORAGE,
    CompressionOptions,
    compress_image,
    encode_inline,
    validate_image_upload,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreparedImage:
    url: str
    inline: bool


@dataclass(frozen=True)
class ImageUpload:
    data: bytes
    filename: str | None = None


class ImageService:
    def __init__(
        self,
        use_object_storage: bool,
        storage: ObjectStorage | None = None,
        safety_margin_bytes: int = DEFAULT_SAFETY_MARGIN_BYTES,
    ) -> None:
        if use_object_storage and storage is None:
            raise ValueError("Object storage strategy selected but no storage adapter was provided")
        self.use_object_storage = use_object_storage
        self.storage = storage
        self.safety_margin_bytes = safety_margin_bytes

    async def _prepare(
        self,
        upload: ImageUpload,
        inline_options: CompressionOptions,
        storage_options: CompressionOptions,
        build_key: Callable[[str], str],
    ) -> PreparedImage:
        validate_image_upload(upload.data, upload.filename)

        if self.use_object_storage:
            compressed = await asyncio.to_thread(compress_image, upload.data, storage_options)
            url = await asyncio.to_thread(
                self.storage.upload_bytes, build_key(compressed.mime), compressed.data, compressed.mime
            )
            return PreparedImage(url=url, inline=False)

        uri = await asyncio.to_thread(encode_inline, upload.data, inline_options, self.safety_margin_bytes)
        return PreparedImage(url=uri, inline=True)

    async def prepare_avatar(self, user_id: str, upload: ImageUpload) -> PreparedImage:
        if not user_id:
            raise ValidationFailure("A user id is required to upload an avatar.")
        prepared = await self._prepare(
            upload, AVATAR_INLINE, AVATAR_STORAGE, lambda _mime: avatar_key(user_id, upload.filename)
        )
        logger.info(f"[IMAGES] Avatar prepared for user {user_id} (inline={prepared.inline})")
        return prepared

    async def prepare_task_images(self, task_id: str | None, uploads: Sequence[ImageUpload]) -> list[str]:
        """
        Prepares every upload, skipping the ones that fail.

        Returns:
            list[str]: URLs or data URIs of the images that succeeded, in order.
        """
        urls: list[str] = []
        for index, upload in enumerate(uploads):
            try:
                prepared = await self._prepare(
                    upload,
                    TASK_INLINE,
                    TASK_STORAGE,
                    lambda _mime, upload=upload: task_image_key(task_id, upload.filename),
                )
            except APIError as e:
                logger.warning(f"[IMAGES] Skipping task image {index} ('{upload.filename}'): {e.message}")
                continue
            urls.append(prepared.url)

        logger.info(f"[IMAGES] Prepared {len(urls)}/{len(uploads)} images for task {task_id}")
        return urls

    async def prepare_chat_image(self, chat_id: str, upload: ImageUpload) -> PreparedImage:
        if not chat_id:
            raise ValidationFailure("A chat id is required to send an image.")
        return await self._prepare(upload, CHAT, CHAT, lambda mime: chat_image_key(chat_id, mime))
