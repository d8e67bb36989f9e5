"""
images/pipeline.py

Image compression and inline encoding.
- Validates uploads by content sniffing (filetype) before any processing
- Compresses to a size/dimension budget with Pillow
- Encodes images as data URIs that must stay below the document safety margin,
  retrying once with the emergency budget
"""

import base64
import io
import logging
from collections.abc import Sequence
from dataclasses import dataclass

import filetype
from fastapi import status
from PIL import Image, ImageOps, UnidentifiedImageError

from doit.core.exceptions import ImageTooLargeError, InvalidUploadError

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES: set[str] = {"image/jpeg", "image/png", "image/webp", "image/gif"}
MAX_UPLOAD_BYTES = 5 * 1024 * 1024
DEFAULT_SAFETY_MARGIN_BYTES = int(0.9 * 1024 * 1024)

START_QUALITY = 90
MIN_QUALITY = 40
QUALITY_STEP = 10
SCALE_STEP = 0.85
MAX_ITERATIONS = 12


# ---------------------------------------------------
# Compression Budgets
# ---------------------------------------------------
@dataclass(frozen=True)
class CompressionOptions:
    max_size_mb: float
    max_width_or_height: int

    @property
    def max_bytes(self) -> int:
        return int(self.max_size_mb * 1024 * 1024)


AVATAR_INLINE = CompressionOptions(max_size_mb=0.3, max_width_or_height=500)
AVATAR_STORAGE = CompressionOptions(max_size_mb=1.0, max_width_or_height=1200)
TASK_INLINE = CompressionOptions(max_size_mb=0.3, max_width_or_height=1200)
TASK_STORAGE = CompressionOptions(max_size_mb=0.8, max_width_or_height=1600)
CHAT = CompressionOptions(max_size_mb=0.3, max_width_or_height=800)
EMERGENCY = CompressionOptions(max_size_mb=0.15, max_width_or_height=300)


@dataclass(frozen=True)
class CompressedImage:
    data: bytes
    mime: str
    width: int
    height: int


# ---------------------------------------------------
# Validation
# ---------------------------------------------------
def validate_image_upload(data: bytes, filename: str | None = None) -> str:
    """
    Checks that an upload is a non-empty, supported image within the size limit.

    Returns:
        str: The sniffed MIME type.

    Raises:
        InvalidUploadError: For empty, oversized or unsupported files.
    """
    if not data:
        logger.warning(f"[IMAGES] Upload rejected: empty file '{filename}'")
        raise InvalidUploadError("Received an empty file.")

    if len(data) > MAX_UPLOAD_BYTES:
        logger.warning(
            f"[IMAGES] Upload rejected: '{filename}' is {len(data)} bytes, limit {MAX_UPLOAD_BYTES}"
        )
        raise InvalidUploadError(
            f"File size exceeds the limit of {MAX_UPLOAD_BYTES // 1024 // 1024} MB.",
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        )

    kind = filetype.guess(data[:261])
    detected_mime = kind.mime if kind else "unknown"
    if detected_mime not in ALLOWED_IMAGE_TYPES:
        logger.warning(f"[IMAGES] Upload rejected: unsupported type '{detected_mime}' for '{filename}'")
        raise InvalidUploadError(
            f"Unsupported file type: '{detected_mime}'. Allowed types: JPEG, PNG, WEBP, GIF.",
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
        )
    return detected_mime


# ---------------------------------------------------
# Compression
# ---------------------------------------------------
def _open_image(data: bytes) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidUploadError(f"Could not read image data: {e}") from e
    return image


def _to_rgb(image: Image.Image) -> Image.Image:
    # JPEG has no alpha channel; transparent areas become white
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    if image.mode != "RGB":
        return image.convert("RGB")
    return image


def _encode_jpeg(image: Image.Image, quality: int) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=quality, optimize=True)
    return buffer.getvalue()


def compress_image(data: bytes, options: CompressionOptions) -> CompressedImage:
    """
    Fits an image into the given budget.

    The image is first scaled down so its longest side is within
    max_width_or_height, then JPEG quality is lowered step by step and,
    once the quality floor is reached, dimensions are reduced. The smallest
    encoding produced is returned even if the byte budget was never met.
    GIFs are returned unchanged to keep animation.
    """
    image = _open_image(data)
    if image.format == "GIF":
        return CompressedImage(data=data, mime="image/gif", width=image.width, height=image.height)

    image = _to_rgb(ImageOps.exif_transpose(image))
    image.thumbnail((options.max_width_or_height, options.max_width_or_height), Image.Resampling.LANCZOS)

    quality = START_QUALITY
    best: CompressedImage | None = None
    for _ in range(MAX_ITERATIONS):
        encoded = _encode_jpeg(image, quality)
        if best is None or len(encoded) < len(best.data):
            best = CompressedImage(data=encoded, mime="image/jpeg", width=image.width, height=image.height)
        if len(encoded) <= options.max_bytes:
            break
        if quality > MIN_QUALITY:
            quality -= QUALITY_STEP
        else:
            new_size = (max(1, int(image.width * SCALE_STEP)), max(1, int(image.height * SCALE_STEP)))
            image = image.resize(new_size, Image.Resampling.LANCZOS)

    logger.debug(
        f"[IMAGES] Compressed {len(data)} -> {len(best.data)} bytes "
        f"({best.width}x{best.height}, budget {options.max_bytes})"
    )
    return best


# ---------------------------------------------------
# Inline Encoding
# ---------------------------------------------------
def to_data_uri(data: bytes, mime: str) -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def encode_inline(
    data: bytes,
    primary: CompressionOptions,
    safety_margin_bytes: int = DEFAULT_SAFETY_MARGIN_BYTES,
    fallbacks: Sequence[CompressionOptions] = (EMERGENCY,),
) -> str:
    """
    Compresses and encodes an image as a data URI strictly below the margin.

    Each pass starts again from the original bytes with a tighter budget.

    Raises:
        ImageTooLargeError: If no pass produces a small enough payload.
    """
    size = 0
    for attempt, options in enumerate((primary, *fallbacks)):
        compressed = compress_image(data, options)
        uri = to_data_uri(compressed.data, compressed.mime)
        size = len(uri.encode("ascii"))
        if size < safety_margin_bytes:
            if attempt:
                logger.info(f"[IMAGES] Emergency compression succeeded: {size} bytes")
            return uri
        logger.warning(
            f"[IMAGES] Inline payload {size} bytes exceeds margin {safety_margin_bytes} "
            f"(pass {attempt + 1}, budget {options.max_size_mb} MB / {options.max_width_or_height}px)"
        )

    raise ImageTooLargeError(
        f"Image is still {size / 1024 / 1024:.2f} MB after emergency compression; "
        f"the limit is {safety_margin_bytes / 1024 / 1024:.2f} MB. "
        "Choose a smaller image or enable object storage."
    )
