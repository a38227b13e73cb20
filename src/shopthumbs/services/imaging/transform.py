"""Thumbnail transcoding: decode any supported raster, force a square size, emit JPEG.

The source format is detected by sniffing the bytes, never from the declared
Content-Type. The Content-Type is only used to reject responses that are clearly
not images (HTML error pages, JSON) before decoding.
"""

from __future__ import annotations

from io import BytesIO
from typing import Optional

from PIL import Image, UnidentifiedImageError

from shopthumbs.services.exceptions import EncodeError, UnsupportedFormatError

SUPPORTED_FORMATS = ("JPEG", "PNG", "GIF", "WEBP", "BMP")

# Rasters above this many pixels are rejected from the header, before any pixel
# data is allocated.
MAX_SOURCE_PIXELS = Image.MAX_IMAGE_PIXELS


def _is_acceptable_content_type(content_type: Optional[str]) -> bool:
    if not content_type:
        return True
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type.startswith("image/") or media_type == "application/octet-stream"


def decode_image(raw_bytes: bytes) -> Image.Image:
    """Decode bytes into a fully loaded RGB raster.

    Animated GIFs contribute their first frame.

    Raises:
        UnsupportedFormatError: Unknown format, corrupt/truncated data, or a
            raster larger than MAX_SOURCE_PIXELS
    """
    try:
        image = Image.open(BytesIO(raw_bytes), formats=SUPPORTED_FORMATS)
        width, height = image.size
        if width * height > MAX_SOURCE_PIXELS:
            raise UnsupportedFormatError(
                f"Image too large: {width}x{height} exceeds {MAX_SOURCE_PIXELS} pixels"
            )
        image.load()
    except (
        UnidentifiedImageError,
        Image.DecompressionBombError,
        OSError,
        ValueError,
        SyntaxError,
    ) as exc:
        raise UnsupportedFormatError(f"Invalid image data: {exc}") from exc

    if image.mode != "RGB":
        image = image.convert("RGB")
    return image


def transform_image(
    raw_bytes: bytes,
    content_type: Optional[str] = None,
    size: tuple[int, int] = (300, 300),
    quality: int = 80,
) -> bytes:
    """Decode, resize to exactly `size` with Lanczos resampling and encode as JPEG.

    Aspect ratio is not preserved; both dimensions are forced.

    Args:
        raw_bytes: Source image bytes (JPEG, PNG, GIF, WebP or BMP)
        content_type: Declared Content-Type of the download, if any
        size: Target (width, height)
        quality: JPEG quality

    Returns:
        JPEG-encoded bytes

    Raises:
        UnsupportedFormatError: Non-image content type or undecodable bytes
        EncodeError: JPEG encoding failed
    """
    if not _is_acceptable_content_type(content_type):
        raise UnsupportedFormatError(f"Content type {content_type!r} is not an image")

    image = decode_image(raw_bytes)
    resized = image.resize(size, Image.Resampling.LANCZOS)

    buffer = BytesIO()
    try:
        resized.save(buffer, format="JPEG", quality=quality)
    except (OSError, ValueError) as exc:
        raise EncodeError(f"Failed to encode JPEG: {exc}") from exc
    return buffer.getvalue()
