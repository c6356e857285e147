import asyncio
import io
import logging

from PIL import Image, ImageOps, UnidentifiedImageError

from crewapp.config import (
    RECEIPT_FORMAT,
    RECEIPT_MAX_DIMENSION,
    RECEIPT_QUALITY,
)
from crewapp.errors import DecodeError, EncodeError

logger = logging.getLogger(__name__)


def _scaled_size(width: int, height: int, max_dimension: int) -> tuple[int, int]:
    if width <= max_dimension and height <= max_dimension:
        return width, height
    if width >= height:
        return max_dimension, max(1, round(height * max_dimension / width))
    return max(1, round(width * max_dimension / height)), max_dimension


def _compress(data: bytes, max_dimension: int, quality: float) -> bytes:
    try:
        with Image.open(io.BytesIO(data)) as source:
            source.load()
            image = ImageOps.exif_transpose(source)
    except (
        UnidentifiedImageError,
        Image.DecompressionBombError,
        OSError,
        ValueError,
    ) as exc:
        raise DecodeError("Receipt is not a readable image") from exc

    size = _scaled_size(image.width, image.height, max_dimension)
    if size != image.size:
        image = image.resize(size, Image.Resampling.LANCZOS)
    if image.mode != "RGB":
        image = image.convert("RGB")

    out = io.BytesIO()
    try:
        image.save(
            out,
            format=RECEIPT_FORMAT,
            quality=round(quality * 100),
            optimize=True,
        )
    except (OSError, ValueError) as exc:
        raise EncodeError("Could not re-encode the receipt image") from exc

    compressed = out.getvalue()
    logger.debug(
        "Receipt compressed: %.2fMB -> %.2fMB",
        len(data) / 1024 / 1024,
        len(compressed) / 1024 / 1024,
    )
    return compressed


async def compress_receipt_image(
    data: bytes,
    max_dimension: int = RECEIPT_MAX_DIMENSION,
    quality: float = RECEIPT_QUALITY,
) -> bytes:
    """
    Downsample a receipt photo so neither side exceeds `max_dimension` and
    re-encode it as JPEG. The codec runs in a worker thread.
    """
    return await asyncio.to_thread(_compress, data, max_dimension, quality)
