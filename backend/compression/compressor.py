"""
Compress an image to a byte budget or to a target geometry.

Flow:
1. Accept bytes (with or without a MIME type) or a data:image/...;base64 URI
2. Check the source MIME is image/*
3. If a budget is given and the original already fits, return the original
4. Otherwise decode, then either encode once at the requested geometry or run
   the width search until the estimated size fits the budget
5. Never return something larger than the original

Decode, render and encode passes run in worker threads so several requests can
interleave on one event loop. Nothing is shared between calls.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Tuple, Union

from PIL import Image

from .codec import (
    DATA_URL_PREFIX,
    bytes_to_data_url,
    data_url_to_bytes,
    decode_image,
    encode_data_url,
    encode_image,
    parse_data_url_mime,
    sniff_mime,
)
from .errors import InvalidInputError, UnsupportedMimeError
from .mime import ImageType, is_image_mime, resolve_output_type
from .options import CompressOptions, GeometryRequest
from .orientation import transform

logger = logging.getLogger(__name__)

# len(base64 text) * 0.75 ~= len(decoded bytes); avoids decoding every candidate.
ESTIMATE_RATIO = 0.75

SEARCH_STEPS = 8

ImageInput = Union[bytes, bytearray, memoryview, str]


@dataclass(frozen=True)
class CompressedImage:
    data: bytes
    mime: str
    original_size: int
    width: Optional[int] = None
    height: Optional[int] = None
    compressed: bool = True

    @property
    def size(self) -> int:
        return len(self.data)

    def to_data_url(self) -> str:
        return bytes_to_data_url(self.data, self.mime)


def estimate_size(data_url: str) -> float:
    """Approximate decoded byte size of a base64 data URI."""
    return len(data_url) * ESTIMATE_RATIO


def candidate_widths(start_width: float, min_width: float) -> List[float]:
    """
    Widths the search tries, widest first: eight equal steps from start_width
    down to (but excluding) min_width. Empty when start_width <= min_width.
    """
    if start_width <= min_width:
        return []
    step = (start_width - min_width) / SEARCH_STEPS
    return [start_width - i * step for i in range(SEARCH_STEPS)]


def _render_data_url(
    image: Image.Image,
    geometry: GeometryRequest,
    orientation: Optional[int],
    image_type: ImageType,
    quality: float,
) -> str:
    with transform(image, geometry, orientation) as surface:
        return encode_data_url(surface, image_type, quality)


def _render_bytes(
    image: Image.Image,
    geometry: GeometryRequest,
    orientation: Optional[int],
    image_type: ImageType,
    quality: float,
) -> Tuple[bytes, Tuple[int, int]]:
    with transform(image, geometry, orientation) as surface:
        return encode_image(surface, image_type, quality), surface.size


def _smaller_of(
    encoded: bytes,
    size: Tuple[int, int],
    image_type: ImageType,
    original: bytes,
    source_mime: str,
) -> CompressedImage:
    if len(encoded) >= len(original):
        logger.info(
            f"Compressed output ({len(encoded)} bytes) is not smaller than original "
            f"({len(original)} bytes); returning original"
        )
        return CompressedImage(data=original, mime=source_mime, original_size=len(original), compressed=False)
    width, height = size
    return CompressedImage(
        data=encoded,
        mime=image_type.value,
        original_size=len(original),
        width=width,
        height=height,
    )


async def search_width(image: Image.Image, options: CompressOptions, image_type: ImageType) -> float:
    """
    Walk the candidate widths until the estimated encoded size drops below the
    budget. Returns the first fitting width, or min_width if none fits.
    """
    budget = options.budget_bytes
    widths = candidate_widths(image.width, options.min_width)
    if not widths:
        logger.info(f"Source width {image.width} is not above minWidth {options.min_width}; skipping search")
        return image.width

    for width in widths:
        data_url = await asyncio.to_thread(
            _render_data_url,
            image,
            GeometryRequest(width=width),
            options.orientation,
            image_type,
            options.quality,
        )
        estimate = estimate_size(data_url)
        logger.debug(f"Candidate width {width:.1f}: ~{estimate:.0f} bytes (budget {budget:.0f})")
        if estimate < budget:
            return width

    logger.info(f"No candidate fit {budget:.0f} bytes; falling back to minWidth {options.min_width}")
    return options.min_width


async def compress_to_budget(
    image: Image.Image,
    original: bytes,
    options: CompressOptions,
    image_type: ImageType,
    source_mime: str,
) -> CompressedImage:
    """
    Shrink image width until its encoding fits options.size (KB), then do one
    exact encode at that width. Best-effort: the result may still exceed the
    budget when even minWidth is too large.
    """
    width = await search_width(image, options, image_type)
    encoded, size = await asyncio.to_thread(
        _render_bytes,
        image,
        GeometryRequest(width=width),
        options.orientation,
        image_type,
        options.quality,
    )
    logger.info(
        f"Budget search picked width {width:.1f}: {len(encoded)} bytes "
        f"(budget {options.budget_bytes:.0f}, original {len(original)})"
    )
    return _smaller_of(encoded, size, image_type, original, source_mime)


async def _load_source(img: Any, mime: Optional[str]) -> Tuple[bytes, str]:
    if isinstance(img, (bytes, bytearray, memoryview)):
        data = bytes(img)
        if mime:
            return data, mime.strip().lower()
        return data, await asyncio.to_thread(sniff_mime, data)
    if isinstance(img, str) and img.startswith(DATA_URL_PREFIX):
        source_mime = parse_data_url_mime(img)
        data, _ = await asyncio.to_thread(data_url_to_bytes, img)
        return data, source_mime
    raise InvalidInputError("Input must be image bytes or an image base64 data URI.")


async def compress(
    img: ImageInput,
    options: Union[CompressOptions, Mapping[str, Any], None] = None,
    mime: Optional[str] = None,
) -> CompressedImage:
    """
    Compress img according to options.

    Args:
        img: Encoded image bytes or a data:image/...;base64 URI
        options: CompressOptions or a plain mapping of caller-facing keys
        mime: MIME type of byte input; sniffed from the bytes when omitted

    Raises:
        InvalidInputError: img is neither bytes nor an image data URI
        UnsupportedMimeError: the source MIME is not image/*
        DecodeError: the image data is corrupt
    """
    if options is None:
        options = CompressOptions()
    elif not isinstance(options, CompressOptions):
        options = CompressOptions.from_mapping(options)

    original, source_mime = await _load_source(img, mime)
    if not is_image_mime(source_mime):
        raise UnsupportedMimeError(source_mime)

    image_type = resolve_output_type(options.type, source_mime)
    budget = options.budget_bytes

    if budget is not None and len(original) <= budget:
        logger.info(f"Original ({len(original)} bytes) already fits {budget:.0f} bytes; returning it unchanged")
        return CompressedImage(data=original, mime=source_mime, original_size=len(original), compressed=False)

    image = await asyncio.to_thread(decode_image, original)
    with image:
        if budget is None:
            encoded, size = await asyncio.to_thread(
                _render_bytes,
                image,
                options.geometry,
                options.orientation,
                image_type,
                options.quality,
            )
            return _smaller_of(encoded, size, image_type, original, source_mime)
        return await compress_to_budget(image, original, options, image_type, source_mime)
