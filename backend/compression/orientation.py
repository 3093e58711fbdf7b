"""
Orientation transform: resize a decoded image to a target geometry and
rotate/flip it according to an orientation code.

    code  effect
    1     none
    2     horizontal flip
    3     180°
    4     vertical flip
    5     90° clockwise + horizontal flip
    6     90° clockwise
    7     90° clockwise + vertical flip
    8     90° counter-clockwise

Codes outside 1-8 are treated as 1. For codes 5-8 the output is the rotated
bounding box, so width and height come out swapped.
"""

import logging
import os
from typing import Optional, Tuple

from PIL import Image

from .errors import InvalidOptionsError
from .options import GeometryRequest

logger = logging.getLogger(__name__)

QUARTER_TURN_CODES = frozenset({5, 6, 7, 8})

MAX_SCALE = 10

# Upper bounds on an enlarged image, checked before any pixels are allocated.
MAX_DIMENSION = int(os.getenv("MAX_DIMENSION", "10000"))
MAX_OUTPUT_PIXELS = int(os.getenv("MAX_OUTPUT_PIXELS", str(50_000_000)))

# Pillow rotates counter-clockwise, so a clockwise quarter turn is ROTATE_270.
_TRANSPOSE_BY_CODE = {
    2: Image.Transpose.FLIP_LEFT_RIGHT,
    3: Image.Transpose.ROTATE_180,
    4: Image.Transpose.FLIP_TOP_BOTTOM,
    5: Image.Transpose.TRANSPOSE,
    6: Image.Transpose.ROTATE_270,
    7: Image.Transpose.TRANSVERSE,
    8: Image.Transpose.ROTATE_90,
}


def _to_pixels(value: float) -> int:
    return max(1, int(round(value)))


def resolve_size(source_size: Tuple[int, int], geometry: Optional[GeometryRequest] = None) -> Tuple[int, int]:
    """
    Resolve the pre-rotation (width, height) for a geometry request.

    A scale in (0, 10) wins over width/height; any other scale means no
    resizing. A missing width or height is derived from the other one by
    keeping the source aspect ratio.
    """
    src_w, src_h = source_size
    geometry = geometry or GeometryRequest()

    if geometry.scale is not None:
        scale = geometry.scale if 0 < geometry.scale < MAX_SCALE else 1
        return _to_pixels(src_w * scale), _to_pixels(src_h * scale)

    width, height = geometry.width, geometry.height
    if width is None and height is None:
        return src_w, src_h
    if width is None:
        width = height * src_w / src_h
    elif height is None:
        height = width * src_h / src_w
    return _to_pixels(width), _to_pixels(height)


def check_output_size(size: Tuple[int, int]) -> None:
    """Reject geometries too large to render."""
    width, height = size
    if max(width, height) > MAX_DIMENSION:
        raise InvalidOptionsError(
            f"Output size {width}x{height} exceeds the maximum dimension of {MAX_DIMENSION}px"
        )
    if width * height > MAX_OUTPUT_PIXELS:
        raise InvalidOptionsError(
            f"Output size {width}x{height} exceeds the maximum of {MAX_OUTPUT_PIXELS} pixels"
        )


def canvas_size(size: Tuple[int, int], orientation: Optional[int]) -> Tuple[int, int]:
    """Output dimensions after rotation: swapped for quarter turns."""
    width, height = size
    if orientation in QUARTER_TURN_CODES:
        return height, width
    return width, height


def transform(
    image: Image.Image,
    geometry: Optional[GeometryRequest] = None,
    orientation: Optional[int] = None,
) -> Image.Image:
    """
    Render image at the requested geometry with orientation applied.

    Always returns a new image owned by the caller, who is responsible for
    closing it.
    """
    size = resolve_size(image.size, geometry)
    if size[0] > image.width or size[1] > image.height:
        check_output_size(size)
    if size == image.size:
        resized = image.copy()
    else:
        resized = image.resize(size, Image.Resampling.LANCZOS)

    method = _TRANSPOSE_BY_CODE.get(orientation)
    if method is None:
        return resized

    with resized:
        oriented = resized.transpose(method)
    logger.debug(f"Transformed {image.size} -> {oriented.size} (orientation={orientation})")
    return oriented
