"""
Codec primitives: data URI <-> bytes, bytes -> decoded image, image -> bytes.

Everything here is a thin layer over Pillow and base64. The compression
search in compressor.py only talks to the image through these functions.
"""

import base64
import binascii
import io
import logging
import re
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from .errors import DecodeError, InvalidInputError
from .mime import ImageType

logger = logging.getLogger(__name__)

DATA_URL_PREFIX = "data:image"

# Quality browsers fall back to when the requested one is outside [0, 1].
DEFAULT_ENCODER_QUALITY = 0.92

_DATA_URL_RE = re.compile(r"^data:([^;,]*)((?:;[^;,]*)*),(.*)$", re.DOTALL)

_DECODE_ERRORS = (UnidentifiedImageError, OSError, ValueError, SyntaxError, Image.DecompressionBombError)


def _try_register_heif() -> bool:
    """
    Try to enable HEIC/HEIF decoding in Pillow via pillow-heif.
    Optional at runtime; without it HEIC/HEIF sources fail to decode.
    """
    try:
        import pillow_heif  # type: ignore

        pillow_heif.register_heif_opener()  # type: ignore
        return True
    except ImportError:
        return False


_HEIF_REGISTERED: Optional[bool] = None


def ensure_heif_registered() -> bool:
    global _HEIF_REGISTERED
    if _HEIF_REGISTERED is None:
        _HEIF_REGISTERED = _try_register_heif()
        if _HEIF_REGISTERED:
            logger.info("pillow-heif enabled: HEIC/HEIF decoding available")
        else:
            logger.info("pillow-heif not available: HEIC/HEIF decoding NOT available")
    return bool(_HEIF_REGISTERED)


def bytes_to_data_url(data: bytes, mime: str) -> str:
    """Encode raw bytes as a base64 data URI."""
    payload = base64.b64encode(bytes(data)).decode("ascii")
    return f"data:{mime};base64,{payload}"


def parse_data_url_mime(data_url: str) -> str:
    """Return the MIME declared in a data URI header (may be empty)."""
    match = _DATA_URL_RE.match(data_url)
    if not match:
        raise InvalidInputError("Malformed data URI")
    return match.group(1).strip().lower()


def data_url_to_bytes(data_url: str) -> Tuple[bytes, str]:
    """
    Decode a base64 data URI.

    Returns: (payload_bytes, mime)
    """
    match = _DATA_URL_RE.match(data_url)
    if not match:
        raise InvalidInputError("Malformed data URI")
    mime, params, payload = match.groups()
    if ";base64" not in params.lower():
        raise InvalidInputError("Only base64 data URIs are supported")
    try:
        data = base64.b64decode(payload.strip(), validate=False)
    except (binascii.Error, ValueError) as e:
        raise InvalidInputError(f"Invalid base64 payload: {e}") from e
    return data, mime.strip().lower()


def sniff_mime(data: bytes) -> str:
    """Identify the MIME type of encoded image bytes without decoding pixels."""
    ensure_heif_registered()
    try:
        with Image.open(io.BytesIO(data)) as im:
            fmt = im.format
    except _DECODE_ERRORS as e:
        raise DecodeError(f"Could not identify image data: {e}") from e
    mime = Image.MIME.get(fmt or "")
    if not mime:
        raise DecodeError(f"No MIME type known for image format {fmt!r}")
    return mime


def decode_image(data: bytes) -> Image.Image:
    """
    Rasterize encoded bytes into a standalone in-memory image.
    Only the first frame of animated inputs is kept.
    """
    if not data:
        raise DecodeError("Empty image")

    ensure_heif_registered()
    try:
        with Image.open(io.BytesIO(data)) as im:
            im.seek(0)
            im.load()
            return im.copy()
    except _DECODE_ERRORS as e:
        raise DecodeError(f"Image data is corrupt or truncated: {e}") from e


def _has_alpha(im: Image.Image) -> bool:
    return im.mode in ("RGBA", "LA") or (
        im.mode == "P" and "transparency" in (im.info or {})
    )


def _flatten_to_rgb(im: Image.Image) -> Image.Image:
    # Alpha is composited onto white, like a canvas exported to JPEG.
    if _has_alpha(im):
        rgba = im.convert("RGBA")
        bg = Image.new("RGB", rgba.size, (255, 255, 255))
        bg.paste(rgba, mask=rgba.split()[-1])
        return bg
    return im.convert("RGB")


def encoder_quality(quality: Optional[float]) -> int:
    """Map a 0.0-1.0 quality to Pillow's JPEG/WebP scale."""
    if quality is None or not 0 <= quality <= 1:
        quality = DEFAULT_ENCODER_QUALITY
    return max(1, min(95, int(round(quality * 100))))


def encode_image(im: Image.Image, image_type: ImageType, quality: Optional[float] = None) -> bytes:
    """Encode an image as image_type; quality only affects JPEG and WebP."""
    out = io.BytesIO()
    if image_type is ImageType.JPEG:
        rgb = _flatten_to_rgb(im)
        rgb.save(out, format="JPEG", quality=encoder_quality(quality), optimize=True)
    elif image_type is ImageType.WEBP:
        converted = im.convert("RGBA") if _has_alpha(im) else im.convert("RGB")
        converted.save(out, format="WEBP", quality=encoder_quality(quality), method=6)
    elif image_type is ImageType.GIF:
        if im.mode not in ("P", "L"):
            im = im.convert("RGB").convert("P", palette=Image.Palette.ADAPTIVE)
        im.save(out, format="GIF", optimize=True)
    else:
        if im.mode not in ("1", "L", "LA", "I", "P", "RGB", "RGBA"):
            im = im.convert("RGBA") if _has_alpha(im) else im.convert("RGB")
        im.save(out, format="PNG", optimize=True)
    return out.getvalue()


def encode_data_url(im: Image.Image, image_type: ImageType, quality: Optional[float] = None) -> str:
    """Encode an image straight to a data URI, the textual form the size estimate works on."""
    return bytes_to_data_url(encode_image(im, image_type, quality), image_type.value)
