import re
from enum import Enum
from typing import Optional

REGEXP_IMAGE_TYPE = re.compile(r"^image/.+$")


class ImageType(str, Enum):
    """Raster types the encoder can produce."""

    PNG = "image/png"
    JPEG = "image/jpeg"
    GIF = "image/gif"
    WEBP = "image/webp"

    @property
    def pil_format(self) -> str:
        return _PIL_FORMATS[self]

    @property
    def supports_quality(self) -> bool:
        return self in (ImageType.JPEG, ImageType.WEBP)

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["ImageType"]:
        """Map a wire-level MIME string to an ImageType, or None if unsupported."""
        if not value or not isinstance(value, str):
            return None
        mime = value.strip().lower()
        mime = _MIME_ALIASES.get(mime, mime)
        try:
            return cls(mime)
        except ValueError:
            return None


# Pillow reports multi-picture phone JPEGs as MPO.
_MIME_ALIASES = {
    "image/jpg": "image/jpeg",
    "image/mpo": "image/jpeg",
}

_PIL_FORMATS = {
    ImageType.PNG: "PNG",
    ImageType.JPEG: "JPEG",
    ImageType.GIF: "GIF",
    ImageType.WEBP: "WEBP",
}


def is_image_mime(value: Optional[str]) -> bool:
    """True when value looks like an image/* MIME type."""
    return isinstance(value, str) and bool(REGEXP_IMAGE_TYPE.match(value))


def resolve_output_type(requested: Optional[str], source_mime: str) -> ImageType:
    """
    Pick the encoder type: the requested one if supported, otherwise the
    source's, otherwise PNG.
    """
    return ImageType.parse(requested) or ImageType.parse(source_mime) or ImageType.PNG
