"""
Caller-facing compression options.

The recognized keys are fixed: quality, type, size, minWidth, width, height,
scale, orientation. Anything else is ignored. Numeric values may arrive as
strings (form fields, query params); values that are not numbers count as
absent.
"""

import logging
import math
import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .errors import InvalidOptionsError

logger = logging.getLogger(__name__)

DEFAULT_QUALITY = float(os.getenv("DEFAULT_QUALITY", "0.9"))
DEFAULT_MIN_WIDTH = float(os.getenv("DEFAULT_MIN_WIDTH", "200"))

_KEY_ALIASES = {
    "quality": "quality",
    "type": "type",
    "size": "size",
    "minWidth": "min_width",
    "min_width": "min_width",
    "width": "width",
    "height": "height",
    "scale": "scale",
    "orientation": "orientation",
}


def _to_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


@dataclass(frozen=True)
class GeometryRequest:
    """Target geometry; every field is optional and None means absent."""

    width: Optional[float] = None
    height: Optional[float] = None
    scale: Optional[float] = None


@dataclass(frozen=True)
class CompressOptions:
    quality: float = DEFAULT_QUALITY
    type: Optional[str] = None
    size: Optional[float] = None  # KB
    min_width: float = DEFAULT_MIN_WIDTH
    width: Optional[float] = None
    height: Optional[float] = None
    scale: Optional[float] = None
    orientation: Optional[int] = None

    def __post_init__(self):
        for name in ("width", "height"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise InvalidOptionsError(f"{name} must be > 0, got {value}")
        if self.size is not None and self.size <= 0:
            raise InvalidOptionsError(f"size must be > 0, got {self.size}")
        if self.min_width <= 0:
            raise InvalidOptionsError(f"minWidth must be > 0, got {self.min_width}")

    @property
    def geometry(self) -> GeometryRequest:
        return GeometryRequest(width=self.width, height=self.height, scale=self.scale)

    @property
    def budget_bytes(self) -> Optional[float]:
        return self.size * 1024 if self.size is not None else None

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]]) -> "CompressOptions":
        """Build options from a loosely-typed dict such as a JSON body or form."""
        kwargs = {}
        for key, value in (mapping or {}).items():
            field_name = _KEY_ALIASES.get(key)
            if field_name is None:
                logger.debug(f"Ignoring unrecognized compression option: {key}")
                continue
            if field_name == "type":
                kwargs["type"] = value if isinstance(value, str) and value else None
                continue
            number = _to_number(value)
            if number is None:
                continue
            if field_name == "orientation":
                # Fractional codes match no orientation, same as absent.
                if number.is_integer():
                    kwargs["orientation"] = int(number)
            else:
                kwargs[field_name] = number
        return cls(**kwargs)
