"""
Error types raised by the compression pipeline.

Every failure is terminal for the current call; nothing here is retried.
"""


class CompressionError(Exception):
    """Base class for compression failures."""


class InvalidInputError(CompressionError):
    """Input is neither image bytes nor an image data URI."""


class UnsupportedMimeError(CompressionError):
    """The source MIME type is not an image/* type."""

    def __init__(self, mime: str):
        super().__init__(f"Unsupported MIME type: {mime!r}")
        self.mime = mime


class DecodeError(CompressionError):
    """The image data could not be rasterized (corrupt or truncated)."""


class InvalidOptionsError(CompressionError, ValueError):
    """A compression option has a value that can never produce an image."""
