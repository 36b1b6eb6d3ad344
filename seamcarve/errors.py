"""
Error types raised by the seam carving core.

Every error carries its kind and the dimensions involved so callers can
report what went wrong without parsing the message.
"""

from typing import Optional


class SeamCarvingError(Exception):
    """Base class for seam carving failures."""

    kind = 'SeamCarvingError'

    def __init__(self, message: str, width: Optional[int] = None,
                 height: Optional[int] = None):
        super().__init__(message)
        self.width = width
        self.height = height

    def __repr__(self):
        return (f"{type(self).__name__}({str(self)!r}, "
                f"width={self.width}, height={self.height})")


class InvalidDimension(SeamCarvingError, ValueError):
    """An operation would leave a zero dimension, or a table has no lines."""

    kind = 'InvalidDimension'


class MissingInput(SeamCarvingError, ValueError):
    """No source buffer was supplied."""

    kind = 'MissingInput'


class BackendUnavailable(SeamCarvingError, RuntimeError):
    """The parallel backend was requested but its device cannot be used."""

    kind = 'BackendUnavailable'


class MalformedSeam(SeamCarvingError, ValueError):
    """A seam has the wrong length, leaves the image, or steps more than 1."""

    kind = 'MalformedSeam'


class InvalidPixelData(SeamCarvingError, ValueError):
    """A buffer holds NaN or infinite channel values."""

    kind = 'InvalidPixelData'
