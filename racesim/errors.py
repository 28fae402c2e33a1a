"""
Errors
======

Failures raised by the wind loading pipeline. Both are recoverable: the
wind timeline keeps its last good field and the race goes on.
"""


class RaceSimError(Exception):
    """Base class for engine errors."""


class DecodeError(RaceSimError):
    """Wind raster image is corrupt or in an unsupported format."""


class FetchError(RaceSimError):
    """Wind raster bytes could not be fetched (network or storage)."""
