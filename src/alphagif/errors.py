"""Error taxonomy for video-to-GIF conversions."""

from __future__ import annotations


class ConversionError(RuntimeError):
    """Base class for every failure that aborts a conversion."""


class SourceLoadFailure(ConversionError):
    """The source could not be opened or probed."""


class DecodeFailure(ConversionError):
    """The decoder failed to produce a frame."""


class SeekTimeout(DecodeFailure):
    """The decoder did not deliver a sought frame in time."""


class EmptyInput(ConversionError):
    """The source yields zero frames at the requested rate."""


class EncoderInitFailure(ConversionError):
    """The encoder worker pool could not be created."""


class EncodeWorkerFailure(ConversionError):
    """A worker crashed, timed out or returned malformed data."""


class Cancelled(ConversionError):
    """The conversion was cancelled by the caller."""

    def __init__(self, message: str = "Conversion cancelled") -> None:
        super().__init__(message)


class AlreadyConverting(ConversionError):
    """A conversion is already running on this pipeline."""


class MalformedGif(ValueError):
    """A GIF byte stream does not follow the container layout."""
