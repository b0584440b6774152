"""Exception types raised by the processing core."""

from __future__ import annotations


class GalleryStudioError(Exception):
    """Base class for errors raised by gallery_studio."""


class SourceDecodeError(GalleryStudioError):
    """The uploaded source file could not be decoded as an image."""


class PipelineTimeoutError(GalleryStudioError):
    """A photo's processing deadline passed before all tiers were written."""


class InvalidTransitionError(GalleryStudioError, ValueError):
    """A processing-status change that the state machine does not allow."""


class GalleryNotFoundError(GalleryStudioError, LookupError):
    """An upload targeted a gallery that does not exist."""


class QueueFullError(GalleryStudioError):
    """The dispatcher could not accept another job before its submit timeout."""


__all__ = [
    "GalleryNotFoundError",
    "GalleryStudioError",
    "InvalidTransitionError",
    "PipelineTimeoutError",
    "QueueFullError",
    "SourceDecodeError",
]
