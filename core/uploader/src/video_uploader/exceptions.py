"""Custom exceptions raised by the video uploader package."""
from __future__ import annotations


class UploaderError(RuntimeError):
    """Base error for the uploader package."""


class ConfigurationError(UploaderError):
    """Raised when uploader settings or the server registry are inconsistent."""


class MediaProbeError(UploaderError):
    """Raised when a media file cannot be inspected with ffprobe."""


class PipelineStateError(UploaderError):
    """Raised when the upload pipeline is driven through an illegal transition."""


class TranscodeServiceError(UploaderError):
    """Raised when an upload or transcoding endpoint cannot be reached."""
