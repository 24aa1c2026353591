"""Public package interface for the video uploader."""
from .backends import HttpTranscodeBackend, TranscodeBackend
from .classifier import Classification, classify, extract_status_code
from .config import (
    ContentStoreSettings,
    ProgressSettings,
    ServerRegistry,
    UploaderConfig,
    ValidationLimits,
)
from .content_store import ContentStoreUploader
from .exceptions import ConfigurationError, MediaProbeError, PipelineStateError, TranscodeServiceError, UploaderError
from .models import (
    ErrorKind,
    MediaFile,
    ServerDescriptor,
    UploadAttempt,
    UploadCancelled,
    UploadFailure,
    UploadOutcome,
    UploadSuccess,
    ValidationResult,
)
from .orchestrator import TranscodeCallbacks, TranscodeOrchestrator
from .pipeline import PipelineRun, PipelineState, UploadPipeline
from .progress import ProgressMultiplexer, merge
from .validator import Validator

__all__ = [
    "Classification",
    "ConfigurationError",
    "ContentStoreSettings",
    "ContentStoreUploader",
    "ErrorKind",
    "HttpTranscodeBackend",
    "MediaFile",
    "MediaProbeError",
    "PipelineRun",
    "PipelineState",
    "PipelineStateError",
    "ProgressMultiplexer",
    "ProgressSettings",
    "ServerDescriptor",
    "ServerRegistry",
    "TranscodeBackend",
    "TranscodeCallbacks",
    "TranscodeOrchestrator",
    "TranscodeServiceError",
    "UploadAttempt",
    "UploadCancelled",
    "UploadFailure",
    "UploadOutcome",
    "UploadPipeline",
    "UploadSuccess",
    "UploaderConfig",
    "UploaderError",
    "ValidationLimits",
    "ValidationResult",
    "Validator",
    "classify",
    "extract_status_code",
    "merge",
]
