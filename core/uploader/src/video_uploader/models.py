"""Data structures shared by the validator, uploaders and orchestrator."""
from __future__ import annotations

import io
import mimetypes
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, BinaryIO, Dict, Optional, Tuple, Union

DIRECT = "direct"
ALL_SERVERS = "all"


class ErrorKind(str, Enum):
    """Closed set of failure categories reported to callers."""

    VALIDATION = "validation"
    NETWORK_CONNECTION = "network_connection"
    TIMEOUT = "timeout"
    FILE_TOO_LARGE = "file_too_large"
    SERVER_ERROR = "server_error"
    UNKNOWN = "unknown"


class AttemptStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Phase(str, Enum):
    """Which side of an attempt a progress value was measured on."""

    TRANSFER = "transfer"
    PROCESSING = "processing"


@dataclass(frozen=True, slots=True)
class MediaFile:
    """A user supplied video payload.

    ``source`` is either the raw bytes or a path on disk. ``duration`` may be
    provided when the caller already measured the clip; otherwise the
    validator probes it. ``preprocessed`` marks files that were already
    re-encoded client side and can skip the transcoding servers.
    """

    name: str
    mime_type: str
    size: int
    source: Union[bytes, Path]
    duration: Optional[float] = None
    preprocessed: bool = False

    @classmethod
    def from_path(
        cls,
        path: str | Path,
        *,
        mime_type: Optional[str] = None,
        name: Optional[str] = None,
        duration: Optional[float] = None,
        preprocessed: bool = False,
    ) -> "MediaFile":
        resolved = Path(path).expanduser().resolve()
        if not resolved.is_file():
            raise FileNotFoundError(f"Media file does not exist: {resolved}")
        guessed, _ = mimetypes.guess_type(resolved.name)
        return cls(
            name=name or resolved.name,
            mime_type=mime_type or guessed or "",
            size=resolved.stat().st_size,
            source=resolved,
            duration=duration,
            preprocessed=preprocessed,
        )

    @classmethod
    def from_bytes(
        cls,
        payload: bytes,
        *,
        name: str,
        mime_type: str,
        duration: Optional[float] = None,
        preprocessed: bool = False,
    ) -> "MediaFile":
        return cls(
            name=name,
            mime_type=mime_type,
            size=len(payload),
            source=bytes(payload),
            duration=duration,
            preprocessed=preprocessed,
        )

    @property
    def extension(self) -> str:
        return Path(self.name).suffix.lower()

    def open(self) -> BinaryIO:
        """Return a fresh binary stream over the payload."""

        if isinstance(self.source, Path):
            return self.source.open("rb")
        return io.BytesIO(self.source)


@dataclass(frozen=True, slots=True)
class ValidationResult:
    valid: bool
    reason: Optional[str] = None
    duration: Optional[float] = None

    @classmethod
    def ok(cls, duration: Optional[float] = None) -> "ValidationResult":
        return cls(valid=True, duration=duration)

    @classmethod
    def invalid(cls, reason: str, duration: Optional[float] = None) -> "ValidationResult":
        return cls(valid=False, reason=reason, duration=duration)


@dataclass(frozen=True, slots=True)
class ServerDescriptor:
    """Static description of one remote transcoding server."""

    key: str
    display_name: str
    endpoint: str
    priority: int
    timeout: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "display_name": self.display_name,
            "endpoint": self.endpoint,
            "priority": self.priority,
            "timeout": self.timeout,
        }


@dataclass(slots=True)
class UploadAttempt:
    """Progress record for a single server (or the direct store) attempt."""

    server: Union[ServerDescriptor, str]
    status: AttemptStatus = AttemptStatus.PENDING
    progress_percent: float = 0.0
    stage: str = "uploading"

    @property
    def server_key(self) -> str:
        if isinstance(self.server, ServerDescriptor):
            return self.server.key
        return str(self.server)

    def record(self, percent: float, stage: str) -> None:
        if self.status is not AttemptStatus.PENDING:
            return
        self.progress_percent = max(self.progress_percent, percent)
        self.stage = stage

    def finish(self, status: AttemptStatus) -> None:
        if self.status is AttemptStatus.PENDING:
            self.status = status

    def to_dict(self) -> Dict[str, Any]:
        return {
            "server": self.server_key,
            "status": self.status.value,
            "progress_percent": round(self.progress_percent, 2),
            "stage": self.stage,
        }


# ----------------------------------------------------------------------
# Attempt events
# ----------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RawFailure:
    """Unclassified failure as observed on the wire."""

    message: str
    status_code: Optional[int] = None
    exception: Optional[BaseException] = None
    timed_out: bool = False
    too_large: bool = False
    connection_lost: bool = False


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    phase: Phase
    percent: float
    stage: str


@dataclass(frozen=True, slots=True)
class CompletedEvent:
    url: str
    content_hash: str


@dataclass(frozen=True, slots=True)
class FailedEvent:
    failure: RawFailure


AttemptEvent = Union[ProgressEvent, CompletedEvent, FailedEvent]


# ----------------------------------------------------------------------
# Outcomes
# ----------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class UploadOutcome:
    attempted_servers: Tuple[str, ...] = ()
    attempts: Tuple[UploadAttempt, ...] = field(default=(), compare=False)

    @property
    def succeeded(self) -> bool:
        return False

    @property
    def cancelled(self) -> bool:
        return False

    def _base_dict(self, kind: str) -> Dict[str, Any]:
        return {
            "outcome": kind,
            "attempted_servers": list(self.attempted_servers),
            "attempts": [attempt.to_dict() for attempt in self.attempts],
        }


@dataclass(frozen=True, slots=True)
class UploadSuccess(UploadOutcome):
    url: str = ""
    content_hash: str = ""
    server: str = DIRECT

    @property
    def succeeded(self) -> bool:
        return True

    def to_dict(self) -> Dict[str, Any]:
        payload = self._base_dict("success")
        payload.update(url=self.url, content_hash=self.content_hash, server=self.server)
        return payload


@dataclass(frozen=True, slots=True)
class UploadFailure(UploadOutcome):
    error_kind: ErrorKind = ErrorKind.UNKNOWN
    raw_message: str = ""
    status_code: Optional[int] = None
    failed_server: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = self._base_dict("failure")
        payload.update(
            error_kind=self.error_kind.value,
            status_code=self.status_code,
            failed_server=self.failed_server,
            raw_message=self.raw_message,
        )
        return payload


@dataclass(frozen=True, slots=True)
class UploadCancelled(UploadOutcome):
    stage: str = "idle"

    @property
    def cancelled(self) -> bool:
        return True

    def to_dict(self) -> Dict[str, Any]:
        payload = self._base_dict("cancelled")
        payload["stage"] = self.stage
        return payload


__all__ = [
    "ALL_SERVERS",
    "DIRECT",
    "AttemptEvent",
    "AttemptStatus",
    "CompletedEvent",
    "ErrorKind",
    "FailedEvent",
    "MediaFile",
    "Phase",
    "ProgressEvent",
    "RawFailure",
    "ServerDescriptor",
    "UploadAttempt",
    "UploadCancelled",
    "UploadFailure",
    "UploadOutcome",
    "UploadSuccess",
    "ValidationResult",
]
