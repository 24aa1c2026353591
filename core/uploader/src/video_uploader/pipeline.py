"""Upload pipeline: validate, then store directly or transcode with failover."""
from __future__ import annotations

import logging
from enum import Enum
from threading import Event
from typing import Any, Dict, FrozenSet, Mapping, Optional

from .backends import HttpTranscodeBackend, TranscodeBackend
from .config import UploaderConfig
from .content_store import ContentStoreUploader
from .exceptions import PipelineStateError
from .models import (
    ErrorKind,
    MediaFile,
    UploadCancelled,
    UploadFailure,
    UploadOutcome,
)
from .orchestrator import TranscodeCallbacks, TranscodeOrchestrator
from .runner import AttemptRunner
from .validator import DurationReader, Validator

LOGGER = logging.getLogger(__name__)


class PipelineState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    DIRECT_UPLOADING = "direct_uploading"
    TRANSCODING = "transcoding"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


_TERMINAL = frozenset({PipelineState.SUCCEEDED, PipelineState.FAILED, PipelineState.CANCELLED})

_TRANSITIONS: Dict[PipelineState, FrozenSet[PipelineState]] = {
    PipelineState.IDLE: frozenset({PipelineState.VALIDATING, PipelineState.CANCELLED}),
    PipelineState.VALIDATING: frozenset(
        {
            PipelineState.FAILED,
            PipelineState.DIRECT_UPLOADING,
            PipelineState.TRANSCODING,
            PipelineState.CANCELLED,
        }
    ),
    PipelineState.DIRECT_UPLOADING: _TERMINAL,
    PipelineState.TRANSCODING: _TERMINAL,
    PipelineState.SUCCEEDED: frozenset(),
    PipelineState.FAILED: frozenset(),
    PipelineState.CANCELLED: frozenset(),
}


class PipelineRun:
    """Forward-only state tracker for one invocation."""

    def __init__(self) -> None:
        self._state = PipelineState.IDLE
        self._history = [PipelineState.IDLE]

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def history(self) -> tuple[PipelineState, ...]:
        return tuple(self._history)

    @property
    def finished(self) -> bool:
        return self._state in _TERMINAL

    def advance(self, target: PipelineState) -> None:
        if target not in _TRANSITIONS[self._state]:
            raise PipelineStateError(f"cannot move from {self._state.value} to {target.value}")
        LOGGER.debug("Pipeline %s -> %s", self._state.value, target.value)
        self._state = target
        self._history.append(target)

    def finish(self, outcome: UploadOutcome) -> UploadOutcome:
        if outcome.succeeded:
            self.advance(PipelineState.SUCCEEDED)
        elif outcome.cancelled:
            self.advance(PipelineState.CANCELLED)
        else:
            self.advance(PipelineState.FAILED)
        return outcome


class UploadPipeline:
    """Entry point used by callers to turn one MediaFile into one outcome."""

    def __init__(
        self,
        config: UploaderConfig,
        *,
        validator: Optional[Validator] = None,
        duration_reader: Optional[DurationReader] = None,
        content_store: Optional[ContentStoreUploader] = None,
        backend: Optional[TranscodeBackend] = None,
    ) -> None:
        runner = AttemptRunner(poll_interval=config.poll_interval)
        self._config = config
        self._validator = validator or Validator(config.limits, duration_reader=duration_reader)
        self._content_store = content_store or ContentStoreUploader(
            config.content_store,
            runner=runner,
            connect_timeout=config.connect_timeout,
            read_timeout=config.read_timeout,
        )
        self._backend = backend or HttpTranscodeBackend(
            connect_timeout=config.connect_timeout,
            read_timeout=config.read_timeout,
            gateway_url=config.content_store.gateway_url,
        )
        self._orchestrator = TranscodeOrchestrator(
            config.registry,
            self._backend,
            progress=config.progress,
            runner=runner,
        )

    @property
    def config(self) -> UploaderConfig:
        return self._config

    @property
    def validator(self) -> Validator:
        return self._validator

    def close(self) -> None:
        self._content_store.close()
        self._backend.close()

    def upload(
        self,
        file: MediaFile,
        context: Optional[Mapping[str, Any]] = None,
        callbacks: Optional[TranscodeCallbacks] = None,
        stop_event: Optional[Event] = None,
        run: Optional[PipelineRun] = None,
    ) -> UploadOutcome:
        """Run one invocation; pass ``run`` to observe the state transitions."""

        callbacks = callbacks or TranscodeCallbacks()
        run = run or PipelineRun()
        telemetry: Mapping[str, Any] = dict(context or {})

        if stop_event is not None and stop_event.is_set():
            run.advance(PipelineState.CANCELLED)
            return UploadCancelled(stage=PipelineState.IDLE.value)

        run.advance(PipelineState.VALIDATING)
        LOGGER.info("Validating %s (%d bytes, %s)", file.name, file.size, file.mime_type or "unknown type")
        validation = self._validator.validate(file)
        if not validation.valid:
            LOGGER.info("Rejected %s: %s", file.name, validation.reason)
            return run.finish(
                UploadFailure(
                    error_kind=ErrorKind.VALIDATION,
                    raw_message=validation.reason or "validation failed",
                )
            )

        if stop_event is not None and stop_event.is_set():
            run.advance(PipelineState.CANCELLED)
            return UploadCancelled(stage=PipelineState.VALIDATING.value)

        if self._validator.is_direct_upload(file):
            run.advance(PipelineState.DIRECT_UPLOADING)
            outcome = self._content_store.upload_direct(
                file,
                telemetry,
                callbacks.on_progress,
                stop_event=stop_event,
            )
        else:
            run.advance(PipelineState.TRANSCODING)
            outcome = self._orchestrator.transcode(file, telemetry, callbacks, stop_event=stop_event)

        if outcome.succeeded and callbacks.on_progress is not None:
            callbacks.on_progress(100.0, "complete")
        return run.finish(outcome)


__all__ = ["PipelineRun", "PipelineState", "UploadPipeline"]
