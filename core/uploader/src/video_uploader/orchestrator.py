"""Ordered, sequential failover across the transcoding server registry."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Event
from typing import Any, Callable, List, Mapping, Optional

from .backends import TranscodeBackend
from .classifier import Classification, classify
from .config import ProgressSettings, ServerRegistry
from .models import (
    ALL_SERVERS,
    AttemptStatus,
    ErrorKind,
    MediaFile,
    ProgressEvent,
    RawFailure,
    ServerDescriptor,
    UploadAttempt,
    UploadCancelled,
    UploadFailure,
    UploadOutcome,
    UploadSuccess,
)
from .progress import ProgressMultiplexer
from .runner import AttemptRunner, AttemptState, AttemptStream
from .transport import TransferCallback

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class TranscodeCallbacks:
    """Hooks fired on the calling thread as the failover loop advances."""

    on_progress: Optional[Callable[[float, str], None]] = None
    on_server_attempt: Optional[Callable[[str, str, int], None]] = None
    on_server_failed: Optional[Callable[[str], None]] = None


class TranscodeOrchestrator:
    """Walk the registry in priority order until one server succeeds.

    Each server gets exactly one attempt per invocation, bounded by its own
    timeout. Servers are never raced in parallel and a failed server is never
    retried; the first success ends the loop.
    """

    def __init__(
        self,
        registry: ServerRegistry,
        backend: TranscodeBackend,
        *,
        progress: Optional[ProgressSettings] = None,
        runner: Optional[AttemptRunner] = None,
    ) -> None:
        self._registry = registry
        self._backend = backend
        self._progress = progress or ProgressSettings()
        self._runner = runner or AttemptRunner()

    @property
    def registry(self) -> ServerRegistry:
        return self._registry

    def transcode(
        self,
        file: MediaFile,
        context: Optional[Mapping[str, Any]] = None,
        callbacks: Optional[TranscodeCallbacks] = None,
        stop_event: Optional[Event] = None,
    ) -> UploadOutcome:
        callbacks = callbacks or TranscodeCallbacks()
        payload = dict(context or {})
        attempted: List[str] = []
        attempts: List[UploadAttempt] = []
        last: Optional[Classification] = None
        last_message = ""

        for server in self._registry:
            if stop_event is not None and stop_event.is_set():
                LOGGER.info("Transcode of %s cancelled before trying %s", file.name, server.key)
                return UploadCancelled(
                    stage="transcoding",
                    attempted_servers=tuple(attempted),
                    attempts=tuple(attempts),
                )

            attempt = UploadAttempt(server=server)
            attempts.append(attempt)
            LOGGER.info(
                "Trying %s (priority %d, timeout %.0fs) for %s",
                server.display_name,
                server.priority,
                server.timeout,
                file.name,
            )
            if callbacks.on_server_attempt is not None:
                callbacks.on_server_attempt(server.key, server.display_name, server.priority)

            result = self._runner.run(
                server.key,
                self._opener(server, file, payload),
                timeout=server.timeout,
                on_progress=self._progress_handler(attempt, callbacks),
                stop_event=stop_event,
            )

            if result.state is AttemptState.COMPLETED and result.completed is not None:
                attempt.finish(AttemptStatus.SUCCEEDED)
                LOGGER.info("%s transcoded %s -> %s", server.display_name, file.name, result.completed.url)
                return UploadSuccess(
                    url=result.completed.url,
                    content_hash=result.completed.content_hash,
                    server=server.key,
                    attempted_servers=tuple(attempted),
                    attempts=tuple(attempts),
                )
            if result.state is AttemptState.CANCELLED:
                attempt.finish(AttemptStatus.CANCELLED)
                return UploadCancelled(
                    stage="transcoding",
                    attempted_servers=tuple(attempted),
                    attempts=tuple(attempts),
                )

            failure = result.failure or RawFailure("attempt failed")
            last = classify(failure)
            last_message = failure.message
            attempt.finish(AttemptStatus.FAILED)
            attempted.append(server.key)
            LOGGER.warning(
                "%s failed at %.0f%% (%s): %s",
                server.display_name,
                attempt.progress_percent,
                last.error_kind.value,
                failure.message,
            )
            if callbacks.on_server_failed is not None:
                callbacks.on_server_failed(server.key)

        LOGGER.error("All %d transcoding server(s) failed for %s", len(attempted), file.name)
        return UploadFailure(
            error_kind=last.error_kind if last is not None else ErrorKind.UNKNOWN,
            status_code=last.status_code if last is not None else None,
            failed_server=ALL_SERVERS,
            raw_message=last_message or "all transcoding servers failed",
            attempted_servers=tuple(attempted),
            attempts=tuple(attempts),
        )

    def _opener(
        self,
        server: ServerDescriptor,
        file: MediaFile,
        context: Mapping[str, Any],
    ) -> Callable[[TransferCallback], AttemptStream]:
        def _open(on_transfer: TransferCallback) -> AttemptStream:
            return self._backend.open(server, file, context, on_transfer)

        return _open

    def _progress_handler(
        self,
        attempt: UploadAttempt,
        callbacks: TranscodeCallbacks,
    ) -> Callable[[ProgressEvent], None]:
        multiplexer = ProgressMultiplexer(transfer_weight=self._progress.transfer_weight)

        def _handle(event: ProgressEvent) -> None:
            update = multiplexer.update(event)
            if update is None:
                return
            attempt.record(*update)
            if callbacks.on_progress is not None:
                callbacks.on_progress(*update)

        return _handle


__all__ = ["TranscodeCallbacks", "TranscodeOrchestrator"]
