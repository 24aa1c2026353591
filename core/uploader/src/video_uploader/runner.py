"""Drive one upload attempt on a worker thread with a deadline and a stop flag."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from queue import Empty, Queue
from threading import Event
from typing import Callable, Iterator, Optional, Protocol

from .models import AttemptEvent, CompletedEvent, FailedEvent, Phase, ProgressEvent, RawFailure
from .transport import TransferCallback
from .utils import get_with_stop

LOGGER = logging.getLogger(__name__)

_JOIN_GRACE_SECONDS = 1.0


class AttemptStream(Protocol):
    """Finite lazy sequence of attempt events that can be torn down early."""

    def __iter__(self) -> Iterator[AttemptEvent]: ...

    def close(self) -> None: ...


StreamOpener = Callable[[TransferCallback], AttemptStream]


class AttemptState(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class AttemptResult:
    state: AttemptState
    completed: Optional[CompletedEvent] = None
    failure: Optional[RawFailure] = None


class AttemptRunner:
    """Pump an :class:`AttemptStream` into a queue and wait on it.

    Only the calling thread invokes ``on_progress``; the worker thread does
    nothing but read the stream, so caller callbacks are never concurrent.
    """

    def __init__(self, *, poll_interval: float = 0.25) -> None:
        self._poll_interval = max(0.01, poll_interval)

    def run(
        self,
        label: str,
        open_stream: StreamOpener,
        *,
        timeout: float,
        on_progress: Callable[[ProgressEvent], None],
        stop_event: Optional[Event] = None,
    ) -> AttemptResult:
        events: Queue = Queue()
        streams: list[AttemptStream] = []
        lock = threading.Lock()
        abandoned = Event()

        def _on_transfer(sent: int, total: int) -> None:
            percent = 100.0 if total <= 0 else sent * 100.0 / total
            events.put(ProgressEvent(Phase.TRANSFER, percent, "uploading"))

        def _pump() -> None:
            try:
                stream = open_stream(_on_transfer)
                with lock:
                    streams.append(stream)
                    if abandoned.is_set():
                        stream.close()
                        return
                for event in stream:
                    events.put(event)
                    if isinstance(event, (CompletedEvent, FailedEvent)):
                        return
                events.put(
                    FailedEvent(
                        RawFailure(
                            "connection closed before a result was reported",
                            connection_lost=True,
                        )
                    )
                )
            except Exception as exc:
                if abandoned.is_set():
                    LOGGER.debug("[%s] attempt raised after being abandoned: %s", label, exc)
                    return
                events.put(FailedEvent(RawFailure(str(exc) or exc.__class__.__name__, exception=exc)))

        worker = threading.Thread(target=_pump, name=f"upload-attempt-{label}", daemon=True)
        deadline = time.monotonic() + timeout
        worker.start()

        while True:
            item = get_with_stop(
                events,
                deadline=deadline,
                stop_event=stop_event,
                poll_interval=self._poll_interval,
            )
            if item is None and not (stop_event is not None and stop_event.is_set()):
                # a result queued before the deadline still counts
                item = self._pending_terminal(events)
            if item is None:
                self._abandon(label, worker, streams, lock, abandoned)
                if stop_event is not None and stop_event.is_set():
                    LOGGER.info("[%s] attempt cancelled", label)
                    return AttemptResult(AttemptState.CANCELLED)
                LOGGER.warning("[%s] no result within %.1fs", label, timeout)
                return AttemptResult(
                    AttemptState.TIMED_OUT,
                    failure=RawFailure(f"no response within {timeout:g}s", timed_out=True),
                )
            if isinstance(item, ProgressEvent):
                on_progress(item)
                continue
            self._close_streams(label, streams, lock)
            if isinstance(item, CompletedEvent):
                return AttemptResult(AttemptState.COMPLETED, completed=item)
            return AttemptResult(AttemptState.FAILED, failure=item.failure)

    @staticmethod
    def _pending_terminal(events: Queue) -> Optional[AttemptEvent]:
        while True:
            try:
                item = events.get_nowait()
            except Empty:
                return None
            if isinstance(item, (CompletedEvent, FailedEvent)):
                return item

    @staticmethod
    def _abandon(
        label: str,
        worker: threading.Thread,
        streams: list,
        lock: threading.Lock,
        abandoned: Event,
    ) -> None:
        abandoned.set()
        AttemptRunner._close_streams(label, streams, lock)
        worker.join(_JOIN_GRACE_SECONDS)
        if worker.is_alive():
            LOGGER.debug("[%s] attempt worker still draining after close", label)

    @staticmethod
    def _close_streams(label: str, streams: list, lock: threading.Lock) -> None:
        with lock:
            for stream in streams:
                try:
                    stream.close()
                except Exception as exc:  # pragma: no cover - transport variance
                    LOGGER.debug("[%s] failed to close attempt stream: %s", label, exc)


__all__ = ["AttemptResult", "AttemptRunner", "AttemptState", "AttemptStream", "StreamOpener"]
