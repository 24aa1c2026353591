from __future__ import annotations

import time
from threading import Event

import pytest
import requests

from fakes import FakeBackend, ScriptedStream, completed, failed, progress, server, video
from video_uploader.config import ServerRegistry
from video_uploader.models import ALL_SERVERS, AttemptStatus, ErrorKind
from video_uploader.orchestrator import TranscodeCallbacks, TranscodeOrchestrator
from video_uploader.runner import AttemptRunner


class Recorder:
    def __init__(self) -> None:
        self.progress: list[tuple[float, str]] = []
        self.attempted: list[str] = []
        self.failed: list[str] = []

    def callbacks(self, **overrides) -> TranscodeCallbacks:
        return TranscodeCallbacks(
            on_progress=overrides.get("on_progress", lambda percent, stage: self.progress.append((percent, stage))),
            on_server_attempt=lambda key, name, priority: self.attempted.append(key),
            on_server_failed=self.failed.append,
        )


def _orchestrator(backend: FakeBackend, *servers) -> TranscodeOrchestrator:
    registry = ServerRegistry(servers or (server("a", 1), server("b", 2), server("c", 3)))
    return TranscodeOrchestrator(registry, backend, runner=AttemptRunner(poll_interval=0.01))


@pytest.mark.parametrize("failures", [0, 1, 2])
def test_first_success_after_k_failures(failures: int) -> None:
    keys = ["a", "b", "c"]
    scripts = {}
    for index, key in enumerate(keys):
        if index < failures:
            scripts[key] = ScriptedStream([failed("Upload failed: 500", status_code=500)])
        else:
            scripts[key] = ScriptedStream([progress(50), completed(f"hash-{key}")])
    backend = FakeBackend(scripts)
    recorder = Recorder()

    outcome = _orchestrator(backend).transcode(video(), {"userId": "u"}, recorder.callbacks())

    assert outcome.succeeded
    assert outcome.server == keys[failures]
    assert outcome.content_hash == f"hash-{keys[failures]}"
    assert outcome.attempted_servers == tuple(keys[:failures])
    assert backend.opened == keys[: failures + 1]
    assert recorder.attempted == keys[: failures + 1]
    assert recorder.failed == keys[:failures]


def test_servers_are_tried_in_priority_order() -> None:
    backend = FakeBackend(
        {
            "pi": ScriptedStream([failed("down", status_code=503)]),
            "oracle": ScriptedStream([failed("down", status_code=503)]),
            "macmini": ScriptedStream([completed()]),
        }
    )
    orchestrator = _orchestrator(backend, server("pi", 3), server("oracle", 1), server("macmini", 2))

    outcome = orchestrator.transcode(video())

    assert backend.opened == ["oracle", "macmini"]
    assert outcome.attempted_servers == ("oracle",)


def test_all_servers_failing_reports_all() -> None:
    backend = FakeBackend(
        {
            "a": ScriptedStream([failed("Bad gateway", status_code=502)]),
            "b": ScriptedStream(error=requests.ConnectionError("Connection refused")),
            "c": ScriptedStream([failed("Internal error", status_code=500)]),
        }
    )
    recorder = Recorder()

    outcome = _orchestrator(backend).transcode(video(), {}, recorder.callbacks())

    assert not outcome.succeeded
    assert outcome.failed_server == ALL_SERVERS
    assert outcome.attempted_servers == ("a", "b", "c")
    assert outcome.error_kind is ErrorKind.SERVER_ERROR
    assert outcome.status_code == 500
    assert outcome.raw_message == "Internal error"
    assert [attempt.status for attempt in outcome.attempts] == [AttemptStatus.FAILED] * 3
    assert recorder.failed == ["a", "b", "c"]


def test_hanging_server_times_out_and_next_server_is_tried() -> None:
    hanging = ScriptedStream(hang=True)
    backend = FakeBackend(
        {
            "a": hanging,
            "b": ScriptedStream([progress(80), progress(100, "finalizing"), completed("bafyb")]),
        }
    )
    recorder = Recorder()
    orchestrator = _orchestrator(backend, server("a", 1, timeout=0.2), server("b", 2))

    started = time.monotonic()
    outcome = orchestrator.transcode(video(), {}, recorder.callbacks())
    elapsed = time.monotonic() - started

    assert outcome.succeeded
    assert outcome.server == "b"
    assert outcome.attempted_servers == ("a",)
    assert hanging.closed.is_set()
    assert elapsed < 3.0
    assert outcome.attempts[0].status is AttemptStatus.FAILED


def test_timeout_failure_is_classified_as_timeout() -> None:
    backend = FakeBackend({"a": ScriptedStream(hang=True)})
    orchestrator = _orchestrator(backend, server("a", 1, timeout=0.1))

    outcome = orchestrator.transcode(video())

    assert outcome.error_kind is ErrorKind.TIMEOUT
    assert outcome.failed_server == ALL_SERVERS


def test_progress_is_monotonic_within_an_attempt() -> None:
    backend = FakeBackend(
        {
            "a": ScriptedStream(
                [progress(10), progress(60), progress(30), progress(90, "finalizing"), completed()],
                transfer=[(1024, 4096), (4096, 4096)],
            )
        }
    )
    recorder = Recorder()

    _orchestrator(backend, server("a", 1)).transcode(video(), {}, recorder.callbacks())

    percents = [percent for percent, _ in recorder.progress]
    assert percents == sorted(percents)
    assert recorder.progress[0] == (5.0, "uploading")
    assert (20.0, "uploading") in recorder.progress
    assert recorder.progress[-1] == (92.0, "finalizing")


def test_cancel_during_attempt_stops_failover() -> None:
    stop = Event()
    first = ScriptedStream([progress(40)], hang=True)
    backend = FakeBackend({"a": first, "b": ScriptedStream([completed()])})
    recorder = Recorder()

    def _on_progress(percent: float, stage: str) -> None:
        recorder.progress.append((percent, stage))
        stop.set()

    outcome = _orchestrator(backend, server("a", 1), server("b", 2)).transcode(
        video(), {}, recorder.callbacks(on_progress=_on_progress), stop_event=stop
    )

    assert outcome.cancelled
    assert outcome.to_dict()["outcome"] == "cancelled"
    assert backend.opened == ["a"]
    assert first.closed.is_set()
    assert outcome.attempts[0].status is AttemptStatus.CANCELLED


def test_cancel_before_first_attempt_opens_nothing() -> None:
    stop = Event()
    stop.set()
    backend = FakeBackend({"a": ScriptedStream([completed()])})

    outcome = _orchestrator(backend, server("a", 1)).transcode(video(), stop_event=stop)

    assert outcome.cancelled
    assert backend.opened == []


def test_context_is_forwarded_to_every_attempt() -> None:
    context = {"userId": "u-9", "clientVersion": "2.1.0"}
    backend = FakeBackend(
        {
            "a": ScriptedStream([failed("nope", status_code=500)]),
            "b": ScriptedStream([completed()]),
        }
    )

    _orchestrator(backend, server("a", 1), server("b", 2)).transcode(video(), context)

    assert backend.contexts == [context, context]


def test_stream_ending_without_result_is_a_network_failure() -> None:
    backend = FakeBackend({"a": ScriptedStream([progress(30)])})

    outcome = _orchestrator(backend, server("a", 1)).transcode(video())

    assert outcome.error_kind is ErrorKind.NETWORK_CONNECTION


def test_result_queued_before_deadline_wins_over_slow_progress_callback() -> None:
    backend = FakeBackend(
        {
            "a": ScriptedStream([progress(50), completed("bafy")]),
            "b": ScriptedStream([completed("other")]),
        }
    )
    recorder = Recorder()

    def _slow_progress(percent: float, stage: str) -> None:
        recorder.progress.append((percent, stage))
        time.sleep(0.5)

    orchestrator = _orchestrator(backend, server("a", 1, timeout=0.3), server("b", 2))
    outcome = orchestrator.transcode(video(), callbacks=recorder.callbacks(on_progress=_slow_progress))

    assert outcome.succeeded
    assert outcome.server == "a"
    assert outcome.content_hash == "bafy"
    assert outcome.attempted_servers == ()
    assert backend.opened == ["a"]
