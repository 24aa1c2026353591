from __future__ import annotations

from threading import Event

import requests

from fakes import FakeResponse, FakeSession, make_config, video
from video_uploader.content_store import ContentStoreUploader
from video_uploader.models import DIRECT, AttemptStatus, ErrorKind
from video_uploader.runner import AttemptRunner


def _uploader(result) -> tuple[ContentStoreUploader, FakeSession]:
    session = FakeSession(result)
    uploader = ContentStoreUploader(
        make_config().content_store,
        session=session,
        runner=AttemptRunner(poll_interval=0.01),
    )
    return uploader, session


def test_direct_upload_success_builds_gateway_url() -> None:
    uploader, session = _uploader(FakeResponse(200, {"IpfsHash": "bafydirect"}))
    reported = []

    outcome = uploader.upload_direct(
        video(name="clip.mp4", mime_type="video/mp4", size=5000),
        {"userId": "u-1"},
        lambda percent, stage: reported.append((percent, stage)),
    )

    assert outcome.succeeded
    assert outcome.url == "https://gateway.test/ipfs/bafydirect"
    assert outcome.content_hash == "bafydirect"
    assert outcome.server == DIRECT
    assert outcome.attempted_servers == ()
    assert outcome.attempts[0].status is AttemptStatus.SUCCEEDED
    assert reported[-1] == (100.0, "uploading")
    assert [p for p, _ in reported] == sorted(p for p, _ in reported)
    assert session.calls[0]["url"] == "http://store.test/upload"
    assert session.calls[0]["headers"]["Accept"] == "application/json"
    assert b'name="filename"\r\n\r\nclip.mp4\r\n' in session.bodies[0]
    assert b'name="userId"\r\n\r\nu-1\r\n' in session.bodies[0]


def test_direct_upload_413_is_file_too_large() -> None:
    uploader, _ = _uploader(FakeResponse(413, {"error": "Request Entity Too Large"}))

    outcome = uploader.upload_direct(video(name="big.mp4", mime_type="video/mp4"), None)

    assert not outcome.succeeded
    assert outcome.error_kind is ErrorKind.FILE_TOO_LARGE
    assert outcome.status_code == 413
    assert outcome.failed_server == "ipfs"
    assert outcome.attempted_servers == ()


def test_direct_upload_connection_error_is_network() -> None:
    uploader, _ = _uploader(requests.ConnectionError("Connection refused"))

    outcome = uploader.upload_direct(video(name="clip.mp4", mime_type="video/mp4"), {})

    assert outcome.error_kind is ErrorKind.NETWORK_CONNECTION
    assert outcome.failed_server == "ipfs"
    assert "Connection refused" in outcome.raw_message


def test_direct_upload_without_hash_is_unknown() -> None:
    uploader, _ = _uploader(FakeResponse(200, {"ok": True}))

    outcome = uploader.upload_direct(video(name="clip.mp4", mime_type="video/mp4"), {})

    assert outcome.error_kind is ErrorKind.UNKNOWN
    assert outcome.attempts[0].status is AttemptStatus.FAILED


def test_direct_upload_cancelled_before_start() -> None:
    uploader, _ = _uploader(FakeResponse(200, {"cid": "bafy"}))
    stop = Event()
    stop.set()

    outcome = uploader.upload_direct(video(name="clip.mp4", mime_type="video/mp4"), {}, stop_event=stop)

    assert outcome.cancelled
    assert outcome.to_dict()["outcome"] == "cancelled"


def test_direct_upload_cancelled_during_transfer() -> None:
    uploader, session = _uploader(FakeResponse(200, {"cid": "bafy"}))
    stop = Event()
    reported = []

    def _cancel_on_first_progress(percent: float, stage: str) -> None:
        reported.append((percent, stage))
        stop.set()

    outcome = uploader.upload_direct(
        video(name="clip.mp4", mime_type="video/mp4"),
        {},
        _cancel_on_first_progress,
        stop_event=stop,
    )

    assert outcome.cancelled
    assert outcome.stage == "direct_uploading"
    assert outcome.attempts[0].status is AttemptStatus.CANCELLED
    assert len(reported) == 1
    assert len(session.calls) == 1
