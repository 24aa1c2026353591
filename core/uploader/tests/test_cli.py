from __future__ import annotations

import json
import logging

import pytest

from fakes import make_config, server
from video_uploader import cli
from video_uploader.logging_config import configure_logging
from video_uploader.models import ErrorKind, UploadCancelled, UploadFailure, UploadSuccess


class StubPipeline:
    outcome = UploadSuccess(url="https://gateway.test/ipfs/bafy", content_hash="bafy", server="a")
    seen: dict = {}

    def __init__(self, config) -> None:
        self.config = config

    def upload(self, media, context, callbacks, stop_event=None):
        StubPipeline.seen = {"media": media, "context": context}
        return StubPipeline.outcome

    def close(self) -> None:
        return None


@pytest.fixture
def clip(tmp_path, monkeypatch: pytest.MonkeyPatch):
    path = tmp_path / "clip.mov"
    path.write_bytes(b"\x00" * 32)
    monkeypatch.setattr(cli, "build_default_config", lambda: make_config())
    monkeypatch.setattr(cli, "UploadPipeline", StubPipeline)
    monkeypatch.setattr(cli, "configure_logging", lambda *args, **kwargs: tmp_path / "log")
    return path


@pytest.mark.parametrize(
    "outcome, code",
    [
        (UploadSuccess(url="u", content_hash="h", server="a"), cli.EXIT_SUCCESS),
        (UploadFailure(error_kind=ErrorKind.TIMEOUT, failed_server="all"), cli.EXIT_FAILURE),
        (UploadCancelled(stage="transcoding"), cli.EXIT_CANCELLED),
    ],
)
def test_exit_codes_follow_outcome(clip, capsys, outcome, code) -> None:
    StubPipeline.outcome = outcome

    assert cli.main([str(clip), "--duration", "12"]) == code
    printed = json.loads(capsys.readouterr().out)
    assert printed["outcome"] in {"success", "failure", "cancelled"}


def test_context_pairs_are_forwarded(clip) -> None:
    StubPipeline.outcome = UploadSuccess(url="u", content_hash="h")

    cli.main([str(clip), "--context", "userId=u-1", "--context", "source=web", "--mime", "video/quicktime"])

    assert StubPipeline.seen["context"] == {"userId": "u-1", "source": "web"}
    assert StubPipeline.seen["media"].mime_type == "video/quicktime"


def test_malformed_context_is_rejected(clip) -> None:
    with pytest.raises(SystemExit):
        cli.main([str(clip), "--context", "novalue"])


def test_configure_logging_writes_file_and_keeps_foreign_handlers(tmp_path) -> None:
    root = logging.getLogger()
    foreign = logging.NullHandler()
    root.addHandler(foreign)
    try:
        first = configure_logging("unit", log_dir=tmp_path)
        second = configure_logging("unit", log_dir=tmp_path, level=logging.DEBUG)
        logging.getLogger("video_uploader.test").debug("attempt %s started", "oracle")

        assert first is not None and second is not None
        assert "attempt oracle started" in second.read_text(encoding="utf-8")
        assert foreign in root.handlers
        owned = [h for h in root.handlers if getattr(h, "_video_uploader_handler", False)]
        assert len(owned) == 2
    finally:
        for handler in list(root.handlers):
            if getattr(handler, "_video_uploader_handler", False):
                root.removeHandler(handler)
                handler.close()
        root.removeHandler(foreign)
        root.setLevel(logging.WARNING)


def test_list_servers_prints_registry_in_priority_order(monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    monkeypatch.setattr(cli, "build_default_config", lambda: make_config(server("b", 2), server("a", 1, timeout=30.0)))

    assert cli.main(["--list-servers"]) == cli.EXIT_SUCCESS
    listed = json.loads(capsys.readouterr().out)
    assert [entry["key"] for entry in listed] == ["a", "b"]
    assert listed[0]["timeout"] == 30.0
    assert listed[0]["priority"] == 1


def test_path_is_required_without_list_servers() -> None:
    with pytest.raises(SystemExit):
        cli.parse_args([])
