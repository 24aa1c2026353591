"""Test doubles shared by the uploader tests."""
from __future__ import annotations

from threading import Event
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from video_uploader.backends import TranscodeBackend
from video_uploader.config import ContentStoreSettings, ServerRegistry, UploaderConfig, ValidationLimits
from video_uploader.models import (
    CompletedEvent,
    FailedEvent,
    MediaFile,
    Phase,
    ProgressEvent,
    RawFailure,
    ServerDescriptor,
)


def server(key: str, priority: int, timeout: float = 5.0) -> ServerDescriptor:
    return ServerDescriptor(
        key=key,
        display_name=key.upper(),
        endpoint=f"http://{key}.test",
        priority=priority,
        timeout=timeout,
    )


def make_config(*servers: ServerDescriptor, **limits: Any) -> UploaderConfig:
    return UploaderConfig(
        registry=ServerRegistry(servers or (server("a", 1), server("b", 2))),
        content_store=ContentStoreSettings(
            endpoint="http://store.test/upload",
            gateway_url="https://gateway.test/ipfs/",
            timeout=5.0,
        ),
        limits=ValidationLimits(**limits),
        poll_interval=0.01,
    )


def video(
    name: str = "clip.mov",
    mime_type: str = "video/quicktime",
    size: int = 4096,
    duration: Optional[float] = 12.0,
    preprocessed: bool = False,
) -> MediaFile:
    return MediaFile(
        name=name,
        mime_type=mime_type,
        size=size,
        source=b"\x00" * size,
        duration=duration,
        preprocessed=preprocessed,
    )


def progress(percent: float, stage: str = "encoding") -> ProgressEvent:
    return ProgressEvent(Phase.PROCESSING, percent, stage)


def completed(content_hash: str = "bafyhash") -> CompletedEvent:
    return CompletedEvent(url=f"https://gateway.test/ipfs/{content_hash}", content_hash=content_hash)


def failed(message: str = "boom", status_code: Optional[int] = None, **flags: Any) -> FailedEvent:
    return FailedEvent(RawFailure(message, status_code=status_code, **flags))


class ScriptedStream:
    """Attempt stream that replays events and can hang until closed."""

    def __init__(
        self,
        events: Sequence[Any] = (),
        *,
        transfer: Sequence[Tuple[int, int]] = (),
        hang: bool = False,
        error: Optional[BaseException] = None,
    ) -> None:
        self.events = list(events)
        self.transfer = list(transfer)
        self.hang = hang
        self.error = error
        self.on_transfer = None
        self.closed = Event()

    def __iter__(self) -> Iterator[Any]:
        for sent, total in self.transfer:
            if self.on_transfer is not None:
                self.on_transfer(sent, total)
        if self.error is not None:
            raise self.error
        for event in self.events:
            yield event
        if self.hang:
            self.closed.wait(5.0)

    def close(self) -> None:
        self.closed.set()


class FakeBackend(TranscodeBackend):
    """Hands out scripted streams per server key and records the order used."""

    def __init__(self, scripts: Mapping[str, ScriptedStream]) -> None:
        self.scripts = dict(scripts)
        self.opened: List[str] = []
        self.contexts: List[Mapping[str, Any]] = []

    def open(self, server, file, context, on_transfer):
        self.opened.append(server.key)
        self.contexts.append(context)
        stream = self.scripts[server.key]
        stream.on_transfer = on_transfer
        return stream


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        payload: Any = None,
        *,
        lines: Iterable[str] = (),
        content_type: str = "application/json",
    ) -> None:
        self.status_code = status_code
        self._payload = payload
        self._lines = list(lines)
        self.headers = {"Content-Type": content_type}
        self.closed = False

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no JSON body")
        return self._payload

    def iter_lines(self, decode_unicode: bool = False) -> Iterator[str]:
        return iter(self._lines)

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """Stand-in for ``requests.Session`` that drains the request body."""

    def __init__(self, result: Any) -> None:
        self.result = result
        self.calls: List[Dict[str, Any]] = []
        self.bodies: List[bytes] = []

    def post(self, url, data=None, headers=None, timeout=None, stream=False):
        self.calls.append({"url": url, "headers": dict(headers or {}), "timeout": timeout})
        chunks = []
        if data is not None:
            while True:
                chunk = data.read(8192)
                if not chunk:
                    break
                chunks.append(chunk)
        self.bodies.append(b"".join(chunks))
        if isinstance(self.result, BaseException):
            raise self.result
        return self.result

    def close(self) -> None:
        return None
