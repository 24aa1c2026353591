"""Wire helpers shared by the content store and transcode backends."""
from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from threading import Event
from typing import Any, BinaryIO, Callable, Iterable, Iterator, List, Mapping, Optional

from .models import MediaFile

TransferCallback = Callable[[int, int], None]


class TransferAborted(IOError):
    """Raised from inside a body read when the caller asked to stop."""


def _encode_field(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (bool, int, float)) or value is None:
        return json.dumps(value)
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


class MultipartBody:
    """File-like multipart/form-data body that reports bytes as they are sent.

    ``requests`` sizes the body through ``__len__`` and streams it through
    ``read`` so the file is never loaded in full when it lives on disk.
    """

    def __init__(
        self,
        file: MediaFile,
        *,
        fields: Optional[Mapping[str, Any]] = None,
        file_field: str = "file",
        on_transfer: Optional[TransferCallback] = None,
        stop_event: Optional[Event] = None,
    ) -> None:
        self._boundary = uuid.uuid4().hex
        self._file = file
        self._on_transfer = on_transfer
        self._stop_event = stop_event

        head: List[bytes] = []
        for name, value in (fields or {}).items():
            head.append(
                (
                    f"--{self._boundary}\r\n"
                    f'Content-Disposition: form-data; name="{name}"\r\n\r\n'
                    f"{_encode_field(value)}\r\n"
                ).encode("utf-8")
            )
        safe_name = file.name.replace('"', "_")
        head.append(
            (
                f"--{self._boundary}\r\n"
                f'Content-Disposition: form-data; name="{file_field}"; filename="{safe_name}"\r\n'
                f"Content-Type: {file.mime_type or 'application/octet-stream'}\r\n\r\n"
            ).encode("utf-8")
        )
        self._head = b"".join(head)
        self._tail = f"\r\n--{self._boundary}--\r\n".encode("utf-8")
        self._length = len(self._head) + file.size + len(self._tail)

        self._stream: Optional[BinaryIO] = None
        self._head_pos = 0
        self._tail_pos = 0
        self._sent = 0
        self._file_done = False

    @property
    def content_type(self) -> str:
        return f"multipart/form-data; boundary={self._boundary}"

    @property
    def bytes_sent(self) -> int:
        return self._sent

    def __len__(self) -> int:
        return self._length

    def read(self, size: int = -1) -> bytes:
        if self._stop_event is not None and self._stop_event.is_set():
            raise TransferAborted("upload cancelled")
        if size is None or size < 0:
            size = self._length

        chunks: List[bytes] = []
        remaining = size
        if self._head_pos < len(self._head) and remaining > 0:
            piece = self._head[self._head_pos:self._head_pos + remaining]
            self._head_pos += len(piece)
            remaining -= len(piece)
            chunks.append(piece)

        if not self._file_done and remaining > 0:
            if self._stream is None:
                self._stream = self._file.open()
            piece = self._stream.read(remaining)
            if piece:
                self._sent += len(piece)
                remaining -= len(piece)
                chunks.append(piece)
                if self._on_transfer is not None:
                    self._on_transfer(self._sent, self._file.size)
            if not piece or self._sent >= self._file.size:
                self._file_done = True
                self.close()

        if self._file_done and remaining > 0 and self._tail_pos < len(self._tail):
            piece = self._tail[self._tail_pos:self._tail_pos + remaining]
            self._tail_pos += len(piece)
            chunks.append(piece)

        return b"".join(chunks)

    def close(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self._stream = None


@dataclass(frozen=True, slots=True)
class SseMessage:
    event: str
    data: str

    def json(self) -> Any:
        return json.loads(self.data)


def iter_sse_messages(lines: Iterable[str | bytes]) -> Iterator[SseMessage]:
    """Group server-sent-event lines into messages.

    A message is dispatched on a blank line (or at end of input) when it has
    data. Comment lines and unknown fields are ignored.
    """

    event = "message"
    data: List[str] = []
    for raw in lines:
        line = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        line = line.rstrip("\r\n")
        if not line:
            if data:
                yield SseMessage(event=event, data="\n".join(data))
            event = "message"
            data = []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "data":
            data.append(value)
        elif name == "event":
            event = value or "message"
    if data:
        yield SseMessage(event=event, data="\n".join(data))


_HASH_KEYS = ("IpfsHash", "ipfsHash", "cid", "hash")
_URL_KEYS = ("url", "gatewayUrl", "gateway_url", "videoUrl")
_MESSAGE_KEYS = ("error", "message", "detail")


def content_result(payload: Any, gateway_url: Optional[str] = None) -> Optional[tuple[str, str]]:
    """Return ``(url, content_hash)`` from a store or transcoder response body."""

    if not isinstance(payload, Mapping):
        return None
    content_hash = next(
        (str(payload[key]) for key in _HASH_KEYS if isinstance(payload.get(key), str) and payload[key]),
        None,
    )
    if content_hash is None:
        return None
    url = next(
        (str(payload[key]) for key in _URL_KEYS if isinstance(payload.get(key), str) and payload[key]),
        None,
    )
    if url is None:
        if not gateway_url:
            return None
        url = f"{gateway_url.rstrip('/')}/{content_hash}"
    return url, content_hash


def error_message(payload: Any, fallback: str) -> str:
    if isinstance(payload, Mapping):
        for key in _MESSAGE_KEYS:
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return fallback


__all__ = [
    "MultipartBody",
    "SseMessage",
    "TransferAborted",
    "TransferCallback",
    "content_result",
    "error_message",
    "iter_sse_messages",
]
