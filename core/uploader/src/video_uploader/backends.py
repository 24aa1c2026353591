"""Transcoding backends that turn one server attempt into a lazy event stream."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from threading import Event
from typing import Any, Iterator, Mapping, MutableMapping, Optional

import requests

from .exceptions import TranscodeServiceError
from .models import (
    AttemptEvent,
    CompletedEvent,
    FailedEvent,
    MediaFile,
    Phase,
    ProgressEvent,
    RawFailure,
    ServerDescriptor,
)
from .runner import AttemptStream
from .transport import (
    MultipartBody,
    TransferCallback,
    content_result,
    error_message,
    iter_sse_messages,
)
from .utils import join_url, to_optional_float, to_optional_int, to_optional_str

LOGGER = logging.getLogger(__name__)

_COMPLETE_TYPES = {"complete", "completed", "done", "result", "success"}
_ERROR_TYPES = {"error", "failed", "failure"}


def _json_or_none(response: requests.Response) -> Optional[Any]:
    try:
        return response.json()
    except ValueError:
        return None


class HttpUploadStream:
    """POST a multipart body and interpret the response as attempt events.

    The request is only sent when iteration starts, so opening a stream is
    cheap and all network I/O happens on whichever thread consumes it.
    """

    accept = "application/json"

    def __init__(
        self,
        *,
        label: str,
        url: str,
        file: MediaFile,
        session: requests.Session,
        fields: Optional[Mapping[str, Any]] = None,
        file_field: str = "file",
        headers: Optional[Mapping[str, str]] = None,
        timeout: tuple[float, float] = (10.0, 300.0),
        gateway_url: Optional[str] = None,
        on_transfer: Optional[TransferCallback] = None,
    ) -> None:
        self.label = label
        self.url = url
        self._file = file
        self._session = session
        self._fields = dict(fields or {})
        self._file_field = file_field
        self._headers = dict(headers or {})
        self._timeout = timeout
        self._gateway_url = gateway_url
        self._on_transfer = on_transfer
        self._closed = Event()
        self._response: Optional[requests.Response] = None

    def __iter__(self) -> Iterator[AttemptEvent]:
        if self._closed.is_set():
            return
        body = MultipartBody(
            self._file,
            fields=self._fields,
            file_field=self._file_field,
            on_transfer=self._on_transfer,
            stop_event=self._closed,
        )
        headers: MutableMapping[str, str] = dict(self._headers)
        headers["Content-Type"] = body.content_type
        headers["Accept"] = self.accept
        LOGGER.debug("[%s] POST %s (%d bytes)", self.label, self.url, len(body))
        try:
            response = self._session.post(
                self.url,
                data=body,
                headers=headers,
                timeout=self._timeout,
                stream=True,
            )
        except requests.RequestException as exc:
            LOGGER.warning("[%s] request to %s failed: %s", self.label, self.url, exc)
            raise TranscodeServiceError(f"{self.label} request failed: {exc}") from exc
        finally:
            body.close()
        self._response = response
        try:
            if self._closed.is_set():
                return
            status = response.status_code
            if status >= 400:
                payload = _json_or_none(response)
                message = error_message(payload, f"{self.label} responded with HTTP {status}")
                LOGGER.warning("[%s] HTTP %s: %s", self.label, status, message)
                yield FailedEvent(RawFailure(message, status_code=status, too_large=status == 413))
                return
            yield from self._interpret(response)
        except requests.RequestException as exc:
            LOGGER.warning("[%s] response stream broke: %s", self.label, exc)
            raise TranscodeServiceError(f"{self.label} stream interrupted: {exc}") from exc
        finally:
            response.close()

    def close(self) -> None:
        self._closed.set()
        response = self._response
        if response is not None:
            response.close()

    def _interpret(self, response: requests.Response) -> Iterator[AttemptEvent]:
        payload = _json_or_none(response)
        yield self._terminal(payload, response.status_code)

    def _terminal(self, payload: Any, status: Optional[int]) -> AttemptEvent:
        result = content_result(payload, self._gateway_url)
        if result is None and isinstance(payload, Mapping):
            result = content_result(payload.get("result"), self._gateway_url)
        if result is not None:
            url, content_hash = result
            return CompletedEvent(url=url, content_hash=content_hash)
        message = error_message(payload, "response did not include a content hash")
        return FailedEvent(RawFailure(message, status_code=status))


class HttpTranscodeStream(HttpUploadStream):
    """Attempt against a transcoding server that reports progress over SSE."""

    accept = "text/event-stream"

    def _interpret(self, response: requests.Response) -> Iterator[AttemptEvent]:
        content_type = response.headers.get("Content-Type", "")
        if "text/event-stream" not in content_type:
            yield from super()._interpret(response)
            return

        for message in iter_sse_messages(response.iter_lines(decode_unicode=True)):
            if self._closed.is_set():
                return
            try:
                payload = message.json()
            except ValueError:
                LOGGER.debug("[%s] ignoring non-JSON event: %r", self.label, message.data)
                continue
            if not isinstance(payload, Mapping):
                continue
            event = self._event_from_payload(message.event, payload)
            if event is None:
                continue
            yield event
            if not isinstance(event, ProgressEvent):
                return

    def _event_from_payload(self, name: str, payload: Mapping[str, Any]) -> Optional[AttemptEvent]:
        kind = (to_optional_str(payload.get("type")) or name or "").lower()
        if kind in _ERROR_TYPES or payload.get("success") is False:
            status = to_optional_int(payload.get("statusCode") or payload.get("status_code"))
            message = error_message(payload, f"{self.label} reported an error")
            return FailedEvent(RawFailure(message, status_code=status, too_large=status == 413))
        if kind in _COMPLETE_TYPES or payload.get("success") is True:
            return self._terminal(payload, None)
        percent = to_optional_float(payload.get("progress", payload.get("percent")))
        if percent is None:
            return None
        stage = to_optional_str(payload.get("stage")) or "encoding"
        return ProgressEvent(Phase.PROCESSING, percent, stage)


class TranscodeBackend(ABC):
    """Opens one attempt against one transcoding server."""

    @abstractmethod
    def open(
        self,
        server: ServerDescriptor,
        file: MediaFile,
        context: Mapping[str, Any],
        on_transfer: TransferCallback,
    ) -> AttemptStream:
        """Return a lazy stream of events for a single attempt."""

    def close(self) -> None:  # pragma: no cover - default no-op
        return None


class HttpTranscodeBackend(TranscodeBackend):
    """Talk to transcoding servers over ``POST /transcode`` with SSE progress."""

    def __init__(
        self,
        *,
        session: Optional[requests.Session] = None,
        connect_timeout: float = 10.0,
        read_timeout: float = 30.0,
        path: str = "/transcode",
        gateway_url: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._session = session or requests.Session()
        self._connect_timeout = connect_timeout
        self._read_timeout = read_timeout
        self._path = path
        self._gateway_url = gateway_url
        self._headers = dict(headers or {})

    def close(self) -> None:
        self._session.close()

    def open(
        self,
        server: ServerDescriptor,
        file: MediaFile,
        context: Mapping[str, Any],
        on_transfer: TransferCallback,
    ) -> AttemptStream:
        return HttpTranscodeStream(
            label=server.key,
            url=join_url(server.endpoint, self._path),
            file=file,
            session=self._session,
            fields=context,
            file_field="video",
            headers=self._headers,
            # the runner enforces server.timeout; the socket only bounds silence
            timeout=(self._connect_timeout, min(self._read_timeout, server.timeout)),
            gateway_url=self._gateway_url,
            on_transfer=on_transfer,
        )


__all__ = [
    "HttpTranscodeBackend",
    "HttpTranscodeStream",
    "HttpUploadStream",
    "TranscodeBackend",
]
