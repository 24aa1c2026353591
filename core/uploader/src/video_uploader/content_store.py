"""Direct upload of playback-ready files to the content-addressed store."""
from __future__ import annotations

import logging
from threading import Event
from typing import Any, Callable, Mapping, Optional

import requests

from .backends import HttpUploadStream
from .classifier import classify
from .config import ContentStoreSettings
from .models import (
    DIRECT,
    AttemptStatus,
    MediaFile,
    ProgressEvent,
    RawFailure,
    UploadAttempt,
    UploadCancelled,
    UploadFailure,
    UploadOutcome,
    UploadSuccess,
)
from .progress import ProgressMultiplexer
from .runner import AttemptRunner, AttemptState
from .transport import TransferCallback

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]


class ContentStoreUploader:
    """Stream a file to the single store endpoint; no retry and no failover."""

    def __init__(
        self,
        settings: ContentStoreSettings,
        *,
        session: Optional[requests.Session] = None,
        runner: Optional[AttemptRunner] = None,
        connect_timeout: float = 10.0,
        read_timeout: float = 30.0,
    ) -> None:
        self._settings = settings
        self._session = session or requests.Session()
        self._runner = runner or AttemptRunner()
        self._connect_timeout = connect_timeout
        self._read_timeout = read_timeout

    @property
    def key(self) -> str:
        return self._settings.key

    def close(self) -> None:
        self._session.close()

    def upload_direct(
        self,
        file: MediaFile,
        context: Optional[Mapping[str, Any]],
        on_progress: Optional[ProgressCallback] = None,
        stop_event: Optional[Event] = None,
    ) -> UploadOutcome:
        settings = self._settings
        attempt = UploadAttempt(server=DIRECT)
        multiplexer = ProgressMultiplexer(direct=True)
        fields = dict(context or {})
        fields.setdefault("filename", file.name)

        def _open(on_transfer: TransferCallback) -> HttpUploadStream:
            return HttpUploadStream(
                label=settings.key,
                url=settings.endpoint,
                file=file,
                session=self._session,
                fields=fields,
                headers=settings.headers,
                timeout=(self._connect_timeout, min(self._read_timeout, settings.timeout)),
                gateway_url=settings.gateway_url,
                on_transfer=on_transfer,
            )

        def _on_progress(event: ProgressEvent) -> None:
            update = multiplexer.update(event)
            if update is None:
                return
            attempt.record(*update)
            if on_progress is not None:
                on_progress(*update)

        LOGGER.info("Uploading %s (%d bytes) directly to %s", file.name, file.size, settings.display_name)
        result = self._runner.run(
            settings.key,
            _open,
            timeout=settings.timeout,
            on_progress=_on_progress,
            stop_event=stop_event,
        )

        if result.state is AttemptState.COMPLETED and result.completed is not None:
            attempt.finish(AttemptStatus.SUCCEEDED)
            LOGGER.info("Stored %s as %s", file.name, result.completed.content_hash)
            return UploadSuccess(
                url=result.completed.url,
                content_hash=result.completed.content_hash,
                server=DIRECT,
                attempts=(attempt,),
            )
        if result.state is AttemptState.CANCELLED:
            attempt.finish(AttemptStatus.CANCELLED)
            return UploadCancelled(stage="direct_uploading", attempts=(attempt,))

        attempt.finish(AttemptStatus.FAILED)
        failure = result.failure or RawFailure("upload failed")
        classification = classify(failure)
        LOGGER.warning(
            "Direct upload of %s failed (%s): %s",
            file.name,
            classification.error_kind.value,
            failure.message,
        )
        return UploadFailure(
            error_kind=classification.error_kind,
            status_code=classification.status_code,
            failed_server=settings.key,
            raw_message=failure.message,
            attempts=(attempt,),
        )


__all__ = ["ContentStoreUploader", "ProgressCallback"]
