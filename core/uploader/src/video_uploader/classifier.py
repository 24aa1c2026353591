"""Map raw upload failures onto the closed :class:`ErrorKind` taxonomy.

The mapping is identical for every server so that failure reports can be
compared across the whole registry. Rules are applied in priority order:

1. an explicit "too large" signal (flag, HTTP 413 or the phrase in the message)
2. an aborted or timed-out request
3. a transport failure that never produced a response
4. an HTTP 5xx status
5. anything else
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

import requests

from .exceptions import TranscodeServiceError
from .models import ErrorKind, RawFailure

_STATUS_PATTERN = re.compile(r"\bfailed:\s*([1-5]\d{2})\b", re.IGNORECASE)
_TOO_LARGE_PATTERN = re.compile(r"too\s+large|payload\s+too\s+big|entity\s+too\s+large", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class Classification:
    error_kind: ErrorKind
    status_code: Optional[int] = None


def extract_status_code(message: str) -> Optional[int]:
    """Pull an HTTP status out of ``"Upload failed: 500"`` style messages.

    Free-form server text is never mined; it may contain frame counts or
    exit codes that look like statuses.
    """

    if not message:
        return None
    match = _STATUS_PATTERN.search(message)
    if match is None:
        return None
    return int(match.group(1))


def _underlying(exc: Optional[BaseException]) -> Optional[BaseException]:
    while isinstance(exc, TranscodeServiceError) and exc.__cause__ is not None:
        exc = exc.__cause__
    return exc


def _is_timeout(exc: Optional[BaseException]) -> bool:
    return isinstance(exc, (requests.Timeout, TimeoutError))


def _is_transport(exc: Optional[BaseException]) -> bool:
    # requests exceptions derive from IOError, as do socket errors
    if isinstance(exc, requests.RequestException):
        return getattr(exc, "response", None) is None
    return isinstance(exc, (OSError, TranscodeServiceError))


def classify(raw: RawFailure) -> Classification:
    status_code = raw.status_code
    if status_code is None and raw.exception is None:
        status_code = extract_status_code(raw.message)

    exception = _underlying(raw.exception)

    if raw.too_large or status_code == 413 or _TOO_LARGE_PATTERN.search(raw.message or ""):
        return Classification(ErrorKind.FILE_TOO_LARGE, status_code)
    if raw.timed_out or _is_timeout(exception):
        return Classification(ErrorKind.TIMEOUT, status_code)
    if raw.connection_lost or (status_code is None and _is_transport(exception)):
        return Classification(ErrorKind.NETWORK_CONNECTION, status_code)
    if status_code is not None and 500 <= status_code <= 599:
        return Classification(ErrorKind.SERVER_ERROR, status_code)
    return Classification(ErrorKind.UNKNOWN, status_code)


__all__ = ["Classification", "classify", "extract_status_code"]
