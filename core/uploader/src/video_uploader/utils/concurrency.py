"""Concurrency-related helpers."""
from __future__ import annotations

import time
from queue import Empty, Queue
from threading import Event
from typing import Any, Optional


def get_with_stop(
    source: Queue,
    *,
    deadline: float,
    stop_event: Optional[Event] = None,
    poll_interval: float = 0.25,
) -> Optional[Any]:
    """Wait for the next queue item until ``deadline`` (monotonic) or a stop.

    Returns ``None`` when the deadline passed or ``stop_event`` was set; callers
    tell the two apart by checking the event.
    """

    while True:
        if stop_event is not None and stop_event.is_set():
            return None
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return None
        try:
            return source.get(timeout=min(remaining, poll_interval))
        except Empty:
            continue


__all__ = ["get_with_stop"]
