"""URL manipulation helpers."""
from __future__ import annotations


def strip_trailing_slash(url: str) -> str:
    trimmed = (url or "").strip()
    while trimmed.endswith("/"):
        trimmed = trimmed[:-1]
    return trimmed


def join_url(base: str, path: str) -> str:
    """Join ``path`` onto ``base`` without collapsing the base's own path."""

    return f"{strip_trailing_slash(base)}/{path.lstrip('/')}"


__all__ = ["strip_trailing_slash", "join_url"]
