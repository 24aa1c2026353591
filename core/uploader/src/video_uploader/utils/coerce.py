"""Generic coercion utilities shared across the uploader codebase."""
from __future__ import annotations

from typing import Any, Optional, Tuple


def to_optional_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def to_optional_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def to_optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def to_string_sequence(value: Any) -> Optional[Tuple[str, ...]]:
    """Normalise a list or a comma separated string into a tuple of strings."""

    if value is None:
        return None
    if isinstance(value, (list, tuple, set)):
        items = [str(item).strip() for item in value]
    else:
        items = [part.strip() for part in str(value).split(",")]
    cleaned = tuple(item for item in items if item)
    return cleaned or None


def coerce_int(value: Any, fallback: int) -> int:
    parsed = to_optional_int(value)
    return fallback if parsed is None else parsed


def coerce_float(value: Any, fallback: float) -> float:
    parsed = to_optional_float(value)
    return fallback if parsed is None else parsed


__all__ = [
    "to_optional_int",
    "to_optional_float",
    "to_optional_str",
    "to_string_sequence",
    "coerce_int",
    "coerce_float",
]
