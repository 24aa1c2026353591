"""Utility helpers shared across the uploader service."""
from __future__ import annotations

from .coerce import (
    coerce_float,
    coerce_int,
    to_optional_float,
    to_optional_int,
    to_optional_str,
    to_string_sequence,
)
from .concurrency import get_with_stop
from .urls import join_url, strip_trailing_slash

__all__ = [
    "to_optional_float",
    "to_optional_int",
    "to_optional_str",
    "to_string_sequence",
    "coerce_int",
    "coerce_float",
    "get_with_stop",
    "join_url",
    "strip_trailing_slash",
]
