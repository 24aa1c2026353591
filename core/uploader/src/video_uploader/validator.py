"""Local checks run on a media file before any network call."""
from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, Optional

import ffmpeg  # type: ignore

from .config import ValidationLimits
from .exceptions import MediaProbeError
from .models import MediaFile, ValidationResult
from .utils import to_optional_float

LOGGER = logging.getLogger(__name__)

DurationReader = Callable[[MediaFile], float]

_GENERIC_MIME_TYPES = {"", "application/octet-stream", "binary/octet-stream"}


def _parse_duration(probe_result: dict) -> Optional[float]:
    fmt = probe_result.get("format")
    if isinstance(fmt, dict):
        duration = to_optional_float(fmt.get("duration"))
        if duration is not None and duration > 0:
            return duration
    durations = [
        to_optional_float(stream.get("duration"))
        for stream in probe_result.get("streams", [])
        if isinstance(stream, dict)
    ]
    known = [value for value in durations if value is not None and value > 0]
    return max(known) if known else None


def probe_duration(file: MediaFile, ffprobe_binary: str = "ffprobe") -> float:
    """Return the clip duration in seconds using ffprobe."""

    spooled: Optional[str] = None
    if isinstance(file.source, Path):
        target = str(file.source)
    else:
        with tempfile.NamedTemporaryFile(suffix=file.extension, delete=False) as handle:
            handle.write(file.source)
            spooled = handle.name
        target = spooled

    try:
        probe_result = ffmpeg.probe(target, cmd=ffprobe_binary)
    except ffmpeg.Error as exc:  # type: ignore[attr-defined]
        stderr = exc.stderr.decode(errors="ignore") if getattr(exc, "stderr", None) else str(exc)
        raise MediaProbeError(f"Failed to probe media file '{file.name}': {stderr}") from exc
    except FileNotFoundError as exc:
        raise MediaProbeError(f"ffprobe binary '{ffprobe_binary}' not found") from exc
    finally:
        if spooled is not None:
            try:
                os.unlink(spooled)
            except OSError:  # pragma: no cover - filesystem variance
                LOGGER.debug("Unable to remove spooled probe file %s", spooled)

    duration = _parse_duration(probe_result)
    if duration is None:
        raise MediaProbeError(f"No duration reported for '{file.name}'")
    return duration


class Validator:
    """Check duration, size and container of a media file, in that order."""

    def __init__(
        self,
        limits: ValidationLimits,
        *,
        duration_reader: Optional[DurationReader] = None,
    ) -> None:
        self._limits = limits
        self._duration_reader = duration_reader or (
            lambda file: probe_duration(file, limits.ffprobe_binary)
        )

    @property
    def limits(self) -> ValidationLimits:
        return self._limits

    def validate(self, file: MediaFile) -> ValidationResult:
        limits = self._limits

        duration = file.duration
        if duration is None:
            try:
                duration = self._duration_reader(file)
            except MediaProbeError as exc:
                LOGGER.warning("Could not read duration for %s: %s", file.name, exc)
                return ValidationResult.invalid(f"Unable to read video duration: {exc}")
        if duration < limits.min_duration:
            return ValidationResult.invalid(
                f"Video duration {duration:.1f}s is shorter than the minimum of "
                f"{limits.min_duration:g}s",
                duration,
            )
        if duration > limits.max_duration:
            return ValidationResult.invalid(
                f"Video duration {duration:.1f}s exceeds the maximum of {limits.max_duration:g}s",
                duration,
            )

        if file.size <= 0:
            return ValidationResult.invalid("File is empty", duration)
        if file.size > limits.max_size_bytes:
            return ValidationResult.invalid(
                f"File size {_format_size(file.size)} exceeds the limit of "
                f"{_format_size(limits.max_size_bytes)}",
                duration,
            )

        if not self.is_video(file):
            return ValidationResult.invalid(
                f"Unsupported file type '{file.mime_type or file.extension or 'unknown'}'",
                duration,
            )

        return ValidationResult.ok(duration)

    def is_video(self, file: MediaFile) -> bool:
        mime = (file.mime_type or "").strip().lower()
        if mime in _GENERIC_MIME_TYPES:
            return file.extension in self._limits.video_extensions
        return mime in self._limits.video_mime_types

    def is_direct_upload(self, file: MediaFile) -> bool:
        """Playback-ready containers and preprocessed files skip transcoding."""

        if file.preprocessed:
            return True
        mime = (file.mime_type or "").strip().lower()
        if mime in _GENERIC_MIME_TYPES:
            return file.extension in self._limits.direct_extensions
        return mime in self._limits.direct_mime_types


def _format_size(num_bytes: int) -> str:
    if num_bytes < 1024 * 1024:
        return f"{num_bytes / 1024:.1f} KB"
    return f"{num_bytes / (1024 * 1024):.1f} MB"


__all__ = ["DurationReader", "Validator", "probe_duration"]
