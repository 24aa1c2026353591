"""Merge transfer and processing progress into one monotonic value."""
from __future__ import annotations

from typing import Optional, Tuple

from .models import Phase, ProgressEvent

STAGE_ORDER: Tuple[str, ...] = ("uploading", "receiving", "encoding", "finalizing", "complete")
DIRECT_STAGE = "uploading"


def clamp_percent(value: float) -> float:
    return max(0.0, min(100.0, float(value)))


def merge(last_emitted: float, incoming: float) -> float:
    """Return the value to show next; never lower than what was already shown."""

    return max(clamp_percent(last_emitted), clamp_percent(incoming))


def _stage_rank(stage: str) -> Optional[int]:
    try:
        return STAGE_ORDER.index(stage)
    except ValueError:
        return None


class ProgressMultiplexer:
    """Per-attempt view of progress coming from two independent sources.

    In direct mode the byte-transfer ratio is shown as-is under a fixed stage.
    In transcode mode the transfer phase occupies ``[0, transfer_weight]`` and
    the server's own processing progress the remainder of the scale.
    """

    def __init__(self, *, direct: bool = False, transfer_weight: float = 20.0) -> None:
        self._direct = direct
        self._transfer_weight = 100.0 if direct else clamp_percent(transfer_weight)
        self._percent = 0.0
        self._stage = DIRECT_STAGE
        self._emitted = False

    @property
    def percent(self) -> float:
        return self._percent

    @property
    def stage(self) -> str:
        return self._stage

    def scale(self, event: ProgressEvent) -> float:
        """Project a phase-local percentage onto the shared 0-100 scale."""

        local = clamp_percent(event.percent)
        if event.phase is Phase.TRANSFER:
            return local * self._transfer_weight / 100.0
        return self._transfer_weight + local * (100.0 - self._transfer_weight) / 100.0

    def update(self, event: ProgressEvent) -> Optional[Tuple[float, str]]:
        """Fold ``event`` in; return ``(percent, stage)`` only when it changed."""

        percent = merge(self._percent, self.scale(event))
        stage = DIRECT_STAGE if self._direct else self._next_stage(event.stage)
        if self._emitted and percent == self._percent and stage == self._stage:
            return None
        self._percent = percent
        self._stage = stage
        self._emitted = True
        return percent, stage

    def _next_stage(self, incoming: str) -> str:
        if not incoming:
            return self._stage
        current_rank = _stage_rank(self._stage)
        incoming_rank = _stage_rank(incoming)
        if current_rank is not None and incoming_rank is not None and incoming_rank < current_rank:
            return self._stage
        return incoming


__all__ = ["DIRECT_STAGE", "STAGE_ORDER", "ProgressMultiplexer", "clamp_percent", "merge"]
