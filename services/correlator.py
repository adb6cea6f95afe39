"""Merges independently arriving per-metric values into complete readings."""

from __future__ import annotations

import logging
from datetime import datetime
from functools import lru_cache
from threading import Lock
from typing import Optional

from models.records import Metric, PendingCorrelation, ReadingCandidate
from settings import get_settings

logger = logging.getLogger(__name__)


class ReadingCorrelator:
    """Owns the single pending correlation buffer.

    With ``reset_after_emit`` disabled the buffer keeps its values after a
    candidate is emitted, so every later update of any metric emits a new
    candidate built from the latest known values. With it enabled, the
    metric fields are cleared after each emission and a new candidate needs
    a fresh value for all three metrics.
    """

    def __init__(self, reset_after_emit: bool = False) -> None:
        self.reset_after_emit = reset_after_emit
        self._pending = PendingCorrelation()
        self._lock = Lock()

    def apply_metric(
        self, metric: Metric, value: float, observed_at: datetime
    ) -> Optional[ReadingCandidate]:
        """Record ``value`` for ``metric``; return a candidate once all metrics are known."""
        with self._lock:
            self._pending.set(metric, value, observed_at)
            if not self._pending.is_complete:
                return None

            candidate = ReadingCandidate(
                temperature=self._pending.temperature,  # type: ignore[arg-type]
                humidity=self._pending.humidity,  # type: ignore[arg-type]
                air_quality=self._pending.air_quality,  # type: ignore[arg-type]
                observed_at=observed_at,
            )
            if self.reset_after_emit:
                self._pending.clear_metrics()

        logger.debug("Correlated complete reading", extra={"metric": metric.value})
        return candidate

    def snapshot(self) -> PendingCorrelation:
        with self._lock:
            return self._pending.copy()


@lru_cache
def build_default_correlator() -> ReadingCorrelator:
    return ReadingCorrelator(reset_after_emit=get_settings().reset_after_emit)
