"""Read-side operations exposed to the HTTP layer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import List, Optional, TypeVar

from datastore.sqlite_store import (
    DEFAULT_RECENT_LIMIT,
    DEFAULT_RETENTION_DAYS,
    DEFAULT_STATISTICS_HOURS,
    ReadingStore,
    StoreFailureKind,
    StoreResult,
    build_default_store,
)
from models.records import PendingCorrelation, Reading, StatisticsWindow
from services.correlator import ReadingCorrelator, build_default_correlator

T = TypeVar("T")

# Largest accepted values; anything above is clamped.
MAX_RECENT_LIMIT = 10_000
MAX_STATISTICS_HOURS = 876_600
MAX_RETENTION_DAYS = 36_525

_FAILURE_STATUS = {
    StoreFailureKind.connection_failure: 503,
    StoreFailureKind.constraint_violation: 500,
    StoreFailureKind.query_failure: 500,
}


class QueryError(Exception):
    """A query that cannot be answered, with the HTTP status to report."""

    def __init__(self, message: str, status_code: int = 500) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass(frozen=True)
class LatestView:
    reading: Optional[Reading]
    realtime: PendingCorrelation


@dataclass(frozen=True)
class CleanupOutcome:
    days: int
    deleted: int


def coerce_positive_int(raw: object, default: int, maximum: Optional[int] = None) -> int:
    """Parse ``raw`` as a positive integer, falling back to ``default``.

    Values above ``maximum`` are clamped to it.
    """
    if raw is None or isinstance(raw, bool):
        return default
    if isinstance(raw, int):
        parsed = raw
    else:
        try:
            parsed = int(str(raw).strip())
        except ValueError:
            return default
    if parsed <= 0:
        return default
    if maximum is not None and parsed > maximum:
        return maximum
    return parsed


def parse_timestamp(value: str) -> datetime:
    candidate = value.strip()
    if not candidate:
        raise ValueError("Timestamp is empty.")

    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValueError(f"Invalid timestamp {value!r}") from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return parsed.astimezone(timezone.utc)


def _unwrap(result: StoreResult[T]) -> T:
    if result.failure is not None:
        raise QueryError(result.failure.message, status_code=_FAILURE_STATUS[result.failure.kind])
    return result.value  # type: ignore[return-value]


class QueryService:
    """Validates query parameters and translates store failures."""

    def __init__(self, store: ReadingStore, correlator: ReadingCorrelator) -> None:
        self.store = store
        self.correlator = correlator

    def latest(self) -> LatestView:
        reading = _unwrap(self.store.latest())
        return LatestView(reading=reading, realtime=self.correlator.snapshot())

    def recent(self, raw_limit: object = None) -> List[Reading]:
        limit = coerce_positive_int(raw_limit, DEFAULT_RECENT_LIMIT, MAX_RECENT_LIMIT)
        return _unwrap(self.store.recent(limit))

    def statistics(self, raw_hours: object = None) -> StatisticsWindow:
        hours = coerce_positive_int(raw_hours, DEFAULT_STATISTICS_HOURS, MAX_STATISTICS_HOURS)
        return _unwrap(self.store.statistics(hours))

    def range(self, start: Optional[str], end: Optional[str]) -> List[Reading]:
        if not start or not end:
            raise QueryError("Please provide start and end parameters", status_code=400)
        try:
            start_at = parse_timestamp(start)
            end_at = parse_timestamp(end)
        except ValueError as exc:
            raise QueryError(str(exc), status_code=400) from exc
        return _unwrap(self.store.by_range(start_at, end_at))

    def cleanup(self, raw_days: object = None) -> CleanupOutcome:
        days = coerce_positive_int(raw_days, DEFAULT_RETENTION_DAYS, MAX_RETENTION_DAYS)
        deleted = _unwrap(self.store.prune_older_than(days))
        return CleanupOutcome(days=days, deleted=deleted)


@lru_cache
def build_default_query_service() -> QueryService:
    return QueryService(store=build_default_store(), correlator=build_default_correlator())
