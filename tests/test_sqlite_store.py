"""Unit tests for the SQLite reading store."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError

from datastore.sqlite_store import (
    ReadingStore,
    StoreError,
    StoreFailureKind,
    StoreResult,
    classify_error,
)

BASE = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(BASE + timedelta(hours=1))


@pytest.fixture()
def store(tmp_path: Path, clock: FakeClock) -> ReadingStore:
    reading_store = ReadingStore(path=tmp_path / "readings.db", clock=clock)
    yield reading_store
    reading_store.close()


def _seed_scenario(store: ReadingStore) -> None:
    store.insert(20.0, 50.0, 0.5, timestamp=BASE + timedelta(seconds=1)).unwrap()
    store.insert(21.0, 51.0, 0.6, timestamp=BASE + timedelta(seconds=2)).unwrap()
    store.insert(22.0, 52.0, 2.0, timestamp=BASE + timedelta(seconds=3)).unwrap()


def test_insert_then_latest_round_trip(store: ReadingStore, clock: FakeClock) -> None:
    reading_id = store.insert(23.5, 40.25, 1.75).unwrap()

    latest = store.latest().unwrap()

    assert latest is not None
    assert latest.id == reading_id
    assert (latest.temperature, latest.humidity, latest.air_quality) == (23.5, 40.25, 1.75)
    assert latest.timestamp == clock.now


def test_latest_on_empty_store_is_none(store: ReadingStore) -> None:
    result = store.latest()

    assert result.ok
    assert result.value is None


def test_ids_increase_monotonically(store: ReadingStore) -> None:
    ids = [store.insert(1.0, 2.0, 3.0).unwrap() for _ in range(3)]

    assert ids == sorted(ids)
    assert len(set(ids)) == 3


def test_insert_accepts_out_of_range_and_missing_values(store: ReadingStore) -> None:
    store.insert(-500.0, 1000.0, None).unwrap()

    latest = store.latest().unwrap()
    assert latest is not None
    assert latest.temperature == -500.0
    assert latest.humidity == 1000.0
    assert latest.air_quality is None


def test_scenario_recent_and_statistics(store: ReadingStore) -> None:
    _seed_scenario(store)

    recent = store.recent(2).unwrap()
    assert [reading.timestamp for reading in recent] == [
        BASE + timedelta(seconds=3),
        BASE + timedelta(seconds=2),
    ]

    stats = store.statistics(24).unwrap()
    assert stats.total_records == 3
    assert stats.avg_temp == pytest.approx(21.0)
    assert stats.min_temp == 20.0
    assert stats.max_temp == 22.0
    assert stats.avg_humidity == pytest.approx(51.0)
    assert stats.min_air_quality == 0.5
    assert stats.max_air_quality == 2.0


@pytest.mark.parametrize("limit", [0, -5, None])
def test_recent_falls_back_to_default_limit(store: ReadingStore, limit) -> None:
    _seed_scenario(store)

    readings = store.recent(limit).unwrap()

    assert len(readings) == 3


def test_recent_is_sorted_descending_and_bounded(store: ReadingStore) -> None:
    for offset in (5, 1, 3, 2, 4):
        store.insert(float(offset), 0.0, 0.0, timestamp=BASE + timedelta(minutes=offset)).unwrap()

    readings = store.recent(3).unwrap()

    assert [reading.temperature for reading in readings] == [5.0, 4.0, 3.0]


def test_statistics_on_empty_window_returns_no_data(store: ReadingStore, clock: FakeClock) -> None:
    store.insert(20.0, 50.0, 0.5, timestamp=clock.now - timedelta(hours=5)).unwrap()

    stats = store.statistics(1).unwrap()

    assert stats.total_records == 0
    assert stats.hours == 1
    assert stats.avg_temp is None
    assert stats.min_humidity is None
    assert stats.max_air_quality is None


def test_by_range_is_inclusive_and_descending(store: ReadingStore) -> None:
    _seed_scenario(store)

    readings = store.by_range(BASE + timedelta(seconds=1), BASE + timedelta(seconds=2)).unwrap()

    assert [reading.temperature for reading in readings] == [21.0, 20.0]


def test_by_range_with_start_after_end_is_empty(store: ReadingStore) -> None:
    _seed_scenario(store)

    result = store.by_range(BASE + timedelta(seconds=3), BASE)

    assert result.ok
    assert result.value == []


def test_by_range_treats_missing_bounds_as_open(store: ReadingStore) -> None:
    _seed_scenario(store)

    assert len(store.by_range(start=BASE + timedelta(seconds=2)).unwrap()) == 2
    assert len(store.by_range(end=BASE + timedelta(seconds=1)).unwrap()) == 1
    assert len(store.by_range().unwrap()) == 3


def test_by_range_normalizes_timezones(store: ReadingStore) -> None:
    _seed_scenario(store)
    plus_two = timezone(timedelta(hours=2))

    readings = store.by_range(
        (BASE + timedelta(seconds=3)).astimezone(plus_two),
        (BASE + timedelta(seconds=3)).astimezone(plus_two),
    ).unwrap()

    assert [reading.temperature for reading in readings] == [22.0]


def test_prune_keeps_rows_exactly_at_the_boundary(store: ReadingStore, clock: FakeClock) -> None:
    clock.now = BASE
    boundary = BASE - timedelta(days=30)
    store.insert(1.0, 1.0, 1.0, timestamp=boundary - timedelta(seconds=1)).unwrap()
    store.insert(2.0, 2.0, 2.0, timestamp=boundary - timedelta(days=3)).unwrap()
    store.insert(3.0, 3.0, 3.0, timestamp=boundary).unwrap()
    store.insert(4.0, 4.0, 4.0, timestamp=BASE - timedelta(days=1)).unwrap()

    deleted = store.prune_older_than(30).unwrap()

    assert deleted == 2
    remaining = store.recent().unwrap()
    assert sorted(reading.temperature for reading in remaining) == [3.0, 4.0]
    assert store.prune_older_than(30).unwrap() == 0


def test_count_and_ping(store: ReadingStore) -> None:
    _seed_scenario(store)

    assert store.count().unwrap() == 3
    assert store.ping() is True


def test_readings_persist_across_store_instances(tmp_path: Path, clock: FakeClock) -> None:
    path = tmp_path / "persisted.db"
    first = ReadingStore(path=path, clock=clock)
    first.insert(10.0, 20.0, 30.0).unwrap()
    first.close()

    second = ReadingStore(path=path, clock=clock)
    try:
        latest = second.latest().unwrap()
        assert latest is not None
        assert latest.temperature == 10.0
    finally:
        second.close()


def test_database_errors_are_returned_not_raised(store: ReadingStore) -> None:
    with store.engine.begin() as conn:
        conn.execute(text("DROP TABLE sensor_data"))

    result = store.insert(1.0, 2.0, 3.0)

    assert not result.ok
    assert result.failure is not None
    assert result.failure.kind is StoreFailureKind.connection_failure
    assert "sensor_data" in result.failure.message
    with pytest.raises(StoreError):
        result.unwrap()


def test_out_of_range_windows_are_returned_not_raised(store: ReadingStore) -> None:
    _seed_scenario(store)

    for result in (
        store.statistics(10**11),
        store.prune_older_than(10**7),
        store.recent(2**70),
    ):
        assert not result.ok
        assert result.failure is not None

    assert store.statistics(10**11).failure.kind is StoreFailureKind.query_failure
    assert store.prune_older_than(10**7).failure.kind is StoreFailureKind.query_failure
    assert store.count().unwrap() == 3


def test_classify_error_maps_exception_types() -> None:
    cause = Exception("boom")

    assert classify_error(IntegrityError("stmt", {}, cause)).kind is StoreFailureKind.constraint_violation
    assert classify_error(OperationalError("stmt", {}, cause)).kind is StoreFailureKind.connection_failure
    assert classify_error(ProgrammingError("stmt", {}, cause)).kind is StoreFailureKind.query_failure
    assert classify_error(IntegrityError("stmt", {}, cause)).message == "boom"
    assert classify_error(OverflowError("date value out of range")).kind is StoreFailureKind.query_failure


def test_store_result_unwrap_returns_value() -> None:
    assert StoreResult(value=5).unwrap() == 5
    assert StoreResult(value=None).ok


def test_concurrent_inserts_and_reads(store: ReadingStore) -> None:
    errors: list[str] = []

    def writer(worker: int) -> None:
        for index in range(25):
            result = store.insert(float(worker), float(index), 0.0)
            if not result.ok:
                errors.append(result.failure.message)  # type: ignore[union-attr]

    def reader() -> None:
        for _ in range(25):
            if not store.statistics(24).ok or not store.recent(10).ok:
                errors.append("read failed")

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    threads.append(threading.Thread(target=reader))
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert errors == []
    assert store.count().unwrap() == 100
