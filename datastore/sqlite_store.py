"""SQLite-backed store for persisted sensor readings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Generic, Optional, TypeVar

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    MetaData,
    Table,
    create_engine,
    delete,
    event,
    func,
    insert,
    select,
    text,
)
from sqlalchemy.engine import Engine, Row
from sqlalchemy.exc import (
    DisconnectionError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.pool import StaticPool

from models.records import Reading, StatisticsWindow
from settings import get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RECENT_LIMIT = 100
DEFAULT_STATISTICS_HOURS = 24
DEFAULT_RETENTION_DAYS = 30

_BUSY_TIMEOUT_SECONDS = 5.0

metadata = MetaData()

sensor_data = Table(
    "sensor_data",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("temperature", Float, nullable=True),
    Column("humidity", Float, nullable=True),
    Column("air_quality", Float, nullable=True),
    Column("timestamp", DateTime, nullable=False),
    sqlite_autoincrement=True,
)

Index("idx_sensor_data_timestamp", sensor_data.c.timestamp.desc())


class StoreFailureKind(str, Enum):
    connection_failure = "connection_failure"
    constraint_violation = "constraint_violation"
    query_failure = "query_failure"


@dataclass(frozen=True)
class StoreFailure:
    kind: StoreFailureKind
    message: str


class StoreError(RuntimeError):
    """Raised by ``StoreResult.unwrap`` when the operation failed."""

    def __init__(self, failure: StoreFailure) -> None:
        super().__init__(f"{failure.kind.value}: {failure.message}")
        self.failure = failure


@dataclass(frozen=True)
class StoreResult(Generic[T]):
    """Outcome of a store operation: a value or a classified failure."""

    value: Optional[T] = None
    failure: Optional[StoreFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    def unwrap(self) -> T:
        if self.failure is not None:
            raise StoreError(self.failure)
        return self.value  # type: ignore[return-value]


def classify_error(exc: Exception) -> StoreFailure:
    """Map a SQLAlchemy exception onto the store's failure taxonomy.

    Anything else (an ``OverflowError`` from an out-of-range window or limit)
    is a query failure.
    """
    if isinstance(exc, IntegrityError):
        kind = StoreFailureKind.constraint_violation
    elif isinstance(exc, (OperationalError, InterfaceError, DisconnectionError)):
        kind = StoreFailureKind.connection_failure
    else:
        kind = StoreFailureKind.query_failure
    detail = getattr(exc, "orig", None) or exc
    return StoreFailure(kind=kind, message=str(detail))


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _to_storage(value: datetime) -> datetime:
    """Naive UTC, the representation kept in the ``timestamp`` column."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _from_storage(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc)


def _row_to_reading(row: Row[Any]) -> Reading:
    return Reading(
        id=row.id,
        temperature=row.temperature,
        humidity=row.humidity,
        air_quality=row.air_quality,
        timestamp=_from_storage(row.timestamp),
    )


def _enable_wal(dbapi_connection: Any, _connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL")
    finally:
        cursor.close()


class ReadingStore:
    """Append-mostly reading table with time-indexed queries.

    Every public operation runs in its own transaction and reports database
    errors as a :class:`StoreResult` failure instead of raising.
    """

    def __init__(
        self,
        path: Optional[Path] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.path = path
        self._clock = clock
        self.engine = self._create_engine(path)
        metadata.create_all(self.engine, checkfirst=True)
        logger.info("Reading store ready at %s", path or ":memory:")

    @staticmethod
    def _create_engine(path: Optional[Path]) -> Engine:
        connect_args = {"check_same_thread": False, "timeout": _BUSY_TIMEOUT_SECONDS}
        if path is None:
            return create_engine(
                "sqlite://",
                connect_args=connect_args,
                poolclass=StaticPool,
            )

        path.parent.mkdir(parents=True, exist_ok=True)
        engine = create_engine(f"sqlite:///{path}", connect_args=connect_args)
        event.listen(engine, "connect", _enable_wal)
        return engine

    def now(self) -> datetime:
        return self._clock()

    def _run(self, operation: str, action: Callable[[Any], T]) -> StoreResult[T]:
        try:
            with self.engine.begin() as conn:
                return StoreResult(value=action(conn))
        except (SQLAlchemyError, OverflowError) as exc:
            failure = classify_error(exc)
            logger.error(
                "Store operation %s failed",
                operation,
                extra={"failure_kind": failure.kind.value, "reason": failure.message},
            )
            return StoreResult(failure=failure)

    def insert(
        self,
        temperature: Optional[float],
        humidity: Optional[float],
        air_quality: Optional[float],
        timestamp: Optional[datetime] = None,
    ) -> StoreResult[int]:
        """Append a reading and return its store-assigned id."""
        recorded_at = _to_storage(timestamp or self.now())

        def action(conn: Any) -> int:
            result = conn.execute(
                insert(sensor_data).values(
                    temperature=temperature,
                    humidity=humidity,
                    air_quality=air_quality,
                    timestamp=recorded_at,
                )
            )
            return int(result.inserted_primary_key[0])

        return self._run("insert", action)

    def latest(self) -> StoreResult[Optional[Reading]]:
        def action(conn: Any) -> Optional[Reading]:
            row = conn.execute(
                select(sensor_data)
                .order_by(sensor_data.c.timestamp.desc(), sensor_data.c.id.desc())
                .limit(1)
            ).first()
            return _row_to_reading(row) if row is not None else None

        return self._run("latest", action)

    def recent(self, limit: Optional[int] = DEFAULT_RECENT_LIMIT) -> StoreResult[list[Reading]]:
        """Return up to ``limit`` readings, newest first."""
        if limit is None or limit <= 0:
            limit = DEFAULT_RECENT_LIMIT

        def action(conn: Any) -> list[Reading]:
            rows = conn.execute(
                select(sensor_data)
                .order_by(sensor_data.c.timestamp.desc(), sensor_data.c.id.desc())
                .limit(limit)
            )
            return [_row_to_reading(row) for row in rows]

        return self._run("recent", action)

    def by_range(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> StoreResult[list[Reading]]:
        """Return readings with ``start <= timestamp <= end``, newest first.

        A missing bound leaves that side of the range open.
        """
        query = select(sensor_data)
        if start is not None:
            query = query.where(sensor_data.c.timestamp >= _to_storage(start))
        if end is not None:
            query = query.where(sensor_data.c.timestamp <= _to_storage(end))
        query = query.order_by(sensor_data.c.timestamp.desc(), sensor_data.c.id.desc())

        def action(conn: Any) -> list[Reading]:
            return [_row_to_reading(row) for row in conn.execute(query)]

        return self._run("by_range", action)

    def statistics(self, hours: int = DEFAULT_STATISTICS_HOURS) -> StoreResult[StatisticsWindow]:
        """Aggregate the readings of the trailing ``hours`` window."""
        columns = sensor_data.c
        aggregates = select(
            func.count().label("total_records"),
            func.avg(columns.temperature).label("avg_temp"),
            func.min(columns.temperature).label("min_temp"),
            func.max(columns.temperature).label("max_temp"),
            func.avg(columns.humidity).label("avg_humidity"),
            func.min(columns.humidity).label("min_humidity"),
            func.max(columns.humidity).label("max_humidity"),
            func.avg(columns.air_quality).label("avg_air_quality"),
            func.min(columns.air_quality).label("min_air_quality"),
            func.max(columns.air_quality).label("max_air_quality"),
        )

        def action(conn: Any) -> StatisticsWindow:
            cutoff = _to_storage(self.now() - timedelta(hours=hours))
            row = conn.execute(aggregates.where(columns.timestamp >= cutoff)).one()
            return StatisticsWindow(hours=hours, **row._asdict())

        return self._run("statistics", action)

    def prune_older_than(self, days: int = DEFAULT_RETENTION_DAYS) -> StoreResult[int]:
        """Delete readings strictly older than ``days`` days; irreversible."""
        def action(conn: Any) -> int:
            cutoff = _to_storage(self.now() - timedelta(days=days))
            result = conn.execute(delete(sensor_data).where(sensor_data.c.timestamp < cutoff))
            return int(result.rowcount)

        outcome = self._run("prune_older_than", action)
        if outcome.ok:
            logger.info(
                "Pruned readings older than %s days", days, extra={"deleted_count": outcome.value}
            )
        return outcome

    def count(self) -> StoreResult[int]:
        def action(conn: Any) -> int:
            return int(conn.execute(select(func.count()).select_from(sensor_data)).scalar_one())

        return self._run("count", action)

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.warning("Reading store ping failed", exc_info=True)
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


@lru_cache
def build_default_store(path: Optional[str] = None) -> ReadingStore:
    settings = get_settings()
    db_path = settings.database_path if path is None else path
    return ReadingStore(path=Path(db_path) if db_path else None)
