"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class Metric(str, Enum):
    """Measurements that make up a complete reading."""

    temperature = "temperature"
    humidity = "humidity"
    air_quality = "air_quality"


@dataclass(frozen=True, slots=True)
class Reading:
    """A persisted, timestamped triple of sensor measurements."""

    id: int
    temperature: Optional[float]
    humidity: Optional[float]
    air_quality: Optional[float]
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class ChannelEvent:
    """One message delivered by the publish/subscribe channel."""

    topic: str
    payload: bytes
    received_at: datetime


@dataclass(frozen=True, slots=True)
class ReadingCandidate:
    """A complete triple emitted by the correlator, not yet persisted."""

    temperature: float
    humidity: float
    air_quality: float
    observed_at: datetime


@dataclass(slots=True)
class PendingCorrelation:
    """Latest known value per metric, merged from independent messages."""

    temperature: Optional[float] = None
    humidity: Optional[float] = None
    air_quality: Optional[float] = None
    last_update: Optional[datetime] = None

    @property
    def is_complete(self) -> bool:
        return (
            self.temperature is not None
            and self.humidity is not None
            and self.air_quality is not None
        )

    def set(self, metric: Metric, value: float, observed_at: datetime) -> None:
        setattr(self, metric.value, value)
        self.last_update = observed_at

    def clear_metrics(self) -> None:
        self.temperature = None
        self.humidity = None
        self.air_quality = None

    def copy(self) -> PendingCorrelation:
        return PendingCorrelation(
            temperature=self.temperature,
            humidity=self.humidity,
            air_quality=self.air_quality,
            last_update=self.last_update,
        )


@dataclass(frozen=True, slots=True)
class StatisticsWindow:
    """Aggregates over the readings of a trailing time window."""

    hours: int
    total_records: int = 0
    avg_temp: Optional[float] = None
    min_temp: Optional[float] = None
    max_temp: Optional[float] = None
    avg_humidity: Optional[float] = None
    min_humidity: Optional[float] = None
    max_humidity: Optional[float] = None
    avg_air_quality: Optional[float] = None
    min_air_quality: Optional[float] = None
    max_air_quality: Optional[float] = None
