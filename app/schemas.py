"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ReadingOut(BaseModel):
    """A persisted reading."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    air_quality: Optional[float] = None
    timestamp: datetime


class RealtimeOut(BaseModel):
    """The in-memory correlation buffer at the time of the request."""

    model_config = ConfigDict(from_attributes=True)

    temperature: Optional[float] = None
    humidity: Optional[float] = None
    air_quality: Optional[float] = None
    last_update: Optional[datetime] = None


class StatisticsOut(BaseModel):
    """Aggregates over a trailing window; null when the window is empty."""

    model_config = ConfigDict(from_attributes=True)

    total_records: int = Field(..., ge=0)
    avg_temp: Optional[float] = None
    min_temp: Optional[float] = None
    max_temp: Optional[float] = None
    avg_humidity: Optional[float] = None
    min_humidity: Optional[float] = None
    max_humidity: Optional[float] = None
    avg_air_quality: Optional[float] = None
    min_air_quality: Optional[float] = None
    max_air_quality: Optional[float] = None


class Envelope(BaseModel):
    success: bool = True


class ErrorResponse(Envelope):
    success: bool = False
    error: str


class LatestResponse(Envelope):
    data: Optional[ReadingOut] = None
    realtime: RealtimeOut


class ReadingListResponse(Envelope):
    count: int = Field(..., ge=0)
    data: List[ReadingOut] = Field(default_factory=list)


class StatisticsResponse(Envelope):
    period: str = Field(..., description="Window length, e.g. '24 hours'.")
    statistics: StatisticsOut


class CleanupResponse(Envelope):
    deleted: int = Field(..., ge=0)
    message: str


class HealthResponse(Envelope):
    status: str = "running"
    mqtt: str
    database: str
    records: Optional[int] = Field(default=None, description="Stored readings; null when the count fails.")
    uptime: float = Field(..., ge=0, description="Seconds since the service started.")
    ingestion: Dict[str, Union[int, str, datetime, None]] = Field(default_factory=dict)
    device_status: Optional[str] = None
