"""HTTP route definitions for the query API."""

from __future__ import annotations

import time
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status

from app.schemas import (
    CleanupResponse,
    HealthResponse,
    LatestResponse,
    ReadingListResponse,
    ReadingOut,
    RealtimeOut,
    StatisticsOut,
    StatisticsResponse,
)
from channel.mqtt_channel import MqttChannel, build_default_channel
from datastore.sqlite_store import ReadingStore, build_default_store
from services.dispatcher import IngestionDispatcher, build_default_dispatcher
from services.queries import QueryService, build_default_query_service
from settings import get_settings

router = APIRouter(prefix="/api")


def get_query_service() -> QueryService:
    return build_default_query_service()


def get_store() -> ReadingStore:
    return build_default_store()


def get_dispatcher() -> IngestionDispatcher:
    return build_default_dispatcher()


def get_channel() -> Optional[MqttChannel]:
    if not get_settings().mqtt_enabled:
        return None
    return build_default_channel()


@router.get(
    "/latest",
    response_model=LatestResponse,
    summary="Most recent stored reading plus the in-memory correlation buffer.",
)
def latest(queries: QueryService = Depends(get_query_service)) -> LatestResponse:
    view = queries.latest()
    return LatestResponse(
        data=ReadingOut.model_validate(view.reading) if view.reading else None,
        realtime=RealtimeOut.model_validate(view.realtime),
    )


@router.get("/recent", response_model=ReadingListResponse, include_in_schema=False)
@router.get(
    "/recent/{limit}",
    response_model=ReadingListResponse,
    summary="Most recent readings, newest first (default 100).",
)
def recent(
    limit: Optional[str] = None,
    queries: QueryService = Depends(get_query_service),
) -> ReadingListResponse:
    readings = queries.recent(limit)
    return ReadingListResponse(
        count=len(readings),
        data=[ReadingOut.model_validate(reading) for reading in readings],
    )


@router.get("/statistics", response_model=StatisticsResponse, include_in_schema=False)
@router.get(
    "/statistics/{hours}",
    response_model=StatisticsResponse,
    summary="Average, minimum and maximum per metric over the last N hours (default 24).",
)
def statistics(
    hours: Optional[str] = None,
    queries: QueryService = Depends(get_query_service),
) -> StatisticsResponse:
    window = queries.statistics(hours)
    return StatisticsResponse(
        period=f"{window.hours} hours",
        statistics=StatisticsOut.model_validate(window),
    )


@router.get(
    "/range",
    response_model=ReadingListResponse,
    summary="Readings between two ISO-8601 timestamps, inclusive, newest first.",
)
def reading_range(
    start: Optional[str] = Query(default=None, description="Start of the range (ISO-8601)."),
    end: Optional[str] = Query(default=None, description="End of the range (ISO-8601)."),
    queries: QueryService = Depends(get_query_service),
) -> ReadingListResponse:
    readings = queries.range(start, end)
    return ReadingListResponse(
        count=len(readings),
        data=[ReadingOut.model_validate(reading) for reading in readings],
    )


@router.delete("/cleanup", response_model=CleanupResponse, include_in_schema=False)
@router.delete(
    "/cleanup/{days}",
    response_model=CleanupResponse,
    summary="Delete readings older than N days (default 30).",
)
def cleanup(
    days: Optional[str] = None,
    queries: QueryService = Depends(get_query_service),
) -> CleanupResponse:
    outcome = queries.cleanup(days)
    return CleanupResponse(
        deleted=outcome.deleted,
        message=f"Deleted {outcome.deleted} records older than {outcome.days} days",
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Liveness plus broker and database connectivity.",
    status_code=status.HTTP_200_OK,
)
def healthcheck(
    request: Request,
    store: ReadingStore = Depends(get_store),
    dispatcher: IngestionDispatcher = Depends(get_dispatcher),
    channel: Optional[MqttChannel] = Depends(get_channel),
) -> HealthResponse:
    stats = dispatcher.stats
    records = store.count()
    started_at = getattr(request.app.state, "started_at", time.monotonic())
    return HealthResponse(
        mqtt="connected" if channel is not None and channel.is_connected else "disconnected",
        database="ok" if store.ping() else "unavailable",
        records=records.value if records.ok else None,
        uptime=round(time.monotonic() - started_at, 3),
        ingestion=stats.as_dict(),
        device_status=stats.last_status,
    )
