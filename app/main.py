from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api import router
from app.schemas import ErrorResponse
from app.web import router as web_router
from channel.mqtt_channel import build_default_channel
from datastore.sqlite_store import build_default_store
from logging_config import configure_logging
from services.correlator import build_default_correlator
from services.dispatcher import build_default_dispatcher
from services.queries import QueryError, build_default_query_service
from settings import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    store = build_default_store()
    dispatcher = build_default_dispatcher()
    channel = build_default_channel() if settings.mqtt_enabled else None
    if channel is not None:
        channel.start()
    else:
        logger.info("MQTT ingestion disabled; serving queries only")
    app.state.started_at = time.monotonic()
    try:
        yield
    finally:
        # Stop intake first, drain in-flight inserts, then release the database.
        if channel is not None:
            channel.stop()
        dispatcher.shutdown()
        store.close()
        for factory in (
            build_default_channel,
            build_default_query_service,
            build_default_dispatcher,
            build_default_correlator,
            build_default_store,
        ):
            factory.cache_clear()


async def _query_error_handler(_request: Request, exc: QueryError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.message).model_dump(),
    )


async def _http_error_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=str(exc.detail)).model_dump(),
        headers=getattr(exc, "headers", None),
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error serving %s %s", request.method, request.url.path, exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(error="Internal server error").model_dump(),
    )


async def _validation_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ErrorResponse(error=str(exc)).model_dump(),
    )


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Environmental Sensor Hub",
        description="MQTT sensor ingestion with a SQLite-backed query API.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_exception_handler(QueryError, _query_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
    app.include_router(router)
    app.include_router(web_router)

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, str]:
        return {
            "status": "ok",
            "detail": "See /api/health for service status and /dashboard for readings.",
        }

    return app


app = create_app()
