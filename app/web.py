from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from services.queries import QueryError, QueryService, build_default_query_service
from settings import get_settings


templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))

_DASHBOARD_ROWS = 20
_DASHBOARD_HOURS = 24


def get_query_service() -> QueryService:
    return build_default_query_service()


router = APIRouter(include_in_schema=False)


@router.get("/dashboard", name="dashboard", response_class=HTMLResponse)
def dashboard(
    request: Request,
    queries: QueryService = Depends(get_query_service),
) -> HTMLResponse:
    settings = get_settings()
    error: str | None = None
    latest = None
    readings = []
    window = None
    try:
        latest = queries.latest()
        readings = queries.recent(_DASHBOARD_ROWS)
        window = queries.statistics(_DASHBOARD_HOURS)
    except QueryError as exc:
        error = exc.message

    return templates.TemplateResponse(
        request,
        "dashboard/index.html",
        {
            "latest": latest,
            "readings": readings,
            "statistics": window,
            "error": error,
            "refresh_seconds": settings.dashboard_refresh_seconds,
            "air_quality_threshold": settings.air_quality_threshold,
        },
        status_code=200 if error is None else 503,
    )
