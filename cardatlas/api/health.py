"""
Health check endpoints.

Liveness, and readiness covering the database, the search cache and the
analytics worker.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cardatlas.db.database import get_session

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str | None = None
    search_cache: str | None = None
    analytics: str | None = None


def _analytics_state(request: Request) -> str:
    recorder = getattr(request.app.state, "analytics_recorder", None)
    if recorder is None:
        return "disabled"
    return "running" if recorder.running else "stopped"


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """
    Liveness probe.

    Returns healthy if the service is running.
    Does not check dependencies.
    """
    return HealthResponse(status="healthy")


@router.get(
    "/ready",
    response_model=HealthResponse,
    responses={503: {"model": HealthResponse}},
)
async def ready(
    request: Request,
    response: Response,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> HealthResponse:
    """
    Readiness probe.

    Returns 503 if the database is unreachable or the search cache is not
    initialized. A stopped analytics worker is reported but does not fail
    readiness: searches work without analytics.
    """
    cache = getattr(request.app.state, "search_cache", None)
    cache_state = "ready" if cache is not None else "missing"
    analytics_state = _analytics_state(request)

    try:
        await session.execute(text("SELECT 1"))
        database_state = "connected"
    except (SQLAlchemyError, OSError):
        database_state = "disconnected"

    if database_state != "connected" or cache_state != "ready":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not ready",
            database=database_state,
            search_cache=cache_state,
            analytics=analytics_state,
        )

    return HealthResponse(
        status="ready",
        database=database_state,
        search_cache=cache_state,
        analytics=analytics_state,
    )
