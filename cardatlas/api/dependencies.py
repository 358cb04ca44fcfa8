"""
Request-scoped providers for the search components.

The cache and recorder are created once in the application lifespan and
stored on app.state; handlers reach them only through these dependencies.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from cardatlas.config import settings
from cardatlas.db.card_queries import SqlCardQueryExecutor
from cardatlas.db.database import get_session
from cardatlas.search.analytics import SearchAnalyticsRecorder
from cardatlas.search.cache import SearchResultCache
from cardatlas.search.service import CardSearchService


def get_search_cache(request: Request) -> SearchResultCache:
    cache: SearchResultCache | None = getattr(request.app.state, "search_cache", None)
    if cache is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Search cache not initialized",
        )
    return cache


def get_analytics_recorder(request: Request) -> SearchAnalyticsRecorder | None:
    """The running recorder, or None when analytics is disabled."""
    return getattr(request.app.state, "analytics_recorder", None)


def get_search_service(
    session: Annotated[AsyncSession, Depends(get_session)],
    cache: Annotated[SearchResultCache, Depends(get_search_cache)],
    recorder: Annotated[SearchAnalyticsRecorder | None, Depends(get_analytics_recorder)],
) -> CardSearchService:
    return CardSearchService(
        cache=cache,
        executor=SqlCardQueryExecutor(session),
        recorder=recorder,
        query_timeout_seconds=settings.search_query_timeout_seconds,
        default_limit=settings.search_default_limit,
        max_limit=settings.search_max_limit,
    )
