"""
Search analytics API endpoints.

Read-only views over recorded search events, plus cache diagnostics and an
operator cache flush.
"""

from datetime import datetime
from typing import Annotated, Any, Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from cardatlas.api.dependencies import get_analytics_recorder, get_search_cache
from cardatlas.config import DEFAULT_POPULAR_SEARCH_LIMIT, MAX_ANALYTICS_EVENTS
from cardatlas.db import get_search_events_since, search_event_to_model
from cardatlas.db.database import get_session
from cardatlas.models.search import SearchEvent
from cardatlas.search.analytics import SearchAnalyticsRecorder
from cardatlas.search.cache import SearchResultCache
from cardatlas.search.metrics import (
    Timeframe,
    popular_searches,
    summarize_performance,
    timeframe_cutoff,
)

router = APIRouter(prefix="/search", tags=["analytics"])


class CacheStatsResponse(BaseModel):
    entries: int
    max_entries: int
    hits: int
    misses: int
    hit_rate: float
    evictions: int
    expirations: int
    invalidations: int
    total_bytes: int
    max_bytes: int | None = None
    oldest_entry_age_seconds: float | None = None
    newest_entry_age_seconds: float | None = None


class RecorderStatsResponse(BaseModel):
    enabled: bool
    running: bool = False
    recorded: int = 0
    dropped: int = 0
    failed: int = 0
    pending: int = 0


class SlowQueryResponse(BaseModel):
    filters: dict[str, Any]
    latency_ms: float
    result_count: int
    timestamp: datetime


class PerformanceResponse(BaseModel):
    timeframe: Timeframe
    total_searches: int = 0
    avg_latency_ms: float = 0.0
    median_latency_ms: float = 0.0
    p95_latency_ms: float = 0.0
    cache_hit_rate: float = 0.0
    popular_filters: dict[str, int] = Field(default_factory=dict)
    slow_queries: list[SlowQueryResponse] = Field(default_factory=list)


class PopularSearchResponse(BaseModel):
    query: str
    filters: dict[str, Any]
    count: int
    last_seen: datetime


class PopularSearchesResponse(BaseModel):
    timeframe: Timeframe
    searches: list[PopularSearchResponse] = Field(default_factory=list)


class OverviewResponse(BaseModel):
    timeframe: Timeframe
    performance: PerformanceResponse
    cache: CacheStatsResponse
    recorder: RecorderStatsResponse


class CacheClearResponse(BaseModel):
    entries_removed: int


def cache_stats_response(cache: SearchResultCache) -> CacheStatsResponse:
    stats = cache.stats()
    return CacheStatsResponse(
        entries=stats.entries,
        max_entries=stats.max_entries,
        hits=stats.hits,
        misses=stats.misses,
        hit_rate=round(stats.hit_rate, 4),
        evictions=stats.evictions,
        expirations=stats.expirations,
        invalidations=stats.invalidations,
        total_bytes=stats.total_bytes,
        max_bytes=stats.max_bytes,
        oldest_entry_age_seconds=stats.oldest_entry_age_seconds,
        newest_entry_age_seconds=stats.newest_entry_age_seconds,
    )


def recorder_stats_response(recorder: SearchAnalyticsRecorder | None) -> RecorderStatsResponse:
    if recorder is None:
        return RecorderStatsResponse(enabled=False)
    stats = recorder.stats()
    return RecorderStatsResponse(
        enabled=True,
        running=stats.running,
        recorded=stats.recorded,
        dropped=stats.dropped,
        failed=stats.failed,
        pending=stats.pending,
    )


async def _load_events(session: AsyncSession, timeframe: Timeframe) -> list[SearchEvent]:
    rows = await get_search_events_since(
        session, timeframe_cutoff(timeframe), limit=MAX_ANALYTICS_EVENTS
    )
    return [search_event_to_model(row) for row in rows]


def _performance_response(events: list[SearchEvent], timeframe: Timeframe) -> PerformanceResponse:
    summary = summarize_performance(events)
    return PerformanceResponse(
        timeframe=timeframe,
        total_searches=summary.total_searches,
        avg_latency_ms=round(summary.avg_latency_ms, 3),
        median_latency_ms=round(summary.median_latency_ms, 3),
        p95_latency_ms=round(summary.p95_latency_ms, 3),
        cache_hit_rate=round(summary.cache_hit_rate, 4),
        popular_filters=summary.popular_filters,
        slow_queries=[
            SlowQueryResponse(
                filters=slow.filters,
                latency_ms=slow.latency_ms,
                result_count=slow.result_count,
                timestamp=slow.timestamp,
            )
            for slow in summary.slow_queries
        ],
    )


@router.get("/analytics", response_model=OverviewResponse)
async def get_overview(
    session: Annotated[AsyncSession, Depends(get_session)],
    cache: Annotated[SearchResultCache, Depends(get_search_cache)],
    recorder: Annotated[SearchAnalyticsRecorder | None, Depends(get_analytics_recorder)],
    timeframe: Timeframe = "day",
) -> OverviewResponse:
    """Search performance, cache and recorder status in one view."""
    events = await _load_events(session, timeframe)
    return OverviewResponse(
        timeframe=timeframe,
        performance=_performance_response(events, timeframe),
        cache=cache_stats_response(cache),
        recorder=recorder_stats_response(recorder),
    )


@router.get("/analytics/performance", response_model=PerformanceResponse)
async def get_performance(
    session: Annotated[AsyncSession, Depends(get_session)],
    timeframe: Timeframe = "day",
) -> PerformanceResponse:
    """Latency percentiles, cache hit rate, popular filters and slow queries."""
    events = await _load_events(session, timeframe)
    return _performance_response(events, timeframe)


@router.get("/analytics/popular", response_model=PopularSearchesResponse)
async def get_popular(
    session: Annotated[AsyncSession, Depends(get_session)],
    timeframe: Timeframe = "week",
    limit: Annotated[int, Query(ge=1, le=50)] = DEFAULT_POPULAR_SEARCH_LIMIT,
) -> PopularSearchesResponse:
    """Most frequent filter combinations."""
    events = await _load_events(session, timeframe)
    return PopularSearchesResponse(
        timeframe=timeframe,
        searches=[
            PopularSearchResponse(
                query=search.query,
                filters=search.filters,
                count=search.count,
                last_seen=search.last_seen,
            )
            for search in popular_searches(events, limit=limit)
        ],
    )


@router.get("/cache", response_model=CacheStatsResponse)
async def get_cache_stats(
    cache: Annotated[SearchResultCache, Depends(get_search_cache)],
) -> CacheStatsResponse:
    """Result cache diagnostics."""
    return cache_stats_response(cache)


@router.delete("/cache", response_model=CacheClearResponse)
async def clear_cache(
    cache: Annotated[SearchResultCache, Depends(get_search_cache)],
) -> CacheClearResponse:
    """Drop every cached search result."""
    return CacheClearResponse(entries_removed=cache.invalidate_all())
