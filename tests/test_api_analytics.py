"""Tests for search analytics and cache diagnostics endpoints."""

from collections.abc import AsyncGenerator
from dataclasses import replace
from datetime import timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cardatlas.db.database import get_session
from cardatlas.db.operations import add_search_event
from cardatlas.main import app
from cardatlas.models.search import NormalizedFilter, SearchContext, SearchEvent, SearchOptions
from cardatlas.search.analytics import DatabaseEventSink, SearchAnalyticsRecorder
from cardatlas.search.cache import SearchResultCache


def make_event(
    filters: NormalizedFilter,
    latency_ms: float,
    cache_hit: bool,
    days_ago: float = 0,
) -> SearchEvent:
    event = SearchEvent.create(
        cache_key="d" * 32,
        filters=filters,
        options=SearchOptions(),
        result_count=2,
        latency_ms=latency_ms,
        cache_hit=cache_hit,
        context=SearchContext(),
    )
    return replace(event, timestamp=event.timestamp - timedelta(days=days_ago))


@pytest.fixture
def search_cache() -> SearchResultCache:
    return SearchResultCache()


@pytest.fixture
async def recorder(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[SearchAnalyticsRecorder, None]:
    recorder = SearchAnalyticsRecorder(DatabaseEventSink(session_factory))
    recorder.start()
    yield recorder
    await recorder.stop()


@pytest.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    search_cache: SearchResultCache,
    recorder: SearchAnalyticsRecorder,
    catalog,
) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async test client with overridden database session."""

    async def override_get_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session
    app.state.search_cache = search_cache
    app.state.analytics_recorder = recorder

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
    app.state.search_cache = None
    app.state.analytics_recorder = None


@pytest.fixture
async def recorded_events(session_factory: async_sessionmaker[AsyncSession]) -> None:
    """Four recent searches and one from last month."""
    zaku = NormalizedFilter(name="zaku")
    zeon = NormalizedFilter(faction="Zeon", level_min=2, level_max=5)
    async with session_factory() as session:
        await add_search_event(session, make_event(zaku, 10.0, cache_hit=False))
        await add_search_event(session, make_event(zaku, 2.0, cache_hit=True))
        await add_search_event(session, make_event(zaku, 3.0, cache_hit=True))
        await add_search_event(session, make_event(zeon, 40.0, cache_hit=False))
        await add_search_event(session, make_event(zeon, 90.0, cache_hit=False, days_ago=20))
        await session.commit()


class TestPerformanceEndpoint:
    async def test_day_summary(self, client: AsyncClient, recorded_events) -> None:
        response = await client.get("/search/analytics/performance")

        assert response.status_code == 200
        data = response.json()
        assert data["timeframe"] == "day"
        assert data["total_searches"] == 4
        assert data["avg_latency_ms"] == 13.75
        assert data["cache_hit_rate"] == 0.5
        assert data["p95_latency_ms"] == 40.0
        assert data["popular_filters"]['name:"zaku"'] == 3
        assert data["slow_queries"][0]["latency_ms"] == 40.0

    async def test_month_includes_older_events(
        self, client: AsyncClient, recorded_events
    ) -> None:
        response = await client.get("/search/analytics/performance", params={"timeframe": "month"})

        assert response.json()["total_searches"] == 5

    async def test_no_events(self, client: AsyncClient) -> None:
        response = await client.get("/search/analytics/performance")

        data = response.json()
        assert data["total_searches"] == 0
        assert data["slow_queries"] == []

    async def test_invalid_timeframe(self, client: AsyncClient) -> None:
        response = await client.get("/search/analytics/performance", params={"timeframe": "year"})

        assert response.status_code == 422


class TestPopularEndpoint:
    async def test_popular_searches(self, client: AsyncClient, recorded_events) -> None:
        response = await client.get("/search/analytics/popular")

        assert response.status_code == 200
        data = response.json()
        assert data["timeframe"] == "week"
        searches = data["searches"]
        assert searches[0]["query"] == "name: zaku"
        assert searches[0]["count"] == 3
        assert searches[1]["query"] == "faction: Zeon, level 2-5"
        assert searches[1]["count"] == 1

    async def test_limit(self, client: AsyncClient, recorded_events) -> None:
        response = await client.get("/search/analytics/popular", params={"limit": 1})

        assert len(response.json()["searches"]) == 1

    async def test_limit_bounds(self, client: AsyncClient) -> None:
        response = await client.get("/search/analytics/popular", params={"limit": 0})

        assert response.status_code == 422


class TestOverviewEndpoint:
    async def test_searches_flow_into_analytics(
        self, client: AsyncClient, recorder: SearchAnalyticsRecorder
    ) -> None:
        """Searches made through the API appear in the overview."""
        body = {"filters": {"search": "Zaku"}}
        await client.post("/cards/search", json=body)
        await client.post("/cards/search", json=body)
        await recorder.flush()

        response = await client.get("/search/analytics")

        assert response.status_code == 200
        data = response.json()
        assert data["performance"]["total_searches"] == 2
        assert data["performance"]["cache_hit_rate"] == 0.5
        assert data["cache"]["entries"] == 1
        assert data["cache"]["hits"] == 1
        assert data["recorder"]["enabled"] is True
        assert data["recorder"]["recorded"] == 2

    async def test_analytics_disabled(self, client: AsyncClient) -> None:
        app.state.analytics_recorder = None

        response = await client.get("/search/analytics")

        assert response.status_code == 200
        assert response.json()["recorder"] == {
            "enabled": False,
            "running": False,
            "recorded": 0,
            "dropped": 0,
            "failed": 0,
            "pending": 0,
        }


class TestCacheEndpoints:
    async def test_cache_stats(self, client: AsyncClient) -> None:
        await client.post("/cards/search", json={})

        response = await client.get("/search/cache")

        assert response.status_code == 200
        data = response.json()
        assert data["entries"] == 1
        assert data["misses"] == 1
        assert data["max_entries"] == 1000
        assert data["total_bytes"] == 5 * 1024 + 200
        assert data["max_bytes"] is None

    async def test_clear_cache(
        self, client: AsyncClient, search_cache: SearchResultCache
    ) -> None:
        await client.post("/cards/search", json={})
        await client.post("/cards/search", json={"filters": {"search": "zaku"}})

        response = await client.delete("/search/cache")

        assert response.status_code == 200
        assert response.json() == {"entries_removed": 2}
        assert len(search_cache) == 0

        again = await client.post("/cards/search", json={})
        assert again.json()["searchMeta"]["cacheHit"] is False
