"""Tests for health check endpoints."""

from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cardatlas.db.database import get_session
from cardatlas.main import app
from cardatlas.search.analytics import SearchAnalyticsRecorder
from cardatlas.search.cache import SearchResultCache


class NullSink:
    async def append(self, event) -> None:
        return None


@pytest.fixture
async def client(session_factory: async_sessionmaker[AsyncSession]):
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
    app.state.search_cache = SearchResultCache()
    app.state.analytics_recorder = None

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
    app.state.search_cache = None
    app.state.analytics_recorder = None


class TestHealthEndpoint:
    async def test_health_returns_healthy(self, client: AsyncClient) -> None:
        """Liveness probe returns healthy."""
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"

    async def test_health_no_db_check(self, client: AsyncClient) -> None:
        """Health endpoint does not include database status."""
        response = await client.get("/health")

        data = response.json()
        assert data.get("database") is None


class TestReadyEndpoint:
    async def test_ready_returns_ready(self, client: AsyncClient) -> None:
        """Readiness probe returns ready when DB is connected and cache exists."""
        response = await client.get("/ready")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ready"
        assert data["database"] == "connected"
        assert data["search_cache"] == "ready"
        assert data["analytics"] == "disabled"

    async def test_ready_reports_running_recorder(self, client: AsyncClient) -> None:
        recorder = SearchAnalyticsRecorder(NullSink())
        recorder.start()
        app.state.analytics_recorder = recorder

        response = await client.get("/ready")
        await recorder.stop()

        assert response.json()["analytics"] == "running"

    async def test_stopped_recorder_does_not_fail_readiness(self, client: AsyncClient) -> None:
        app.state.analytics_recorder = SearchAnalyticsRecorder(NullSink())

        response = await client.get("/ready")

        assert response.status_code == 200
        assert response.json()["analytics"] == "stopped"

    async def test_ready_returns_503_without_cache(self, client: AsyncClient) -> None:
        app.state.search_cache = None

        response = await client.get("/ready")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "not ready"
        assert data["search_cache"] == "missing"

    async def test_ready_returns_503_on_db_failure(self) -> None:
        """Readiness probe returns 503 when DB is unavailable."""

        async def override_get_session_broken():
            mock_session = AsyncMock()
            mock_session.execute.side_effect = OperationalError(
                "SELECT 1", {}, Exception("Database connection failed")
            )
            yield mock_session

        app.dependency_overrides[get_session] = override_get_session_broken
        app.state.search_cache = SearchResultCache()

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/ready")

        app.dependency_overrides.clear()
        app.state.search_cache = None

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "not ready"
        assert data["database"] == "disconnected"
