import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from importlib.metadata import version as pkg_version

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cardatlas.api import analytics_router, cards_router, health_router
from cardatlas.config import settings
from cardatlas.db.database import async_session_factory, dispose_db, init_db
from cardatlas.models.failure import KnownError
from cardatlas.search.analytics import DatabaseEventSink, SearchAnalyticsRecorder
from cardatlas.search.cache import SearchResultCache, run_cache_janitor

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan handler for startup/shutdown.

    Owns the search cache and analytics recorder: created here, stored on
    app.state, torn down on shutdown.
    """
    await init_db()

    cache = SearchResultCache(
        default_ttl_seconds=settings.search_cache_ttl_seconds,
        max_entries=settings.search_cache_max_entries,
        max_bytes=settings.search_cache_max_bytes,
    )
    app.state.search_cache = cache
    janitor = asyncio.create_task(
        run_cache_janitor(cache, settings.search_cache_cleanup_interval_seconds),
        name="search-cache-janitor",
    )

    recorder: SearchAnalyticsRecorder | None = None
    if settings.analytics_enabled:
        recorder = SearchAnalyticsRecorder(
            DatabaseEventSink(async_session_factory),
            max_queue_size=settings.analytics_queue_size,
        )
        recorder.start()
    app.state.analytics_recorder = recorder

    try:
        yield
    finally:
        janitor.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await janitor

        if recorder is not None:
            await recorder.stop(drain_timeout=settings.analytics_drain_timeout_seconds)

        cache.invalidate_all()
        app.state.search_cache = None
        app.state.analytics_recorder = None
        await dispose_db()


app = FastAPI(
    title=settings.app_name,
    version=pkg_version("cardatlas"),
    lifespan=lifespan,
)


@app.exception_handler(KnownError)
async def known_error_handler(_request: Request, exc: KnownError) -> JSONResponse:
    """Render classified failures in the standard envelope."""
    if exc.status_code >= 500:
        logger.warning(
            "KNOWN_ERROR_RESPONSE",
            extra={"kind": exc.kind.value, "status_code": exc.status_code, "detail": exc.detail},
        )
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(mode="json"),
        headers=headers,
    )


app.include_router(analytics_router)
app.include_router(cards_router)
app.include_router(health_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Tighten in production
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
