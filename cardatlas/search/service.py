"""
Card search service.

The single entry point request handlers use to search cards:

    normalize -> derive key -> cache hit?  -> record event, return copy
                                  miss     -> plan -> execute -> cache -> record event

FAILURE SEMANTICS:
- DataAccessError (including timeouts) propagates; the cache is untouched
- Cancellation propagates; the cache is untouched
- Analytics problems are logged and swallowed; they never change the
  result or delay it
"""

import asyncio
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from cardatlas.models.failure import SearchTimeoutError
from cardatlas.models.search import (
    DEFAULT_LIMIT,
    MAX_LIMIT,
    NormalizedFilter,
    SearchContext,
    SearchEvent,
    SearchOptions,
    SearchResultPage,
)
from cardatlas.search.analytics import SearchAnalyticsRecorder
from cardatlas.search.cache import SearchResultCache
from cardatlas.search.cache_key import derive_cache_key
from cardatlas.search.normalizer import normalize_filters, normalize_options
from cardatlas.search.planner import QueryPlan, QueryResult, plan_search

logger = logging.getLogger(__name__)

DEFAULT_QUERY_TIMEOUT_SECONDS = 10.0


class CardQueryExecutor(Protocol):
    """Data-store collaborator that runs a QueryPlan."""

    async def execute(self, plan: QueryPlan) -> QueryResult: ...


@dataclass(frozen=True)
class SearchOutcome:
    """A search result together with how it was produced."""

    page: SearchResultPage
    cache_hit: bool
    latency_ms: float
    cache_key: str
    filters: NormalizedFilter
    options: SearchOptions


class CardSearchService:
    """
    Orchestrates cache lookup, query execution and analytics for card search.

    Args:
        cache: Shared result cache (created at startup, passed in explicitly)
        executor: Data-store collaborator for cache misses
        recorder: Analytics recorder, or None to disable analytics
        query_timeout_seconds: Upper bound on a single data-store call
        cache_ttl_seconds: TTL for new entries, defaults to the cache's TTL
    """

    def __init__(
        self,
        cache: SearchResultCache,
        executor: CardQueryExecutor,
        recorder: SearchAnalyticsRecorder | None = None,
        query_timeout_seconds: float = DEFAULT_QUERY_TIMEOUT_SECONDS,
        cache_ttl_seconds: float | None = None,
        default_limit: int = DEFAULT_LIMIT,
        max_limit: int = MAX_LIMIT,
    ):
        self.cache = cache
        self.executor = executor
        self.recorder = recorder
        self.query_timeout_seconds = query_timeout_seconds
        self.cache_ttl_seconds = cache_ttl_seconds
        self.default_limit = default_limit
        self.max_limit = max_limit

    async def search(
        self,
        raw_filters: Mapping[str, Any] | None,
        raw_options: Mapping[str, Any] | None,
        context: SearchContext | None = None,
    ) -> SearchResultPage:
        """
        Search cards.

        Raises:
            DataAccessError: If the data store fails or times out
        """
        outcome = await self.search_with_outcome(raw_filters, raw_options, context)
        return outcome.page

    async def search_with_outcome(
        self,
        raw_filters: Mapping[str, Any] | None,
        raw_options: Mapping[str, Any] | None,
        context: SearchContext | None = None,
    ) -> SearchOutcome:
        """Search cards and report whether the page came from cache."""
        started = time.perf_counter()
        context = context or SearchContext()

        filters = normalize_filters(raw_filters)
        options = normalize_options(
            raw_options, default_limit=self.default_limit, max_limit=self.max_limit
        )
        cache_key = derive_cache_key(filters, options)

        cached = self.cache.get(cache_key)
        if cached is not None:
            latency_ms = (time.perf_counter() - started) * 1000
            logger.debug("SEARCH_CACHE_HIT", extra={"cache_key": cache_key})
            self._dispatch_event(cache_key, filters, options, cached, latency_ms, True, context)
            return SearchOutcome(cached, True, latency_ms, cache_key, filters, options)

        logger.debug("SEARCH_CACHE_MISS", extra={"cache_key": cache_key})
        generation = self.cache.generation
        page = await self._compute(filters, options)
        self.cache.set(cache_key, page, ttl_seconds=self.cache_ttl_seconds, generation=generation)

        latency_ms = (time.perf_counter() - started) * 1000
        self._dispatch_event(cache_key, filters, options, page, latency_ms, False, context)
        return SearchOutcome(page, False, latency_ms, cache_key, filters, options)

    async def _compute(self, filters: NormalizedFilter, options: SearchOptions) -> SearchResultPage:
        plan = plan_search(filters, options)
        if plan.matches_nothing:
            return SearchResultPage.empty(options)

        try:
            result = await asyncio.wait_for(
                self.executor.execute(plan), timeout=self.query_timeout_seconds
            )
        except TimeoutError as e:
            logger.warning(
                "SEARCH_DATA_ACCESS_TIMEOUT",
                extra={"timeout": self.query_timeout_seconds},
            )
            raise SearchTimeoutError(self.query_timeout_seconds) from e

        return SearchResultPage(
            items=tuple(result.records[: options.limit]),
            total=result.total,
            page=options.page,
            limit=options.limit,
        )

    def _dispatch_event(
        self,
        cache_key: str,
        filters: NormalizedFilter,
        options: SearchOptions,
        page: SearchResultPage,
        latency_ms: float,
        cache_hit: bool,
        context: SearchContext,
    ) -> None:
        """Hand an event to the recorder without waiting. Never raises."""
        if self.recorder is None:
            return
        try:
            event = SearchEvent.create(
                cache_key=cache_key,
                filters=filters,
                options=options,
                result_count=page.total,
                latency_ms=latency_ms,
                cache_hit=cache_hit,
                context=context,
            )
            self.recorder.record(event)
        except Exception:
            logger.warning("SEARCH_EVENT_DISPATCH_FAILED", exc_info=True)
