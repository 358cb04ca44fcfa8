from cardatlas.search.analytics import (
    DatabaseEventSink,
    SearchAnalyticsRecorder,
    SearchEventSink,
)
from cardatlas.search.cache import CacheStats, SearchResultCache, run_cache_janitor
from cardatlas.search.cache_key import derive_cache_key, derive_filter_fingerprint
from cardatlas.search.normalizer import normalize_filters, normalize_options
from cardatlas.search.planner import (
    CardField,
    Condition,
    Operator,
    OrderTerm,
    QueryPlan,
    QueryResult,
    plan_search,
)
from cardatlas.search.service import CardQueryExecutor, CardSearchService, SearchOutcome

__all__ = [
    "CacheStats",
    "CardField",
    "CardQueryExecutor",
    "CardSearchService",
    "Condition",
    "DatabaseEventSink",
    "Operator",
    "OrderTerm",
    "QueryPlan",
    "QueryResult",
    "SearchAnalyticsRecorder",
    "SearchEventSink",
    "SearchOutcome",
    "SearchResultCache",
    "derive_cache_key",
    "derive_filter_fingerprint",
    "normalize_filters",
    "normalize_options",
    "plan_search",
    "run_cache_janitor",
]
