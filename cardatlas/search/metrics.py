"""
Search analytics aggregation.

Read-side summaries over recorded search events: latency percentiles,
cache hit rate, popular filters, slow queries and popular searches.
Results reflect whatever events were successfully recorded; no stronger
guarantee is made.
"""

import json
import math
import statistics
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Literal

from cardatlas.models.search import NormalizedFilter, SearchEvent
from cardatlas.search.cache_key import derive_filter_fingerprint

Timeframe = Literal["day", "week", "month"]

TIMEFRAME_DELTAS: dict[str, timedelta] = {
    "day": timedelta(days=1),
    "week": timedelta(weeks=1),
    "month": timedelta(days=30),
}

POPULAR_FILTER_LIMIT = 20
SLOW_QUERY_LIMIT = 10


def timeframe_cutoff(timeframe: Timeframe, now: datetime | None = None) -> datetime:
    """Earliest timestamp included in a timeframe."""
    now = now or datetime.now(UTC)
    return now - TIMEFRAME_DELTAS[timeframe]


@dataclass(frozen=True)
class SlowQuery:
    filters: dict[str, Any]
    latency_ms: float
    result_count: int
    timestamp: datetime


@dataclass(frozen=True)
class PerformanceSummary:
    total_searches: int = 0
    avg_latency_ms: float = 0.0
    median_latency_ms: float = 0.0
    p95_latency_ms: float = 0.0
    cache_hit_rate: float = 0.0
    popular_filters: dict[str, int] = field(default_factory=dict)
    slow_queries: list[SlowQuery] = field(default_factory=list)


@dataclass(frozen=True)
class PopularSearch:
    query: str
    filters: dict[str, Any]
    count: int
    last_seen: datetime


def percentile(sorted_values: list[float], fraction: float) -> float:
    """Nearest-rank percentile of an ascending list."""
    if not sorted_values:
        return 0.0
    index = min(len(sorted_values) - 1, math.floor(len(sorted_values) * fraction))
    return sorted_values[index]


def filter_label(key: str, value: Any) -> str:
    """Stable 'key:json' label for a single filter value."""
    return f"{key}:{json.dumps(value, sort_keys=True)}"


def summarize_performance(events: list[SearchEvent]) -> PerformanceSummary:
    """
    Summarize latency, hit rate and filter usage.

    Args:
        events: Recorded events, in any order

    Returns:
        PerformanceSummary (all zeros when there are no events)
    """
    if not events:
        return PerformanceSummary()

    latencies = sorted(event.latency_ms for event in events)
    p95 = percentile(latencies, 0.95)
    hits = sum(1 for event in events if event.cache_hit)

    filter_counts: Counter[str] = Counter()
    for event in events:
        for key, value in event.filters.items():
            filter_counts[filter_label(key, value)] += 1

    slow = sorted(
        (event for event in events if event.latency_ms >= p95),
        key=lambda event: event.latency_ms,
        reverse=True,
    )

    return PerformanceSummary(
        total_searches=len(events),
        avg_latency_ms=statistics.fmean(latencies),
        median_latency_ms=statistics.median(latencies),
        p95_latency_ms=p95,
        cache_hit_rate=hits / len(events),
        popular_filters=dict(filter_counts.most_common(POPULAR_FILTER_LIMIT)),
        slow_queries=[
            SlowQuery(
                filters=dict(event.filters),
                latency_ms=event.latency_ms,
                result_count=event.result_count,
                timestamp=event.timestamp,
            )
            for event in slow[:SLOW_QUERY_LIMIT]
        ],
    )


def readable_query(filters: dict[str, Any]) -> str:
    """Human-readable label for a filter set, e.g. 'name: zaku, level 2-5'."""
    if not filters:
        return "All cards"

    parts: list[str] = []
    for key in sorted(filters):
        if key.endswith("_min") or key.endswith("_max"):
            continue
        parts.append(f"{key}: {filters[key]}")

    for prefix in ("level", "cost"):
        low = filters.get(f"{prefix}_min")
        high = filters.get(f"{prefix}_max")
        if low is not None and high is not None:
            parts.append(f"{prefix} {low}-{high}")
        elif low is not None:
            parts.append(f"{prefix} >= {low}")
        elif high is not None:
            parts.append(f"{prefix} <= {high}")

    return ", ".join(parts)


def popular_searches(events: list[SearchEvent], limit: int = 10) -> list[PopularSearch]:
    """
    Most frequent filter combinations, ignoring pagination and ordering.

    Ties are broken by most recent use.
    """
    counts: Counter[str] = Counter()
    last_seen: dict[str, datetime] = {}
    snapshots: dict[str, dict[str, Any]] = {}

    for event in events:
        filters = dict(event.filters)
        fingerprint = derive_filter_fingerprint(NormalizedFilter(**filters))
        counts[fingerprint] += 1
        snapshots[fingerprint] = filters
        if fingerprint not in last_seen or event.timestamp > last_seen[fingerprint]:
            last_seen[fingerprint] = event.timestamp

    ranked = sorted(counts, key=lambda fp: (counts[fp], last_seen[fp]), reverse=True)
    return [
        PopularSearch(
            query=readable_query(snapshots[fp]),
            filters=snapshots[fp],
            count=counts[fp],
            last_seen=last_seen[fp],
        )
        for fp in ranked[:limit]
    ]
