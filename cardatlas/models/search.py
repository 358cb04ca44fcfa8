"""
Search domain models.

Request-scoped value objects for the card search pipeline:
- NormalizedFilter: canonical, immutable filter set
- SearchOptions: validated pagination and ordering
- SearchResultPage: one page of card records
- SearchContext / SearchEvent: analytics snapshots

INVARIANTS:
- SearchOptions can only hold in-range values (construction raises otherwise)
- SearchResultPage never holds more items than its limit
- SearchEvent is never mutated after creation
"""

import math
import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20
MAX_LIMIT = 100
# Largest value an integer filter may carry (32-bit signed column range)
MAX_FILTER_INT = 2**31 - 1
# Keeps the row offset (page - 1) * limit inside MAX_FILTER_INT
MAX_PAGE = MAX_FILTER_INT // MAX_LIMIT


class SortField(str, Enum):
    """Allow-listed sortable card fields."""

    NAME = "name"
    LEVEL = "level"
    COST = "cost"
    SET_NUMBER = "set_number"
    CREATED_AT = "created_at"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class SearchSource(str, Enum):
    """How the user arrived at a search."""

    MANUAL = "manual"
    SUGGESTION = "suggestion"
    FILTER = "filter"
    SORT = "sort"


@dataclass(frozen=True)
class NormalizedFilter:
    """
    Canonical card filter set.

    Every recognized filter is an explicit field. Unset filters are None
    and never appear in the serialized form, so two logically equal
    requests always produce the same dictionary.
    """

    # Substring matches (case-insensitive, stored case-folded)
    name: str | None = None
    pilot: str | None = None
    model: str | None = None

    # Reference ids
    type_id: str | None = None
    rarity_id: str | None = None
    set_id: str | None = None

    # Categorical equality
    faction: str | None = None
    series: str | None = None
    nation: str | None = None
    language: str | None = None

    # Inclusive numeric ranges
    level_min: int | None = None
    level_max: int | None = None
    cost_min: int | None = None
    cost_max: int | None = None

    # Printing flags
    is_foil: bool | None = None
    is_promo: bool | None = None
    is_alternate: bool | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return only the filters that are set."""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        return {name: value for name, value in values.items() if value is not None}

    def is_empty(self) -> bool:
        return not self.as_dict()


@dataclass(frozen=True)
class SearchOptions:
    """Validated pagination and ordering for a search."""

    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT
    sort_by: SortField = SortField.NAME
    sort_order: SortOrder = SortOrder.ASC
    include_relations: bool = True

    def __post_init__(self) -> None:
        if not 1 <= self.page <= MAX_PAGE:
            raise ValueError(f"page must be between 1 and {MAX_PAGE}, got {self.page}")
        if not 1 <= self.limit <= MAX_LIMIT:
            raise ValueError(f"limit must be between 1 and {MAX_LIMIT}, got {self.limit}")
        if not isinstance(self.sort_by, SortField):
            raise ValueError(f"sort_by must be a SortField, got {self.sort_by!r}")
        if not isinstance(self.sort_order, SortOrder):
            raise ValueError(f"sort_order must be a SortOrder, got {self.sort_order!r}")

    def as_dict(self) -> dict[str, Any]:
        return {
            "page": self.page,
            "limit": self.limit,
            "sort_by": self.sort_by.value,
            "sort_order": self.sort_order.value,
            "include_relations": self.include_relations,
        }


@dataclass(frozen=True)
class SearchResultPage:
    """One page of search results."""

    items: tuple[dict[str, Any], ...]
    total: int
    page: int
    limit: int

    def __post_init__(self) -> None:
        if self.total < 0:
            raise ValueError(f"total must be non-negative, got {self.total}")
        if len(self.items) > self.limit:
            raise ValueError(f"page holds {len(self.items)} items but limit is {self.limit}")

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit)

    @classmethod
    def empty(cls, options: SearchOptions) -> "SearchResultPage":
        return cls(items=(), total=0, page=options.page, limit=options.limit)

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [dict(item) for item in self.items],
            "total": self.total,
            "page": self.page,
            "limit": self.limit,
            "total_pages": self.total_pages,
        }


@dataclass(frozen=True)
class SearchContext:
    """Who searched, and from where."""

    session_id: str | None = None
    user_id: str | None = None
    source: SearchSource = SearchSource.MANUAL
    user_agent: str | None = None
    referer: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["source"] = self.source.value
        return data


@dataclass(frozen=True)
class SearchEvent:
    """
    A single recorded search.

    Filter and option snapshots are read-only views; the event is
    append-only once created.
    """

    cache_key: str
    filters: MappingProxyType[str, Any]
    options: MappingProxyType[str, Any]
    result_count: int
    latency_ms: float
    cache_hit: bool
    context: SearchContext = field(default_factory=SearchContext)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def create(
        cls,
        *,
        cache_key: str,
        filters: NormalizedFilter,
        options: SearchOptions,
        result_count: int,
        latency_ms: float,
        cache_hit: bool,
        context: SearchContext,
    ) -> "SearchEvent":
        """Snapshot the normalized request into an immutable event."""
        return cls(
            cache_key=cache_key,
            filters=MappingProxyType(filters.as_dict()),
            options=MappingProxyType(options.as_dict()),
            result_count=result_count,
            latency_ms=latency_ms,
            cache_hit=cache_hit,
            context=context,
        )
