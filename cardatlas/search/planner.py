"""
Query planning.

Translates a NormalizedFilter and SearchOptions into an abstract QueryPlan:
a conjunction of conditions over allow-listed card fields, an ordering,
and pagination bounds. The plan never contains query text; the data-store
layer binds every value as a parameter.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from cardatlas.models.search import NormalizedFilter, SearchOptions, SortField, SortOrder


class CardField(str, Enum):
    """Card attributes a plan may reference."""

    ID = "id"
    NAME = "name"
    PILOT = "pilot"
    MODEL = "model"
    TYPE_ID = "type_id"
    RARITY_ID = "rarity_id"
    SET_ID = "set_id"
    FACTION = "faction"
    SERIES = "series"
    NATION = "nation"
    LANGUAGE = "language"
    LEVEL = "level"
    COST = "cost"
    IS_FOIL = "is_foil"
    IS_PROMO = "is_promo"
    IS_ALTERNATE = "is_alternate"
    SET_NUMBER = "set_number"
    CREATED_AT = "created_at"


class Operator(str, Enum):
    EQ = "eq"
    CONTAINS = "contains"
    GTE = "gte"
    LTE = "lte"


@dataclass(frozen=True)
class Condition:
    """A single predicate: field <op> value."""

    field: CardField
    op: Operator
    value: Any


@dataclass(frozen=True)
class OrderTerm:
    field: CardField
    order: SortOrder


@dataclass(frozen=True)
class QueryPlan:
    """
    Data-access plan for one search page.

    predicate is an AND of its conditions (empty means match all).
    When matches_nothing is True the plan is known to return zero rows
    and need not be executed.
    """

    predicate: tuple[Condition, ...]
    order_by: tuple[OrderTerm, ...]
    skip: int
    take: int
    include_relations: bool = True
    matches_nothing: bool = False


@dataclass(frozen=True)
class QueryResult:
    """Raw rows for one page plus the total match count."""

    records: list[dict[str, Any]]
    total: int


_CONTAINS_FILTERS: dict[str, CardField] = {
    "name": CardField.NAME,
    "pilot": CardField.PILOT,
    "model": CardField.MODEL,
}

_EQUALITY_FILTERS: dict[str, CardField] = {
    "type_id": CardField.TYPE_ID,
    "rarity_id": CardField.RARITY_ID,
    "set_id": CardField.SET_ID,
    "faction": CardField.FACTION,
    "series": CardField.SERIES,
    "nation": CardField.NATION,
    "language": CardField.LANGUAGE,
    "is_foil": CardField.IS_FOIL,
    "is_promo": CardField.IS_PROMO,
    "is_alternate": CardField.IS_ALTERNATE,
}

# (min filter, max filter, column)
_RANGE_FILTERS: tuple[tuple[str, str, CardField], ...] = (
    ("level_min", "level_max", CardField.LEVEL),
    ("cost_min", "cost_max", CardField.COST),
)

_SORT_COLUMNS: dict[SortField, CardField] = {
    SortField.NAME: CardField.NAME,
    SortField.LEVEL: CardField.LEVEL,
    SortField.COST: CardField.COST,
    SortField.SET_NUMBER: CardField.SET_NUMBER,
    SortField.CREATED_AT: CardField.CREATED_AT,
}


def build_predicate(filters: NormalizedFilter) -> tuple[tuple[Condition, ...], bool]:
    """
    Build the condition list for a filter set.

    Returns:
        Tuple of (conditions, matches_nothing). matches_nothing is True when
        any range has min > max.
    """
    conditions: list[Condition] = []
    matches_nothing = False

    for filter_name, card_field in _CONTAINS_FILTERS.items():
        value = getattr(filters, filter_name)
        if value is not None:
            conditions.append(Condition(card_field, Operator.CONTAINS, value))

    for filter_name, card_field in _EQUALITY_FILTERS.items():
        value = getattr(filters, filter_name)
        if value is not None:
            conditions.append(Condition(card_field, Operator.EQ, value))

    for min_name, max_name, card_field in _RANGE_FILTERS:
        low = getattr(filters, min_name)
        high = getattr(filters, max_name)
        if low is not None and high is not None and low > high:
            # Inverted range: a valid query with no matches, not an error
            matches_nothing = True
        if low is not None:
            conditions.append(Condition(card_field, Operator.GTE, low))
        if high is not None:
            conditions.append(Condition(card_field, Operator.LTE, high))

    return tuple(conditions), matches_nothing


def build_order_by(options: SearchOptions) -> tuple[OrderTerm, ...]:
    """Primary sort, a stable secondary sort, then id as the final tie-breaker."""
    primary = _SORT_COLUMNS.get(options.sort_by, CardField.NAME)
    terms = [OrderTerm(primary, options.sort_order)]

    if primary is CardField.NAME:
        if options.sort_order is SortOrder.ASC:
            terms.append(OrderTerm(CardField.CREATED_AT, SortOrder.DESC))
    else:
        terms.append(OrderTerm(CardField.NAME, SortOrder.ASC))

    terms.append(OrderTerm(CardField.ID, SortOrder.ASC))
    return tuple(terms)


def plan_search(filters: NormalizedFilter, options: SearchOptions) -> QueryPlan:
    """
    Plan a card search.

    Pagination bounds come from the validated options only:
    skip = (page - 1) * limit, take = limit.
    """
    predicate, matches_nothing = build_predicate(filters)
    return QueryPlan(
        predicate=predicate,
        order_by=build_order_by(options),
        skip=(options.page - 1) * options.limit,
        take=options.limit,
        include_relations=options.include_relations,
        matches_nothing=matches_nothing,
    )
