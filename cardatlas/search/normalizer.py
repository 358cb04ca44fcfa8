"""
Filter normalization.

Turns untrusted search input from the web layer into a NormalizedFilter
and SearchOptions.

Permissive: unknown keys and malformed values are dropped or
clamped, never reported as request errors. Output is independent of input
key order, surrounding whitespace, and (for substring fields) letter case.
"""

import math
import re
from collections.abc import Mapping
from typing import Any

from cardatlas.models.search import (
    DEFAULT_LIMIT,
    DEFAULT_PAGE,
    MAX_FILTER_INT,
    MAX_LIMIT,
    MAX_PAGE,
    NormalizedFilter,
    SearchOptions,
    SortField,
    SortOrder,
)

# Canonical field -> accepted raw keys, highest priority first.
TEXT_FIELDS: dict[str, tuple[str, ...]] = {
    "name": ("name", "search", "text"),
    "pilot": ("pilot",),
    "model": ("model",),
}

EXACT_FIELDS: dict[str, tuple[str, ...]] = {
    "type_id": ("type_id", "typeId"),
    "rarity_id": ("rarity_id", "rarityId"),
    "set_id": ("set_id", "setId"),
    "faction": ("faction",),
    "series": ("series",),
    "nation": ("nation",),
    "language": ("language",),
}

INT_FIELDS: dict[str, tuple[str, ...]] = {
    "level_min": ("level_min", "levelMin"),
    "level_max": ("level_max", "levelMax"),
    "cost_min": ("cost_min", "costMin"),
    "cost_max": ("cost_max", "costMax"),
}

BOOL_FIELDS: dict[str, tuple[str, ...]] = {
    "is_foil": ("is_foil", "isFoil"),
    "is_promo": ("is_promo", "isPromo"),
    "is_alternate": ("is_alternate", "isAlternate"),
}

SORT_FIELD_ALIASES: dict[str, SortField] = {
    "name": SortField.NAME,
    "level": SortField.LEVEL,
    "cost": SortField.COST,
    "set_number": SortField.SET_NUMBER,
    "setnumber": SortField.SET_NUMBER,
    "created_at": SortField.CREATED_AT,
    "createdat": SortField.CREATED_AT,
}

SORT_ORDER_ALIASES: dict[str, SortOrder] = {
    "asc": SortOrder.ASC,
    "ascending": SortOrder.ASC,
    "desc": SortOrder.DESC,
    "descending": SortOrder.DESC,
}

_TRUE_STRINGS = frozenset({"true", "1", "yes"})
_FALSE_STRINGS = frozenset({"false", "0", "no"})

_WHITESPACE = re.compile(r"\s+")


def clean_text(value: Any) -> str | None:
    """Trim and collapse whitespace. Non-strings and blanks become None."""
    if not isinstance(value, str):
        return None
    cleaned = _WHITESPACE.sub(" ", value).strip()
    return cleaned or None


def parse_int(value: Any) -> int | None:
    """
    Parse an integer from a number or numeric string.

    Booleans, non-integral numbers, and unparseable strings return None.
    They are never coerced to zero.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return int(value)
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            return None
        if math.isfinite(number) and number.is_integer():
            return int(number)
    return None


def parse_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    return None


def _first_present(raw: Mapping[str, Any], aliases: tuple[str, ...]) -> Any:
    """Return the value under the highest-priority alias that is present."""
    for alias in aliases:
        if alias in raw and raw[alias] is not None:
            return raw[alias]
    return None


def normalize_filters(raw: Mapping[str, Any] | None) -> NormalizedFilter:
    """
    Build a NormalizedFilter from raw request filters.

    Args:
        raw: Filter mapping from the request (query params or JSON body)

    Returns:
        NormalizedFilter containing only recognized, valid fields
    """
    if not raw:
        return NormalizedFilter()

    values: dict[str, Any] = {}

    for field_name, aliases in TEXT_FIELDS.items():
        text = clean_text(_first_present(raw, aliases))
        if text is not None:
            values[field_name] = text.casefold()

    for field_name, aliases in EXACT_FIELDS.items():
        text = clean_text(_first_present(raw, aliases))
        if text is not None:
            values[field_name] = text

    for field_name, aliases in INT_FIELDS.items():
        number = parse_int(_first_present(raw, aliases))
        if number is not None and 0 <= number <= MAX_FILTER_INT:
            values[field_name] = number

    for field_name, aliases in BOOL_FIELDS.items():
        flag = parse_bool(_first_present(raw, aliases))
        if flag is not None:
            values[field_name] = flag

    return NormalizedFilter(**values)


def normalize_options(
    raw: Mapping[str, Any] | None,
    default_limit: int = DEFAULT_LIMIT,
    max_limit: int = MAX_LIMIT,
) -> SearchOptions:
    """
    Build SearchOptions from raw request options, clamping out-of-range values.

    Unknown sort fields fall back to name ascending, regardless of the
    requested sort order.
    """
    raw = raw or {}
    max_limit = min(max_limit, MAX_LIMIT)

    page = parse_int(_first_present(raw, ("page",)))
    if page is None:
        page = DEFAULT_PAGE
    page = min(MAX_PAGE, max(1, page))

    limit = parse_int(_first_present(raw, ("limit",)))
    if limit is None:
        limit = default_limit
    limit = min(max_limit, max(1, limit))

    sort_by = SortField.NAME
    sort_order = SortOrder.ASC
    raw_sort_by = clean_text(_first_present(raw, ("sort_by", "sortBy")))
    raw_sort_order = clean_text(_first_present(raw, ("sort_order", "sortOrder")))

    # An unrecognized sort field resets both field and direction to the default
    if raw_sort_by is None or raw_sort_by.lower() in SORT_FIELD_ALIASES:
        if raw_sort_by is not None:
            sort_by = SORT_FIELD_ALIASES[raw_sort_by.lower()]
        if raw_sort_order is not None:
            sort_order = SORT_ORDER_ALIASES.get(raw_sort_order.lower(), SortOrder.ASC)

    include_relations = parse_bool(_first_present(raw, ("include_relations", "includeRelations")))
    if include_relations is None:
        include_relations = True

    return SearchOptions(
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
        include_relations=include_relations,
    )
