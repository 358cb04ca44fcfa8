from cardatlas.models.failure import (
    ApiResponse,
    DataAccessError,
    FailureDetail,
    FailureKind,
    KnownError,
    OutcomeType,
    SearchTimeoutError,
)
from cardatlas.models.search import (
    DEFAULT_LIMIT,
    DEFAULT_PAGE,
    MAX_FILTER_INT,
    MAX_LIMIT,
    MAX_PAGE,
    NormalizedFilter,
    SearchContext,
    SearchEvent,
    SearchOptions,
    SearchResultPage,
    SearchSource,
    SortField,
    SortOrder,
)

__all__ = [
    "ApiResponse",
    "DEFAULT_LIMIT",
    "DEFAULT_PAGE",
    "DataAccessError",
    "FailureDetail",
    "FailureKind",
    "KnownError",
    "MAX_FILTER_INT",
    "MAX_LIMIT",
    "MAX_PAGE",
    "NormalizedFilter",
    "OutcomeType",
    "SearchContext",
    "SearchEvent",
    "SearchOptions",
    "SearchResultPage",
    "SearchSource",
    "SearchTimeoutError",
    "SortField",
    "SortOrder",
]
