"""
Failure classification and the API error envelope.

Every error that crosses the HTTP boundary is classified and explained.

Error taxonomy for card search:
- Dropped input: malformed or unknown filters are absorbed by the
  normalizer and never reported
- Data access failure: the data store failed or timed out; reported as a
  retryable KnownError
- Analytics failure: logged and discarded, never reported
- Empty range: an inverted numeric range is a valid zero-result search

INVARIANT: Only data access failures leave the search core as errors.
"""

from enum import Enum

from pydantic import BaseModel, Field


class FailureKind(str, Enum):
    """Classification of failure types."""

    DATA_ACCESS = "data_access"


class OutcomeType(str, Enum):
    """High-level outcome classification."""

    KNOWN_FAILURE = "known_failure"


class FailureDetail(BaseModel):
    """Detailed information about a failure."""

    kind: FailureKind = Field(
        ...,
        description="Classification of the failure",
    )
    message: str = Field(
        ...,
        description="User-appropriate explanation of what went wrong",
    )
    detail: str | None = Field(
        default=None,
        description="Additional technical detail (optional)",
    )
    suggestion: str | None = Field(
        default=None,
        description="Suggested action for the user",
    )
    retryable: bool = Field(
        default=False,
        description="Whether repeating the same request may succeed",
    )


class ApiResponse(BaseModel):
    """Response envelope for classified failures."""

    outcome: OutcomeType = Field(
        ...,
        description="High-level classification of the result",
    )
    failure: FailureDetail = Field(
        ...,
        description="Failure details",
    )

    @classmethod
    def known_failure(
        cls,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
        retryable: bool = False,
    ) -> "ApiResponse":
        """
        Create a known failure response.

        Use when the system knows exactly why the operation failed.
        """
        return cls(
            outcome=OutcomeType.KNOWN_FAILURE,
            failure=FailureDetail(
                kind=kind,
                message=message,
                detail=detail,
                suggestion=suggestion,
                retryable=retryable,
            ),
        )


class KnownError(Exception):
    """
    Base class for exceptions that represent known, explainable failures.

    Subclass this for errors where the system knows exactly what went wrong.
    """

    retryable: bool = False

    def __init__(
        self,
        kind: FailureKind,
        message: str,
        detail: str | None = None,
        suggestion: str | None = None,
        status_code: int = 400,
    ):
        self.kind = kind
        self.message = message
        self.detail = detail
        self.suggestion = suggestion
        self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ApiResponse:
        """Convert to an ApiResponse."""
        return ApiResponse.known_failure(
            kind=self.kind,
            message=self.message,
            detail=self.detail,
            suggestion=self.suggestion,
            retryable=self.retryable,
        )


class DataAccessError(KnownError):
    """
    The card data store failed to answer a search.

    Raised for connectivity errors and query timeouts. No cache entry is
    ever written for a search that raised this.
    """

    retryable = True

    def __init__(self, operation: str, detail: str | None = None):
        self.operation = operation
        super().__init__(
            kind=FailureKind.DATA_ACCESS,
            message="Card search is temporarily unavailable.",
            detail=detail or f"Data access failed during {operation}",
            suggestion="Please retry in a moment.",
            status_code=503,
        )


class SearchTimeoutError(DataAccessError):
    """The data store did not answer within the configured timeout."""

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            operation="search",
            detail=f"Query exceeded {timeout_seconds:g}s timeout",
        )
