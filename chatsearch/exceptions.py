"""Application exception hierarchy.

All custom exceptions inherit from ChatSearchError.
Each exception has an error code for structured error handling.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes for structured error handling."""

    # General errors (1xxx)
    INTERNAL_ERROR = "MSG-1000"
    CONFIGURATION_ERROR = "MSG-1001"
    VALIDATION_ERROR = "MSG-1002"

    # Message store errors (2xxx)
    MESSAGE_NOT_FOUND = "MSG-2000"
    STORE_UNAVAILABLE = "MSG-2001"

    # Embedding errors (3xxx)
    EMBEDDING_PROVIDER_ERROR = "MSG-3000"
    EMBEDDING_DIMENSION_MISMATCH = "MSG-3001"
    EMBEDDING_TIMEOUT = "MSG-3002"

    # Vector index errors (4xxx)
    VECTOR_INDEX_ERROR = "MSG-4000"
    INDEX_UNAVAILABLE = "MSG-4001"

    # Search errors (5xxx)
    SEARCH_ERROR = "MSG-5000"
    SEARCH_TIMEOUT = "MSG-5001"

    # Backfill errors (6xxx)
    BACKFILL_ERROR = "MSG-6000"


class ChatSearchError(Exception):
    """Base exception for all message search errors.

    Attributes:
        message: Human-readable error message.
        code: Structured error code.
        details: Additional error context.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details,
            }
        }


class ConfigurationError(ChatSearchError):
    """Configuration or environment error."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, details)


class ValidationError(ChatSearchError):
    """Input validation error."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.VALIDATION_ERROR, details)


class MessageNotFoundError(ChatSearchError):
    """Requested message does not exist."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.MESSAGE_NOT_FOUND, details)


class StoreUnavailableError(ChatSearchError):
    """Message store cannot be reached.

    The only failure class allowed to reach API clients as a 5xx.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.STORE_UNAVAILABLE,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class ProviderError(ChatSearchError):
    """An embedding provider failed (network, auth, timeout, bad payload)."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.EMBEDDING_PROVIDER_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class DimensionMismatchError(ChatSearchError):
    """A vector does not have the configured dimension."""

    def __init__(
        self,
        expected: int,
        actual: int,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Expected {expected} dimensions, got {actual}",
            ErrorCode.EMBEDDING_DIMENSION_MISMATCH,
            {"expected": expected, "actual": actual, **(details or {})},
        )


class IndexUnavailableError(ChatSearchError):
    """Remote vector index cannot be used."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INDEX_UNAVAILABLE,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class SearchError(ChatSearchError):
    """Search operation error."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.SEARCH_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class BackfillError(ChatSearchError):
    """Backfill job error."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.BACKFILL_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)
