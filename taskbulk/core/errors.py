"""Error hierarchy for the bulk engine.

All engine errors inherit from BulkError. Subclasses carry a structured
`failure_class`; the classifier honours it before falling back to message
heuristics.
"""

from __future__ import annotations

from typing import Any

from .types import FailureClass


class BulkError(Exception):
    """Base error for all bulk engine errors.

    Attributes:
        message: Error description
        item_id: Related item identifier (if applicable)
        status: HTTP-like status code (if applicable)
    """

    def __init__(
        self,
        message: str,
        *,
        item_id: str | None = None,
        status: int | None = None,
    ) -> None:
        self.item_id = item_id
        self.status = status
        super().__init__(message)

    @property
    def message(self) -> str:
        return str(self)

    @property
    def failure_class(self) -> FailureClass | None:
        """Structured class, or None to let the classifier decide."""
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": str(self),
            "item_id": self.item_id,
            "status": self.status,
            "failure_class": self.failure_class.value if self.failure_class else None,
        }


class ApiError(BulkError):
    """Error returned by the remote task API.

    Classified heuristically from its message and status, exactly like
    errors raised by third-party clients.
    """

    def __init__(
        self,
        message: str = "Unknown error occurred",
        *,
        result: Any = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.result = result


class RateLimitError(BulkError):
    """Rate limit or quota exceeded (HTTP 429/403).

    Retried indefinitely with growing backoff.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded. Please wait a moment and try again.",
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("status", 429)
        super().__init__(message, **kwargs)

    @property
    def failure_class(self) -> FailureClass:
        return FailureClass.RATE_LIMITED


class TransientError(BulkError):
    """Temporary failure (timeouts, 5xx). Retried up to the configured cap."""

    def __init__(self, message: str = "Transient error", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)

    @property
    def failure_class(self) -> FailureClass:
        return FailureClass.TRANSIENT


class FatalError(BulkError):
    """Failure that will never succeed on retry. Recorded immediately."""

    def __init__(self, message: str = "Fatal error", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)

    @property
    def failure_class(self) -> FailureClass:
        return FailureClass.FATAL


class ItemNotFoundError(FatalError):
    """Referenced item is missing from the pre-fetched snapshot."""

    def __init__(self, message: str = "Task not found in list", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class AuthError(FatalError):
    """Credentials expired or rejected (HTTP 401)."""

    def __init__(
        self,
        message: str = "Authentication expired. Please sign in again.",
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("status", 401)
        super().__init__(message, **kwargs)
