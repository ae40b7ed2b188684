"""Core types and errors for the bulk engine."""

from .errors import (
    ApiError,
    AuthError,
    BulkError,
    FatalError,
    ItemNotFoundError,
    RateLimitError,
    TransientError,
)
from .types import (
    BulkResult,
    Failure,
    FailureClass,
    OperationResult,
    RecoveryStatus,
    RunOutcome,
    Success,
    ThresholdsSnapshot,
    WorkItem,
    Zone,
)

__all__ = [
    # Errors
    "BulkError",
    "ApiError",
    "RateLimitError",
    "TransientError",
    "FatalError",
    "ItemNotFoundError",
    "AuthError",
    # Types
    "FailureClass",
    "Zone",
    "RunOutcome",
    "WorkItem",
    "ThresholdsSnapshot",
    "RecoveryStatus",
    "Success",
    "Failure",
    "OperationResult",
    "BulkResult",
]
