"""Adaptive rate-limited bulk execution."""

from .backoff import BackoffPolicy, ExponentialBackoff, LinearBackoff
from .classifier import (
    ErrorClassifier,
    classify_failure,
    error_message,
    error_status,
    is_rate_limit,
)
from .context import RunContext
from .delay import DelayController, DelayState, classify_zone
from .retry import RetryExecutor
from .runner import BulkRunner, build_index, merge_item

__all__ = [
    # Backoff policies
    "BackoffPolicy",
    "ExponentialBackoff",
    "LinearBackoff",
    # Classification
    "ErrorClassifier",
    "classify_failure",
    "error_message",
    "error_status",
    "is_rate_limit",
    # Delay control
    "DelayController",
    "DelayState",
    "classify_zone",
    # Execution
    "RunContext",
    "RetryExecutor",
    "BulkRunner",
    "build_index",
    "merge_item",
]
