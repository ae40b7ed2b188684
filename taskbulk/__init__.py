"""Adaptive rate-limited bulk mutations against a task-management API."""

from taskbulk.config import EngineProfile, Settings, get_settings, legacy_profile_for
from taskbulk.core import (
    BulkResult,
    Failure,
    FailureClass,
    RunOutcome,
    Success,
    ThresholdsSnapshot,
    Zone,
)
from taskbulk.observability import RunObservers
from taskbulk.rate_limit import BulkRunner, DelayController, ErrorClassifier, RetryExecutor

__version__ = "0.1.0"

__all__ = [
    "BulkRunner",
    "BulkResult",
    "DelayController",
    "EngineProfile",
    "ErrorClassifier",
    "Failure",
    "FailureClass",
    "RetryExecutor",
    "RunObservers",
    "RunOutcome",
    "Settings",
    "Success",
    "ThresholdsSnapshot",
    "Zone",
    "get_settings",
    "legacy_profile_for",
]
