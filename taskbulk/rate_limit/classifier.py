"""Error classification for retry decisions.

This is the central place for deciding how a failed attempt is retried.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable

from taskbulk.core.errors import BulkError
from taskbulk.core.types import FailureClass

# Case-sensitive. "403" also matches unrelated messages that mention it;
# that false positive is part of the compatible behaviour.
RATE_LIMIT_INDICATORS = ("Rate limit", "429", "403", "quota")
RATE_LIMIT_STATUSES = frozenset({429, 403})

FatalPredicate = Callable[[BaseException], bool]


def _lookup(obj: Any, key: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(key)
    return getattr(obj, key, None)


def error_message(error: BaseException) -> str:
    """Best-effort human-readable message of an error.

    Tries, in order: a non-empty `message` attribute, `str(error)`, and a
    nested `result.error.message` as returned by API client libraries.
    Returns an empty string when none is available.
    """
    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message

    text = str(error)
    if text:
        return text

    nested = _lookup(_lookup(getattr(error, "result", None), "error"), "message")
    if isinstance(nested, str):
        return nested
    return ""


def error_status(error: BaseException) -> int | None:
    """Numeric status carried by an error (`status` or `status_code`)."""
    for attr in ("status", "status_code"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


def is_rate_limit(error: BaseException) -> bool:
    """Legacy rate-limit heuristic over message substrings and status."""
    message = error_message(error)
    if any(indicator in message for indicator in RATE_LIMIT_INDICATORS):
        return True
    return error_status(error) in RATE_LIMIT_STATUSES


def classify_failure(
    error: BaseException,
    is_fatal: FatalPredicate | None = None,
) -> FailureClass:
    """Classify an exception into a FailureClass.

    Resolution order:
        1. Structured class of a BulkError subclass
        2. Caller-supplied fatal predicate
        3. Rate-limit heuristic; anything else is transient
    """
    if isinstance(error, BulkError) and error.failure_class is not None:
        return error.failure_class

    if is_fatal is not None and is_fatal(error):
        return FailureClass.FATAL

    if is_rate_limit(error):
        return FailureClass.RATE_LIMITED

    return FailureClass.TRANSIENT


@dataclass(frozen=True)
class ErrorClassifier:
    """Classifier bound to an optional fatal predicate.

    Usage:
        classifier = ErrorClassifier(is_fatal=lambda e: isinstance(e, KeyError))
        classifier.classify(error)  # -> FailureClass
    """

    is_fatal: FatalPredicate | None = None

    def classify(self, error: BaseException) -> FailureClass:
        return classify_failure(error, self.is_fatal)

    def __call__(self, error: BaseException) -> FailureClass:
        return self.classify(error)
