"""Shared types for the bulk engine.

Work items go in, operation results come out, aggregated into a BulkResult.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from taskbulk.observability.metrics import RunMetrics

T = TypeVar("T")


class FailureClass(str, Enum):
    """Classification of a failed attempt for retry decisions."""

    RATE_LIMITED = "rate_limited"  # Quota hit - back off, retry forever
    TRANSIENT = "transient"  # Probably temporary - bounded retries
    FATAL = "fatal"  # Will never succeed - record immediately


class Zone(str, Enum):
    """How far the current delay sits above the learned safe rate."""

    RED = "red"
    YELLOW = "yellow"
    GREEN = "green"


class RunOutcome(str, Enum):
    """How a bulk run ended."""

    COMPLETED = "completed"
    COMPLETED_WITH_FAILURES = "completed_with_failures"
    STOPPED = "stopped"


@dataclass(frozen=True)
class WorkItem(Generic[T]):
    """One unit of bulk work: the caller's payload and its input position."""

    index: int
    payload: T


@dataclass(frozen=True)
class ThresholdsSnapshot:
    """Delay thresholds reported to observers. Informational only."""

    peak: int
    average: int
    sustainable: int
    floor: int

    def to_dict(self) -> dict[str, int]:
        return {
            "peak": self.peak,
            "average": self.average,
            "sustainable": self.sustainable,
            "floor": self.floor,
        }


@dataclass(frozen=True)
class RecoveryStatus:
    """Time-to-recover telemetry after a rate-limit episode.

    While recovering, `since` holds the clock reading of the first hit.
    Once recovered, `duration` holds the episode length in seconds.
    """

    recovering: bool
    since: float | None = None
    duration: float | None = None


@dataclass(frozen=True)
class Success(Generic[T]):
    """Item completed; `response` is whatever the operation returned."""

    item: WorkItem[T]
    response: Any = None
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure(Generic[T]):
    """Item abandoned with the last error message."""

    item: WorkItem[T]
    error: str
    failure_class: FailureClass = FailureClass.TRANSIENT
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return False


OperationResult = Success[Any] | Failure[Any]


@dataclass
class BulkResult:
    """Result of a bulk run.

    Items after a stop are absent from both lists.
    """

    successful: list[Success[Any]] = field(default_factory=list)
    failed: list[Failure[Any]] = field(default_factory=list)
    stopped: bool = False
    metrics: RunMetrics | None = None

    @property
    def success_count(self) -> int:
        return len(self.successful)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    @property
    def processed(self) -> int:
        return self.success_count + self.failure_count

    @property
    def outcome(self) -> RunOutcome:
        if self.stopped:
            return RunOutcome.STOPPED
        if self.failed:
            return RunOutcome.COMPLETED_WITH_FAILURES
        return RunOutcome.COMPLETED

    @property
    def responses(self) -> list[Any]:
        """Operation responses in input order."""
        return [s.response for s in self.successful]

    @property
    def failed_payloads(self) -> list[Any]:
        """Payloads of failed items (e.g. to build a retry run)."""
        return [f.item.payload for f in self.failed]

    def to_dict(self) -> dict[str, Any]:
        """Serialize for structured logging."""
        return {
            "outcome": self.outcome.value,
            "successful": self.success_count,
            "failed": self.failure_count,
            "stopped": self.stopped,
            "errors": [
                {"index": f.item.index, "error": f.error, "class": f.failure_class.value}
                for f in self.failed
            ],
        }
