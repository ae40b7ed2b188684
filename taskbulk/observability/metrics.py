"""Metrics for bulk runs.

Tracks attempt statistics like success rate, rate-limit hits and time spent
waiting.

Usage:
    metrics = RunMetrics(operation="insert", total_items=250, started_at=clock())
    metrics.record_request()
    metrics.record_success()
    metrics.complete(clock())

    print(metrics.success_rate)
    print(metrics.to_summary())
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class RunMetrics:
    """Metrics for a single bulk run.

    `started_at` and `ended_at` are readings of the run's clock (seconds),
    so durations stay consistent under a virtual clock.
    """

    operation: str
    total_items: int
    started_at: float
    ended_at: float | None = None

    # Item counts
    successful: int = 0
    failed: int = 0

    # Attempts
    requests: int = 0
    rate_limit_hits: int = 0
    transient_retries: int = 0
    fatal_failures: int = 0
    circuit_breaker_pauses: int = 0

    # Waiting (milliseconds), keyed by reason
    sleep_ms: dict[str, int] = field(default_factory=dict)

    # Error breakdown by failure class
    errors_by_class: dict[str, int] = field(default_factory=dict)

    stopped: bool = False

    @property
    def processed(self) -> int:
        return self.successful + self.failed

    @property
    def success_rate(self) -> float:
        """Success rate as percentage (0-100) of processed items."""
        if self.processed == 0:
            return 0.0
        return self.successful / self.processed * 100

    @property
    def duration_seconds(self) -> float:
        if self.ended_at is None:
            return 0.0
        return self.ended_at - self.started_at

    @property
    def requests_per_second(self) -> float:
        if self.duration_seconds <= 0:
            return 0.0
        return self.requests / self.duration_seconds

    @property
    def total_sleep_ms(self) -> int:
        return sum(self.sleep_ms.values())

    def record_request(self) -> None:
        self.requests += 1

    def record_success(self) -> None:
        self.successful += 1

    def record_failure(self, failure_class: str) -> None:
        self.failed += 1
        self.errors_by_class[failure_class] = self.errors_by_class.get(failure_class, 0) + 1

    def record_rate_limit(self) -> None:
        self.rate_limit_hits += 1

    def record_transient_retry(self) -> None:
        self.transient_retries += 1

    def record_fatal(self) -> None:
        self.fatal_failures += 1

    def record_circuit_breaker_pause(self) -> None:
        self.circuit_breaker_pauses += 1

    def record_sleep(self, reason: str, delay_ms: int) -> None:
        self.sleep_ms[reason] = self.sleep_ms.get(reason, 0) + delay_ms

    def complete(self, ended_at: float, *, stopped: bool = False) -> None:
        """Mark the run as finished."""
        self.ended_at = ended_at
        self.stopped = stopped

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "operation": self.operation,
            "duration_seconds": round(self.duration_seconds, 2),
            "total_items": self.total_items,
            "successful": self.successful,
            "failed": self.failed,
            "stopped": self.stopped,
            "success_rate": round(self.success_rate, 2),
            "requests": self.requests,
            "requests_per_second": round(self.requests_per_second, 2),
            "rate_limit_hits": self.rate_limit_hits,
            "transient_retries": self.transient_retries,
            "fatal_failures": self.fatal_failures,
            "circuit_breaker_pauses": self.circuit_breaker_pauses,
            "sleep_ms": dict(self.sleep_ms),
            "errors_by_class": dict(self.errors_by_class),
        }

    def to_summary(self) -> str:
        """Generate human-readable summary."""
        status = "STOPPED" if self.stopped else "complete"
        lines = [
            f"Bulk {self.operation} {status}",
            "=" * 40,
            f"Duration: {self.duration_seconds:.1f}s",
            f"Total: {self.total_items} items",
            f"Success: {self.successful} ({self.success_rate:.1f}%)",
            f"Failed: {self.failed}",
            f"Requests: {self.requests} ({self.requests_per_second:.2f}/s)",
        ]

        if self.errors_by_class:
            lines.append("")
            lines.append("Errors by Class:")
            for failure_class, count in sorted(
                self.errors_by_class.items(), key=lambda x: -x[1]
            ):
                lines.append(f"  {failure_class}: {count}")

        if self.rate_limit_hits > 0:
            lines.append(f"\nRate Limit Hits: {self.rate_limit_hits}")

        if self.circuit_breaker_pauses > 0:
            lines.append(f"Circuit Breaker Pauses: {self.circuit_breaker_pauses}")

        if self.sleep_ms:
            lines.append("")
            lines.append("Time Waiting:")
            for reason, delay_ms in self.sleep_ms.items():
                lines.append(f"  {reason}: {delay_ms / 1000:.1f}s")

        return "\n".join(lines)
