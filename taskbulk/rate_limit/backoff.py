"""Backoff policies for failed attempts. All delays are milliseconds."""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from taskbulk.config.profiles import EngineProfile


class BackoffPolicy(ABC):
    """Abstract base for backoff policies.

    A backoff policy determines how long to wait before the next attempt.
    """

    @abstractmethod
    def next_delay(self, attempt: int) -> int:
        """Calculate delay for the given attempt.

        Args:
            attempt: The attempt counter after the failure (1 = first failure)

        Returns:
            Delay in milliseconds
        """
        ...


@dataclass(frozen=True)
class ExponentialBackoff(BackoffPolicy):
    """Exponential backoff for transient errors.

    delay = base * 2^attempt

    Example with defaults:
        attempt 1: 200ms
        attempt 2: 400ms
        attempt 6: 6400ms
    """

    base: int = 100
    multiplier: int = 2

    def next_delay(self, attempt: int) -> int:
        return self.base * (self.multiplier**attempt)


@dataclass(frozen=True)
class LinearBackoff(BackoffPolicy):
    """Capped linear backoff for rate-limit hits.

    delay = min(base + step * attempt, max_delay)

    Example with defaults:
        hit 1: 2000ms
        hit 2: 3000ms
        hit 9+: 10000ms (capped)
    """

    base: int = 1000
    step: int = 1000
    max_delay: int = 10000

    def next_delay(self, attempt: int) -> int:
        return min(self.base + self.step * attempt, self.max_delay)


def transient_backoff(profile: EngineProfile) -> ExponentialBackoff:
    return ExponentialBackoff(base=profile.transient_base_delay_ms)


def rate_limit_backoff(profile: EngineProfile) -> LinearBackoff:
    return LinearBackoff(
        base=profile.rate_limit_backoff_base_ms,
        step=profile.rate_limit_backoff_step_ms,
        max_delay=profile.rate_limit_backoff_max_ms,
    )
