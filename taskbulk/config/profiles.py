"""Engine profiles: the tunable constants of one bulk run."""

from __future__ import annotations

from dataclasses import dataclass, replace

from .constants import (
    CIRCUIT_BREAKER_PAUSE_MS,
    CIRCUIT_BREAKER_THRESHOLD,
    DEFAULT_FLOOR_MS,
    DEFAULT_INITIAL_DELAY_MS,
    DEFAULT_PEAK_MS,
    LEGACY_BASE_DELAY_MS,
    LEGACY_BASE_MAX_RETRIES,
    LEGACY_TIERS,
    MAX_RETRIES,
    RATE_LIMIT_BACKOFF_BASE_MS,
    RATE_LIMIT_BACKOFF_MAX_MS,
    RATE_LIMIT_BACKOFF_STEP_MS,
    TRANSIENT_BASE_DELAY_MS,
)


@dataclass(frozen=True)
class EngineProfile:
    """Starting state and retry parameters for a bulk run.

    The delay controller is seeded from `floor_ms`, `peak_ms` and
    `initial_delay_ms`. `sustainable_ms` defaults to the floor: no rate limit
    has been observed yet, so the believed-safe delay is the minimum.
    """

    floor_ms: int = DEFAULT_FLOOR_MS
    peak_ms: int = DEFAULT_PEAK_MS
    initial_delay_ms: int = DEFAULT_INITIAL_DELAY_MS
    sustainable_ms: int | None = None

    max_retries: int = MAX_RETRIES
    transient_base_delay_ms: int = TRANSIENT_BASE_DELAY_MS

    rate_limit_backoff_base_ms: int = RATE_LIMIT_BACKOFF_BASE_MS
    rate_limit_backoff_step_ms: int = RATE_LIMIT_BACKOFF_STEP_MS
    rate_limit_backoff_max_ms: int = RATE_LIMIT_BACKOFF_MAX_MS

    circuit_breaker_threshold: int = CIRCUIT_BREAKER_THRESHOLD
    circuit_breaker_pause_ms: int = CIRCUIT_BREAKER_PAUSE_MS

    def __post_init__(self) -> None:
        if self.floor_ms < 0:
            raise ValueError(f"floor_ms must be >= 0, got {self.floor_ms}")
        if self.peak_ms < self.floor_ms:
            raise ValueError(
                f"peak_ms ({self.peak_ms}) must be >= floor_ms ({self.floor_ms})"
            )
        # The controller never runs below its floor, including at start
        if self.initial_delay_ms < self.floor_ms:
            raise ValueError(
                f"initial_delay_ms ({self.initial_delay_ms}) must be >= floor_ms ({self.floor_ms})"
            )
        if self.sustainable_ms is not None and self.sustainable_ms < self.floor_ms:
            raise ValueError(
                f"sustainable_ms ({self.sustainable_ms}) must be >= floor_ms ({self.floor_ms})"
            )
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {self.max_retries}")
        if self.circuit_breaker_threshold < 1:
            raise ValueError(
                f"circuit_breaker_threshold must be >= 1, got {self.circuit_breaker_threshold}"
            )

    @property
    def initial_sustainable_ms(self) -> int:
        """Sustainable delay the controller starts from."""
        if self.sustainable_ms is None:
            return self.floor_ms
        return self.sustainable_ms

    @classmethod
    def canonical(cls) -> EngineProfile:
        """The default adaptive engine (floor 200, peak 3000, delay 1000)."""
        return cls()

    def with_overrides(self, **changes: int | None) -> EngineProfile:
        """Copy with some fields replaced (validated again)."""
        return replace(self, **changes)


def legacy_profile_for(item_count: int) -> EngineProfile:
    """Profile reproducing the original size-tiered bulk drivers.

    Larger batches start slower and get more transient retries:

        > 1000 items: 1200ms, 7 retries
        >  500 items:  900ms, 6 retries
        >  100 items:  400ms, 5 retries
        otherwise:      100ms, 3 retries

    The floor is lowered to the starting delay when the tier starts below
    the canonical floor so the controller never begins under its floor.
    """
    delay_ms, max_retries = LEGACY_BASE_DELAY_MS, LEGACY_BASE_MAX_RETRIES
    for threshold, tier_delay, tier_retries in LEGACY_TIERS:
        if item_count > threshold:
            delay_ms, max_retries = tier_delay, tier_retries
            break

    return EngineProfile(
        floor_ms=min(DEFAULT_FLOOR_MS, delay_ms),
        initial_delay_ms=delay_ms,
        max_retries=max_retries,
    )
