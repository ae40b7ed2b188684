"""Adaptive inter-item delay controller.

The controller learns how fast the remote API can be driven:

- success: speed up, by how far the delay sits above the learned safe rate
    red     (current >= average):            current = round(current * 0.8)
    yellow  (sustainable <= current < avg):  current -= 1000
    green   (floor < current < sustainable): current -= 1
- rate limit: nudge the floor and the sustainable estimate up, back off x1.5

Invariant after every transition: floor <= average <= peak, and a success
never takes current below floor. Peak is a high-water mark, not a ceiling.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from taskbulk.config.constants import (
    FLOOR_STEP_MS,
    GREEN_ZONE_STEP_MS,
    RATE_LIMIT_DELAY_FACTOR,
    RED_ZONE_FACTOR,
    SUSTAINABLE_STEP_MS,
    YELLOW_ZONE_STEP_MS,
)
from taskbulk.config.profiles import EngineProfile
from taskbulk.core.types import ThresholdsSnapshot, Zone
from taskbulk.observability.logger import get_logger
from taskbulk.observability.telemetry import RunObservers

logger = get_logger(__name__)


def round_half_up(value: float) -> int:
    """Round to nearest integer, .5 away from zero for positives."""
    return math.floor(value + 0.5)


def classify_zone(current: int, average: int, sustainable: int) -> Zone:
    if current >= average:
        return Zone.RED
    if current >= sustainable:
        return Zone.YELLOW
    return Zone.GREEN


@dataclass
class DelayState:
    """Delay controller state, all in milliseconds."""

    current: int
    floor: int
    peak: int
    sustainable: int
    average: int = 0

    def __post_init__(self) -> None:
        self.recompute_average()

    def recompute_average(self) -> None:
        self.average = round_half_up((self.peak + self.floor) / 2)

    @property
    def zone(self) -> Zone:
        return classify_zone(self.current, self.average, self.sustainable)

    def snapshot(self) -> ThresholdsSnapshot:
        return ThresholdsSnapshot(
            peak=self.peak,
            average=self.average,
            sustainable=self.sustainable,
            floor=self.floor,
        )


class DelayController:
    """Owns the adaptive delay state for one run.

    Usage:
        controller = DelayController(EngineProfile.canonical(), observers)
        controller.announce()
        ...
        controller.on_success()      # after each successful attempt
        controller.on_rate_limit()   # after each rate-limited attempt
        await sleep(controller.current / 1000)
    """

    def __init__(
        self,
        profile: EngineProfile | None = None,
        observers: RunObservers | None = None,
    ) -> None:
        profile = profile or EngineProfile.canonical()
        self.state = DelayState(
            current=profile.initial_delay_ms,
            floor=profile.floor_ms,
            peak=profile.peak_ms,
            sustainable=profile.initial_sustainable_ms,
        )
        self.observers = observers or RunObservers()

    @property
    def current(self) -> int:
        return self.state.current

    @property
    def zone(self) -> Zone:
        return self.state.zone

    def snapshot(self) -> ThresholdsSnapshot:
        return self.state.snapshot()

    def announce(self) -> None:
        """Publish the current state without changing it."""
        self._notify()

    def on_success(self) -> int:
        """Speed up after a successful attempt. Returns the new delay."""
        state = self.state
        previous = state.current

        if state.current > state.peak:
            state.peak = state.current
            state.recompute_average()

        if state.current > state.floor:
            zone = state.zone
            if zone is Zone.RED:
                state.current = round_half_up(state.current * RED_ZONE_FACTOR)
            elif zone is Zone.YELLOW:
                state.current -= YELLOW_ZONE_STEP_MS
            else:
                state.current -= GREEN_ZONE_STEP_MS

        state.current = max(state.current, state.floor)
        state.recompute_average()

        if state.current != previous:
            logger.debug(
                "Delay decreased",
                extra={"previous_ms": previous, "delay_ms": state.current},
            )
        self._notify()
        return state.current

    def on_rate_limit(self) -> int:
        """Back off after a rate-limited attempt. Returns the new delay."""
        state = self.state

        state.floor = min(state.floor + FLOOR_STEP_MS, state.average)
        state.recompute_average()
        state.sustainable += SUSTAINABLE_STEP_MS
        state.current = math.ceil(state.current * RATE_LIMIT_DELAY_FACTOR)

        logger.info(
            "Rate limited, delay increased",
            extra={
                "delay_ms": state.current,
                "floor_ms": state.floor,
                "sustainable_ms": state.sustainable,
            },
        )
        self._notify()
        return state.current

    def _notify(self) -> None:
        self.observers.delay_changed(self.state.current)
        self.observers.thresholds_changed(self.state.snapshot())
