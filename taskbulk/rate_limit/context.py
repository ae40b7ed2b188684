"""Per-run state shared by the runner and the retry executor."""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable

from taskbulk.config.profiles import EngineProfile
from taskbulk.observability.metrics import RunMetrics
from taskbulk.observability.telemetry import RecoveryTimer, RequestRateMeter, RunObservers

from .delay import DelayController

Clock = Callable[[], float]
SleepFn = Callable[[float], Awaitable[None]]


@dataclass
class RunContext:
    """Everything one bulk run owns. Created fresh per run, never shared."""

    run_id: str
    operation: str
    profile: EngineProfile
    controller: DelayController
    observers: RunObservers
    metrics: RunMetrics
    rate_meter: RequestRateMeter
    recovery: RecoveryTimer
    clock: Clock
    sleep: SleepFn

    @classmethod
    def create(
        cls,
        *,
        operation: str,
        total: int,
        profile: EngineProfile | None = None,
        observers: RunObservers | None = None,
        clock: Clock = time.monotonic,
        sleep: SleepFn = asyncio.sleep,
    ) -> RunContext:
        profile = profile or EngineProfile.canonical()
        observers = observers or RunObservers()
        return cls(
            run_id=uuid.uuid4().hex[:8],
            operation=operation,
            profile=profile,
            controller=DelayController(profile, observers),
            observers=observers,
            metrics=RunMetrics(operation=operation, total_items=total, started_at=clock()),
            rate_meter=RequestRateMeter(clock=clock),
            recovery=RecoveryTimer(clock=clock),
            clock=clock,
            sleep=sleep,
        )

    async def wait(self, delay_ms: int, reason: str) -> None:
        """Cooperatively wait `delay_ms` milliseconds, accounted under `reason`."""
        if delay_ms <= 0:
            return
        self.metrics.record_sleep(reason, delay_ms)
        await self.sleep(delay_ms / 1000)

    def request_started(self) -> None:
        self.metrics.record_request()
        self.observers.rps_changed(self.rate_meter.record())

    def rate_limit_hit(self) -> None:
        status = self.recovery.hit()
        if status is not None:
            self.observers.recovery_changed(status)

    def recovered(self) -> None:
        status = self.recovery.recovered()
        if status is not None:
            self.observers.recovery_changed(status)

    def finish(self, *, stopped: bool) -> None:
        """Close the metrics and signal idle to every observer."""
        self.metrics.complete(self.clock(), stopped=stopped)
        self.observers.idle()
