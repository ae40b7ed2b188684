"""Live telemetry for a bulk run.

Observers are plain callback slots on a per-run RunObservers. A missing
observer is a no-op.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Callable

from taskbulk.config.constants import RPS_WINDOW_SECONDS
from taskbulk.core.types import RecoveryStatus, ThresholdsSnapshot

DelayObserver = Callable[[int], None]
ThresholdsObserver = Callable[[ThresholdsSnapshot | None], None]
RpsObserver = Callable[[int], None]
RecoveryObserver = Callable[[RecoveryStatus | None], None]
ProgressCallback = Callable[[int, int, ThresholdsSnapshot], None]


@dataclass
class RunObservers:
    """Callbacks notified while a run is in flight.

    on_delay_change: current inter-item delay (ms); 0 means idle
    on_thresholds_change: thresholds snapshot; None means idle
    on_rps_change: requests issued in the last second; 0 means idle
    on_recovery_change: rate-limit recovery status; None means idle
    """

    on_delay_change: DelayObserver | None = None
    on_thresholds_change: ThresholdsObserver | None = None
    on_rps_change: RpsObserver | None = None
    on_recovery_change: RecoveryObserver | None = None

    def delay_changed(self, delay_ms: int) -> None:
        if self.on_delay_change is not None:
            self.on_delay_change(delay_ms)

    def thresholds_changed(self, snapshot: ThresholdsSnapshot | None) -> None:
        if self.on_thresholds_change is not None:
            self.on_thresholds_change(snapshot)

    def rps_changed(self, rps: int) -> None:
        if self.on_rps_change is not None:
            self.on_rps_change(rps)

    def recovery_changed(self, status: RecoveryStatus | None) -> None:
        if self.on_recovery_change is not None:
            self.on_recovery_change(status)

    def idle(self) -> None:
        """Signal that no run is in flight."""
        self.delay_changed(0)
        self.thresholds_changed(None)
        self.rps_changed(0)
        self.recovery_changed(None)


@dataclass
class RequestRateMeter:
    """Requests per second over a sliding window of request timestamps."""

    clock: Callable[[], float]
    window: float = RPS_WINDOW_SECONDS
    _stamps: deque[float] = field(default_factory=deque, init=False, repr=False)

    def record(self) -> int:
        """Record one request now and return the current rate."""
        now = self.clock()
        self._stamps.append(now)
        return self._evict(now)

    @property
    def rate(self) -> int:
        return self._evict(self.clock())

    def _evict(self, now: float) -> int:
        while self._stamps and now - self._stamps[0] >= self.window:
            self._stamps.popleft()
        return len(self._stamps)


@dataclass
class RecoveryTimer:
    """Time-to-recover: from the first rate-limit hit to the next success."""

    clock: Callable[[], float]
    _since: float | None = field(default=None, init=False)
    last_duration: float | None = field(default=None, init=False)

    @property
    def recovering(self) -> bool:
        return self._since is not None

    def hit(self) -> RecoveryStatus | None:
        """Record a rate-limit hit. Returns a status only when an episode starts."""
        if self._since is not None:
            return None
        self._since = self.clock()
        return RecoveryStatus(recovering=True, since=self._since)

    def recovered(self) -> RecoveryStatus | None:
        """Record a success. Returns a status only when an episode ends."""
        if self._since is None:
            return None
        self.last_duration = self.clock() - self._since
        self._since = None
        return RecoveryStatus(recovering=False, duration=self.last_duration)
