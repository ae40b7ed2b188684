"""Test doubles shared across the suite."""

from collections.abc import Iterable
from typing import Any

from taskbulk.core.types import RecoveryStatus, ThresholdsSnapshot
from taskbulk.observability import RunObservers


class Recorder:
    """Collects every observer notification of a run."""

    def __init__(self) -> None:
        self.delays: list[int] = []
        self.thresholds: list[ThresholdsSnapshot | None] = []
        self.rps: list[int] = []
        self.recovery: list[RecoveryStatus | None] = []
        self.progress: list[tuple[int, int, ThresholdsSnapshot]] = []

    def observers(self) -> RunObservers:
        return RunObservers(
            on_delay_change=self.delays.append,
            on_thresholds_change=self.thresholds.append,
            on_rps_change=self.rps.append,
            on_recovery_change=self.recovery.append,
        )

    def on_progress(self, completed: int, total: int, snapshot: ThresholdsSnapshot) -> None:
        self.progress.append((completed, total, snapshot))

    @property
    def progress_counts(self) -> list[tuple[int, int]]:
        return [(completed, total) for completed, total, _ in self.progress]

    @property
    def last_snapshot(self) -> ThresholdsSnapshot:
        return [t for t in self.thresholds if t is not None][-1]


class ScriptedOperation:
    """Async operation that raises scripted errors per item index, then succeeds.

    `script` maps an item index to the errors raised on its successive
    calls. `fail_always` makes an index raise the same error on every call.
    Successful calls return "ok-<payload>".
    """

    def __init__(self, script: dict[int, Iterable[BaseException]] | None = None) -> None:
        self.script = {k: list(v) for k, v in (script or {}).items()}
        self.calls: list[tuple[Any, int]] = []
        self.always: dict[int, BaseException] = {}

    def fail_always(self, index: int, error: BaseException) -> "ScriptedOperation":
        self.always[index] = error
        return self

    def calls_for(self, index: int) -> int:
        return sum(1 for _, i in self.calls if i == index)

    async def __call__(self, payload: Any, index: int) -> str:
        self.calls.append((payload, index))
        if index in self.always:
            raise self.always[index]
        pending = self.script.get(index)
        if pending:
            raise pending.pop(0)
        return f"ok-{payload}"
