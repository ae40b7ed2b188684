"""Deterministic simulation of a rate-limited task API.

VirtualClock drives both the engine's waits and the simulated quota, so a
run that would take minutes against a real API completes instantly and
reproducibly.

Usage:
    clock = VirtualClock()
    api = SimulatedTasksApi(clock, rate=2.0, burst=5)
    runner = BulkRunner(clock=clock.now, sleep=clock.sleep)
    result = await TaskBulkService(api, runner).bulk_insert("inbox", tasks)
"""

from __future__ import annotations

import asyncio
import itertools
import random
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable

from taskbulk.config.constants import TASKS_PAGE_SIZE
from taskbulk.observability.logger import get_logger
from taskbulk.tasks import TaskPage

logger = get_logger(__name__)


class VirtualClock:
    """Clock whose time only moves when something sleeps.

    Args:
        start: Initial reading in seconds
        scale: Fraction of each sleep to also wait for real (0 = none)
    """

    def __init__(self, start: float = 0.0, scale: float = 0.0) -> None:
        self._now = start
        self.scale = scale
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self._now += seconds
        # Always yield so other tasks can run, as a real sleep would
        await asyncio.sleep(seconds * self.scale if self.scale > 0 else 0)

    @property
    def slept_ms(self) -> list[int]:
        """Every sleep so far, in whole milliseconds."""
        return [round(s * 1000) for s in self.sleeps]

    @property
    def total_slept_ms(self) -> int:
        return sum(self.slept_ms)


class SimulatedApiError(Exception):
    """Error shaped like the ones raised by the real API client."""

    def __init__(self, message: str, status: int) -> None:
        super().__init__(message)
        self.status = status
        self.result = {"error": {"code": status, "message": message}}


@dataclass
class TokenBucket:
    """Token bucket quota: `burst` requests at once, refilled at `rate` per second."""

    rate: float
    burst: int
    clock: Callable[[], float]

    _tokens: float = field(init=False)
    _last_refill: float = field(init=False)

    def __post_init__(self) -> None:
        """Initialize bucket to full capacity."""
        self._tokens = float(self.burst)
        self._last_refill = self.clock()

    def try_acquire(self, tokens: int = 1) -> bool:
        """Take tokens if available, without waiting."""
        now = self.clock()
        elapsed = now - self._last_refill
        self._tokens = min(self.burst, self._tokens + elapsed * self.rate)
        self._last_refill = now

        if self._tokens >= tokens:
            self._tokens -= tokens
            return True
        return False

    @property
    def available_tokens(self) -> float:
        elapsed = self.clock() - self._last_refill
        return min(self.burst, self._tokens + elapsed * self.rate)


class SimulatedTasksApi:
    """In-memory task API with a bursty quota and random transient errors.

    Args:
        clock: Clock shared with the engine
        rate: Sustained requests per second the quota allows
        burst: Requests allowed back-to-back before the quota bites
        transient_rate: Probability (0-1) of a 503 on an admitted request
        seed: Seed for the transient error generator
    """

    QUOTA_MESSAGE = "Quota exceeded for quota metric 'Queries' and limit 'Queries per minute per user'"

    def __init__(
        self,
        clock: VirtualClock,
        *,
        rate: float = 2.0,
        burst: int = 10,
        transient_rate: float = 0.0,
        seed: int = 0,
    ) -> None:
        self.clock = clock
        self.bucket = TokenBucket(rate=rate, burst=burst, clock=clock.now)
        self.transient_rate = transient_rate
        self._random = random.Random(seed)
        self._ids = itertools.count(1)
        self.lists: dict[str, dict[str, dict[str, Any]]] = {}
        self.requests = 0
        self.rejected = 0

    # ------------------------------------------------------------------
    # Fixtures
    # ------------------------------------------------------------------

    def add_list(self, list_id: str) -> dict[str, dict[str, Any]]:
        return self.lists.setdefault(list_id, {})

    def seed_tasks(self, list_id: str, count: int, prefix: str = "Task") -> list[str]:
        """Create `count` tasks directly (no quota). Returns their ids."""
        tasks = self.add_list(list_id)
        ids = []
        for n in range(count):
            task = self._new_task({"title": f"{prefix} {n + 1}"})
            tasks[task["id"]] = task
            ids.append(task["id"])
        return ids

    # ------------------------------------------------------------------
    # TasksApi
    # ------------------------------------------------------------------

    async def list_tasks(
        self,
        list_id: str,
        *,
        page_token: str | None = None,
        max_results: int = TASKS_PAGE_SIZE,
        show_completed: bool = False,
        show_hidden: bool = False,
    ) -> TaskPage:
        self._admit()
        tasks = [
            t
            for t in self._list(list_id).values()
            if show_completed or t.get("status") != "completed"
        ]
        start = int(page_token) if page_token else 0
        end = start + max_results
        return TaskPage(
            items=[dict(t) for t in tasks[start:end]],
            next_page_token=str(end) if end < len(tasks) else None,
        )

    async def insert_task(self, list_id: str, task: Mapping[str, Any]) -> dict[str, Any]:
        self._admit()
        created = self._new_task(task)
        self._list(list_id)[created["id"]] = created
        return dict(created)

    async def update_task(
        self, list_id: str, task_id: str, resource: Mapping[str, Any]
    ) -> dict[str, Any]:
        self._admit()
        tasks = self._list(list_id)
        if task_id not in tasks:
            raise SimulatedApiError("Not Found", 404)
        tasks[task_id] = {**resource, "id": task_id}
        return dict(tasks[task_id])

    async def move_task(
        self,
        list_id: str,
        task_id: str,
        *,
        parent: str | None = None,
        previous: str | None = None,
        destination_list: str | None = None,
    ) -> dict[str, Any]:
        self._admit()
        source = self._list(list_id)
        if task_id not in source:
            raise SimulatedApiError("Not Found", 404)

        target = self._list(destination_list) if destination_list else source
        task = source.pop(task_id)
        if parent:
            task["parent"] = parent
        target[task_id] = task
        return dict(task)

    # ------------------------------------------------------------------

    def _admit(self) -> None:
        self.requests += 1
        if not self.bucket.try_acquire():
            self.rejected += 1
            raise SimulatedApiError(self.QUOTA_MESSAGE, 403)
        if self.transient_rate > 0 and self._random.random() < self.transient_rate:
            raise SimulatedApiError("Backend Error", 503)

    def _list(self, list_id: str) -> dict[str, dict[str, Any]]:
        if list_id not in self.lists:
            raise SimulatedApiError("Task list not found", 404)
        return self.lists[list_id]

    def _new_task(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        return {**fields, "id": f"task-{next(self._ids)}", "status": "needsAction"}
