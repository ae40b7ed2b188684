"""Sequential bulk driver.

Items are processed strictly one at a time, in input order, so every
outcome can be attributed to the delay that preceded it.

Usage:
    runner = BulkRunner(profile=EngineProfile.canonical())

    result = await runner.run(
        tasks,
        lambda task, index: api.insert_task(list_id, task),
        on_progress=lambda done, total, thresholds: print(done, total),
    )
    if result.stopped:
        ...
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Callable, Hashable, Iterable, Mapping
from typing import Any

from taskbulk.config.profiles import EngineProfile
from taskbulk.core.errors import ItemNotFoundError
from taskbulk.core.types import BulkResult, Failure, OperationResult, WorkItem
from taskbulk.observability.logger import get_logger, log_context
from taskbulk.observability.telemetry import ProgressCallback, RunObservers

from .classifier import ErrorClassifier
from .context import Clock, RunContext, SleepFn
from .retry import Operation, RetryExecutor, call_operation

logger = get_logger(__name__)

# Turns an item's payload into the payload actually sent. Any error it raises
# fails the item as fatal without a request being made
Prepare = Callable[[Any], Any]


def merge_item(snapshot_item: Mapping[str, Any], fields: Mapping[str, Any]) -> dict[str, Any]:
    """Full resource representation: snapshot fields overridden by updates."""
    return {**snapshot_item, **fields}


def build_index(
    snapshot: Iterable[Mapping[str, Any]],
    key: str = "id",
) -> dict[Hashable, Mapping[str, Any]]:
    """Index snapshot items by identifier. Later duplicates win."""
    return {item[key]: item for item in snapshot}


class BulkRunner:
    """Drive a sequence of single-item mutations with adaptive pacing.

    The runner holds configuration only. Every call to run() creates a
    fresh RunContext, so no rate-limit learning leaks between runs.
    """

    def __init__(
        self,
        profile: EngineProfile | None = None,
        *,
        observers: RunObservers | None = None,
        classifier: ErrorClassifier | None = None,
        clock: Clock = time.monotonic,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.profile = profile or EngineProfile.canonical()
        self.observers = observers or RunObservers()
        self.classifier = classifier or ErrorClassifier()
        self.clock = clock
        self.sleep = sleep

    async def run(
        self,
        items: Iterable[Any],
        operation: Operation,
        *,
        on_progress: ProgressCallback | None = None,
        stop_on_failure: bool = True,
        operation_name: str = "bulk",
        profile: EngineProfile | None = None,
    ) -> BulkResult:
        """Run `operation(payload, index)` over every item.

        Args:
            items: Payloads to process, in order
            operation: Sync or async single-item mutation
            on_progress: Called as (completed, total, thresholds) after each item
            stop_on_failure: Abandon remaining items after the first failure
            operation_name: Label used in logs and metrics
            profile: Override the runner's profile for this run only

        Returns:
            BulkResult; per-item errors never propagate
        """
        return await self._run(
            items,
            operation,
            on_progress=on_progress,
            stop_on_failure=stop_on_failure,
            operation_name=operation_name,
            profile=profile,
        )

    async def run_merged_updates(
        self,
        updates: Iterable[Any],
        fetch_snapshot: Callable[[], Any],
        operation: Operation,
        *,
        item_id: Callable[[Any], Hashable],
        fields: Callable[[Any], Mapping[str, Any]],
        key: str = "id",
        on_progress: ProgressCallback | None = None,
        stop_on_failure: bool = True,
        operation_name: str = "update",
        profile: EngineProfile | None = None,
    ) -> BulkResult:
        """Apply field updates that require a full resource representation.

        The snapshot is fetched once up front; each update is merged onto its
        snapshot item before `operation(merged, index)` is called. An update
        that cannot be prepared fails as fatal without a request being made:
        its id is missing from the snapshot (ItemNotFoundError), or its
        `item_id` or `fields` accessor raises.

        Raises:
            Whatever `fetch_snapshot` raises: no item can be processed without it
        """
        snapshot = fetch_snapshot()
        if inspect.isawaitable(snapshot):
            snapshot = await snapshot
        index = build_index(snapshot, key=key)
        logger.info(f"Built snapshot index with {len(index)} items")

        def prepare(update: Any) -> dict[str, Any]:
            target = item_id(update)
            current = index.get(target)
            if current is None:
                raise ItemNotFoundError(item_id=str(target))
            return merge_item(current, fields(update))

        return await self._run(
            updates,
            operation,
            prepare=prepare,
            on_progress=on_progress,
            stop_on_failure=stop_on_failure,
            operation_name=operation_name,
            profile=profile,
        )

    async def _run(
        self,
        items: Iterable[Any],
        operation: Operation,
        *,
        prepare: Prepare | None = None,
        on_progress: ProgressCallback | None,
        stop_on_failure: bool,
        operation_name: str,
        profile: EngineProfile | None,
    ) -> BulkResult:
        work = [WorkItem(index=i, payload=payload) for i, payload in enumerate(items)]
        total = len(work)

        context = RunContext.create(
            operation=operation_name,
            total=total,
            profile=profile or self.profile,
            observers=self.observers,
            clock=self.clock,
            sleep=self.sleep,
        )
        executor = RetryExecutor(context, self.classifier)
        result = BulkResult(metrics=context.metrics)

        with log_context(run_id=context.run_id, operation=operation_name):
            logger.info(
                f"Starting bulk {operation_name} of {total} items "
                f"with {context.controller.current}ms delay and "
                f"{context.profile.max_retries} max retries"
            )
            logger.debug(f"Stop on failure: {stop_on_failure}")
            context.controller.announce()

            try:
                for item in work:
                    outcome = await self._process(executor, item, operation, prepare)

                    if isinstance(outcome, Failure):
                        result.failed.append(outcome)
                        if stop_on_failure:
                            logger.error(f"Stopping bulk {operation_name} due to failure")
                            result.stopped = True
                            break
                    else:
                        result.successful.append(outcome)

                    if on_progress is not None:
                        on_progress(item.index + 1, total, context.controller.snapshot())

                    if item.index < total - 1:
                        await context.wait(context.controller.current, "inter_item")
            finally:
                context.finish(stopped=result.stopped)

            status = "STOPPED" if result.stopped else "complete"
            logger.info(
                f"Bulk {operation_name} {status}: "
                f"{result.success_count} successful, {result.failure_count} failed",
                extra=context.metrics.to_dict(),
            )

        return result

    async def _process(
        self,
        executor: RetryExecutor,
        item: WorkItem[Any],
        operation: Operation,
        prepare: Prepare | None,
    ) -> OperationResult:
        if prepare is None:
            return await executor.attempt(item, operation)

        try:
            payload = prepare(item.payload)
        except Exception as e:
            return executor.reject(item, e)

        async def bound(_payload: Any, index: int) -> Any:
            return await call_operation(operation, payload, index)

        return await executor.attempt(item, bound)
