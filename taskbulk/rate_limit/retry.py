"""Classify-and-retry loop for a single work item.

Per failure class:
- RATE_LIMITED: back the controller off, wait min(1000 + 1000 * hits, 10000)ms,
  retry the same item. Never exhausts.
- TRANSIENT: wait base * 2^attempts, give up after max_retries attempts.
- FATAL: record immediately.

Failures of any class also feed a run-wide circuit breaker: after
`circuit_breaker_threshold` consecutive failures the whole run pauses.
"""

from __future__ import annotations

import inspect
from typing import Any, Callable, TypeVar

from taskbulk.core.types import Failure, FailureClass, OperationResult, Success, WorkItem
from taskbulk.observability.logger import get_logger, log_context

from .backoff import rate_limit_backoff, transient_backoff
from .classifier import ErrorClassifier, error_message
from .context import RunContext

logger = get_logger(__name__)

T = TypeVar("T")

Operation = Callable[[Any, int], Any]

UNKNOWN_ERROR = "Unknown error after maximum retries"


async def call_operation(operation: Operation, payload: Any, index: int) -> Any:
    """Invoke a sync or async single-item operation."""
    result = operation(payload, index)
    if inspect.isawaitable(result):
        result = await result
    return result


class RetryExecutor:
    """Retry executor bound to one run.

    Usage:
        executor = RetryExecutor(context)
        result = await executor.attempt(item, operation)  # Success | Failure
    """

    def __init__(
        self,
        context: RunContext,
        classifier: ErrorClassifier | None = None,
    ) -> None:
        self.context = context
        self.classifier = classifier or ErrorClassifier()
        self._transient_backoff = transient_backoff(context.profile)
        self._rate_limit_backoff = rate_limit_backoff(context.profile)

        # Run-wide counters, reset by any success
        self.consecutive_failures = 0
        self.consecutive_rate_limits = 0

    async def attempt(self, item: WorkItem[T], operation: Operation) -> OperationResult:
        """Run `operation` on `item` until it succeeds or is abandoned.

        Never raises for errors raised by the operation.
        """
        context = self.context
        attempts = 0
        requests = 0

        while True:
            requests += 1
            context.request_started()
            try:
                response = await call_operation(operation, item.payload, item.index)
            except Exception as e:
                failure_class = self.classifier.classify(e)
                message = error_message(e)
                self.consecutive_failures += 1

                with log_context(item_index=item.index, attempt=requests):
                    if failure_class is FailureClass.RATE_LIMITED:
                        await self._on_rate_limit(message)
                        await self._check_circuit_breaker()
                        continue

                    if failure_class is FailureClass.FATAL:
                        logger.error(f"Fatal error, not retrying: {message}")
                        context.metrics.record_fatal()
                        await self._check_circuit_breaker()
                        return self._fail(item, message, failure_class, requests)

                    attempts += 1
                    logger.warning(
                        f"Error (attempt {attempts}/{context.profile.max_retries}): "
                        f"{message or 'Unknown error'}"
                    )
                    await context.wait(
                        self._transient_backoff.next_delay(attempts), "transient_backoff"
                    )
                    await self._check_circuit_breaker()

                    if attempts >= context.profile.max_retries:
                        logger.error(f"Failed after {attempts} attempts")
                        return self._fail(item, message or UNKNOWN_ERROR, failure_class, requests)

                    context.metrics.record_transient_retry()
                    continue

            self.consecutive_failures = 0
            self.consecutive_rate_limits = 0
            context.controller.on_success()
            context.recovered()
            context.metrics.record_success()
            return Success(item=item, response=response, attempts=requests)

    async def _on_rate_limit(self, message: str) -> None:
        context = self.context
        self.consecutive_rate_limits += 1
        context.metrics.record_rate_limit()
        context.rate_limit_hit()
        context.controller.on_rate_limit()

        backoff_ms = self._rate_limit_backoff.next_delay(self.consecutive_rate_limits)
        logger.warning(
            f"Rate limit/quota hit, backing off for {backoff_ms}ms",
            extra={"error": message, "consecutive_hits": self.consecutive_rate_limits},
        )
        await context.wait(backoff_ms, "rate_limit_backoff")

    async def _check_circuit_breaker(self) -> None:
        profile = self.context.profile
        if self.consecutive_failures < profile.circuit_breaker_threshold:
            return

        logger.warning(
            f"{self.consecutive_failures} consecutive errors, "
            f"pausing for {profile.circuit_breaker_pause_ms}ms"
        )
        self.context.metrics.record_circuit_breaker_pause()
        await self.context.wait(profile.circuit_breaker_pause_ms, "circuit_breaker")
        self.consecutive_failures = 0

    def _fail(
        self,
        item: WorkItem[T],
        message: str,
        failure_class: FailureClass,
        attempts: int,
    ) -> Failure[T]:
        self.context.metrics.record_failure(failure_class.value)
        return Failure(item=item, error=message, failure_class=failure_class, attempts=attempts)

    def reject(self, item: WorkItem[T], error: BaseException) -> Failure[T]:
        """Record `item` as failed without attempting it.

        Used for items that can never be sent, e.g. missing from a
        pre-fetched snapshot. Consumes no retry slot and issues no request.
        """
        message = error_message(error)
        with log_context(item_index=item.index):
            logger.warning(f"Item rejected: {message}")
        self.context.metrics.record_fatal()
        return self._fail(item, message, FailureClass.FATAL, attempts=0)
