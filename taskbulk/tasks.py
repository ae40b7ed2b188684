"""Task-level bulk operations on top of the engine.

The remote API itself is a collaborator: anything implementing TasksApi
(an HTTP client, the in-memory simulator, a test double) can be driven.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from taskbulk.config.constants import TASKS_PAGE_SIZE
from taskbulk.config.profiles import EngineProfile, legacy_profile_for
from taskbulk.core.errors import ApiError, AuthError, BulkError, RateLimitError
from taskbulk.core.types import BulkResult
from taskbulk.observability.logger import get_logger, log_context
from taskbulk.observability.telemetry import ProgressCallback
from taskbulk.rate_limit.classifier import RATE_LIMIT_STATUSES, error_message, error_status
from taskbulk.rate_limit.runner import BulkRunner

logger = get_logger(__name__)


@dataclass
class TaskPage:
    """One page of a task listing."""

    items: list[dict[str, Any]] = field(default_factory=list)
    next_page_token: str | None = None


class TasksApi(Protocol):
    """Single-request operations of the remote task API."""

    async def list_tasks(
        self,
        list_id: str,
        *,
        page_token: str | None = None,
        max_results: int = TASKS_PAGE_SIZE,
        show_completed: bool = False,
        show_hidden: bool = False,
    ) -> TaskPage: ...

    async def insert_task(self, list_id: str, task: Mapping[str, Any]) -> dict[str, Any]: ...

    async def update_task(
        self, list_id: str, task_id: str, resource: Mapping[str, Any]
    ) -> dict[str, Any]: ...

    async def move_task(
        self,
        list_id: str,
        task_id: str,
        *,
        parent: str | None = None,
        previous: str | None = None,
        destination_list: str | None = None,
    ) -> dict[str, Any]: ...


@dataclass(frozen=True)
class TaskUpdate:
    """Fields to change on one existing task."""

    task_id: str
    fields: Mapping[str, Any]


def normalize_api_error(error: Exception) -> BulkError:
    """Map a raw API error onto the engine's error hierarchy.

    401 → AuthError, 429/403 → RateLimitError, anything else → ApiError
    carrying the original message and status.

    AuthError is fatal, so an expired session abandons the item at once.
    Raw auth errors that bypass this function carry no rate-limit indicator
    and are retried as transient by the classifier instead.
    """
    if isinstance(error, BulkError):
        return error

    status = error_status(error)
    if status == 401:
        return AuthError()
    if status in RATE_LIMIT_STATUSES:
        return RateLimitError(status=status)

    return ApiError(
        error_message(error) or "Unknown error occurred",
        status=status,
        result=getattr(error, "result", None),
    )


async def fetch_all_tasks(
    api: TasksApi,
    list_id: str,
    show_completed: bool = False,
    show_hidden: bool = False,
) -> list[dict[str, Any]]:
    """Fetch every task of a list, following page tokens.

    Raises:
        BulkError: If any page request fails
    """
    tasks: list[dict[str, Any]] = []
    page_token: str | None = None

    while True:
        try:
            page = await api.list_tasks(
                list_id,
                page_token=page_token,
                max_results=TASKS_PAGE_SIZE,
                show_completed=show_completed,
                show_hidden=show_hidden,
            )
        except Exception as e:
            logger.error(f"Failed to fetch tasks page: {e}")
            raise normalize_api_error(e) from e

        tasks.extend(page.items)
        logger.debug(f"Fetched {len(page.items)} tasks (total: {len(tasks)})")

        page_token = page.next_page_token
        if not page_token:
            break

    logger.info(f"Fetched all {len(tasks)} tasks from list")
    return tasks


class TaskBulkService:
    """Bulk insert, update and move of tasks.

    Usage:
        service = TaskBulkService(api, BulkRunner())
        result = await service.bulk_move("inbox", "archive", task_ids)
    """

    def __init__(
        self,
        api: TasksApi,
        runner: BulkRunner | None = None,
        *,
        legacy_tiers: bool = False,
    ) -> None:
        """
        Args:
            api: Remote task API
            runner: Engine to drive the requests (default profile if None)
            legacy_tiers: Pick the starting delay and retry cap from the batch size
        """
        self.api = api
        self.runner = runner or BulkRunner()
        self.legacy_tiers = legacy_tiers

    async def bulk_insert(
        self,
        list_id: str,
        tasks: Iterable[Mapping[str, Any]],
        *,
        on_progress: ProgressCallback | None = None,
        stop_on_failure: bool = False,
    ) -> BulkResult:
        """Insert tasks into a list. Continues past failures by default."""
        tasks = list(tasks)

        async def insert(task: Mapping[str, Any], index: int) -> dict[str, Any]:
            try:
                return await self.api.insert_task(list_id, task)
            except Exception as e:
                raise normalize_api_error(e) from e

        with log_context(list_id=list_id):
            return await self.runner.run(
                tasks,
                insert,
                on_progress=on_progress,
                stop_on_failure=stop_on_failure,
                operation_name="insert",
                profile=self._profile_for(len(tasks)),
            )

    async def bulk_update(
        self,
        list_id: str,
        updates: Iterable[TaskUpdate],
        *,
        on_progress: ProgressCallback | None = None,
        stop_on_failure: bool = True,
    ) -> BulkResult:
        """Update task fields, merging each update onto the current task.

        The list is fetched once up front; a failure there propagates.
        """
        updates = list(updates)

        async def snapshot() -> list[dict[str, Any]]:
            return await fetch_all_tasks(self.api, list_id)

        async def update(resource: dict[str, Any], index: int) -> dict[str, Any]:
            try:
                return await self.api.update_task(list_id, resource["id"], resource)
            except Exception as e:
                raise normalize_api_error(e) from e

        with log_context(list_id=list_id):
            logger.info("Pre-fetching all tasks from list for bulk update")
            return await self.runner.run_merged_updates(
                updates,
                snapshot,
                update,
                item_id=lambda u: u.task_id,
                fields=lambda u: u.fields,
                on_progress=on_progress,
                stop_on_failure=stop_on_failure,
                operation_name="update",
                profile=self._profile_for(len(updates)),
            )

    async def bulk_move(
        self,
        source_list_id: str,
        destination_list_id: str,
        task_ids: Iterable[str],
        *,
        on_progress: ProgressCallback | None = None,
        stop_on_failure: bool = True,
    ) -> BulkResult:
        """Move tasks from one list to another."""
        task_ids = list(task_ids)

        async def move(task_id: str, index: int) -> dict[str, Any]:
            try:
                return await self.api.move_task(
                    source_list_id, task_id, destination_list=destination_list_id
                )
            except Exception as e:
                raise normalize_api_error(e) from e

        with log_context(list_id=source_list_id):
            return await self.runner.run(
                task_ids,
                move,
                on_progress=on_progress,
                stop_on_failure=stop_on_failure,
                operation_name="move",
                profile=self._profile_for(len(task_ids)),
            )

    def _profile_for(self, count: int) -> EngineProfile | None:
        if self.legacy_tiers:
            return legacy_profile_for(count)
        return None
