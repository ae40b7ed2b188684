"""Tests for taskbulk/tasks.py against the simulated API and mocks."""

from unittest.mock import AsyncMock

import pytest

from taskbulk.core.errors import ApiError, AuthError, RateLimitError
from taskbulk.core.types import FailureClass, RunOutcome
from taskbulk.rate_limit import BulkRunner, classify_failure
from taskbulk.simulation import SimulatedApiError, SimulatedTasksApi
from taskbulk.tasks import TaskBulkService, TaskUpdate, fetch_all_tasks, normalize_api_error


@pytest.fixture
def api(clock):
    api = SimulatedTasksApi(clock, rate=2.0, burst=10)
    api.add_list("inbox")
    api.add_list("archive")
    return api


@pytest.fixture
def service(api, runner):
    return TaskBulkService(api, runner)


# =============================================================================
# Error Normalization
# =============================================================================


class TestNormalizeApiError:
    def test_unauthorized(self):
        error = normalize_api_error(SimulatedApiError("Invalid Credentials", 401))
        assert isinstance(error, AuthError)
        assert error.failure_class is FailureClass.FATAL

    def test_raw_unauthorized_is_transient(self):
        """Only the normalized error is fatal; the raw one is retried."""
        raw = SimulatedApiError("Invalid Credentials", 401)
        assert classify_failure(raw) is FailureClass.TRANSIENT
        assert classify_failure(normalize_api_error(raw)) is FailureClass.FATAL

    @pytest.mark.parametrize("status", [403, 429])
    def test_rate_limited(self, status):
        error = normalize_api_error(SimulatedApiError("Slow down", status))
        assert isinstance(error, RateLimitError)
        assert error.status == status

    def test_other_errors_keep_message(self):
        raw = SimulatedApiError("Backend Error", 503)
        error = normalize_api_error(raw)

        assert type(error) is ApiError
        assert error.message == "Backend Error"
        assert error.status == 503
        assert error.result == raw.result

    def test_empty_message(self):
        error = normalize_api_error(SimulatedApiError("", 500))
        assert error.message == "Unknown error occurred"

    def test_engine_errors_pass_through(self):
        original = AuthError()
        assert normalize_api_error(original) is original


# =============================================================================
# Listing
# =============================================================================


class TestFetchAllTasks:
    @pytest.mark.asyncio
    async def test_follows_page_tokens(self, api):
        ids = api.seed_tasks("inbox", 250)

        tasks = await fetch_all_tasks(api, "inbox")

        assert [t["id"] for t in tasks] == ids
        assert api.requests == 3

    @pytest.mark.asyncio
    async def test_completed_hidden_by_default(self, api):
        ids = api.seed_tasks("inbox", 3)
        api.lists["inbox"][ids[0]]["status"] = "completed"

        assert len(await fetch_all_tasks(api, "inbox")) == 2
        assert len(await fetch_all_tasks(api, "inbox", show_completed=True)) == 3

    @pytest.mark.asyncio
    async def test_unknown_list(self, api):
        with pytest.raises(ApiError, match="Task list not found"):
            await fetch_all_tasks(api, "nope")

    @pytest.mark.asyncio
    async def test_quota_error_normalized(self, clock):
        api = SimulatedTasksApi(clock, burst=0)
        api.add_list("inbox")

        with pytest.raises(RateLimitError):
            await fetch_all_tasks(api, "inbox")


# =============================================================================
# Bulk Operations
# =============================================================================


class TestBulkInsert:
    @pytest.mark.asyncio
    async def test_adapts_to_quota(self, clock, runner):
        api = SimulatedTasksApi(clock, rate=2.0, burst=5)
        api.add_list("inbox")
        service = TaskBulkService(api, runner)
        tasks = [{"title": f"Task {n}"} for n in range(30)]

        result = await service.bulk_insert("inbox", tasks)

        assert result.success_count == 30
        assert len(api.lists["inbox"]) == 30
        assert result.metrics.rate_limit_hits > 0
        assert result.metrics.rate_limit_hits == api.rejected
        assert [r["title"] for r in result.responses] == [t["title"] for t in tasks]

    @pytest.mark.asyncio
    async def test_continues_past_failures_by_default(self, runner):
        api = AsyncMock()
        api.insert_task.side_effect = [
            {"id": "1"},
            SimulatedApiError("Invalid Credentials", 401),
            {"id": "3"},
        ]
        service = TaskBulkService(api, runner)

        result = await service.bulk_insert("inbox", [{"title": "a"}, {"title": "b"}, {"title": "c"}])

        assert result.outcome is RunOutcome.COMPLETED_WITH_FAILURES
        assert result.success_count == 2
        failure = result.failed[0]
        assert failure.failure_class is FailureClass.FATAL
        assert failure.error == "Authentication expired. Please sign in again."
        assert api.insert_task.await_count == 3
        api.insert_task.assert_any_await("inbox", {"title": "b"})


class TestBulkUpdate:
    @pytest.mark.asyncio
    async def test_merges_onto_current_task(self, api, service):
        ids = api.seed_tasks("inbox", 3)
        updates = [TaskUpdate(task_id=i, fields={"notes": "updated"}) for i in ids]

        result = await service.bulk_update("inbox", updates)

        assert result.success_count == 3
        for n, task_id in enumerate(ids):
            task = api.lists["inbox"][task_id]
            assert task["notes"] == "updated"
            assert task["title"] == f"Task {n + 1}"

    @pytest.mark.asyncio
    async def test_missing_task_stops(self, api, service):
        ids = api.seed_tasks("inbox", 4)
        ids.insert(2, "missing-1")
        updates = [TaskUpdate(task_id=i, fields={"notes": "x"}) for i in ids]

        result = await service.bulk_update("inbox", updates)

        assert result.stopped is True
        assert result.success_count == 2
        assert result.failed[0].error == "Task not found in list"
        # One listing request plus two updates
        assert api.requests == 3

    @pytest.mark.asyncio
    async def test_snapshot_failure_propagates(self, service):
        with pytest.raises(ApiError):
            await service.bulk_update("nope", [TaskUpdate("t1", {"notes": "x"})])


class TestBulkMove:
    @pytest.mark.asyncio
    async def test_moves_between_lists(self, api, service):
        ids = api.seed_tasks("inbox", 5)

        result = await service.bulk_move("inbox", "archive", ids)

        assert result.success_count == 5
        assert api.lists["inbox"] == {}
        assert list(api.lists["archive"]) == ids

    @pytest.mark.asyncio
    async def test_transient_error_retried(self, runner):
        api = AsyncMock()
        api.move_task.side_effect = [SimulatedApiError("Backend Error", 503), {"id": "t1"}]
        service = TaskBulkService(api, runner)

        result = await service.bulk_move("inbox", "archive", ["t1"])

        assert result.successful[0].attempts == 2
        api.move_task.assert_awaited_with("inbox", "t1", destination_list="archive")

    @pytest.mark.asyncio
    async def test_legacy_tiers(self, api, clock):
        runner = BulkRunner(clock=clock.now, sleep=clock.sleep)
        service = TaskBulkService(api, runner, legacy_tiers=True)
        ids = api.seed_tasks("inbox", 3)

        await service.bulk_move("inbox", "archive", ids)

        # Small batches start at 100ms
        assert clock.slept_ms == [100, 100]
