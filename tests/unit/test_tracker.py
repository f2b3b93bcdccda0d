"""Unit tests for the task state tracker."""

import asyncio

import pytest

from accessfix.db import SqlPlanStore
from accessfix.errors import ConcurrentModificationError, PlanNotFoundError, TaskNotFoundError
from accessfix.orchestrator.planner import PlanBuilder
from accessfix.orchestrator.tracker import StatusUpdate, TaskStateTracker, summarize


@pytest.fixture
def raw_issues(make_issue):
    return [
        make_issue("EPUB-META-001", "content.opf", severity="critical"),
        make_issue("EPUB-IMG-001", "ch1.xhtml", severity="serious"),
        make_issue("PDF-READING-ORDER", "", severity="moderate"),
        make_issue("HEADING-SKIP", "ch2.xhtml", severity="critical"),
    ]


class TestTaskStateTracker:
    """Test cases for status transitions."""

    @pytest.mark.asyncio
    async def test_complete_stamps_resolution(self, memory_store, raw_issues):
        plan = await PlanBuilder(memory_store).build_plan("job-1", raw_issues)
        tracker = TaskStateTracker(memory_store)
        task_id = plan.tasks[0].id

        task = await tracker.complete_task("job-1", task_id, "Added dc:language", "alice")

        assert task.status == "COMPLETED"
        assert task.resolution == "Added dc:language"
        assert task.resolved_by == "alice"
        assert task.resolved_at is not None
        assert task.version == 2

        latest = await memory_store.get_latest("job-1")
        assert latest.stats.by_status["COMPLETED"] == 1
        assert latest.stats.by_status["PENDING"] == 3

    @pytest.mark.asyncio
    async def test_in_progress_does_not_stamp(self, memory_store, raw_issues):
        plan = await PlanBuilder(memory_store).build_plan("job-1", raw_issues)
        task = await TaskStateTracker(memory_store).start_task("job-1", plan.tasks[0].id)

        assert task.status == "IN_PROGRESS"
        assert task.resolved_at is None

    @pytest.mark.asyncio
    async def test_any_status_may_follow_any_other(self, memory_store, raw_issues):
        plan = await PlanBuilder(memory_store).build_plan("job-1", raw_issues)
        tracker = TaskStateTracker(memory_store)
        task_id = plan.tasks[0].id

        await tracker.update_status("job-1", task_id, "FAILED", "broke", "bot")
        task = await tracker.update_status("job-1", task_id, "PENDING")

        assert task.status == "PENDING"

    @pytest.mark.asyncio
    async def test_skip_records_reason(self, memory_store, raw_issues):
        plan = await PlanBuilder(memory_store).build_plan("job-1", raw_issues)
        task = await TaskStateTracker(memory_store).skip_task("job-1", plan.tasks[1].id, "Out of scope")

        assert task.status == "SKIPPED"
        assert task.notes == "Out of scope"

    @pytest.mark.asyncio
    async def test_mark_manual_fixed(self, memory_store, raw_issues):
        plan = await PlanBuilder(memory_store).build_plan("job-1", raw_issues)
        task = await TaskStateTracker(memory_store).mark_manual_fixed(
            "job-1", plan.tasks[2].id, resolved_by="bob", notes="Fixed in InDesign"
        )

        assert task.status == "COMPLETED"
        assert task.completion_method == "manual"
        assert task.resolution == "Manually verified and fixed"
        assert task.notes == "Fixed in InDesign"

    @pytest.mark.asyncio
    async def test_unknown_status(self, memory_store, raw_issues):
        plan = await PlanBuilder(memory_store).build_plan("job-1", raw_issues)
        with pytest.raises(ValueError):
            await TaskStateTracker(memory_store).update_status("job-1", plan.tasks[0].id, "DONE")

    @pytest.mark.asyncio
    async def test_missing_plan(self, memory_store):
        with pytest.raises(PlanNotFoundError):
            await TaskStateTracker(memory_store).update_status("nope", "task-x", "COMPLETED")

    @pytest.mark.asyncio
    async def test_missing_task(self, memory_store, raw_issues):
        await PlanBuilder(memory_store).build_plan("job-1", raw_issues)
        with pytest.raises(TaskNotFoundError):
            await TaskStateTracker(memory_store).update_status("job-1", "task-missing", "COMPLETED")

    @pytest.mark.asyncio
    async def test_batched_updates_are_atomic(self, memory_store, raw_issues):
        plan = await PlanBuilder(memory_store).build_plan("job-1", raw_issues)
        tracker = TaskStateTracker(memory_store)

        with pytest.raises(TaskNotFoundError):
            await tracker.update_statuses("job-1", [
                StatusUpdate(plan.tasks[0].id, "COMPLETED"),
                StatusUpdate("task-missing", "COMPLETED"),
            ])

        latest = await memory_store.get_latest("job-1")
        assert latest.stats.by_status["PENDING"] == 4

    @pytest.mark.asyncio
    async def test_retries_lost_race(self, memory_store, raw_issues, monkeypatch):
        plan = await PlanBuilder(memory_store).build_plan("job-1", raw_issues)
        tracker = TaskStateTracker(memory_store, retry_attempts=3)
        original = memory_store.mutate_tasks
        calls = []

        async def flaky(job_id, task_ids, mutate):
            calls.append(job_id)
            if len(calls) == 1:
                raise ConcurrentModificationError("lost race")
            return await original(job_id, task_ids, mutate)

        monkeypatch.setattr(memory_store, "mutate_tasks", flaky)
        task = await tracker.start_task("job-1", plan.tasks[0].id)

        assert task.status == "IN_PROGRESS"
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_concurrent_updates_lose_nothing(self, database, raw_issues):
        store = SqlPlanStore(database)
        plan = await PlanBuilder(store).build_plan("job-1", raw_issues)
        tracker = TaskStateTracker(store)

        await asyncio.gather(*(
            tracker.complete_task("job-1", task.id, "done", "worker")
            for task in plan.tasks
        ))

        latest = await store.get_latest("job-1")
        assert latest.stats.by_status["COMPLETED"] == 4
        assert sum(latest.stats.by_status.values()) == latest.total_issues


class TestSummary:
    @pytest.mark.asyncio
    async def test_summary(self, memory_store, raw_issues):
        plan = await PlanBuilder(memory_store).build_plan("job-1", raw_issues)
        tracker = TaskStateTracker(memory_store)
        await tracker.complete_task("job-1", plan.tasks[0].id, "done", "bot")

        summary = await tracker.get_summary("job-1")

        assert summary["totalTasks"] == 4
        assert summary["completionPercentage"] == 25
        assert summary["stats"]["byStatus"]["COMPLETED"] == 1
        assert summary["stats"]["byType"]["MANUAL"] == 2
        # two critical tasks, one completed
        assert summary["criticalRemaining"] == 1
        assert summary["estimatedTimeMinutes"] == 10

    def test_empty_plan_is_complete(self, memory_store):
        plan = PlanBuilder(memory_store).compile_plan("job-1", [])
        assert summarize(plan)["completionPercentage"] == 100
