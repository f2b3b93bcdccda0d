"""Unit tests for plan persistence and optimistic concurrency."""

import pytest

from accessfix.db import InMemoryPlanStore, SqlPlanStore
from accessfix.errors import ConcurrentModificationError, PlanNotFoundError, TaskNotFoundError
from accessfix.models.plans import RemediationPlan
from accessfix.orchestrator.planner import PlanBuilder


@pytest.fixture(params=["sql", "memory"])
def store(request, database):
    if request.param == "sql":
        return SqlPlanStore(database)
    return InMemoryPlanStore()


@pytest.fixture
def raw_issues(make_issue):
    return [
        make_issue("EPUB-META-001", "content.opf", severity="critical", wcagCriteria=["3.1.1"]),
        make_issue("EPUB-IMG-001", "ch1.xhtml", severity="serious", suggestion="Describe it"),
    ]


class TestPlanStore:
    """Test cases shared by the SQL and in-memory stores."""

    @pytest.mark.asyncio
    async def test_round_trip(self, store, raw_issues):
        created = await PlanBuilder(store).build_plan("job-1", raw_issues, file_name="book.epub")

        loaded = await store.get_latest("job-1")

        assert loaded.plan_id == created.plan_id
        assert loaded.file_name == "book.epub"
        assert [task.to_dict() for task in loaded.tasks] == [task.to_dict() for task in created.tasks]
        assert loaded.tasks[0].wcag == ["3.1.1"]
        assert loaded.tallies["validation"]["is_valid"] is True

    @pytest.mark.asyncio
    async def test_missing_plan(self, store):
        with pytest.raises(PlanNotFoundError):
            await store.get_latest("nope")

    @pytest.mark.asyncio
    async def test_mutate_tasks_bumps_version(self, store, raw_issues):
        plan = await PlanBuilder(store).build_plan("job-1", raw_issues)
        task_id = plan.tasks[0].id

        updated = await store.mutate_tasks("job-1", [task_id], lambda task: task.transition("COMPLETED"))

        assert updated.get_task(task_id).version == 2
        reloaded = await store.get_latest("job-1")
        assert reloaded.get_task(task_id).status == "COMPLETED"
        assert reloaded.stats.completed == 1

    @pytest.mark.asyncio
    async def test_mutate_unknown_task(self, store, raw_issues):
        await PlanBuilder(store).build_plan("job-1", raw_issues)
        with pytest.raises(TaskNotFoundError):
            await store.mutate_tasks("job-1", ["task-nope"], lambda task: None)

    @pytest.mark.asyncio
    async def test_stale_update_is_rejected(self, store, raw_issues):
        await PlanBuilder(store).build_plan("job-1", raw_issues)
        first = await store.get_latest("job-1")
        second = await store.get_latest("job-1")

        first.tasks[0].transition("SKIPPED")
        await store.update(first)

        second.tasks[0].transition("COMPLETED")
        with pytest.raises(ConcurrentModificationError):
            await store.update(second)

        assert (await store.get_latest("job-1")).tasks[0].status == "SKIPPED"

    @pytest.mark.asyncio
    async def test_superseded_snapshot_is_rejected(self, store, raw_issues):
        builder = PlanBuilder(store)
        await builder.build_plan("job-1", raw_issues)
        old = await store.get_latest("job-1")
        await builder.build_plan("job-1", raw_issues[:1])

        with pytest.raises(ConcurrentModificationError):
            await store.update(old)

    @pytest.mark.asyncio
    async def test_stats_are_derived_from_tasks(self, store, raw_issues):
        await PlanBuilder(store).build_plan("job-1", raw_issues)
        plan = await store.get_latest("job-1")

        assert plan.stats.total == plan.total_issues == 2
        assert plan.to_record()["stats"]["byStatus"]["PENDING"] == 2


class TestPlanRecord:
    def test_record_round_trip_recomputes_stats(self, raw_issues):
        plan = PlanBuilder(InMemoryPlanStore()).compile_plan("job-1", raw_issues, file_name="b.epub")
        record = plan.to_record()
        record["stats"] = {"byStatus": {"PENDING": 99}}

        restored = RemediationPlan.from_record(record)

        assert restored.total_issues == 2
        assert restored.stats.pending == 2
        assert record["tasks"][0]["type"] == "AUTO_FIXABLE"
        assert record["totalIssues"] == 2
