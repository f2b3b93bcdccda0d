"""Remediation plan persistence.

A plan is stored as one ``remediation_plans`` row per snapshot plus one
``remediation_tasks`` row per task. The newest snapshot of a job is its
current plan. Task rows carry a ``version`` column that every write checks
and bumps, so a writer holding a stale task loses with
:class:`~accessfix.errors.ConcurrentModificationError` instead of silently
overwriting a newer change.
"""

import json
from typing import Callable, List, Optional, Protocol, Sequence

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import ConcurrentModificationError, PlanNotFoundError, TaskNotFoundError
from ..logging import get_logger
from ..models.plans import RemediationPlan
from ..models.tasks import RemediationTask, parse_datetime, utcnow
from .connection import Database

logger = get_logger(__name__)

TaskMutation = Callable[[RemediationTask], None]


class PlanStore(Protocol):
    """Append-only plan snapshots per job with read-latest semantics."""

    async def create(self, plan: RemediationPlan) -> RemediationPlan:
        ...

    async def get_latest(self, job_id: str) -> RemediationPlan:
        ...

    async def update(self, plan: RemediationPlan) -> RemediationPlan:
        ...

    async def mutate_tasks(
        self, job_id: str, task_ids: Sequence[str], mutate: TaskMutation
    ) -> RemediationPlan:
        ...


_INSERT_PLAN = text(
    "INSERT INTO remediation_plans (job_id, file_name, tallies, created_at, updated_at) "
    "VALUES (:job_id, :file_name, :tallies, :created_at, :updated_at)"
)

_INSERT_TASK = text(
    "INSERT INTO remediation_tasks "
    "(plan_id, id, job_id, position, tier, status, version, record, updated_at) "
    "VALUES (:plan_id, :id, :job_id, :position, :tier, :status, :version, :record, :updated_at)"
)

_SELECT_LATEST_PLAN = text(
    "SELECT id, job_id, file_name, tallies, created_at, updated_at "
    "FROM remediation_plans WHERE job_id = :job_id ORDER BY id DESC LIMIT 1"
)

_SELECT_TASKS = text(
    "SELECT record, version FROM remediation_tasks "
    "WHERE plan_id = :plan_id ORDER BY position"
)

_UPDATE_TASK = text(
    "UPDATE remediation_tasks "
    "SET status = :status, version = :new_version, record = :record, updated_at = :updated_at "
    "WHERE plan_id = :plan_id AND id = :id AND version = :expected_version"
)

_TOUCH_PLAN = text(
    "UPDATE remediation_plans SET updated_at = :updated_at WHERE id = :plan_id"
)


class SqlPlanStore:
    """Plan store backed by the AccessFix SQLite database."""

    def __init__(self, database: Database):
        self.database = database

    async def create(self, plan: RemediationPlan) -> RemediationPlan:
        """Persist ``plan`` as the job's newest snapshot."""
        async with self.database.transaction() as session:
            result = await session.execute(_INSERT_PLAN, {
                "job_id": plan.job_id,
                "file_name": plan.file_name,
                "tallies": json.dumps(plan.tallies),
                "created_at": plan.created_at.isoformat(),
                "updated_at": plan.updated_at.isoformat(),
            })
            plan.plan_id = result.lastrowid

            if plan.tasks:
                await session.execute(_INSERT_TASK, [
                    {
                        "plan_id": plan.plan_id,
                        "id": task.id,
                        "job_id": plan.job_id,
                        "position": position,
                        "tier": task.tier,
                        "status": task.status,
                        "version": task.version,
                        "record": json.dumps(task.to_dict()),
                        "updated_at": task.updated_at.isoformat(),
                    }
                    for position, task in enumerate(plan.tasks)
                ])

        logger.debug("Plan snapshot stored", job_id=plan.job_id, plan_id=plan.plan_id,
                     tasks=len(plan.tasks))
        return plan

    async def get_latest(self, job_id: str) -> RemediationPlan:
        """Load the job's current plan.

        Raises:
            PlanNotFoundError: If the job has no plan.
        """
        async with self.database.transaction() as session:
            return await self._load_latest(session, job_id)

    async def update(self, plan: RemediationPlan) -> RemediationPlan:
        """Write back every task of a previously loaded plan.

        Raises:
            ConcurrentModificationError: If the plan was superseded by a newer
                snapshot or any task changed since ``plan`` was read.
        """
        async with self.database.transaction() as session:
            latest_id = await self._latest_plan_id(session, plan.job_id)
            if plan.plan_id is None or plan.plan_id != latest_id:
                raise ConcurrentModificationError(
                    f"Plan {plan.plan_id} for job {plan.job_id} is no longer the latest snapshot"
                )
            for task in plan.tasks:
                await self._write_task(session, plan.plan_id, task)
            plan.updated_at = utcnow()
            await session.execute(_TOUCH_PLAN, {
                "plan_id": plan.plan_id,
                "updated_at": plan.updated_at.isoformat(),
            })
        return plan

    async def mutate_tasks(
        self, job_id: str, task_ids: Sequence[str], mutate: TaskMutation
    ) -> RemediationPlan:
        """Apply ``mutate`` to the named tasks of the latest plan in one transaction.

        Returns the plan as it stands after the write.
        """
        async with self.database.transaction() as session:
            plan = await self._load_latest(session, job_id)
            targets = select_tasks(plan, task_ids)
            for task in targets:
                mutate(task)
                await self._write_task(session, plan.plan_id, task)
            plan.updated_at = utcnow()
            await session.execute(_TOUCH_PLAN, {
                "plan_id": plan.plan_id,
                "updated_at": plan.updated_at.isoformat(),
            })
        return plan

    async def _latest_plan_id(self, session: AsyncSession, job_id: str) -> Optional[int]:
        row = (await session.execute(_SELECT_LATEST_PLAN, {"job_id": job_id})).first()
        return row.id if row else None

    async def _load_latest(self, session: AsyncSession, job_id: str) -> RemediationPlan:
        row = (await session.execute(_SELECT_LATEST_PLAN, {"job_id": job_id})).first()
        if row is None:
            raise PlanNotFoundError(job_id)

        tasks: List[RemediationTask] = []
        for task_row in await session.execute(_SELECT_TASKS, {"plan_id": row.id}):
            task = RemediationTask.from_dict(json.loads(task_row.record))
            task.version = task_row.version
            tasks.append(task)

        return RemediationPlan(
            job_id=row.job_id,
            file_name=row.file_name,
            tasks=tasks,
            tallies=json.loads(row.tallies),
            plan_id=row.id,
            created_at=parse_datetime(row.created_at),
            updated_at=parse_datetime(row.updated_at),
        )

    async def _write_task(self, session: AsyncSession, plan_id: int, task: RemediationTask) -> None:
        expected_version = task.version
        task.version = expected_version + 1
        result = await session.execute(_UPDATE_TASK, {
            "plan_id": plan_id,
            "id": task.id,
            "status": task.status,
            "new_version": task.version,
            "expected_version": expected_version,
            "record": json.dumps(task.to_dict()),
            "updated_at": task.updated_at.isoformat(),
        })
        if result.rowcount != 1:
            task.version = expected_version
            raise ConcurrentModificationError(
                f"Task {task.id} changed since version {expected_version} was read"
            )


def select_tasks(plan: RemediationPlan, task_ids: Sequence[str]) -> List[RemediationTask]:
    """The plan's tasks with the given ids, in the requested order.

    Raises:
        TaskNotFoundError: For the first id absent from the plan.
    """
    by_id = {task.id: task for task in plan.tasks}
    selected: List[RemediationTask] = []
    for task_id in dict.fromkeys(task_ids):
        task = by_id.get(task_id)
        if task is None:
            raise TaskNotFoundError(plan.job_id, task_id)
        selected.append(task)
    return selected
