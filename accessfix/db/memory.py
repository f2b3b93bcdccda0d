"""In-memory plan store for tests and single-process use."""

import asyncio
import copy
from typing import Dict, List, Sequence

from ..errors import ConcurrentModificationError, PlanNotFoundError
from ..models.plans import RemediationPlan
from ..models.tasks import utcnow
from .plan_store import TaskMutation, select_tasks


class InMemoryPlanStore:
    """Plan snapshots held in process memory.

    Callers always receive copies, so a plan mutated outside the store has no
    effect until it is written back with :meth:`update`.
    """

    def __init__(self):
        self._snapshots: Dict[str, List[RemediationPlan]] = {}
        self._lock = asyncio.Lock()
        self._next_plan_id = 1

    async def create(self, plan: RemediationPlan) -> RemediationPlan:
        async with self._lock:
            plan.plan_id = self._next_plan_id
            self._next_plan_id += 1
            self._snapshots.setdefault(plan.job_id, []).append(copy.deepcopy(plan))
        return plan

    async def get_latest(self, job_id: str) -> RemediationPlan:
        async with self._lock:
            return copy.deepcopy(self._latest(job_id))

    async def update(self, plan: RemediationPlan) -> RemediationPlan:
        async with self._lock:
            stored = self._latest(plan.job_id)
            if plan.plan_id != stored.plan_id:
                raise ConcurrentModificationError(
                    f"Plan {plan.plan_id} for job {plan.job_id} is no longer the latest snapshot"
                )
            stored_versions = {task.id: task.version for task in stored.tasks}
            for task in plan.tasks:
                if stored_versions.get(task.id) != task.version:
                    raise ConcurrentModificationError(
                        f"Task {task.id} changed since version {task.version} was read"
                    )
            for task in plan.tasks:
                task.version += 1
            plan.updated_at = utcnow()
            self._replace_latest(copy.deepcopy(plan))
        return plan

    async def mutate_tasks(
        self, job_id: str, task_ids: Sequence[str], mutate: TaskMutation
    ) -> RemediationPlan:
        async with self._lock:
            plan = copy.deepcopy(self._latest(job_id))
            for task in select_tasks(plan, task_ids):
                mutate(task)
                task.version += 1
            plan.updated_at = utcnow()
            self._replace_latest(copy.deepcopy(plan))
        return plan

    def _latest(self, job_id: str) -> RemediationPlan:
        snapshots = self._snapshots.get(job_id)
        if not snapshots:
            raise PlanNotFoundError(job_id)
        return snapshots[-1]

    def _replace_latest(self, plan: RemediationPlan) -> None:
        self._snapshots[plan.job_id][-1] = plan
