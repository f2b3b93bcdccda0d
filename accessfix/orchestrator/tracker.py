"""Task lifecycle tracking for remediation plans."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config import get_settings
from ..db.plan_store import PlanStore, TaskMutation
from ..errors import ConcurrentModificationError
from ..logging import get_logger, log_audit_event
from ..models.plans import RemediationPlan
from ..models.tasks import CompletionMethod, RemediationTask, validate_status

logger = get_logger(__name__)

MINUTES_PER_MANUAL_TASK = 5


@dataclass(slots=True)
class StatusUpdate:
    """One requested status change within a batched update."""

    task_id: str
    status: str
    resolution: Optional[str] = None
    resolved_by: Optional[str] = None
    notes: Optional[str] = None
    completion_method: Optional[CompletionMethod] = None


class TaskStateTracker:
    """Atomic status transitions against the latest plan snapshot.

    Each change is one read-modify-write transaction in the plan store. A
    write that loses a version race is retried against a fresh read.
    """

    def __init__(self, store: PlanStore, retry_attempts: Optional[int] = None):
        self.store = store
        self.retry_attempts = retry_attempts or get_settings().update_retry_attempts

    async def update_status(
        self,
        job_id: str,
        task_id: str,
        new_status: str,
        resolution: Optional[str] = None,
        resolved_by: Optional[str] = None,
        *,
        notes: Optional[str] = None,
        completion_method: Optional[CompletionMethod] = None,
    ) -> RemediationTask:
        """Move one task to ``new_status`` and return it.

        Raises:
            ValueError: If ``new_status`` is not a task status.
            PlanNotFoundError: If the job has no plan.
            TaskNotFoundError: If the plan has no such task.
        """
        tasks = await self.update_statuses(job_id, [StatusUpdate(
            task_id=task_id,
            status=new_status,
            resolution=resolution,
            resolved_by=resolved_by,
            notes=notes,
            completion_method=completion_method,
        )])
        return tasks[0]

    async def update_statuses(self, job_id: str, updates: Sequence[StatusUpdate]) -> List[RemediationTask]:
        """Apply several status changes in one transaction."""
        if not updates:
            return []
        for update in updates:
            validate_status(update.status)

        by_id = {update.task_id: update for update in updates}

        def apply(task: RemediationTask) -> None:
            update = by_id[task.id]
            task.transition(
                update.status,
                resolution=update.resolution,
                resolved_by=update.resolved_by,
                notes=update.notes,
                completion_method=update.completion_method,
            )

        plan = await self._mutate(job_id, list(by_id), apply)
        stats = plan.stats

        changed = []
        for update in by_id.values():
            task = plan.get_task(update.task_id)
            changed.append(task)
            log_audit_event(
                logger,
                "task.status_changed",
                actor=update.resolved_by or "system",
                action="update_status",
                resource=f"{job_id}/{task.id}",
                status=task.status,
                issue_code=task.issue_code,
                completion_method=task.completion_method,
            )

        logger.debug("Plan stats recomputed", job_id=job_id, by_status=stats.by_status)
        return changed

    async def start_task(self, job_id: str, task_id: str) -> RemediationTask:
        return await self.update_status(job_id, task_id, "IN_PROGRESS")

    async def complete_task(
        self, job_id: str, task_id: str, resolution: str, resolved_by: str
    ) -> RemediationTask:
        return await self.update_status(job_id, task_id, "COMPLETED", resolution, resolved_by)

    async def skip_task(self, job_id: str, task_id: str, reason: str) -> RemediationTask:
        return await self.update_status(job_id, task_id, "SKIPPED", notes=reason)

    async def mark_manual_fixed(
        self,
        job_id: str,
        task_id: str,
        resolved_by: str = "user",
        resolution: str = "Manually verified and fixed",
        notes: Optional[str] = None,
    ) -> RemediationTask:
        """Record a fix made outside the platform."""
        return await self.update_status(
            job_id,
            task_id,
            "COMPLETED",
            resolution,
            resolved_by,
            notes=notes,
            completion_method="manual",
        )

    async def get_summary(self, job_id: str) -> Dict[str, Any]:
        """Progress summary of the job's current plan."""
        plan = await self.store.get_latest(job_id)
        return summarize(plan)

    async def _mutate(self, job_id: str, task_ids: List[str], mutate: TaskMutation) -> RemediationPlan:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(ConcurrentModificationError),
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=0.05, max=1),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.info("Retrying task update", job_id=job_id,
                                attempt=attempt.retry_state.attempt_number)
                return await self.store.mutate_tasks(job_id, task_ids, mutate)


def summarize(plan: RemediationPlan) -> Dict[str, Any]:
    stats = plan.stats
    total = plan.total_issues
    done = stats.by_status["COMPLETED"] + stats.by_status["SKIPPED"]
    completion = round(done / total * 100) if total else 100

    critical_remaining = sum(
        1 for task in plan.tasks if task.priority == "critical" and task.status == "PENDING"
    )
    pending_manual = sum(
        1 for task in plan.tasks if task.tier == "MANUAL" and task.status == "PENDING"
    )

    return {
        "totalTasks": total,
        "completionPercentage": completion,
        "stats": stats.to_dict(),
        "criticalRemaining": critical_remaining,
        "estimatedTimeMinutes": pending_manual * MINUTES_PER_MANUAL_TASK,
    }
