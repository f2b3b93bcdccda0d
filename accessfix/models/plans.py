"""Remediation plan snapshots and their derived statistics."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from ..classification import TIERS
from .tasks import TASK_STATUSES, RemediationTask, parse_datetime, utcnow


@dataclass(slots=True)
class PlanStats:
    """Aggregate counts derived from a task list."""

    by_status: Dict[str, int]
    by_tier: Dict[str, int]

    @classmethod
    def from_tasks(cls, tasks: Iterable[RemediationTask]) -> PlanStats:
        tasks = list(tasks)
        status_counts = Counter(task.status for task in tasks)
        tier_counts = Counter(task.tier for task in tasks)
        return cls(
            by_status={status: status_counts.get(status, 0) for status in TASK_STATUSES},
            by_tier={tier: tier_counts.get(tier, 0) for tier in TIERS},
        )

    @property
    def total(self) -> int:
        return sum(self.by_status.values())

    @property
    def pending(self) -> int:
        return self.by_status['PENDING']

    @property
    def completed(self) -> int:
        return self.by_status['COMPLETED']

    def to_dict(self) -> Dict[str, Any]:
        return {'byStatus': dict(self.by_status), 'byType': dict(self.by_tier)}


@dataclass(slots=True)
class RemediationPlan:
    """The current snapshot of remediation work for one job.

    ``stats`` is derived from ``tasks`` every time it is read, so it cannot
    drift from the task list.
    """

    job_id: str
    file_name: str
    tasks: List[RemediationTask] = field(default_factory=list)
    tallies: Dict[str, Any] = field(default_factory=dict)
    plan_id: Optional[int] = field(default=None)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        """Validate plan data after initialization."""
        if not self.job_id:
            raise ValueError("Job ID cannot be empty")

    @property
    def stats(self) -> PlanStats:
        return PlanStats.from_tasks(self.tasks)

    @property
    def total_issues(self) -> int:
        return len(self.tasks)

    def get_task(self, task_id: str) -> Optional[RemediationTask]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def tasks_with(self, *, tier: Optional[str] = None, status: Optional[str] = None) -> List[RemediationTask]:
        """Tasks filtered by tier and/or status, in plan order."""
        return [
            task for task in self.tasks
            if (tier is None or task.tier == tier) and (status is None or task.status == status)
        ]

    def to_record(self) -> Dict[str, Any]:
        """Convert plan to its persisted record shape."""
        return {
            'jobId': self.job_id,
            'fileName': self.file_name,
            'totalIssues': self.total_issues,
            'tasks': [task.to_dict() for task in self.tasks],
            'stats': self.stats.to_dict(),
            'tallies': self.tallies,
            'createdAt': self.created_at.isoformat(),
            'updatedAt': self.updated_at.isoformat(),
        }

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> RemediationPlan:
        """Create plan from its persisted record shape.

        Stored stats are ignored and recomputed from the tasks.
        """
        return cls(
            job_id=data['jobId'],
            file_name=data.get('fileName') or '',
            tasks=[RemediationTask.from_dict(task) for task in data.get('tasks') or []],
            tallies=dict(data.get('tallies') or {}),
            created_at=parse_datetime(data.get('createdAt')) or utcnow(),
            updated_at=parse_datetime(data.get('updatedAt')) or utcnow(),
        )
