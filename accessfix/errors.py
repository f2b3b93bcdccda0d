"""Exception hierarchy for AccessFix.

Every error raised on purpose by AccessFix derives from ``AccessFixError`` so
callers (CLI, API layers) can catch the whole family at one boundary.
"""

from typing import Iterable, List


__all__ = [
    "AccessFixError",
    "PlanNotFoundError",
    "TaskNotFoundError",
    "JobNotFoundError",
    "ConcurrentModificationError",
    "ConcurrencyLimitError",
    "HandlerCoverageError",
    "UndecidedClustersError",
]


class AccessFixError(Exception):
    """Base exception for all AccessFix errors."""


class PlanNotFoundError(AccessFixError, LookupError):
    """No remediation plan exists for a job."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Remediation plan not found for job {job_id}")


class TaskNotFoundError(AccessFixError, LookupError):
    """A task id is absent from the job's latest plan."""

    def __init__(self, job_id: str, task_id: str):
        self.job_id = job_id
        self.task_id = task_id
        super().__init__(f"Task {task_id} not found in plan for job {job_id}")


class JobNotFoundError(AccessFixError, LookupError):
    """An admitted job record does not exist."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")


class ConcurrentModificationError(AccessFixError):
    """A write lost an optimistic-concurrency race and must be retried.

    Raised when a task row's version no longer matches the version that was
    read, or when the plan being written has been superseded by a newer
    snapshot.
    """


class ConcurrencyLimitError(AccessFixError):
    """A tenant already has the maximum number of active jobs."""

    def __init__(self, tenant_id: str, active_jobs: int, limit: int):
        self.tenant_id = tenant_id
        self.active_jobs = active_jobs
        self.limit = limit
        super().__init__(
            f"Too many concurrent jobs: tenant {tenant_id} already has "
            f"{active_jobs} active job(s) (limit {limit})"
        )


class HandlerCoverageError(AccessFixError):
    """Handler registry and classification tiers disagree."""

    def __init__(self, problems: Iterable[str]):
        self.problems: List[str] = list(problems)
        super().__init__("Handler coverage check failed: " + "; ".join(self.problems))


class UndecidedClustersError(AccessFixError):
    """Batch decisions cannot be applied while clusters lack a decision."""

    def __init__(self, issue_codes: Iterable[str]):
        self.issue_codes: List[str] = list(issue_codes)
        super().__init__(f"{len(self.issue_codes)} clusters still have no decision")
