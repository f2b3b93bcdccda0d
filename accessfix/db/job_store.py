"""Job admission control and stuck-job recovery."""

from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional

from sqlalchemy import text

from ..config import get_settings
from ..errors import ConcurrencyLimitError, JobNotFoundError
from ..logging import get_logger
from ..models.jobs import Job
from .connection import Database

logger = get_logger(__name__)

STALE_JOB_NOTE = "Job timed out (stale cleanup)"

_COLUMNS = (
    "id, tenant_id, file_name, job_type, status, notes, "
    "started_at, ended_at, created_at, updated_at"
)

_COUNT_ACTIVE = text(
    "SELECT COUNT(*) FROM jobs "
    "WHERE tenant_id = :tenant_id AND status IN ('queued', 'processing')"
)

_INSERT_JOB = text(
    f"INSERT INTO jobs ({_COLUMNS}) VALUES "
    "(:id, :tenant_id, :file_name, :job_type, :status, :notes, "
    ":started_at, :ended_at, :created_at, :updated_at)"
)

_SELECT_JOB = text(f"SELECT {_COLUMNS} FROM jobs WHERE id = :id")

_SELECT_ACTIVE = text(
    f"SELECT {_COLUMNS} FROM jobs "
    "WHERE tenant_id = :tenant_id AND status IN ('queued', 'processing') ORDER BY created_at"
)

_UPDATE_JOB = text(
    "UPDATE jobs SET status = :status, notes = :notes, started_at = :started_at, "
    "ended_at = :ended_at, updated_at = :updated_at WHERE id = :id"
)

_SWEEP_STUCK = text(
    "UPDATE jobs SET status = 'failed', notes = :notes, ended_at = :now, updated_at = :now "
    "WHERE status IN ('queued', 'processing') AND created_at < :cutoff"
)


def _row_to_job(row: Any) -> Job:
    return Job.from_dict(dict(row._mapping))


class JobStore:
    """Jobs table access with a per-tenant cap on active jobs."""

    def __init__(self, database: Database, max_per_tenant: Optional[int] = None):
        self.database = database
        self.max_per_tenant = (
            max_per_tenant if max_per_tenant is not None
            else get_settings().max_concurrent_jobs_per_tenant
        )

    async def admit(self, job: Job) -> Job:
        """Insert ``job`` unless its tenant is already at the concurrency cap.

        The count and the insert run in one ``BEGIN IMMEDIATE`` transaction,
        so two simultaneous requests cannot both observe room under the cap.

        Raises:
            ConcurrencyLimitError: If the tenant already has the maximum number
                of queued or processing jobs.
        """
        async with self.database.transaction() as session:
            active = (await session.execute(_COUNT_ACTIVE, {"tenant_id": job.tenant_id})).scalar_one()
            if active >= self.max_per_tenant:
                logger.warning(
                    "Job admission refused",
                    tenant_id=job.tenant_id,
                    active_jobs=active,
                    limit=self.max_per_tenant,
                )
                raise ConcurrencyLimitError(job.tenant_id, active, self.max_per_tenant)

            await session.execute(_INSERT_JOB, job.to_dict())

        logger.info("Job admitted", job_id=job.id, tenant_id=job.tenant_id, active_jobs=active + 1)
        return job

    async def get(self, job_id: str) -> Job:
        """Load a job.

        Raises:
            JobNotFoundError: If no job has that id.
        """
        async with self.database.transaction() as session:
            row = (await session.execute(_SELECT_JOB, {"id": job_id})).first()
        if row is None:
            raise JobNotFoundError(job_id)
        return _row_to_job(row)

    async def list_active(self, tenant_id: str) -> List[Job]:
        async with self.database.transaction() as session:
            rows = (await session.execute(_SELECT_ACTIVE, {"tenant_id": tenant_id})).all()
        return [_row_to_job(row) for row in rows]

    async def update(self, job: Job) -> Job:
        """Persist the job's status fields."""
        record = job.to_dict()
        async with self.database.transaction() as session:
            result = await session.execute(_UPDATE_JOB, {
                "id": record["id"],
                "status": record["status"],
                "notes": record["notes"],
                "started_at": record["started_at"],
                "ended_at": record["ended_at"],
                "updated_at": record["updated_at"],
            })
        if result.rowcount == 0:
            raise JobNotFoundError(job.id)
        return job

    async def sweep_stuck_jobs(self, max_age_seconds: Optional[int] = None) -> int:
        """Fail queued or processing jobs created more than ``max_age_seconds`` ago.

        Returns the number of jobs swept.
        """
        if max_age_seconds is None:
            max_age_seconds = get_settings().stuck_job_max_age_seconds

        now = datetime.now(timezone.utc)
        cutoff = now - timedelta(seconds=max_age_seconds)

        async with self.database.transaction() as session:
            result = await session.execute(_SWEEP_STUCK, {
                "notes": STALE_JOB_NOTE,
                "now": now.isoformat(),
                "cutoff": cutoff.isoformat(),
            })

        swept = result.rowcount or 0
        if swept:
            logger.warning("Stuck jobs swept", count=swept, max_age_seconds=max_age_seconds)
        return swept
