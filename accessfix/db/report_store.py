"""Archive of before/after comparison reports."""

from typing import List

from sqlalchemy import text

from ..models.comparison import ComparisonResult
from .connection import Database

_INSERT_REPORT = text(
    "INSERT INTO comparison_reports (job_id, resolution_rate, report, created_at) "
    "VALUES (:job_id, :resolution_rate, :report, :created_at)"
)

_SELECT_REPORTS = text(
    "SELECT report FROM comparison_reports WHERE job_id = :job_id ORDER BY id"
)


class ComparisonStore:
    """Comparison results archived independently of the plan."""

    def __init__(self, database: Database):
        self.database = database

    async def archive(self, result: ComparisonResult) -> int:
        """Store a comparison result and return its report id."""
        async with self.database.transaction() as session:
            inserted = await session.execute(_INSERT_REPORT, {
                "job_id": result.job_id,
                "resolution_rate": result.metrics.resolution_rate,
                "report": result.to_json(),
                "created_at": result.created_at.isoformat(),
            })
        return inserted.lastrowid

    async def list_for_job(self, job_id: str) -> List[ComparisonResult]:
        """All archived reports for a job, oldest first."""
        async with self.database.transaction() as session:
            rows = (await session.execute(_SELECT_REPORTS, {"job_id": job_id})).all()
        return [ComparisonResult.from_json(row.report) for row in rows]
