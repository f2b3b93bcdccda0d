"""Persistence for review-gate workflows and batch issue clusters."""

import json
from typing import Any, List, Optional

from sqlalchemy import text

from ..models.batch import IssueCluster, ReviewWorkflow
from ..models.tasks import parse_datetime
from .connection import Database

_UPSERT_WORKFLOW = text(
    "INSERT INTO review_workflows (id, batch_id, job_id, current_state, state_data, updated_at) "
    "VALUES (:id, :batch_id, :job_id, :current_state, :state_data, :updated_at) "
    "ON CONFLICT (id) DO UPDATE SET current_state = excluded.current_state, "
    "state_data = excluded.state_data, updated_at = excluded.updated_at"
)

_SELECT_WORKFLOWS_AT = text(
    "SELECT id, batch_id, job_id, current_state, state_data, updated_at "
    "FROM review_workflows WHERE batch_id = :batch_id AND current_state = :state ORDER BY id"
)

_SELECT_WORKFLOW = text(
    "SELECT id, batch_id, job_id, current_state, state_data, updated_at "
    "FROM review_workflows WHERE id = :id"
)

# Re-clustering refreshes the counts but keeps any decision already recorded
_UPSERT_CLUSTER = text(
    "INSERT INTO batch_clusters (batch_id, gate, issue_code, issue_title, severity, "
    "file_count, total_instances, job_incidence, representative_issues) "
    "VALUES (:batch_id, :gate, :issue_code, :issue_title, :severity, "
    ":file_count, :total_instances, :job_incidence, :representative_issues) "
    "ON CONFLICT (batch_id, gate, issue_code) DO UPDATE SET "
    "issue_title = excluded.issue_title, severity = excluded.severity, "
    "file_count = excluded.file_count, total_instances = excluded.total_instances, "
    "job_incidence = excluded.job_incidence, "
    "representative_issues = excluded.representative_issues"
)

_SELECT_CLUSTERS = text(
    "SELECT batch_id, gate, issue_code, issue_title, severity, file_count, total_instances, "
    "job_incidence, representative_issues, decision, decided_by, decided_at "
    "FROM batch_clusters WHERE batch_id = :batch_id AND gate = :gate ORDER BY issue_code"
)

_RECORD_DECISION = text(
    "UPDATE batch_clusters SET decision = :decision, decided_by = :decided_by, "
    "decided_at = :decided_at "
    "WHERE batch_id = :batch_id AND gate = :gate AND issue_code = :issue_code"
)


def _row_to_workflow(row: Any) -> ReviewWorkflow:
    return ReviewWorkflow(
        id=row.id,
        batch_id=row.batch_id,
        job_id=row.job_id,
        current_state=row.current_state,
        state_data=json.loads(row.state_data),
        updated_at=parse_datetime(row.updated_at),
    )


def _row_to_cluster(row: Any) -> IssueCluster:
    return IssueCluster(
        batch_id=row.batch_id,
        gate=row.gate,
        issue_code=row.issue_code,
        issue_title=row.issue_title,
        severity=row.severity,
        file_count=row.file_count,
        total_instances=row.total_instances,
        job_incidence=json.loads(row.job_incidence),
        representative_issues=json.loads(row.representative_issues),
        decision=row.decision,
        decided_by=row.decided_by,
        decided_at=parse_datetime(row.decided_at),
    )


class ReviewStore:
    """Review workflows and the issue clusters computed for their gates."""

    def __init__(self, database: Database):
        self.database = database

    async def save_workflow(self, workflow: ReviewWorkflow) -> ReviewWorkflow:
        async with self.database.transaction() as session:
            await session.execute(_UPSERT_WORKFLOW, {
                "id": workflow.id,
                "batch_id": workflow.batch_id,
                "job_id": workflow.job_id,
                "current_state": workflow.current_state,
                "state_data": json.dumps(workflow.state_data),
                "updated_at": workflow.updated_at.isoformat(),
            })
        return workflow

    async def get_workflow(self, workflow_id: str) -> Optional[ReviewWorkflow]:
        async with self.database.transaction() as session:
            row = (await session.execute(_SELECT_WORKFLOW, {"id": workflow_id})).first()
        return _row_to_workflow(row) if row else None

    async def workflows_at(self, batch_id: str, state: str) -> List[ReviewWorkflow]:
        """Workflows of a batch currently in ``state``."""
        async with self.database.transaction() as session:
            rows = (await session.execute(
                _SELECT_WORKFLOWS_AT, {"batch_id": batch_id, "state": state}
            )).all()
        return [_row_to_workflow(row) for row in rows]

    async def upsert_clusters(self, clusters: List[IssueCluster]) -> int:
        if not clusters:
            return 0
        async with self.database.transaction() as session:
            await session.execute(_UPSERT_CLUSTER, [
                {
                    "batch_id": cluster.batch_id,
                    "gate": cluster.gate,
                    "issue_code": cluster.issue_code,
                    "issue_title": cluster.issue_title,
                    "severity": cluster.severity,
                    "file_count": cluster.file_count,
                    "total_instances": cluster.total_instances,
                    "job_incidence": json.dumps(cluster.job_incidence),
                    "representative_issues": json.dumps(cluster.representative_issues),
                }
                for cluster in clusters
            ])
        return len(clusters)

    async def clusters(self, batch_id: str, gate: str) -> List[IssueCluster]:
        async with self.database.transaction() as session:
            rows = (await session.execute(
                _SELECT_CLUSTERS, {"batch_id": batch_id, "gate": gate}
            )).all()
        return [_row_to_cluster(row) for row in rows]

    async def record_decision(self, cluster: IssueCluster) -> bool:
        """Store the cluster's decision; False when no such cluster exists."""
        async with self.database.transaction() as session:
            result = await session.execute(_RECORD_DECISION, {
                "batch_id": cluster.batch_id,
                "gate": cluster.gate,
                "issue_code": cluster.issue_code,
                "decision": cluster.decision,
                "decided_by": cluster.decided_by,
                "decided_at": cluster.decided_at.isoformat() if cluster.decided_at else None,
            })
        return result.rowcount == 1
