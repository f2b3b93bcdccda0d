"""Batch review: one decision per issue code across every job paused at a gate."""

from datetime import datetime, timezone
from typing import Dict, List

from ..classification import normalize_issue_code
from ..db.plan_store import PlanStore
from ..db.review_store import ReviewStore
from ..errors import PlanNotFoundError, UndecidedClustersError
from ..logging import get_logger
from ..models.batch import (
    DECISIONS,
    GATE_DECISION_KEYS,
    IssueCluster,
    ReviewWorkflow,
    gate_state,
)
from ..models.tasks import RemediationTask

logger = get_logger(__name__)

DEFAULT_DECISION = "ACCEPT"
MAX_TITLE_LENGTH = 200


def transition_event(gate: str, decisions: List[Dict[str, str]]) -> str:
    """Event that moves a workflow past ``gate`` once decisions are in."""
    if gate == "ai-review":
        if all(item["decision"] == "ACCEPT" for item in decisions):
            return "AI_ACCEPTED"
        return "AI_REJECTED"
    if gate == "remediation-review":
        return "REMEDIATION_APPROVED"
    if gate == "conformance-review":
        return "CONFORMANCE_APPROVED"
    if gate == "acr-signoff":
        return "ACR_APPROVED"
    raise ValueError(f"Unknown gate slug: {gate}")


def _example(task: RemediationTask) -> Dict[str, str]:
    return {
        "taskId": task.id,
        "jobId": task.job_id,
        "code": task.issue_code,
        "severity": task.severity,
        "location": task.location or "",
        "message": task.message,
    }


class BatchClusterAggregator:
    """Groups the pending issues of a batch's gated workflows by issue code.

    Reviewers decide once per cluster; ``apply_decisions`` then fans those
    decisions out to every workflow waiting at the gate and advances each.
    """

    def __init__(self, review_store: ReviewStore, plan_store: PlanStore):
        self.review_store = review_store
        self.plan_store = plan_store

    async def cluster_issues(self, batch_id: str, gate: str) -> List[IssueCluster]:
        """Recompute and upsert the clusters for one batch gate.

        Raises:
            ValueError: For an unknown gate slug.
        """
        state = gate_state(gate)
        workflows = await self.review_store.workflows_at(batch_id, state)
        if not workflows:
            logger.info("No workflows waiting at gate", batch_id=batch_id, gate=gate)
            return []

        clusters: Dict[str, IssueCluster] = {}
        for workflow in workflows:
            tasks = await self._pending_tasks(workflow)
            for task in tasks:
                code = normalize_issue_code(task.issue_code)
                cluster = clusters.get(code)
                if cluster is None:
                    cluster = IssueCluster(
                        batch_id=batch_id,
                        gate=gate,
                        issue_code=code,
                        issue_title=(task.message or code)[:MAX_TITLE_LENGTH],
                        severity=task.severity,
                    )
                    clusters[code] = cluster
                cluster.add(workflow.job_id, _example(task))

        upserted = await self.review_store.upsert_clusters(list(clusters.values()))
        logger.info(
            "Batch issues clustered",
            batch_id=batch_id,
            gate=gate,
            workflows=len(workflows),
            clusters=upserted,
        )
        return await self.review_store.clusters(batch_id, gate)

    async def record_decision(
        self,
        batch_id: str,
        gate: str,
        issue_code: str,
        decision: str,
        reviewer_id: str,
    ) -> IssueCluster:
        """Store a reviewer's decision for one cluster.

        Raises:
            ValueError: For an unknown gate, an unknown decision, or a cluster
                that does not exist.
        """
        gate_state(gate)
        if decision not in DECISIONS:
            raise ValueError(f"Invalid decision: {decision}")

        code = normalize_issue_code(issue_code)
        cluster = next(
            (item for item in await self.review_store.clusters(batch_id, gate)
             if item.issue_code == code),
            None,
        )
        if cluster is None:
            raise ValueError(f"No cluster for {code} at {gate} in batch {batch_id}")

        cluster.decision = decision
        cluster.decided_by = reviewer_id
        cluster.decided_at = datetime.now(timezone.utc)
        await self.review_store.record_decision(cluster)

        logger.info(
            "Cluster decision recorded",
            batch_id=batch_id,
            gate=gate,
            issue_code=code,
            decision=decision,
            reviewer=reviewer_id,
        )
        return cluster

    async def apply_decisions(self, batch_id: str, gate: str, reviewer_id: str) -> int:
        """Write cluster decisions into each waiting workflow and advance it.

        Returns the number of workflows advanced. A workflow that fails is
        logged and left at the gate.

        Raises:
            ValueError: For an unknown gate slug.
            UndecidedClustersError: While any cluster has no decision.
        """
        state = gate_state(gate)
        clusters = await self.review_store.clusters(batch_id, gate)

        undecided = [cluster.issue_code for cluster in clusters if not cluster.is_decided]
        if undecided:
            raise UndecidedClustersError(undecided)

        decision_by_code = {cluster.issue_code: cluster.decision for cluster in clusters}
        workflows = await self.review_store.workflows_at(batch_id, state)

        applied = 0
        for workflow in workflows:
            try:
                await self._apply_to_workflow(workflow, decision_by_code, gate, reviewer_id)
            except Exception as e:
                logger.error(
                    "Failed to apply batch decisions",
                    batch_id=batch_id,
                    workflow_id=workflow.id,
                    error=str(e),
                )
            else:
                applied += 1

        logger.info(
            "Batch decisions applied",
            batch_id=batch_id,
            gate=gate,
            applied=applied,
            workflows=len(workflows),
        )
        return applied

    async def _apply_to_workflow(
        self,
        workflow: ReviewWorkflow,
        decision_by_code: Dict[str, str],
        gate: str,
        reviewer_id: str,
    ) -> None:
        tasks = await self._pending_tasks(workflow)
        decisions = []
        for task in tasks:
            code = normalize_issue_code(task.issue_code)
            decision = decision_by_code.get(code, DEFAULT_DECISION)
            decisions.append({
                "itemId": task.id,
                "decision": decision,
                "justification": f"Batch decision applied: {decision} for issue type {code}",
            })

        event = transition_event(gate, decisions)
        key = GATE_DECISION_KEYS[gate]

        workflow.state_data = {
            **workflow.state_data,
            key: decisions,
            f"{key}ReviewedBy": reviewer_id,
            f"{key}ReviewedAt": datetime.now(timezone.utc).isoformat(),
            "batchDecisionApplied": True,
        }
        previous = workflow.current_state
        workflow.apply_event(event)
        await self.review_store.save_workflow(workflow)

        logger.info(
            "Workflow advanced past gate",
            workflow_id=workflow.id,
            job_id=workflow.job_id,
            transition_event=event,
            from_state=previous,
            to_state=workflow.current_state,
            decisions=len(decisions),
        )

    async def _pending_tasks(self, workflow: ReviewWorkflow) -> List[RemediationTask]:
        try:
            plan = await self.plan_store.get_latest(workflow.job_id)
        except PlanNotFoundError:
            logger.warning("Workflow job has no plan yet", workflow_id=workflow.id,
                           job_id=workflow.job_id)
            return []
        return [task for task in plan.tasks if task.is_pending]
