"""Post-remediation verification for AccessFix."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..adapters.base import AuditRunner
from ..adapters.handlers import HandlerRegistry
from ..classification import AUTO_FIXABLE
from ..db.plan_store import PlanStore
from ..db.report_store import ComparisonStore
from ..logging import get_logger
from ..models.comparison import ComparisonResult
from ..models.issues import Issue, parse_issues
from .reconciler import compare_issue_sets
from .tracker import StatusUpdate, TaskStateTracker

logger = get_logger(__name__)

VERIFICATION_FAILED_NOTE = "Verification failed - issue still present after remediation"
REAUDIT_RESOLUTION = "Verified fixed via re-audit"
VERIFIER = "verification"


@dataclass(slots=True)
class TaskVerification:
    """Probe outcome for one task; ``verified`` is None when nothing was checked."""

    task_id: str
    issue_code: str
    verified: Optional[bool]
    note: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "taskId": self.task_id,
            "issueCode": self.issue_code,
            "verified": self.verified,
            "note": self.note,
        }


@dataclass(slots=True)
class VerificationReport:
    total_tasks: int = 0
    verified_fixed: int = 0
    still_broken: int = 0
    unverified: int = 0
    task_results: List[TaskVerification] = field(default_factory=list)

    def record(self, outcome: TaskVerification) -> None:
        self.task_results.append(outcome)
        self.total_tasks += 1
        if outcome.verified is None:
            self.unverified += 1
        elif outcome.verified:
            self.verified_fixed += 1
        else:
            self.still_broken += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalTasks": self.total_tasks,
            "verifiedFixed": self.verified_fixed,
            "stillBroken": self.still_broken,
            "unverified": self.unverified,
            "taskResults": [result.to_dict() for result in self.task_results],
        }


class TargetedVerifier:
    """Reads fixed properties back from the artifact after dispatch.

    Each completed auto-fixable task whose code has a registered probe is
    checked. A failed check demotes the task to FAILED; verification itself
    never raises on a mismatch.
    """

    def __init__(self, store: PlanStore, tracker: TaskStateTracker, registry: HandlerRegistry):
        self.store = store
        self.tracker = tracker
        self.registry = registry

    async def verify(self, job_id: str, artifact: Any) -> VerificationReport:
        plan = await self.store.get_latest(job_id)
        tasks = plan.tasks_with(tier=AUTO_FIXABLE, status="COMPLETED")
        report = VerificationReport()
        if not tasks:
            return report

        # Probes read document-level properties, so one call per code is enough
        probed: Dict[str, TaskVerification] = {}
        for task in tasks:
            if task.issue_code not in probed:
                probed[task.issue_code] = self._probe(task.issue_code, artifact)
            outcome = probed[task.issue_code]
            report.record(TaskVerification(
                task_id=task.id,
                issue_code=task.issue_code,
                verified=outcome.verified,
                note=outcome.note,
            ))

        broken = [result.task_id for result in report.task_results if result.verified is False]
        if broken:
            await self.tracker.update_statuses(job_id, [
                StatusUpdate(
                    task_id,
                    "FAILED",
                    resolution=VERIFICATION_FAILED_NOTE,
                    resolved_by=VERIFIER,
                    notes=VERIFICATION_FAILED_NOTE,
                )
                for task_id in broken
            ])
            logger.warning("Remediated issues still present", job_id=job_id, task_ids=broken)

        logger.info(
            "Targeted verification completed",
            job_id=job_id,
            total=report.total_tasks,
            verified=report.verified_fixed,
            still_broken=report.still_broken,
            unverified=report.unverified,
        )
        return report

    def _probe(self, issue_code: str, artifact: Any) -> TaskVerification:
        probe = self.registry.probe(issue_code)
        if probe is None:
            return TaskVerification("", issue_code, None, "No verification probe for this issue code")
        try:
            return TaskVerification("", issue_code, bool(probe(artifact)))
        except Exception as e:
            logger.warning("Verification probe failed", issue_code=issue_code, error=str(e))
            return TaskVerification("", issue_code, None, f"Verification error: {e}")


class ReauditVerifier:
    """Full re-audit of the remediated artifact, diffed against the original issues."""

    def __init__(
        self,
        store: PlanStore,
        tracker: TaskStateTracker,
        audit_runner: AuditRunner,
        comparison_store: Optional[ComparisonStore] = None,
    ):
        self.store = store
        self.tracker = tracker
        self.audit_runner = audit_runner
        self.comparison_store = comparison_store

    async def reaudit_and_compare(
        self,
        job_id: str,
        artifact_bytes: bytes,
        *,
        original_issues: Optional[Sequence[Any]] = None,
        apply_to_plan: bool = True,
    ) -> ComparisonResult:
        """Re-audit ``artifact_bytes`` and reconcile with the original audit.

        Without ``original_issues`` the plan's tasks stand in for the original
        audit. Resolved issues whose tasks are still PENDING are completed
        when ``apply_to_plan`` is set.
        """
        plan = await self.store.get_latest(job_id)

        raw_new = await self.audit_runner.run_audit(artifact_bytes, plan.file_name)
        new_issues, dropped = parse_issues(raw_new)
        if dropped:
            logger.warning("Dropped malformed re-audit issues", job_id=job_id, dropped=dropped)

        if original_issues is None:
            originals: List[Issue] = [task.as_issue() for task in plan.tasks]
        else:
            originals, _ = parse_issues(original_issues)

        result = compare_issue_sets(originals, new_issues, job_id=job_id)

        if self.comparison_store is not None:
            report_id = await self.comparison_store.archive(result)
            logger.info("Comparison report archived", job_id=job_id, report_id=report_id)

        if apply_to_plan:
            resolved_ids = {issue.id for issue in result.resolved}
            to_complete = [
                task.id for task in plan.tasks
                if task.is_pending and task.issue_id in resolved_ids
            ]
            if to_complete:
                await self.tracker.update_statuses(job_id, [
                    StatusUpdate(
                        task_id,
                        "COMPLETED",
                        resolution=REAUDIT_RESOLUTION,
                        resolved_by=VERIFIER,
                        completion_method="verified",
                    )
                    for task_id in to_complete
                ])
            logger.info("Plan updated from re-audit", job_id=job_id, completed=len(to_complete))

        logger.info(
            "Re-audit comparison completed",
            job_id=job_id,
            resolution_rate=result.metrics.resolution_rate,
            regressions=result.metrics.regression_count,
        )
        return result
