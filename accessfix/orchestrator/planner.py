"""Remediation plan compilation for AccessFix."""

import hashlib
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from ..classification import canonical_duplicate_of, classify, remediation_guidance
from ..config import get_settings
from ..db.plan_store import PlanStore
from ..logging import get_logger, log_tally
from ..models.issues import Issue, parse_issues
from ..models.plans import RemediationPlan
from ..models.tally import create_tally, validate_tally_transition
from ..models.tasks import PRIORITY_ORDER, SEVERITY_TO_PRIORITY, RemediationTask

logger = get_logger(__name__)


def make_task_id(job_id: str, code: str, location: str, occurrence: int = 0, length: int = 8) -> str:
    """Deterministic task id for an issue of a job.

    ``occurrence`` separates repeated reports of the same code at the same
    location; the first report keeps the unsalted id.
    """
    key = f"{job_id}-{code}-{location}"
    if occurrence:
        key = f"{key}#{occurrence}"
    return "task-" + hashlib.md5(key.encode("utf-8")).hexdigest()[:length]


def deduplicate(issues: Iterable[Issue]) -> Tuple[List[Issue], List[Issue]]:
    """Split issues into survivors and cross-engine duplicates.

    An issue is a duplicate when its code is a known alias of a canonical code
    and another issue reports that canonical code at the same normalized
    location.
    """
    issues = list(issues)
    reported: Set[Tuple[str, str]] = {(issue.code, issue.normalized_location) for issue in issues}

    kept: List[Issue] = []
    dropped: List[Issue] = []
    for issue in issues:
        canonical = canonical_duplicate_of(issue.code)
        if canonical and canonical != issue.code and (canonical, issue.normalized_location) in reported:
            dropped.append(issue)
        else:
            kept.append(issue)
    return kept, dropped


class PlanBuilder:
    """Turns raw audit output into a persisted remediation plan."""

    def __init__(self, store: PlanStore, task_id_length: Optional[int] = None):
        self.store = store
        self.task_id_length = task_id_length or get_settings().task_id_length

    async def build_plan(
        self,
        job_id: str,
        raw_issues: Iterable[Any],
        file_name: str = "",
    ) -> RemediationPlan:
        """Compile and store a new plan snapshot for ``job_id``."""
        plan = self.compile_plan(job_id, raw_issues, file_name=file_name)
        await self.store.create(plan)

        logger.info(
            "Remediation plan created",
            job_id=job_id,
            plan_id=plan.plan_id,
            total_tasks=plan.total_issues,
            by_type=plan.stats.by_tier,
        )
        return plan

    async def get_plan(self, job_id: str) -> RemediationPlan:
        """Latest plan for a job; raises PlanNotFoundError if there is none."""
        return await self.store.get_latest(job_id)

    def compile_plan(
        self,
        job_id: str,
        raw_issues: Iterable[Any],
        file_name: str = "",
    ) -> RemediationPlan:
        """Build a plan without persisting it."""
        issues, dropped_count = parse_issues(raw_issues)
        if dropped_count:
            logger.warning("Dropped malformed issues", job_id=job_id, dropped=dropped_count)

        audit_tally = create_tally(issues, "audit")
        log_tally(logger, "audit", audit_tally, job_id=job_id)

        kept, duplicates = deduplicate(issues)
        if duplicates:
            logger.info(
                "Deduplicated cross-engine issues",
                job_id=job_id,
                before=len(issues),
                after=len(kept),
                duplicates=[f"{issue.source}:{issue.code}@{issue.location}" for issue in duplicates],
            )

        tasks = self._create_tasks(job_id, kept)
        # sort() is stable, so equal priorities keep audit order
        tasks.sort(key=lambda task: PRIORITY_ORDER[task.priority])

        plan_tally = create_tally(tasks, "remediation_plan")
        dedup_tally = create_tally(duplicates, "deduplicated")
        log_tally(logger, "plan", plan_tally, job_id=job_id)

        validation = validate_tally_transition(audit_tally, plan_tally, dedup_tally)
        if not validation.is_valid:
            logger.error(
                "Tally integrity check failed",
                job_id=job_id,
                errors=validation.errors,
                discrepancies=[d.to_dict() for d in validation.discrepancies],
            )

        tallies: Dict[str, Any] = {
            "audit": audit_tally.to_dict(),
            "plan": plan_tally.to_dict(),
            "deduplicated": dedup_tally.to_dict(),
            "validation": validation.to_dict(),
        }

        return RemediationPlan(job_id=job_id, file_name=file_name, tasks=tasks, tallies=tallies)

    def _create_tasks(self, job_id: str, issues: List[Issue]) -> List[RemediationTask]:
        occurrences: Counter = Counter()
        used_ids: Set[str] = set()
        tasks: List[RemediationTask] = []

        for issue in issues:
            location = issue.normalized_location
            key = (issue.code, location)
            occurrence = occurrences[key]
            task_id = make_task_id(job_id, issue.code, location, occurrence, self.task_id_length)
            # Truncated digests can still collide across different keys
            while task_id in used_ids:
                occurrence += 1
                task_id = make_task_id(job_id, issue.code, location, occurrence, self.task_id_length)
            occurrences[key] = occurrence + 1
            used_ids.add(task_id)

            tasks.append(RemediationTask(
                id=task_id,
                job_id=job_id,
                issue_id=issue.id,
                issue_code=issue.code,
                severity=issue.severity,
                priority=SEVERITY_TO_PRIORITY[issue.severity],
                tier=classify(issue.code),
                location=location or None,
                source=issue.source,
                message=issue.message,
                suggestion=issue.suggestion,
                guidance=remediation_guidance(issue.code),
                wcag=list(issue.wcag),
            ))
        return tasks
