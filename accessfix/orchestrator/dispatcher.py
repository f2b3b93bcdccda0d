"""Code-grouped auto-remediation dispatcher."""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Any, Dict, List, Mapping, Optional, Tuple

from dataclasses_json import DataClassJsonMixin

from ..adapters.base import ArtifactCodec, ArtifactStorage, ModificationResult
from ..adapters.handlers import HandlerRegistry
from ..classification import AUTO_FIXABLE, QUICK_FIX
from ..db.plan_store import PlanStore
from ..logging import get_logger
from ..models.plans import RemediationPlan
from ..models.tasks import RemediationTask
from .tracker import StatusUpdate, TaskStateTracker

logger = get_logger(__name__)

NO_HANDLER_NOTE = "No handler available"
AUTO_RESOLVER = "auto-remediation"

_NOOP_MARKERS = ("already", "not applicable")


@dataclass(slots=True)
class ModificationLogEntry(DataClassJsonMixin):
    """One element a handler changed, with its before and after values."""

    issue_code: str
    task_ids: List[str]
    description: str
    before: Optional[str] = None
    after: Optional[str] = None


@dataclass(slots=True)
class DispatchResult:
    """Outcome of one dispatch run over a job's plan."""

    modifications: List[ModificationLogEntry] = field(default_factory=list)
    completed_count: int = 0
    failed_count: int = 0
    skipped_count: int = 0
    locator: Optional[str] = None
    log_locator: Optional[str] = None
    artifact: Any = None

    @property
    def attempted(self) -> int:
        return self.completed_count + self.failed_count + self.skipped_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "modifications": [entry.to_dict() for entry in self.modifications],
            "completedCount": self.completed_count,
            "failedCount": self.failed_count,
            "skippedCount": self.skipped_count,
            "locator": self.locator,
            "logLocator": self.log_locator,
        }


def is_noop(description: str) -> bool:
    """A handler description that reports nothing needed doing."""
    text = (description or "").lower()
    return any(marker in text for marker in _NOOP_MARKERS)


def group_outcome(results: List[ModificationResult]) -> Tuple[str, str]:
    """Status and resolution for a code group from its handler results."""
    if not results:
        return "FAILED", "Handler returned no results"

    succeeded = [result.description for result in results if result.success]
    if succeeded:
        return "COMPLETED", "; ".join(succeeded)

    descriptions = [result.description for result in results]
    if all(is_noop(description) for description in descriptions):
        return "COMPLETED", "; ".join(descriptions)

    return "FAILED", "; ".join(descriptions)


def group_by_code(tasks: List[RemediationTask]) -> Dict[str, List[RemediationTask]]:
    """Tasks grouped by issue code in first-seen order."""
    groups: Dict[str, List[RemediationTask]] = {}
    for task in tasks:
        groups.setdefault(task.issue_code, []).append(task)
    return groups


def remediated_name(file_name: str) -> str:
    path = PurePosixPath(file_name)
    return f"{path.stem}_remediated{path.suffix}"


def modification_log_name(file_name: str) -> str:
    return f"{PurePosixPath(file_name).stem}_remediated.modifications.json"


class AutoRemediationDispatcher:
    """Runs one handler per issue code against a job's shared artifact.

    Handlers for one job run sequentially because they mutate the same
    artifact object. A handler that raises fails only its own code group.
    """

    def __init__(
        self,
        store: PlanStore,
        tracker: TaskStateTracker,
        registry: HandlerRegistry,
        storage: ArtifactStorage,
        codec: ArtifactCodec,
    ):
        self.store = store
        self.tracker = tracker
        self.registry = registry
        self.storage = storage
        self.codec = codec

    async def run_auto_remediation(
        self,
        job_id: str,
        *,
        options: Optional[Mapping[str, Any]] = None,
    ) -> DispatchResult:
        """Fix every pending AUTO_FIXABLE task of the job's plan.

        Raises:
            PlanNotFoundError: If the job has no plan.
        """
        plan = await self.store.get_latest(job_id)
        tasks = plan.tasks_with(tier=AUTO_FIXABLE, status="PENDING")
        if not tasks:
            logger.info("No pending auto-fixable tasks", job_id=job_id)
            return DispatchResult()

        return await self._dispatch(plan, group_by_code(tasks), options, AUTO_RESOLVER, "auto")

    async def apply_quick_fix(
        self,
        job_id: str,
        issue_code: str,
        options: Mapping[str, Any],
        resolved_by: str = "user",
    ) -> DispatchResult:
        """Apply a guided fix with reviewer-supplied options to one QUICK_FIX code."""
        plan = await self.store.get_latest(job_id)
        tasks = [
            task for task in plan.tasks_with(tier=QUICK_FIX, status="PENDING")
            if task.issue_code == issue_code
        ]
        if not tasks:
            logger.info("No pending quick-fix tasks", job_id=job_id, issue_code=issue_code)
            return DispatchResult()

        return await self._dispatch(plan, {issue_code: tasks}, options, resolved_by, "manual")

    async def _dispatch(
        self,
        plan: RemediationPlan,
        groups: Dict[str, List[RemediationTask]],
        options: Optional[Mapping[str, Any]],
        resolved_by: str,
        completion_method: str,
    ) -> DispatchResult:
        job_id = plan.job_id
        result = DispatchResult()

        artifact = self.codec.load(await self.storage.get_artifact(job_id, plan.file_name))
        handler_options: Dict[str, Any] = {"file_name": plan.file_name, **(options or {})}

        logger.info(
            "Dispatching remediation handlers",
            job_id=job_id,
            codes=list(groups),
            tasks=sum(len(group) for group in groups.values()),
        )

        for code, group in groups.items():
            task_ids = [task.id for task in group]
            handler = self.registry.get(code)

            if handler is None:
                logger.warning("No handler for issue code", job_id=job_id, issue_code=code,
                               tasks=len(group))
                await self.tracker.update_statuses(job_id, [
                    StatusUpdate(task_id, "SKIPPED", notes=NO_HANDLER_NOTE) for task_id in task_ids
                ])
                result.skipped_count += len(group)
                continue

            try:
                results = handler(artifact, handler_options)
            except Exception as e:
                logger.error("Handler failed", job_id=job_id, issue_code=code, error=str(e))
                status, resolution = "FAILED", f"Handler error: {e}"
                results = []
            else:
                status, resolution = group_outcome(results)

            await self.tracker.update_statuses(job_id, [
                StatusUpdate(
                    task_id,
                    status,
                    resolution=resolution,
                    resolved_by=resolved_by,
                    completion_method=completion_method if status == "COMPLETED" else None,
                )
                for task_id in task_ids
            ])

            if status == "COMPLETED":
                result.completed_count += len(group)
            else:
                result.failed_count += len(group)

            for modification in results:
                if modification.success:
                    result.modifications.append(ModificationLogEntry(
                        issue_code=code,
                        task_ids=task_ids,
                        description=modification.description,
                        before=modification.before,
                        after=modification.after,
                    ))

            logger.info("Code group processed", job_id=job_id, issue_code=code, status=status,
                        tasks=len(group))

        result.artifact = artifact
        result.locator = await self.storage.save_artifact(
            job_id, remediated_name(plan.file_name), self.codec.dump(artifact)
        )
        result.log_locator = await self.storage.save_artifact(
            job_id,
            modification_log_name(plan.file_name),
            self._modification_log(plan, result.modifications),
        )

        logger.info(
            "Remediation dispatch completed",
            job_id=job_id,
            completed=result.completed_count,
            failed=result.failed_count,
            skipped=result.skipped_count,
            modifications=len(result.modifications),
            locator=result.locator,
        )
        return result

    def _modification_log(self, plan: RemediationPlan, entries: List[ModificationLogEntry]) -> bytes:
        return json.dumps({
            "jobId": plan.job_id,
            "fileName": plan.file_name,
            "createdAt": datetime.now(timezone.utc).isoformat(),
            "modifications": [entry.to_dict() for entry in entries],
        }, indent=2).encode("utf-8")
