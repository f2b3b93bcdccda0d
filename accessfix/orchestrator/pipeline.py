"""End-to-end remediation pipeline for AccessFix."""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from ..adapters.base import ArtifactCodec, ArtifactStorage, AuditRunner
from ..adapters.handlers import HandlerRegistry
from ..config import get_settings
from ..db.connection import Database
from ..db.job_store import JobStore
from ..db.plan_store import PlanStore, SqlPlanStore
from ..db.report_store import ComparisonStore
from ..logging import get_logger, log_pipeline_event
from ..models.comparison import ComparisonResult
from ..models.jobs import Job
from ..models.plans import RemediationPlan
from .dispatcher import AutoRemediationDispatcher, DispatchResult
from .planner import PlanBuilder
from .tracker import TaskStateTracker
from .validators import ReauditVerifier, TargetedVerifier, VerificationReport

logger = get_logger(__name__)


@dataclass(slots=True)
class PipelineResult:
    """Everything one pipeline run produced for a job."""

    job: Job
    plan: RemediationPlan
    dispatch: DispatchResult
    verification: Optional[VerificationReport] = None
    comparison: Optional[ComparisonResult] = None
    summary: Optional[Dict[str, Any]] = None
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job": self.job.to_dict(),
            "totalIssues": self.plan.total_issues,
            "dispatch": self.dispatch.to_dict(),
            "verification": self.verification.to_dict() if self.verification else None,
            "comparison": self.comparison.metrics.to_dict() if self.comparison else None,
            "summary": self.summary,
            "durationSeconds": round(self.duration_seconds, 3),
        }


class RemediationPipeline:
    """Audit, plan, auto-fix and verify one job at a time or many in parallel."""

    def __init__(
        self,
        jobs: JobStore,
        store: PlanStore,
        audit_runner: AuditRunner,
        storage: ArtifactStorage,
        codec: ArtifactCodec,
        registry: HandlerRegistry,
        comparison_store: Optional[ComparisonStore] = None,
        max_concurrent_jobs: Optional[int] = None,
    ):
        self.jobs = jobs
        self.store = store
        self.audit_runner = audit_runner
        self.storage = storage
        self.codec = codec
        self.max_concurrent_jobs = max_concurrent_jobs or get_settings().max_concurrent_jobs

        self.planner = PlanBuilder(store)
        self.tracker = TaskStateTracker(store)
        self.dispatcher = AutoRemediationDispatcher(store, self.tracker, registry, storage, codec)
        self.verifier = TargetedVerifier(store, self.tracker, registry)
        self.reauditor = ReauditVerifier(store, self.tracker, audit_runner, comparison_store)

    @classmethod
    def for_database(
        cls,
        database: Database,
        audit_runner: AuditRunner,
        storage: ArtifactStorage,
        codec: ArtifactCodec,
        registry: HandlerRegistry,
    ) -> "RemediationPipeline":
        """Pipeline backed by SQL stores on ``database``."""
        return cls(
            jobs=JobStore(database),
            store=SqlPlanStore(database),
            audit_runner=audit_runner,
            storage=storage,
            codec=codec,
            registry=registry,
            comparison_store=ComparisonStore(database),
        )

    async def execute(
        self,
        job: Job,
        *,
        options: Optional[Mapping[str, Any]] = None,
    ) -> PipelineResult:
        """Run the whole remediation flow for ``job``.

        Raises:
            ConcurrencyLimitError: If the tenant is at its active-job cap. The
                job is not recorded in that case.
        """
        await self.jobs.admit(job)
        start_time = time.time()

        try:
            job.start()
            await self.jobs.update(job)
            log_pipeline_event(logger, job.id, "started", job=job)

            original = await self.storage.get_artifact(job.id, job.file_name)
            raw_issues = await self.audit_runner.run_audit(original, job.file_name)
            log_pipeline_event(logger, job.id, "audited", issues=len(raw_issues))

            plan = await self.planner.build_plan(job.id, raw_issues, file_name=job.file_name)
            log_pipeline_event(logger, job.id, "planned", stats=plan.stats)

            dispatch = await self.dispatcher.run_auto_remediation(job.id, options=options)
            log_pipeline_event(logger, job.id, "remediated", completed=dispatch.completed_count,
                               failed=dispatch.failed_count, skipped=dispatch.skipped_count)

            result = PipelineResult(job=job, plan=plan, dispatch=dispatch)

            if dispatch.artifact is not None:
                result.verification = await self.verifier.verify(job.id, dispatch.artifact)
                log_pipeline_event(logger, job.id, "verified",
                                   still_broken=result.verification.still_broken)

                # Raw audit keeps the cross-engine duplicates the plan dropped
                result.comparison = await self.reauditor.reaudit_and_compare(
                    job.id, self.codec.dump(dispatch.artifact), original_issues=raw_issues
                )
                log_pipeline_event(logger, job.id, "compared",
                                   resolution_rate=result.comparison.metrics.resolution_rate,
                                   regressions=result.comparison.metrics.regression_count)
            else:
                logger.info("Nothing was auto-remediated, skipping verification", job_id=job.id)

            result.summary = await self.tracker.get_summary(job.id)
            result.duration_seconds = time.time() - start_time
            result.plan = await self.store.get_latest(job.id)

            job.complete(notes=(
                f"{result.summary['completionPercentage']}% of {result.summary['totalTasks']} "
                f"tasks done in {result.duration_seconds:.2f}s"
            ))
            await self.jobs.update(job)
            log_pipeline_event(logger, job.id, "completed", job=job, stats=result.plan.stats,
                               duration_ms=int(result.duration_seconds * 1000))
            return result

        except Exception as e:
            job.fail(str(e))
            await self.jobs.update(job)
            log_pipeline_event(logger, job.id, "failed", job=job, error=str(e))
            logger.error("Pipeline execution failed", job_id=job.id, error=str(e))
            raise

    async def execute_many(
        self,
        jobs: Sequence[Job],
        *,
        options: Optional[Mapping[str, Any]] = None,
    ) -> List[Union[PipelineResult, BaseException]]:
        """Run several jobs, at most ``max_concurrent_jobs`` at a time.

        Results come back in input order; a job that failed contributes its
        exception instead of a result.
        """
        semaphore = asyncio.Semaphore(self.max_concurrent_jobs)

        async def run_one(job: Job) -> PipelineResult:
            async with semaphore:
                return await self.execute(job, options=options)

        results = await asyncio.gather(*(run_one(job) for job in jobs), return_exceptions=True)

        failed = sum(1 for result in results if isinstance(result, BaseException))
        logger.info("Batch of jobs processed", jobs=len(jobs), failed=failed,
                    max_concurrent=self.max_concurrent_jobs)
        return results
