"""Main CLI application for AccessFix."""

import asyncio
import json
import uuid
from pathlib import Path
from typing import Any, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from ..adapters import (
    INTENTIONALLY_UNHANDLED,
    CommandAuditRunner,
    LocalArtifactStorage,
    MetadataJsonCodec,
    check_handler_coverage,
    default_registry,
)
from ..adapters.audit_cli import extract_issue_list
from ..config import get_settings
from ..db import ComparisonStore, JobStore, SqlPlanStore, close_database, init_database
from ..errors import AccessFixError
from ..logging import get_logger
from ..models.comparison import ComparisonResult
from ..models.jobs import Job
from ..models.plans import RemediationPlan
from ..orchestrator.dispatcher import AutoRemediationDispatcher
from ..orchestrator.pipeline import RemediationPipeline
from ..orchestrator.planner import PlanBuilder
from ..orchestrator.reconciler import reconcile
from ..orchestrator.tracker import TaskStateTracker, summarize
from ..orchestrator.validators import TargetedVerifier

app = typer.Typer(
    name="accessfix",
    help="Accessibility remediation planning, auto-fix and verification",
    add_completion=False
)

console = Console()
logger = get_logger(__name__)

SEVERITY_COLORS = {
    'critical': 'red',
    'serious': 'yellow',
    'moderate': 'blue',
    'minor': 'green',
}


def _load_issues(path: Path) -> List[Any]:
    with open(path, 'r', encoding='utf-8') as f:
        payload = json.load(f)
    try:
        return extract_issue_list(payload)
    except AccessFixError as e:
        console.print(f"[red]{path}: {e}[/red]")
        raise typer.Exit(1)


def _run(coro) -> Any:
    """Run a command coroutine, turning domain errors into exit code 1."""
    async def wrapper():
        try:
            return await coro
        finally:
            await close_database()

    try:
        return asyncio.run(wrapper())
    except AccessFixError as e:
        console.print(f"[red]{e}[/red]")
        logger.error("Command failed", error=str(e))
        raise typer.Exit(1)


@app.command()
def plan(
    issues_file: Path = typer.Argument(..., help="JSON audit report or issue list"),
    job_id: Optional[str] = typer.Option(None, "--job-id", "-j", help="Job id (generated if omitted)"),
    file_name: str = typer.Option("", "--file-name", "-f", help="Audited document name"),
) -> None:
    """Build a remediation plan from an audit report."""
    job_id = job_id or f"job_{uuid.uuid4().hex[:8]}"
    raw_issues = _load_issues(issues_file)

    async def build() -> RemediationPlan:
        database = await init_database()
        return await PlanBuilder(SqlPlanStore(database)).build_plan(
            job_id, raw_issues, file_name=file_name
        )

    remediation_plan = _run(build())
    console.print(f"[green]Plan created for job {job_id}[/green]")
    _display_plan(remediation_plan)


@app.command()
def show(
    job_id: str = typer.Argument(..., help="Job id"),
    pending_only: bool = typer.Option(False, "--pending", help="Only list pending tasks"),
) -> None:
    """Show the latest remediation plan of a job."""
    async def load() -> RemediationPlan:
        database = await init_database()
        return await SqlPlanStore(database).get_latest(job_id)

    remediation_plan = _run(load())
    _display_plan(remediation_plan, pending_only=pending_only)


@app.command()
def task(
    job_id: str = typer.Argument(..., help="Job id"),
    task_id: str = typer.Argument(..., help="Task id"),
    status: str = typer.Argument(..., help="PENDING, IN_PROGRESS, COMPLETED, SKIPPED or FAILED"),
    resolution: Optional[str] = typer.Option(None, "--resolution", help="What was done"),
    resolved_by: Optional[str] = typer.Option(None, "--by", help="Who did it"),
    notes: Optional[str] = typer.Option(None, "--notes", help="Free-form notes"),
    manual: bool = typer.Option(False, "--manual", help="Record as fixed outside the platform"),
) -> None:
    """Change the status of one task."""
    async def update():
        database = await init_database()
        tracker = TaskStateTracker(SqlPlanStore(database))
        if manual:
            return await tracker.mark_manual_fixed(
                job_id, task_id, resolved_by=resolved_by or "user",
                resolution=resolution or "Manually verified and fixed", notes=notes,
            )
        return await tracker.update_status(
            job_id, task_id, status.upper(), resolution, resolved_by, notes=notes
        )

    try:
        updated = _run(update())
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]{updated.id}[/green] {updated.issue_code}: {updated.status}")


@app.command()
def remediate(
    job_id: str = typer.Argument(..., help="Job id"),
    language: Optional[str] = typer.Option(None, "--language", help="Language tag to apply"),
    quick_fix: Optional[str] = typer.Option(None, "--quick-fix", help="Apply a guided fix for this code"),
    value: Optional[str] = typer.Option(None, "--value", help="Value for the guided fix"),
) -> None:
    """Run auto-remediation (or one guided fix) and verify the result."""
    settings = get_settings()
    options = {}
    if language:
        options['language'] = language
    if value is not None:
        options['value'] = value

    async def dispatch():
        database = await init_database()
        store = SqlPlanStore(database)
        tracker = TaskStateTracker(store)
        registry = default_registry()
        dispatcher = AutoRemediationDispatcher(
            store, tracker, registry, LocalArtifactStorage(settings.storage_dir), MetadataJsonCodec()
        )
        if quick_fix:
            result = await dispatcher.apply_quick_fix(job_id, quick_fix, options)
        else:
            result = await dispatcher.run_auto_remediation(job_id, options=options)
        report = None
        if result.artifact is not None:
            report = await TargetedVerifier(store, tracker, registry).verify(job_id, result.artifact)
        return result, report

    result, report = _run(dispatch())

    table = Table(title=f"Remediation of {job_id}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Completed", str(result.completed_count))
    table.add_row("Failed", str(result.failed_count))
    table.add_row("Skipped", str(result.skipped_count))
    table.add_row("Modifications", str(len(result.modifications)))
    if report is not None:
        table.add_row("Verified fixed", str(report.verified_fixed))
        table.add_row("Still broken", str(report.still_broken))
        table.add_row("Unverified", str(report.unverified))
    table.add_row("Artifact", result.locator or "-")
    console.print(table)


@app.command()
def compare(
    original_file: Path = typer.Argument(..., help="Audit report before remediation"),
    new_file: Path = typer.Argument(..., help="Audit report after remediation"),
    job_id: str = typer.Option("adhoc", "--job-id", "-j", help="Job id for the report"),
    archive: bool = typer.Option(False, "--archive", help="Store the comparison report"),
) -> None:
    """Diff two audit reports of the same document."""
    result = reconcile(job_id, _load_issues(original_file), _load_issues(new_file))

    if archive:
        async def store() -> int:
            database = await init_database()
            return await ComparisonStore(database).archive(result)

        report_id = _run(store())
        console.print(f"[green]Comparison archived as report {report_id}[/green]")

    _display_comparison(result)


@app.command()
def coverage() -> None:
    """Check the handler registry against the fix tiers."""
    report = check_handler_coverage(default_registry(), INTENTIONALLY_UNHANDLED)
    if report.ok:
        console.print("✅ Handler coverage: [green]OK[/green]")
        return
    for problem in report.problems():
        console.print(f"❌ {problem}")
    raise typer.Exit(1)


@app.command()
def sweep(
    max_age: Optional[int] = typer.Option(None, "--max-age", help="Age in seconds (default from settings)"),
) -> None:
    """Fail jobs stuck in queued or processing."""
    async def run_sweep() -> int:
        database = await init_database()
        return await JobStore(database).sweep_stuck_jobs(max_age)

    swept = _run(run_sweep())
    console.print(f"[green]Swept {swept} stuck job(s)[/green]")


@app.command()
def run(
    file_name: str = typer.Argument(..., help="Document name in the job's storage folder"),
    tenant_id: str = typer.Option("default", "--tenant", "-t", help="Tenant id"),
    job_id: Optional[str] = typer.Option(None, "--job-id", "-j", help="Job id (generated if omitted)"),
    job_type: str = typer.Option("epub-remediation", "--type", help="Job type"),
) -> None:
    """Run the whole pipeline: audit, plan, auto-fix, verify and re-audit."""
    settings = get_settings()
    job = Job(
        id=job_id or f"job_{uuid.uuid4().hex[:8]}",
        tenant_id=tenant_id,
        file_name=file_name,
        job_type=job_type,
    )

    async def execute():
        database = await init_database()
        pipeline = RemediationPipeline.for_database(
            database,
            audit_runner=CommandAuditRunner(),
            storage=LocalArtifactStorage(settings.storage_dir),
            codec=MetadataJsonCodec(),
            registry=default_registry(),
        )
        return await pipeline.execute(job)

    console.print(f"[bold blue]AccessFix[/bold blue] - job {job.id} ({file_name})")
    try:
        result = _run(execute())
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    _display_plan(result.plan)
    if result.comparison is not None:
        _display_comparison(result.comparison)


def _display_plan(remediation_plan: RemediationPlan, pending_only: bool = False) -> None:
    summary = summarize(remediation_plan)

    table = Table(title=f"Plan for {remediation_plan.job_id}")
    table.add_column("Task", style="cyan")
    table.add_column("Code", style="white")
    table.add_column("Severity")
    table.add_column("Type", style="magenta")
    table.add_column("Status", style="green")
    table.add_column("Location", style="blue")

    for item in remediation_plan.tasks:
        if pending_only and not item.is_pending:
            continue
        color = SEVERITY_COLORS.get(item.severity, 'white')
        table.add_row(
            item.id,
            item.issue_code,
            f"[{color}]{item.severity}[/{color}]",
            item.tier,
            item.status,
            item.location or "",
        )

    console.print(table)
    console.print(
        f"Total: {summary['totalTasks']}  "
        f"Done: {summary['completionPercentage']}%  "
        f"Critical remaining: {summary['criticalRemaining']}  "
        f"Manual estimate: {summary['estimatedTimeMinutes']} min"
    )


def _display_comparison(result: ComparisonResult) -> None:
    metrics = result.metrics

    table = Table(title=f"Comparison for {result.job_id}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Original issues", str(metrics.total_original))
    table.add_row("New issues", str(metrics.total_new))
    table.add_row("Resolved", str(metrics.resolved_count))
    table.add_row("Remaining", str(metrics.remaining_count))
    table.add_row("Regressions", str(metrics.regression_count))
    table.add_row("Resolution rate", f"{metrics.resolution_rate:.1f}%")
    table.add_row("Critical resolved", str(metrics.critical_resolved))
    table.add_row("Critical remaining", str(metrics.critical_remaining))
    console.print(table)


if __name__ == "__main__":
    app()
