"""Structured logging configuration for AccessFix."""

import logging
import sys
from typing import Any, Dict, Optional

import structlog
from structlog.types import Processor

from .config import get_settings


def setup_logging() -> None:
    """Configure structured logging for AccessFix."""
    settings = get_settings()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )

    # Configure structlog
    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def log_audit_event(
    logger: structlog.stdlib.BoundLogger,
    event: str,
    actor: str,
    action: str,
    resource: str,
    status: str,
    duration_ms: Optional[int] = None,
    **kwargs: Any,
) -> None:
    """Log an audit event with standardized fields."""
    log_data: Dict[str, Any] = {
        "actor": actor,
        "action": action,
        "resource": resource,
        "status": status,
    }

    if duration_ms is not None:
        log_data["duration_ms"] = duration_ms

    log_data.update(kwargs)

    logger.info(event, **log_data)


def log_pipeline_event(
    logger: structlog.stdlib.BoundLogger,
    job_id: str,
    phase: str,
    job: Any = None,
    stats: Any = None,
    **kwargs: Any,
) -> None:
    """Log one remediation pipeline phase of a job.

    ``job`` adds its tenant and document details. ``stats`` (a plan's
    ``PlanStats``) adds the task counts per status and fix tier.
    """
    log_data: Dict[str, Any] = {
        "job_id": job_id,
        "phase": phase,
    }

    if job is not None:
        log_data["tenant_id"] = job.tenant_id
        log_data["file_name"] = job.file_name
        log_data["job_type"] = job.job_type
    if stats is not None:
        log_data["total_tasks"] = stats.total
        log_data["by_status"] = {k: v for k, v in stats.by_status.items() if v}
        log_data["by_tier"] = dict(stats.by_tier)

    log_data.update(kwargs)

    logger.info(f"pipeline.{phase}", **log_data)


def log_tally(
    logger: structlog.stdlib.BoundLogger,
    label: str,
    tally: Any,
    **kwargs: Any,
) -> None:
    """Log an issue tally breakdown."""
    log_data: Dict[str, Any] = {
        "stage": tally.stage,
        "grand_total": tally.grand_total,
        "by_source": dict(tally.by_source),
        "by_severity": dict(tally.by_severity),
        "by_classification": dict(tally.by_classification),
    }

    # Status counts only mean something once tasks exist
    if any(tally.by_status.values()):
        log_data["by_status"] = dict(tally.by_status)

    log_data.update(kwargs)

    logger.info(f"tally.{label}", **log_data)


# Initialize logging on module import
setup_logging()
