"""Before/after audit comparison models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List

from dataclasses_json import DataClassJsonMixin, config

from .issues import Issue


@dataclass(slots=True)
class SuccessMetrics(DataClassJsonMixin):
    """Headline numbers for one reconciliation."""

    total_original: int = 0
    total_new: int = 0
    resolved_count: int = 0
    remaining_count: int = 0
    regression_count: int = 0
    resolution_rate: float = 0.0
    critical_resolved: int = 0
    critical_remaining: int = 0
    severity_breakdown: Dict[str, Dict[str, int]] = field(default_factory=dict)


@dataclass(slots=True)
class ComparisonResult(DataClassJsonMixin):
    """Resolved, remaining and regressed issues between two audits of a job."""

    job_id: str
    resolved: List[Issue] = field(default_factory=list)
    remaining: List[Issue] = field(default_factory=list)
    regressions: List[Issue] = field(default_factory=list)
    metrics: SuccessMetrics = field(default_factory=SuccessMetrics)
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc),
        metadata=config(encoder=datetime.isoformat, decoder=datetime.fromisoformat)
    )

    @property
    def is_improvement(self) -> bool:
        """More issues were resolved than introduced."""
        return self.metrics.resolved_count > self.metrics.regression_count
