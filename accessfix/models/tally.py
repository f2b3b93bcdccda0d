"""Issue tallies that prove no issue is lost between pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Literal, Optional

from dataclasses_json import DataClassJsonMixin, config

from ..classification import TIERS, classify
from .issues import SEVERITIES, SOURCES, normalize_severity, normalize_source
from .tasks import TASK_STATUSES

# Type aliases
TallyStage = Literal['audit', 'remediation_plan', 'deduplicated', 'in_progress', 'completed']


def _zeroed(keys: Iterable[str]) -> Dict[str, int]:
    return {key: 0 for key in keys}


@dataclass(slots=True)
class IssueTally(DataClassJsonMixin):
    """Counts of an issue or task collection at one pipeline stage."""

    stage: TallyStage
    by_source: Dict[str, int] = field(default_factory=lambda: _zeroed(SOURCES))
    by_severity: Dict[str, int] = field(default_factory=lambda: _zeroed(SEVERITIES))
    by_classification: Dict[str, int] = field(default_factory=lambda: _zeroed(TIERS))
    by_status: Dict[str, int] = field(default_factory=lambda: _zeroed(TASK_STATUSES))
    grand_total: int = 0
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc),
        metadata=config(encoder=datetime.isoformat, decoder=datetime.fromisoformat)
    )

    @property
    def is_consistent(self) -> bool:
        """Every breakdown sums to the grand total."""
        return (
            sum(self.by_source.values()) == self.grand_total
            and sum(self.by_severity.values()) == self.grand_total
            and sum(self.by_classification.values()) == self.grand_total
        )


@dataclass(slots=True)
class Discrepancy(DataClassJsonMixin):
    field: str
    expected: int
    actual: int
    difference: int


@dataclass(slots=True)
class TallyValidation(DataClassJsonMixin):
    """Outcome of comparing the tallies of two consecutive stages."""

    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    discrepancies: List[Discrepancy] = field(default_factory=list)
    deduped_count: int = 0


def _item_code(item: Any) -> str:
    return getattr(item, 'issue_code', None) or getattr(item, 'code', '')


def create_tally(items: Iterable[Any], stage: TallyStage) -> IssueTally:
    """Tally issues or remediation tasks.

    Tasks contribute their stored tier and status; issues are classified on the
    fly and leave the status breakdown at zero.
    """
    tally = IssueTally(stage=stage)
    for item in items:
        tally.by_source[normalize_source(getattr(item, 'source', None))] += 1
        tally.by_severity[normalize_severity(getattr(item, 'severity', None))] += 1

        tier = getattr(item, 'tier', None) or classify(_item_code(item))
        tally.by_classification[tier] += 1

        status = getattr(item, 'status', None)
        if status in tally.by_status:
            tally.by_status[status] += 1

        tally.grand_total += 1
    return tally


def validate_tally_transition(
    previous: IssueTally,
    current: IssueTally,
    deduped: Optional[IssueTally] = None,
) -> TallyValidation:
    """Check ``previous == current + deduped`` overall and per source."""
    deduped = deduped or IssueTally(stage='deduplicated')
    result = TallyValidation(is_valid=True, deduped_count=deduped.grand_total)

    expected_total = previous.grand_total - deduped.grand_total
    if expected_total != current.grand_total:
        diff = expected_total - current.grand_total
        result.discrepancies.append(Discrepancy(
            field='grandTotal',
            expected=expected_total,
            actual=current.grand_total,
            difference=diff,
        ))
        result.errors.append(
            f"Issue count changed: {previous.grand_total} -> {current.grand_total} "
            f"with {deduped.grand_total} deduplicated ({diff} missing)"
        )

    for source in SOURCES:
        expected = previous.by_source.get(source, 0) - deduped.by_source.get(source, 0)
        actual = current.by_source.get(source, 0)
        if expected != actual:
            result.discrepancies.append(Discrepancy(
                field=f"bySource.{source}",
                expected=expected,
                actual=actual,
                difference=expected - actual,
            ))
            result.errors.append(f"{source} issues: expected {expected}, found {actual}")

    if not current.is_consistent:
        result.warnings.append(f"Tally for stage {current.stage} has inconsistent breakdowns")

    result.is_valid = not result.errors
    return result
