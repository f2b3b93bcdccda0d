"""Diff of two audits of the same document.

Matching is greedy over the original issues, in list order. Each original
takes the first unconsumed new issue with:

1. the same code and the same normalized location (an empty location never
   matches this way), or failing that
2. the same code and the same severity, which tolerates locations that moved
   when content reflowed

Every issue on either side takes part in at most one match, so an early
fuzzy match can take a new issue that a later original would have matched
exactly.
"""

from typing import Iterable, List, Optional, Sequence, Set

from ..logging import get_logger
from ..models.comparison import ComparisonResult, SuccessMetrics
from ..models.issues import SEVERITIES, Issue, parse_issues

logger = get_logger(__name__)


def _first_unmatched(
    original: Issue,
    new_issues: Sequence[Issue],
    consumed: Set[int],
    strict: bool,
) -> Optional[int]:
    location = original.normalized_location
    if strict and not location:
        return None
    for index, candidate in enumerate(new_issues):
        if index in consumed or candidate.code != original.code:
            continue
        if strict:
            if candidate.normalized_location == location:
                return index
        elif candidate.severity == original.severity:
            return index
    return None


def compare_issue_sets(
    original_issues: Sequence[Issue],
    new_issues: Sequence[Issue],
    job_id: str = "",
) -> ComparisonResult:
    """Split two issue lists into resolved, remaining and regressions.

    ``remaining`` holds the matched issues from the new audit, in the order of
    the originals they matched.
    """
    consumed: Set[int] = set()
    resolved: List[Issue] = []
    remaining: List[Issue] = []

    for original in original_issues:
        new_index = _first_unmatched(original, new_issues, consumed, strict=True)
        if new_index is None:
            new_index = _first_unmatched(original, new_issues, consumed, strict=False)
        if new_index is None:
            resolved.append(original)
        else:
            consumed.add(new_index)
            remaining.append(new_issues[new_index])

    regressions = [issue for index, issue in enumerate(new_issues) if index not in consumed]

    result = ComparisonResult(
        job_id=job_id,
        resolved=resolved,
        remaining=remaining,
        regressions=regressions,
    )
    result.metrics = calculate_success_metrics(result)

    logger.info(
        "Issue sets compared",
        job_id=job_id,
        original=len(original_issues),
        new=len(new_issues),
        resolved=len(resolved),
        remaining=len(remaining),
        regressions=len(regressions),
    )
    return result


def calculate_success_metrics(comparison: ComparisonResult) -> SuccessMetrics:
    """Headline metrics of a comparison; the rate is 0.0 when nothing was compared."""
    resolved_count = len(comparison.resolved)
    remaining_count = len(comparison.remaining)
    regression_count = len(comparison.regressions)

    total_original = resolved_count + remaining_count
    resolution_rate = resolved_count / total_original * 100 if total_original else 0.0

    breakdown = {severity: {"resolved": 0, "remaining": 0} for severity in SEVERITIES}
    for issue in comparison.resolved:
        breakdown[issue.severity]["resolved"] += 1
    for issue in comparison.remaining:
        breakdown[issue.severity]["remaining"] += 1

    return SuccessMetrics(
        total_original=total_original,
        total_new=remaining_count + regression_count,
        resolved_count=resolved_count,
        remaining_count=remaining_count,
        regression_count=regression_count,
        resolution_rate=float(resolution_rate),
        critical_resolved=breakdown["critical"]["resolved"],
        critical_remaining=breakdown["critical"]["remaining"],
        severity_breakdown=breakdown,
    )


def reconcile(job_id: str, original_raw: Iterable, new_raw: Iterable) -> ComparisonResult:
    """Validate two raw audit outputs and compare them."""
    original, dropped_original = parse_issues(original_raw)
    new, dropped_new = parse_issues(new_raw)
    if dropped_original or dropped_new:
        logger.warning(
            "Dropped malformed issues before comparison",
            job_id=job_id,
            dropped_original=dropped_original,
            dropped_new=dropped_new,
        )
    return compare_issue_sets(original, new, job_id=job_id)
