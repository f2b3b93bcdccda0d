"""Data models for AccessFix."""

from .batch import IssueCluster, ReviewWorkflow
from .comparison import ComparisonResult, SuccessMetrics
from .issues import Issue, IssueSeverity, IssueSource, parse_issue, parse_issues
from .jobs import Job, JobStatus
from .plans import PlanStats, RemediationPlan
from .tally import IssueTally, TallyValidation, create_tally, validate_tally_transition
from .tasks import Priority, RemediationTask, TaskStatus

__all__ = [
    "IssueCluster",
    "ReviewWorkflow",
    "ComparisonResult",
    "SuccessMetrics",
    "Issue",
    "IssueSeverity",
    "IssueSource",
    "parse_issue",
    "parse_issues",
    "Job",
    "JobStatus",
    "PlanStats",
    "RemediationPlan",
    "IssueTally",
    "TallyValidation",
    "create_tally",
    "validate_tally_transition",
    "Priority",
    "RemediationTask",
    "TaskStatus",
]
