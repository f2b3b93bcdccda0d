"""Remediation task data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from dataclasses_json import DataClassJsonMixin

from ..classification import FixTier
from .issues import Issue, IssueSeverity, IssueSource

# Type aliases
TaskStatus = Literal['PENDING', 'IN_PROGRESS', 'COMPLETED', 'FAILED', 'SKIPPED']
Priority = Literal['critical', 'high', 'medium', 'low']
CompletionMethod = Literal['auto', 'manual', 'verified']

TASK_STATUSES = ('PENDING', 'IN_PROGRESS', 'COMPLETED', 'FAILED', 'SKIPPED')
TERMINAL_STATUSES = ('COMPLETED', 'FAILED')

SEVERITY_TO_PRIORITY: Dict[str, Priority] = {
    'critical': 'critical',
    'serious': 'high',
    'moderate': 'medium',
    'minor': 'low',
}

PRIORITY_ORDER: Dict[str, int] = {'critical': 0, 'high': 1, 'medium': 2, 'low': 3}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return value


def validate_status(status: str) -> TaskStatus:
    """Return ``status`` if it is a known task status.

    Raises:
        ValueError: For any other value.
    """
    if status not in TASK_STATUSES:
        raise ValueError(f"Invalid task status: {status!r}")
    return status  # type: ignore[return-value]


@dataclass(slots=True)
class RemediationTask(DataClassJsonMixin):
    """One unit of remediation work derived from a single audit issue."""

    id: str
    job_id: str
    issue_id: str
    issue_code: str
    severity: IssueSeverity
    priority: Priority
    tier: FixTier
    status: TaskStatus = field(default='PENDING')
    location: Optional[str] = field(default=None)
    source: Optional[IssueSource] = field(default=None)
    message: str = field(default='')
    suggestion: Optional[str] = field(default=None)
    guidance: Optional[str] = field(default=None)
    wcag: List[str] = field(default_factory=list)
    resolution: Optional[str] = field(default=None)
    resolved_by: Optional[str] = field(default=None)
    resolved_at: Optional[datetime] = field(default=None)
    notes: Optional[str] = field(default=None)
    completion_method: Optional[CompletionMethod] = field(default=None)
    version: int = field(default=1)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        """Validate task data after initialization."""
        if not self.id:
            raise ValueError("Task ID cannot be empty")
        if not self.job_id:
            raise ValueError("Job ID cannot be empty")
        if not self.issue_code:
            raise ValueError("Issue code cannot be empty")
        validate_status(self.status)

    def transition(
        self,
        new_status: str,
        resolution: Optional[str] = None,
        resolved_by: Optional[str] = None,
        notes: Optional[str] = None,
        completion_method: Optional[CompletionMethod] = None,
    ) -> None:
        """Move the task to ``new_status``.

        Any status may follow any other. COMPLETED and FAILED stamp the
        resolution, resolver and resolution time.
        """
        self.status = validate_status(new_status)
        now = utcnow()
        if new_status in TERMINAL_STATUSES:
            self.resolution = resolution
            self.resolved_by = resolved_by
            self.resolved_at = now
        if notes is not None:
            self.notes = notes
        if completion_method is not None:
            self.completion_method = completion_method
        self.updated_at = now

    def as_issue(self) -> Issue:
        """View this task as the audit issue it was created from."""
        return Issue(
            id=self.issue_id,
            code=self.issue_code,
            source=self.source or 'unknown',
            severity=self.severity,
            location=self.location or '',
            message=self.message,
            suggestion=self.suggestion,
        )

    @property
    def is_pending(self) -> bool:
        return self.status == 'PENDING'

    @property
    def is_auto_fixable(self) -> bool:
        return self.tier == 'AUTO_FIXABLE'

    def to_dict(self, encode_json: bool = False) -> Dict[str, Any]:
        """Convert task to its persisted record shape."""
        return {
            'id': self.id,
            'jobId': self.job_id,
            'issueId': self.issue_id,
            'issueCode': self.issue_code,
            'severity': self.severity,
            'priority': self.priority,
            'type': self.tier,
            'status': self.status,
            'location': self.location,
            'source': self.source,
            'message': self.message,
            'suggestion': self.suggestion,
            'remediation': self.guidance,
            'wcagCriteria': list(self.wcag),
            'resolution': self.resolution,
            'resolvedBy': self.resolved_by,
            'resolvedAt': self.resolved_at.isoformat() if self.resolved_at else None,
            'notes': self.notes,
            'completionMethod': self.completion_method,
            'version': self.version,
            'createdAt': self.created_at.isoformat(),
            'updatedAt': self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], *, infer_missing: bool = False) -> RemediationTask:
        """Create task from its persisted record shape."""
        return cls(
            id=data['id'],
            job_id=data['jobId'],
            issue_id=data['issueId'],
            issue_code=data['issueCode'],
            severity=data['severity'],
            priority=data['priority'],
            tier=data['type'],
            status=data.get('status', 'PENDING'),
            location=data.get('location'),
            source=data.get('source'),
            message=data.get('message') or '',
            suggestion=data.get('suggestion'),
            guidance=data.get('remediation'),
            wcag=list(data.get('wcagCriteria') or []),
            resolution=data.get('resolution'),
            resolved_by=data.get('resolvedBy'),
            resolved_at=parse_datetime(data.get('resolvedAt')),
            notes=data.get('notes'),
            completion_method=data.get('completionMethod'),
            version=data.get('version', 1),
            created_at=parse_datetime(data.get('createdAt')) or utcnow(),
            updated_at=parse_datetime(data.get('updatedAt')) or utcnow(),
        )
