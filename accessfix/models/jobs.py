"""Job data models for admission-controlled remediation work."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal, Optional

from dataclasses_json import DataClassJsonMixin, config

# Type aliases
JobStatus = Literal['queued', 'processing', 'completed', 'failed']
JobType = Literal['epub-remediation', 'pdf-remediation', 'batch-analysis']

ACTIVE_JOB_STATUSES = ('queued', 'processing')


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class Job(DataClassJsonMixin):
    """One unit of expensive analysis or remediation work for a tenant."""

    id: str
    tenant_id: str
    file_name: str
    job_type: JobType = field(default='epub-remediation')
    status: JobStatus = field(default='queued')
    notes: Optional[str] = field(default=None)
    started_at: Optional[datetime] = field(default=None)
    ended_at: Optional[datetime] = field(default=None)
    created_at: datetime = field(
        default_factory=_now,
        metadata=config(encoder=datetime.isoformat, decoder=datetime.fromisoformat)
    )
    updated_at: datetime = field(
        default_factory=_now,
        metadata=config(encoder=datetime.isoformat, decoder=datetime.fromisoformat)
    )

    def __post_init__(self) -> None:
        """Validate job data after initialization."""
        if not self.id:
            raise ValueError("Job ID cannot be empty")
        if not self.tenant_id:
            raise ValueError("Tenant ID cannot be empty")

    def start(self) -> None:
        """Mark the job as processing."""
        self.status = 'processing'
        self.started_at = _now()
        self.updated_at = self.started_at

    def complete(self, status: JobStatus = 'completed', notes: Optional[str] = None) -> None:
        """Mark the job as finished."""
        self.status = status
        self.ended_at = _now()
        if notes:
            self.notes = notes
        self.updated_at = self.ended_at

    def fail(self, error_message: str) -> None:
        """Mark the job as failed."""
        self.complete('failed', f"Error: {error_message}")

    def to_dict(self, encode_json: bool = False) -> dict:
        """Convert job to dictionary for database storage."""
        return {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'file_name': self.file_name,
            'job_type': self.job_type,
            'status': self.status,
            'notes': self.notes,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'ended_at': self.ended_at.isoformat() if self.ended_at else None,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict, *, infer_missing: bool = False) -> Job:
        """Create job from dictionary."""
        data = dict(data)
        # Handle datetime fields
        for key in ('started_at', 'ended_at', 'created_at', 'updated_at'):
            if isinstance(data.get(key), str):
                data[key] = datetime.fromisoformat(data[key])

        return cls(**data)

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get the duration of the job in seconds."""
        if self.ended_at and self.started_at:
            return (self.ended_at - self.started_at).total_seconds()
        return None

    @property
    def is_active(self) -> bool:
        """Check if the job counts against the tenant's concurrency cap."""
        return self.status in ACTIVE_JOB_STATUSES
