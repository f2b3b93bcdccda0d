"""Review-gate workflow and batch issue cluster models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Tuple

from dataclasses_json import DataClassJsonMixin, config

# Type aliases
Gate = Literal['ai-review', 'remediation-review', 'conformance-review', 'acr-signoff']
Decision = Literal['ACCEPT', 'REJECT', 'MODIFY', 'OVERRIDE']
WorkflowEvent = Literal[
    'AI_ACCEPTED',
    'AI_REJECTED',
    'REMEDIATION_APPROVED',
    'CONFORMANCE_APPROVED',
    'ACR_APPROVED',
    'ERROR',
]

DECISIONS: Tuple[str, ...] = ('ACCEPT', 'REJECT', 'MODIFY', 'OVERRIDE')
MAX_REPRESENTATIVE_ISSUES = 3

GATE_STATES: Dict[str, str] = {
    'ai-review': 'AWAITING_AI_REVIEW',
    'remediation-review': 'AWAITING_REMEDIATION_REVIEW',
    'conformance-review': 'AWAITING_CONFORMANCE_REVIEW',
    'acr-signoff': 'AWAITING_ACR_SIGNOFF',
}

# stateData key each gate writes its per-issue decisions under
GATE_DECISION_KEYS: Dict[str, str] = {
    'ai-review': 'aiReviewDecisions',
    'remediation-review': 'remediationDecisions',
    'conformance-review': 'conformanceDecisions',
    'acr-signoff': 'acrSignoffDecisions',
}

# (state, event) -> next state for the review gates
TRANSITIONS: Dict[Tuple[str, str], str] = {
    ('AWAITING_AI_REVIEW', 'AI_ACCEPTED'): 'AUTO_REMEDIATION',
    ('AWAITING_AI_REVIEW', 'AI_REJECTED'): 'RUNNING_AI_ANALYSIS',
    ('AWAITING_REMEDIATION_REVIEW', 'REMEDIATION_APPROVED'): 'VERIFICATION_AUDIT',
    ('AWAITING_CONFORMANCE_REVIEW', 'CONFORMANCE_APPROVED'): 'ACR_GENERATION',
    ('AWAITING_ACR_SIGNOFF', 'ACR_APPROVED'): 'COMPLETED',
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def gate_state(gate: str) -> str:
    """Workflow state that waits at a review gate.

    Raises:
        ValueError: For an unknown gate slug.
    """
    try:
        return GATE_STATES[gate]
    except KeyError:
        raise ValueError(f"Unknown gate slug: {gate}") from None


@dataclass(slots=True)
class ReviewWorkflow(DataClassJsonMixin):
    """One job's progress through the human-review gates of a batch."""

    id: str
    batch_id: str
    job_id: str
    current_state: str
    state_data: Dict[str, Any] = field(default_factory=dict)
    updated_at: datetime = field(
        default_factory=_now,
        metadata=config(encoder=datetime.isoformat, decoder=datetime.fromisoformat)
    )

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Workflow ID cannot be empty")
        if not self.job_id:
            raise ValueError("Job ID cannot be empty")

    def next_state(self, event: str) -> str:
        """State reached by applying ``event``; ERROR always leads to FAILED."""
        if event == 'ERROR':
            return 'FAILED'
        try:
            return TRANSITIONS[(self.current_state, event)]
        except KeyError:
            raise ValueError(
                f"Event {event} is not valid in state {self.current_state}"
            ) from None

    def apply_event(self, event: str) -> str:
        """Advance the workflow and return the new state."""
        self.current_state = self.next_state(event)
        self.updated_at = _now()
        return self.current_state


@dataclass(slots=True)
class IssueCluster(DataClassJsonMixin):
    """All pending issues sharing one code across the jobs at a gate."""

    batch_id: str
    gate: Gate
    issue_code: str
    issue_title: str
    severity: str
    file_count: int = 0
    total_instances: int = 0
    job_incidence: Dict[str, int] = field(default_factory=dict)
    representative_issues: List[Dict[str, Any]] = field(default_factory=list)
    decision: Optional[Decision] = None
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = field(
        default=None,
        metadata=config(
            encoder=lambda value: value.isoformat() if value else None,
            decoder=lambda value: datetime.fromisoformat(value) if value else None,
        )
    )

    def add(self, job_id: str, example: Dict[str, Any]) -> None:
        """Count one more instance of this code seen in ``job_id``."""
        if job_id not in self.job_incidence:
            self.job_incidence[job_id] = 0
            self.file_count += 1
        self.job_incidence[job_id] += 1
        self.total_instances += 1
        if len(self.representative_issues) < MAX_REPRESENTATIVE_ISSUES:
            self.representative_issues.append(example)

    @property
    def is_decided(self) -> bool:
        return self.decision is not None
