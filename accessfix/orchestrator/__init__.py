"""Orchestration components for the AccessFix remediation engine."""

from .batch import BatchClusterAggregator
from .dispatcher import AutoRemediationDispatcher, DispatchResult
from .pipeline import PipelineResult, RemediationPipeline
from .planner import PlanBuilder
from .reconciler import calculate_success_metrics, compare_issue_sets, reconcile
from .tracker import StatusUpdate, TaskStateTracker
from .validators import ReauditVerifier, TargetedVerifier, VerificationReport

__all__ = [
    "BatchClusterAggregator",
    "AutoRemediationDispatcher",
    "DispatchResult",
    "PipelineResult",
    "RemediationPipeline",
    "PlanBuilder",
    "calculate_success_metrics",
    "compare_issue_sets",
    "reconcile",
    "StatusUpdate",
    "TaskStateTracker",
    "ReauditVerifier",
    "TargetedVerifier",
    "VerificationReport",
]
