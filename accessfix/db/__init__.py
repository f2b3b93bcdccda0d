"""Database utilities for AccessFix."""

from .connection import Database, close_database, get_database, init_database
from .job_store import JobStore
from .memory import InMemoryPlanStore
from .plan_store import PlanStore, SqlPlanStore
from .report_store import ComparisonStore
from .review_store import ReviewStore

__all__ = [
    "Database",
    "close_database",
    "get_database",
    "init_database",
    "JobStore",
    "InMemoryPlanStore",
    "PlanStore",
    "SqlPlanStore",
    "ComparisonStore",
    "ReviewStore",
]
