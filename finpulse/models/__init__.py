"""
Data Models Package

This package contains all Pydantic models used in FinPulse.
All data flowing through the engines must conform to these schemas.
"""

from finpulse.models.ledger import (
    Budget,
    BudgetPeriod,
    Category,
    CategoryType,
    Goal,
    GoalStatus,
    GoalType,
    LedgerEntry,
)
from finpulse.models.analysis import (
    HealthScoreComponents,
    HealthScoreResult,
    HealthScoreSnapshot,
    HealthState,
    Insight,
    InsightStatus,
    InsightType,
    MonthSummary,
    PeriodComparison,
    PeriodMetrics,
    PeriodSummary,
    PeriodType,
    Severity,
    SummaryComparison,
    Task,
    TaskFilters,
    TaskPriority,
    TaskStatistics,
    TaskStatus,
    TaskType,
    TrendDirection,
    TrendPeriod,
)
from finpulse.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from finpulse.models.jobs import (
    BackgroundJobStatus,
    JobState,
    JobType,
    ProcessingResult,
    ProcessingStatistics,
)

__all__ = [
    # Ledger models
    "Budget",
    "BudgetPeriod",
    "Category",
    "CategoryType",
    "Goal",
    "GoalStatus",
    "GoalType",
    "LedgerEntry",
    # Analysis models
    "HealthScoreComponents",
    "HealthScoreResult",
    "HealthScoreSnapshot",
    "HealthState",
    "Insight",
    "InsightStatus",
    "InsightType",
    "MonthSummary",
    "PeriodComparison",
    "PeriodMetrics",
    "PeriodSummary",
    "PeriodType",
    "Severity",
    "SummaryComparison",
    "Task",
    "TaskFilters",
    "TaskPriority",
    "TaskStatistics",
    "TaskStatus",
    "TaskType",
    "TrendDirection",
    "TrendPeriod",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Job models
    "BackgroundJobStatus",
    "JobState",
    "JobType",
    "ProcessingResult",
    "ProcessingStatistics",
]
