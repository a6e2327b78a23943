"""
Derived Analysis Models for FinPulse

Records produced by the intelligence engines: health score snapshots,
trend periods, insights and tasks.

DESIGN DECISION: Snapshots, trend periods and insights are append-only.
Insights are never deleted; they only change status through an explicit
user action.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from finpulse.clock import new_id, utcnow


# =============================================================================
# ENUMS
# =============================================================================

class HealthState(str, Enum):
    STABLE = "stable"
    IMPROVING = "improving"
    DRIFTING = "drifting"
    AT_RISK = "at_risk"


class TrendDirection(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class PeriodType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class InsightType(str, Enum):
    """
    Kinds of insight.

    The first six are produced by signal rules; early-warning alerts reuse
    budget_leakage, savings_drop and debt_growth.
    """
    SPENDING_SPIKE = "spending_spike"
    SAVINGS_DROP = "savings_drop"
    BUDGET_LEAKAGE = "budget_leakage"
    INCOME_DIP = "income_dip"
    DEBT_GROWTH = "debt_growth"
    TRANSACTION_SILENCE = "transaction_silence"
    CATEGORY_ANOMALY = "category_anomaly"
    GOAL_MILESTONE = "goal_milestone"
    POSITIVE_TREND = "positive_trend"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class InsightStatus(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"
    ESCALATED = "escalated"


class TaskType(str, Enum):
    BUDGET_ADJUSTMENT = "budget_adjustment"
    GOAL_REVIEW = "goal_review"
    SPENDING_REVIEW = "spending_review"
    PAYMENT_REMINDER = "payment_reminder"
    ACCOUNT_REVIEW = "account_review"
    CATEGORY_CLEANUP = "category_cleanup"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    TaskPriority.LOW: 0,
    TaskPriority.MEDIUM: 1,
    TaskPriority.HIGH: 2,
    TaskPriority.URGENT: 3,
}


class TaskStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DISMISSED = "dismissed"
    ARCHIVED = "archived"


# =============================================================================
# METRICS
# =============================================================================

class PeriodMetrics(BaseModel):
    """Aggregated totals for a window of ledger entries."""

    income_total: float = 0.0
    expense_total: float = 0.0
    savings_total: float = 0.0
    savings_rate: float = Field(
        default=0.0,
        description="Savings as a percentage of income (0 when there is no income)"
    )
    transaction_count: int = Field(default=0, ge=0)
    average_transaction: float = 0.0


class PeriodComparison(BaseModel):
    """Income percentage change against earlier periods."""

    vs_previous_period: float = 0.0
    vs_3_month_average: float = 0.0
    vs_6_month_average: float = 0.0


# =============================================================================
# HEALTH SCORE
# =============================================================================

class HealthScoreComponents(BaseModel):
    """The five weighted sub-scores, each on a 0-100 scale."""

    savings_rate: float = Field(..., ge=0, le=100)
    budget_adherence: float = Field(..., ge=0, le=100)
    income_stability: float = Field(..., ge=0, le=100)
    expense_volatility: float = Field(..., ge=0, le=100)
    goal_progress: float = Field(..., ge=0, le=100)


class HealthScoreSnapshot(BaseModel):
    """One persisted health score calculation. Never updated in place."""

    id: str = Field(default_factory=new_id)
    user_id: str
    score: int = Field(..., ge=0, le=100)
    health_state: HealthState
    trend_direction: TrendDirection
    components: HealthScoreComponents
    calculated_at: datetime = Field(default_factory=utcnow)


class HealthScoreResult(BaseModel):
    """What calculate_health_score returns to callers."""

    score: int = Field(..., ge=0, le=100)
    health_state: HealthState
    trend_direction: TrendDirection
    components: HealthScoreComponents
    previous_score: Optional[int] = None


# =============================================================================
# TRENDS
# =============================================================================

class TrendPeriod(BaseModel):
    """Metrics and comparisons for one daily, weekly or monthly period."""

    id: str = Field(default_factory=new_id)
    user_id: str
    period_type: PeriodType
    period_start: date
    period_end: date
    metrics: PeriodMetrics
    comparisons: PeriodComparison
    calculated_at: datetime = Field(default_factory=utcnow)


# =============================================================================
# INSIGHTS AND TASKS
# =============================================================================

class Insight(BaseModel):
    """
    A detected pattern in a user's financial data.

    Created by signal detection or the early-warning system with status
    ACTIVE. Only an explicit user action moves it to RESOLVED or DISMISSED.
    """

    id: str = Field(default_factory=new_id)
    user_id: str
    insight_type: InsightType
    severity: Severity
    title: str = Field(..., min_length=1, max_length=200)
    explanation: str = Field(..., min_length=1)
    supporting_data: dict[str, Any] = Field(default_factory=dict)
    status: InsightStatus = Field(default=InsightStatus.ACTIVE)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    resolved_at: Optional[datetime] = None


class Task(BaseModel):
    """A follow-up action, usually generated from an insight."""

    id: str = Field(default_factory=new_id)
    user_id: str
    source_insight_id: Optional[str] = None
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    task_type: TaskType
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM)
    status: TaskStatus = Field(default=TaskStatus.OPEN)
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class TaskFilters(BaseModel):
    """Optional filters for listing tasks."""

    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    task_type: Optional[TaskType] = None
    source_insight_id: Optional[str] = None
    due_before: Optional[datetime] = None
    due_after: Optional[datetime] = None
    limit: Optional[int] = Field(default=None, ge=1)
    offset: int = Field(default=0, ge=0)


class TaskStatistics(BaseModel):
    total: int = 0
    open: int = 0
    in_progress: int = 0
    completed: int = 0
    overdue: int = 0
    by_priority: dict[str, int] = Field(default_factory=dict)
    by_type: dict[str, int] = Field(default_factory=dict)


# =============================================================================
# PERIOD SUMMARY
# =============================================================================

class MonthSummary(BaseModel):
    """Totals for one calendar month."""

    period: str = Field(..., description="Label such as 'June 2026'")
    income: float = 0.0
    expenses: float = 0.0
    savings: float = 0.0
    savings_rate: float = 0.0
    transaction_count: int = 0


class SummaryComparison(BaseModel):
    income_change: float = 0.0
    expense_change: float = 0.0
    savings_change: float = 0.0
    savings_rate_change: float = Field(
        default=0.0,
        description="Difference in percentage points"
    )
    transaction_change: float = 0.0


class PeriodSummary(BaseModel):
    """Current month against the previous month."""

    current_period: MonthSummary
    previous_period: MonthSummary
    comparison: SummaryComparison
    trends: dict[str, str] = Field(
        default_factory=dict,
        description="increasing / decreasing / stable per income, expense, savings"
    )
