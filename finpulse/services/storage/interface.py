"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the rule engines decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Every read is filtered by user_id (plus a date range where relevant) and
every write is an append or an update by primary key.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Optional
from uuid import UUID

from finpulse.models.analysis import (
    HealthScoreSnapshot,
    Insight,
    InsightStatus,
    InsightType,
    PeriodType,
    Task,
    TrendPeriod,
)
from finpulse.models.audit import AuditEvent
from finpulse.models.ledger import (
    Budget,
    Category,
    Goal,
    GoalStatus,
    LedgerEntry,
)


class FinanceStorageInterface(ABC):
    """
    Abstract interface for finance data storage.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    # -------------------------------------------------------------------------
    # Users and ledger (owned by the surrounding application)
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_user_ids(self) -> list[str]:
        """Return the ids of every user that has data in this store."""
        pass

    @abstractmethod
    async def save_category(self, category: Category) -> bool:
        pass

    @abstractmethod
    async def get_category(self, user_id: str, category_id: str) -> Optional[Category]:
        pass

    @abstractmethod
    async def save_entry(self, entry: LedgerEntry) -> bool:
        pass

    @abstractmethod
    async def list_entries(
        self,
        user_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        category_id: Optional[str] = None,
    ) -> list[LedgerEntry]:
        """
        List a user's ledger entries.

        Args:
            user_id: Owner of the entries
            date_from: Entries on or after this date
            date_to: Entries on or before this date
            category_id: Only entries in this category

        Returns:
            Matching entries, oldest first
        """
        pass

    @abstractmethod
    async def save_budget(self, budget: Budget) -> bool:
        pass

    @abstractmethod
    async def list_budgets(self, user_id: str, active_only: bool = True) -> list[Budget]:
        pass

    @abstractmethod
    async def save_goal(self, goal: Goal) -> bool:
        pass

    @abstractmethod
    async def list_goals(
        self,
        user_id: str,
        status: Optional[GoalStatus] = None,
    ) -> list[Goal]:
        pass

    # -------------------------------------------------------------------------
    # Health scores and trends (append-only)
    # -------------------------------------------------------------------------

    @abstractmethod
    async def append_health_snapshot(self, snapshot: HealthScoreSnapshot) -> bool:
        pass

    @abstractmethod
    async def get_latest_health_snapshot(
        self,
        user_id: str,
    ) -> Optional[HealthScoreSnapshot]:
        """Most recent snapshot by calculated_at, or None."""
        pass

    @abstractmethod
    async def list_health_snapshots(
        self,
        user_id: str,
        limit: int = 30,
    ) -> list[HealthScoreSnapshot]:
        """Snapshots newest first."""
        pass

    @abstractmethod
    async def append_trend_period(self, period: TrendPeriod) -> bool:
        pass

    @abstractmethod
    async def list_trend_periods(
        self,
        user_id: str,
        period_type: Optional[PeriodType] = None,
    ) -> list[TrendPeriod]:
        pass

    # -------------------------------------------------------------------------
    # Insights
    # -------------------------------------------------------------------------

    @abstractmethod
    async def append_insight(self, insight: Insight) -> bool:
        pass

    @abstractmethod
    async def get_insight(self, user_id: str, insight_id: str) -> Optional[Insight]:
        """Return the insight only if it belongs to user_id."""
        pass

    @abstractmethod
    async def update_insight(self, insight: Insight) -> bool:
        """
        Replace a stored insight.

        Raises:
            NotFoundError: If the insight doesn't exist
        """
        pass

    @abstractmethod
    async def list_insights(
        self,
        user_id: str,
        status: Optional[InsightStatus] = None,
    ) -> list[Insight]:
        pass

    @abstractmethod
    async def find_recent_insight(
        self,
        user_id: str,
        insight_type: InsightType,
        since: datetime,
        status: Optional[InsightStatus] = InsightStatus.ACTIVE,
    ) -> Optional[Insight]:
        """
        Newest insight of a type created at or after `since`.

        Used for duplicate suppression. Pass status=None to match any status.
        """
        pass

    # -------------------------------------------------------------------------
    # Tasks
    # -------------------------------------------------------------------------

    @abstractmethod
    async def save_task(self, task: Task) -> bool:
        pass

    @abstractmethod
    async def get_task(self, user_id: str, task_id: str) -> Optional[Task]:
        pass

    @abstractmethod
    async def update_task(self, task: Task) -> bool:
        """
        Raises:
            NotFoundError: If the task doesn't exist
        """
        pass

    @abstractmethod
    async def delete_task(self, user_id: str, task_id: str) -> bool:
        """Returns False when nothing was deleted."""
        pass

    @abstractmethod
    async def list_tasks(self, user_id: str) -> list[Task]:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Events of one pipeline run, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Events for a specific entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Most recent events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage (or not owned by the caller)."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
