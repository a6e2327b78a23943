"""
In-Memory Storage Implementation

Used by the test-suite and for local runs without Google credentials.
Objects are deep-copied on the way in and out so callers can't mutate
stored state behind the store's back, the same as with a real backend.
"""

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
from finpulse.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    FinanceStorageInterface,
    NotFoundError,
)


class InMemoryFinanceStorage(FinanceStorageInterface):
    """Dictionary-backed finance storage."""

    def __init__(self):
        self._categories: dict[str, Category] = {}
        self._entries: dict[str, LedgerEntry] = {}
        self._budgets: dict[str, Budget] = {}
        self._goals: dict[str, Goal] = {}
        self._snapshots: list[HealthScoreSnapshot] = []
        self._trend_periods: list[TrendPeriod] = []
        self._insights: dict[str, Insight] = {}
        self._tasks: dict[str, Task] = {}

    # -------------------------------------------------------------------------
    # Users and ledger
    # -------------------------------------------------------------------------

    async def list_user_ids(self) -> list[str]:
        user_ids = {e.user_id for e in self._entries.values()}
        user_ids.update(b.user_id for b in self._budgets.values())
        user_ids.update(g.user_id for g in self._goals.values())
        return sorted(user_ids)

    async def save_category(self, category: Category) -> bool:
        self._categories[category.id] = category.model_copy(deep=True)
        return True

    async def get_category(self, user_id: str, category_id: str) -> Optional[Category]:
        category = self._categories.get(category_id)
        if category is None or category.user_id != user_id:
            return None
        return category.model_copy(deep=True)

    async def save_entry(self, entry: LedgerEntry) -> bool:
        if entry.id in self._entries:
            raise DuplicateError(f"Ledger entry already exists: {entry.id}")
        self._entries[entry.id] = entry.model_copy(deep=True)
        return True

    async def list_entries(
        self,
        user_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        category_id: Optional[str] = None,
    ) -> list[LedgerEntry]:
        entries = []
        for entry in self._entries.values():
            if entry.user_id != user_id:
                continue
            if date_from and entry.entry_date < date_from:
                continue
            if date_to and entry.entry_date > date_to:
                continue
            if category_id and entry.category_id != category_id:
                continue
            entries.append(entry.model_copy(deep=True))

        entries.sort(key=lambda e: e.entry_date)
        return entries

    async def save_budget(self, budget: Budget) -> bool:
        self._budgets[budget.id] = budget.model_copy(deep=True)
        return True

    async def list_budgets(self, user_id: str, active_only: bool = True) -> list[Budget]:
        return [
            b.model_copy(deep=True)
            for b in self._budgets.values()
            if b.user_id == user_id and (b.is_active or not active_only)
        ]

    async def save_goal(self, goal: Goal) -> bool:
        self._goals[goal.id] = goal.model_copy(deep=True)
        return True

    async def list_goals(
        self,
        user_id: str,
        status: Optional[GoalStatus] = None,
    ) -> list[Goal]:
        return [
            g.model_copy(deep=True)
            for g in self._goals.values()
            if g.user_id == user_id and (status is None or g.status == status)
        ]

    # -------------------------------------------------------------------------
    # Health scores and trends
    # -------------------------------------------------------------------------

    async def append_health_snapshot(self, snapshot: HealthScoreSnapshot) -> bool:
        self._snapshots.append(snapshot.model_copy(deep=True))
        return True

    async def get_latest_health_snapshot(
        self,
        user_id: str,
    ) -> Optional[HealthScoreSnapshot]:
        snapshots = await self.list_health_snapshots(user_id, limit=1)
        return snapshots[0] if snapshots else None

    async def list_health_snapshots(
        self,
        user_id: str,
        limit: int = 30,
    ) -> list[HealthScoreSnapshot]:
        # Stable sort keeps insertion order for equal timestamps, so reverse
        # the list first to make the last appended snapshot win ties.
        owned = [s for s in reversed(self._snapshots) if s.user_id == user_id]
        owned.sort(key=lambda s: s.calculated_at, reverse=True)
        return [s.model_copy(deep=True) for s in owned[:limit]]

    async def append_trend_period(self, period: TrendPeriod) -> bool:
        self._trend_periods.append(period.model_copy(deep=True))
        return True

    async def list_trend_periods(
        self,
        user_id: str,
        period_type: Optional[PeriodType] = None,
    ) -> list[TrendPeriod]:
        periods = [
            p.model_copy(deep=True)
            for p in self._trend_periods
            if p.user_id == user_id and (period_type is None or p.period_type == period_type)
        ]
        periods.sort(key=lambda p: (p.period_type.value, p.period_start))
        return periods

    # -------------------------------------------------------------------------
    # Insights
    # -------------------------------------------------------------------------

    async def append_insight(self, insight: Insight) -> bool:
        if insight.id in self._insights:
            raise DuplicateError(f"Insight already exists: {insight.id}")
        self._insights[insight.id] = insight.model_copy(deep=True)
        return True

    async def get_insight(self, user_id: str, insight_id: str) -> Optional[Insight]:
        insight = self._insights.get(insight_id)
        if insight is None or insight.user_id != user_id:
            return None
        return insight.model_copy(deep=True)

    async def update_insight(self, insight: Insight) -> bool:
        if insight.id not in self._insights:
            raise NotFoundError(f"Insight not found: {insight.id}")
        self._insights[insight.id] = insight.model_copy(deep=True)
        return True

    async def list_insights(
        self,
        user_id: str,
        status: Optional[InsightStatus] = None,
    ) -> list[Insight]:
        return [
            i.model_copy(deep=True)
            for i in self._insights.values()
            if i.user_id == user_id and (status is None or i.status == status)
        ]

    async def find_recent_insight(
        self,
        user_id: str,
        insight_type: InsightType,
        since: datetime,
        status: Optional[InsightStatus] = InsightStatus.ACTIVE,
    ) -> Optional[Insight]:
        matches = [
            i for i in self._insights.values()
            if i.user_id == user_id
            and i.insight_type == insight_type
            and i.created_at >= since
            and (status is None or i.status == status)
        ]
        if not matches:
            return None
        return max(matches, key=lambda i: i.created_at).model_copy(deep=True)

    # -------------------------------------------------------------------------
    # Tasks
    # -------------------------------------------------------------------------

    async def save_task(self, task: Task) -> bool:
        if task.id in self._tasks:
            raise DuplicateError(f"Task already exists: {task.id}")
        self._tasks[task.id] = task.model_copy(deep=True)
        return True

    async def get_task(self, user_id: str, task_id: str) -> Optional[Task]:
        task = self._tasks.get(task_id)
        if task is None or task.user_id != user_id:
            return None
        return task.model_copy(deep=True)

    async def update_task(self, task: Task) -> bool:
        if task.id not in self._tasks:
            raise NotFoundError(f"Task not found: {task.id}")
        self._tasks[task.id] = task.model_copy(deep=True)
        return True

    async def delete_task(self, user_id: str, task_id: str) -> bool:
        task = self._tasks.get(task_id)
        if task is None or task.user_id != user_id:
            return False
        del self._tasks[task_id]
        return True

    async def list_tasks(self, user_id: str) -> list[Task]:
        return [t.model_copy(deep=True) for t in self._tasks.values() if t.user_id == user_id]


class InMemoryAuditStorage(AuditStorageInterface):
    """List-backed audit storage. Append-only."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        return [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return sorted(self._events, key=lambda e: e.timestamp, reverse=True)[:limit]
