"""
Task Generator and task management.

Turns an insight into a follow-up task with a type-specific description,
and provides the listing and status operations around tasks.

DESIGN DECISION: Creating a task never changes the source insight.
Resolving an insight is a separate user action (see InsightService).
"""

from datetime import datetime, timedelta
from typing import Optional

from finpulse.audit import AuditLogger
from finpulse.clock import Clock, utcnow
from finpulse.intelligence.errors import NotFoundError, ValidationError
from finpulse.models.analysis import (
    Insight,
    InsightType,
    Severity,
    Task,
    TaskFilters,
    TaskPriority,
    TaskStatistics,
    TaskStatus,
    TaskType,
)
from finpulse.services.storage import FinanceStorageInterface


SEVERITY_TO_PRIORITY = {
    Severity.CRITICAL: TaskPriority.URGENT,
    Severity.HIGH: TaskPriority.HIGH,
    Severity.MEDIUM: TaskPriority.MEDIUM,
    Severity.LOW: TaskPriority.LOW,
}

# Insight type -> (task type, suggested actions)
TASK_TEMPLATES: dict[InsightType, tuple[TaskType, list[str]]] = {
    InsightType.SPENDING_SPIKE: (TaskType.SPENDING_REVIEW, [
        "Go through recent transactions to find what drove the spike",
        "Decide whether these are one-off costs or a new pattern",
        "Adjust budget categories if this is the new normal",
        "Set up spending alerts to catch the next spike early",
    ]),
    InsightType.SAVINGS_DROP: (TaskType.GOAL_REVIEW, [
        "Review which expenses have grown recently",
        "Pick areas where spending can come down",
        "Look for ways to add income",
        "Revisit your savings goals if needed",
    ]),
    InsightType.BUDGET_LEAKAGE: (TaskType.BUDGET_ADJUSTMENT, [
        "Review spending in the affected category",
        "Rebalance budget allocations if needed",
        "Add a spending alert for this category",
        "Consider a hard spending limit",
    ]),
    InsightType.CATEGORY_ANOMALY: (TaskType.CATEGORY_CLEANUP, [
        "Check the unusual transactions are categorised correctly",
        "Merge or split categories that no longer fit",
        "Recategorise entries that landed in the wrong place",
        "Update rules so future entries are categorised consistently",
    ]),
    InsightType.INCOME_DIP: (TaskType.SPENDING_REVIEW, [
        "Check how stable each income source is",
        "Consider additional income streams",
        "Adjust your budget to the lower income",
        "Prioritise essential expenses",
    ]),
    InsightType.DEBT_GROWTH: (TaskType.PAYMENT_REMINDER, [
        "Review your debt repayment strategy",
        "Consider consolidation options",
        "Make sure payments go toward principal",
        "Compare interest rates and refinancing offers",
    ]),
    InsightType.TRANSACTION_SILENCE: (TaskType.ACCOUNT_REVIEW, [
        "Check that transactions are still being imported",
        "Enter any recent transactions manually",
        "Review your account connections",
        "Set a reminder to log transactions",
    ]),
}

DEFAULT_TASK_TYPE = TaskType.SPENDING_REVIEW


def build_task_details(
    insight: Insight,
    custom_title: Optional[str] = None,
    custom_description: Optional[str] = None,
) -> tuple[str, str, TaskType]:
    """Title, description and task type for a task generated from `insight`."""
    # Task titles share the 200 character limit with insight titles
    title = (custom_title or f"Review: {insight.title}")[:200]
    description = custom_description or insight.explanation

    template = TASK_TEMPLATES.get(insight.insight_type)
    if template is None:
        return title, description, DEFAULT_TASK_TYPE

    task_type, actions = template
    bullets = "\n".join(f"• {action}" for action in actions)
    return title, f"{description}\n\nSuggested actions:\n{bullets}", task_type


def sort_tasks(tasks: list[Task]) -> list[Task]:
    """Priority high to low, then due date (undated last), then newest first."""
    ordered = sorted(tasks, key=lambda t: t.created_at, reverse=True)
    ordered.sort(key=lambda t: (t.due_date is None, t.due_date or datetime.min))
    ordered.sort(key=lambda t: t.priority.rank, reverse=True)
    return ordered


class TaskManager:
    """Creates tasks from insights and manages their lifecycle."""

    def __init__(
        self,
        storage: FinanceStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        clock: Clock = utcnow,
    ):
        self._storage = storage
        self._audit = audit_logger or AuditLogger()
        self._clock = clock

    async def create_task(
        self,
        user_id: str,
        title: str,
        task_type: TaskType,
        description: Optional[str] = None,
        priority: TaskPriority = TaskPriority.MEDIUM,
        due_date: Optional[datetime] = None,
        source_insight_id: Optional[str] = None,
    ) -> Task:
        now = self._clock()
        task = Task(
            user_id=user_id,
            source_insight_id=source_insight_id,
            title=title,
            description=description,
            task_type=task_type,
            priority=priority,
            due_date=due_date,
            created_at=now,
            updated_at=now,
        )
        await self._storage.save_task(task)
        await self._audit.log_task_created(
            task.id, user_id, task.task_type.value, task.priority.value, source_insight_id
        )
        return task

    async def create_task_from_insight(
        self,
        user_id: str,
        insight_id: str,
        custom_title: Optional[str] = None,
        custom_description: Optional[str] = None,
        due_date: Optional[datetime] = None,
        priority: Optional[TaskPriority] = None,
    ) -> Task:
        """
        Create a follow-up task for an insight.

        The priority follows the insight's severity unless one is given.

        Raises:
            ValidationError: If insight_id is missing
            NotFoundError: If the insight is absent or owned by someone else
        """
        if not insight_id:
            raise ValidationError("Insight ID is required")

        insight = await self._storage.get_insight(user_id, insight_id)
        if insight is None:
            raise NotFoundError("Insight not found")

        title, description, task_type = build_task_details(
            insight, custom_title, custom_description
        )
        return await self.create_task(
            user_id,
            title=title,
            task_type=task_type,
            description=description,
            priority=priority or SEVERITY_TO_PRIORITY.get(insight.severity, TaskPriority.MEDIUM),
            due_date=due_date,
            source_insight_id=insight.id,
        )

    async def get_tasks(
        self,
        user_id: str,
        filters: Optional[TaskFilters] = None,
    ) -> list[Task]:
        filters = filters or TaskFilters()
        tasks = []
        for task in await self._storage.list_tasks(user_id):
            if filters.status and task.status != filters.status:
                continue
            if filters.priority and task.priority != filters.priority:
                continue
            if filters.task_type and task.task_type != filters.task_type:
                continue
            if filters.source_insight_id and task.source_insight_id != filters.source_insight_id:
                continue
            if filters.due_before and (task.due_date is None or task.due_date > filters.due_before):
                continue
            if filters.due_after and (task.due_date is None or task.due_date < filters.due_after):
                continue
            tasks.append(task)

        tasks = sort_tasks(tasks)[filters.offset:]
        if filters.limit is not None:
            tasks = tasks[:filters.limit]
        return tasks

    async def _get_owned_task(self, user_id: str, task_id: str) -> Task:
        if not task_id:
            raise ValidationError("Task ID is required")
        task = await self._storage.get_task(user_id, task_id)
        if task is None:
            raise NotFoundError("Task not found")
        return task

    def _apply_status(self, task: Task, status: TaskStatus, now: datetime) -> None:
        task.status = status
        task.updated_at = now
        if status == TaskStatus.COMPLETED:
            task.completed_at = now

    async def update_task_status(
        self,
        user_id: str,
        task_id: str,
        status: TaskStatus,
        notes: Optional[str] = None,
    ) -> Task:
        """
        Change a task's status.

        Completing a task stamps completed_at. Notes are appended to the
        description.
        """
        task = await self._get_owned_task(user_id, task_id)
        self._apply_status(task, status, self._clock())
        if notes:
            task.description = (
                f"{task.description}\n\nNotes: {notes}" if task.description else f"Notes: {notes}"
            )

        await self._storage.update_task(task)
        await self._audit.log_task_status_updated(task.id, user_id, status.value)
        return task

    async def delete_task(self, user_id: str, task_id: str) -> None:
        if not task_id:
            raise ValidationError("Task ID is required")
        if not await self._storage.delete_task(user_id, task_id):
            raise NotFoundError("Task not found")
        await self._audit.log_task_deleted(task_id, user_id)

    async def bulk_update_task_status(
        self,
        user_id: str,
        task_ids: list[str],
        status: TaskStatus,
    ) -> int:
        """Update several tasks at once. Ids the user doesn't own are skipped."""
        now = self._clock()
        updated = 0
        for task_id in task_ids:
            task = await self._storage.get_task(user_id, task_id)
            if task is None:
                continue
            self._apply_status(task, status, now)
            await self._storage.update_task(task)
            await self._audit.log_task_status_updated(task.id, user_id, status.value)
            updated += 1
        return updated

    async def get_task_statistics(self, user_id: str) -> TaskStatistics:
        now = self._clock()
        stats = TaskStatistics()
        for task in await self._storage.list_tasks(user_id):
            stats.total += 1
            if task.status == TaskStatus.OPEN:
                stats.open += 1
            elif task.status == TaskStatus.IN_PROGRESS:
                stats.in_progress += 1
            elif task.status == TaskStatus.COMPLETED:
                stats.completed += 1

            stats.by_priority[task.priority.value] = stats.by_priority.get(task.priority.value, 0) + 1
            stats.by_type[task.task_type.value] = stats.by_type.get(task.task_type.value, 0) + 1

            if task.due_date and task.due_date < now and task.status != TaskStatus.COMPLETED:
                stats.overdue += 1
        return stats

    async def get_upcoming_tasks(self, user_id: str, days: int = 7, limit: int = 20) -> list[Task]:
        """Open tasks due between now and `days` from now, soonest first."""
        now = self._clock()
        horizon = now + timedelta(days=days)
        tasks = [
            t for t in await self._storage.list_tasks(user_id)
            if t.status == TaskStatus.OPEN and t.due_date and now <= t.due_date <= horizon
        ]
        tasks.sort(key=lambda t: t.due_date)
        return tasks[:limit]

    async def get_overdue_tasks(self, user_id: str) -> list[Task]:
        now = self._clock()
        tasks = [
            t for t in await self._storage.list_tasks(user_id)
            if t.status == TaskStatus.OPEN and t.due_date and t.due_date < now
        ]
        tasks.sort(key=lambda t: t.due_date)
        return tasks
