"""
Insight storage helpers and user actions on insights.

Insights are only ever created by the signal and early-warning engines
(through store_unless_duplicate) and only ever change status through
resolve_insight.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from finpulse.audit import AuditLogger
from finpulse.clock import Clock, utcnow
from finpulse.intelligence.errors import CalculationError, NotFoundError, ValidationError
from finpulse.models.analysis import Insight, InsightStatus
from finpulse.services.storage import FinanceStorageInterface, StorageError


RESOLUTION_ACTIONS = {
    "resolved": InsightStatus.RESOLVED,
    "dismissed": InsightStatus.DISMISSED,
}


async def store_unless_duplicate(
    storage: FinanceStorageInterface,
    audit: AuditLogger,
    insight: Insight,
    since: datetime,
    window_days: int,
    correlation_id: Optional[UUID] = None,
    status: Optional[InsightStatus] = InsightStatus.ACTIVE,
) -> bool:
    """
    Append the insight unless a matching one was created since `since`.

    A match has the same user and type and the given status (any status
    when None). This is read-then-write without a lock: two concurrent
    runs for the same user can both pass the check and store duplicates.

    Returns:
        True if the insight was stored
    """
    existing = await storage.find_recent_insight(
        insight.user_id,
        insight.insight_type,
        since,
        status=status,
    )
    if existing is not None:
        await audit.log_duplicate_suppressed(
            insight.user_id, insight.insight_type.value, existing.id, window_days, correlation_id
        )
        return False

    await storage.append_insight(insight)
    await audit.log_insight_created(
        insight.id, insight.user_id, insight.insight_type.value,
        insight.severity.value, correlation_id,
    )
    return True


class InsightService:
    """Resolving, dismissing and listing a user's insights."""

    def __init__(
        self,
        storage: FinanceStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        clock: Clock = utcnow,
    ):
        self._storage = storage
        self._audit = audit_logger or AuditLogger()
        self._clock = clock

    async def resolve_insight(
        self,
        user_id: str,
        insight_id: str,
        action: str,
        notes: Optional[str] = None,
    ) -> Insight:
        """
        Mark an insight resolved or dismissed.

        Args:
            user_id: Owner of the insight
            insight_id: Insight to update
            action: "resolved" or "dismissed"
            notes: Optional note, kept in supporting_data["resolutionNotes"]

        Raises:
            ValidationError: Missing id or unknown action
            NotFoundError: Insight absent or owned by someone else
        """
        if not insight_id:
            raise ValidationError("Insight ID is required")
        status = RESOLUTION_ACTIONS.get(action)
        if status is None:
            raise ValidationError(
                f"Invalid action '{action}'. Must be one of: {', '.join(RESOLUTION_ACTIONS)}"
            )

        try:
            insight = await self._storage.get_insight(user_id, insight_id)
            if insight is None:
                raise NotFoundError("Insight not found")

            now = self._clock()
            insight.status = status
            insight.resolved_at = now
            insight.updated_at = now
            if notes:
                insight.supporting_data = {**insight.supporting_data, "resolutionNotes": notes}

            await self._storage.update_insight(insight)
        except NotFoundError:
            raise
        except StorageError as e:
            await self._audit.log_error("insight_update_failed", str(e))
            raise CalculationError("Failed to update insight") from e

        await self._audit.log_insight_status_changed(
            insight.id, user_id, status.value, has_notes=bool(notes)
        )
        return insight

    async def list_active_insights(self, user_id: str, limit: int = 25) -> list[Insight]:
        """Active insights, most severe first, newest first within a severity."""
        try:
            insights = await self._storage.list_insights(user_id, status=InsightStatus.ACTIVE)
        except StorageError as e:
            await self._audit.log_error("insight_list_failed", str(e))
            raise CalculationError("Failed to load insights") from e

        insights.sort(key=lambda i: (i.severity.rank, i.created_at), reverse=True)
        return insights[:limit]
