"""
Audit Logger

DESIGN DECISION: Every calculation run, every insight raised and every
user action on an insight or task is logged. This provides:
1. Traceability from an insight back to the run that produced it
2. Debugging capability when a pipeline step fails
3. Per-user history of resolved and dismissed insights

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't fail a calculation if logging fails)
- Supports correlation IDs to trace the events of one pipeline run
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from finpulse.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from finpulse.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def get_logger(name: Optional[str] = None):
    """Structured logger for local, non-audited diagnostics."""
    return structlog.get_logger(name)


def configure_logging(debug_mode: bool = False) -> None:
    """Set the level structlog's filter_by_level checks for finpulse loggers."""
    logging.getLogger("finpulse").setLevel(logging.DEBUG if debug_mode else logging.INFO)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("finpulse.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_health_score(
        self,
        user_id: str,
        score: int,
        health_state: str,
        trend_direction: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.health_score_calculated(
            user_id=user_id,
            score=score,
            health_state=health_state,
            trend_direction=trend_direction,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_trend_analysis(
        self,
        user_id: str,
        period_counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.trend_analysis_generated(
            user_id=user_id,
            period_counts=period_counts,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_detection(
        self,
        user_id: str,
        source: str,
        fired: list[str],
        stored: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log the outcome of a signal or early-warning run."""
        event = AuditEventBuilder.detection_completed(
            user_id=user_id,
            source=source,
            fired=fired,
            stored=stored,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_insight_created(
        self,
        insight_id: str,
        user_id: str,
        insight_type: str,
        severity: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.insight_created(
            insight_id=insight_id,
            user_id=user_id,
            insight_type=insight_type,
            severity=severity,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_duplicate_suppressed(
        self,
        user_id: str,
        insight_type: str,
        existing_insight_id: str,
        window_days: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.duplicate_suppressed(
            user_id=user_id,
            insight_type=insight_type,
            existing_insight_id=existing_insight_id,
            window_days=window_days,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_insight_status_changed(
        self,
        insight_id: str,
        user_id: str,
        status: str,
        has_notes: bool,
    ) -> None:
        """Log a user resolving or dismissing an insight."""
        event = AuditEventBuilder.insight_status_changed(
            insight_id=insight_id,
            user_id=user_id,
            status=status,
            has_notes=has_notes,
        )
        await self.log(event)

    async def log_task_created(
        self,
        task_id: str,
        user_id: str,
        task_type: str,
        priority: str,
        source_insight_id: Optional[str] = None,
    ) -> None:
        event = AuditEventBuilder.task_created(
            task_id=task_id,
            user_id=user_id,
            task_type=task_type,
            priority=priority,
            source_insight_id=source_insight_id,
        )
        await self.log(event)

    async def log_task_status_updated(self, task_id: str, user_id: str, status: str) -> None:
        await self.log(AuditEventBuilder.task_status_updated(task_id, user_id, status))

    async def log_task_deleted(self, task_id: str, user_id: str) -> None:
        await self.log(AuditEventBuilder.task_deleted(task_id, user_id))

    async def log_job_started(self, job_id: str, job_type: str, user_count: int) -> None:
        await self.log(AuditEventBuilder.job_started(job_id, job_type, user_count))

    async def log_job_completed(
        self,
        job_id: str,
        job_type: str,
        succeeded: int,
        failed: int,
    ) -> None:
        await self.log(AuditEventBuilder.job_completed(job_id, job_type, succeeded, failed))

    async def log_job_failed(self, job_id: str, job_type: str, error_message: str) -> None:
        await self.log(AuditEventBuilder.job_failed(job_id, job_type, error_message))

    async def log_user_pipeline_failed(
        self,
        user_id: str,
        failed_steps: dict[str, str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.user_pipeline_failed(
            user_id=user_id,
            failed_steps=failed_steps,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_calculation_failed(
        self,
        user_id: str,
        calculation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a failed health, trend, signal or alert calculation."""
        event = AuditEventBuilder.calculation_failed(
            user_id=user_id,
            calculation=calculation,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a pipeline run or user action.
    Pass it through all subsequent operations.
    """
    return uuid4()
