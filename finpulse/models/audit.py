"""
Audit Models for FinPulse

Every calculation run, every insight raised and every user action on an
insight or task is logged for audit purposes. This provides:
1. Traceability of why a user saw a given insight
2. Debugging information when a pipeline step fails
3. Per-user observability for background jobs

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from finpulse.clock import utcnow


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Each engine has its own completion event; failures share a few
    generic types.
    """
    # Calculations
    HEALTH_SCORE_CALCULATED = "health_score_calculated"
    TREND_ANALYSIS_GENERATED = "trend_analysis_generated"
    SIGNALS_GENERATED = "signals_generated"
    ALERTS_GENERATED = "alerts_generated"
    CALCULATION_FAILED = "calculation_failed"

    # Insights
    INSIGHT_CREATED = "insight_created"
    DUPLICATE_SUPPRESSED = "duplicate_suppressed"
    INSIGHT_RESOLVED = "insight_resolved"
    INSIGHT_DISMISSED = "insight_dismissed"

    # Tasks
    TASK_CREATED = "task_created"
    TASK_STATUS_UPDATED = "task_status_updated"
    TASK_DELETED = "task_deleted"

    # Background processing
    JOB_STARTED = "job_started"
    JOB_COMPLETED = "job_completed"
    JOB_FAILED = "job_failed"
    USER_PIPELINE_FAILED = "user_pipeline_failed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'insight', 'task', 'job')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    user_id: Optional[str] = Field(
        default=None,
        description="User the event is scoped to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one pipeline run)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "user_id": self.user_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         user_id, correlation_id, description, details_json, error_message,
         is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            self.user_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.insight_created(insight.id, user_id, "income_dip", "high")
        event = AuditEventBuilder.task_deleted(task_id, user_id)
    """

    @staticmethod
    def health_score_calculated(
        user_id: str,
        score: int,
        health_state: str,
        trend_direction: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.HEALTH_SCORE_CALCULATED,
            entity_type="health_score",
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Health score calculated: {score} ({health_state})",
            details={
                "score": score,
                "health_state": health_state,
                "trend_direction": trend_direction,
            },
        )

    @staticmethod
    def trend_analysis_generated(
        user_id: str,
        period_counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TREND_ANALYSIS_GENERATED,
            entity_type="trend_analysis",
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Trend analysis generated for {sum(period_counts.values())} periods",
            details={"period_counts": period_counts},
        )

    @staticmethod
    def detection_completed(
        user_id: str,
        source: str,
        fired: list[str],
        stored: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.SIGNALS_GENERATED
            if source == "signals"
            else AuditEventType.ALERTS_GENERATED
        )
        return AuditEvent(
            event_type=event_type,
            entity_type="insight",
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"{source.capitalize()} run: {len(fired)} fired, {stored} stored",
            details={"fired": fired, "stored": stored},
        )

    @staticmethod
    def insight_created(
        insight_id: str,
        user_id: str,
        insight_type: str,
        severity: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSIGHT_CREATED,
            entity_type="insight",
            entity_id=insight_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Insight created: {insight_type} ({severity})",
            details={
                "insight_type": insight_type,
                "severity": severity,
            },
        )

    @staticmethod
    def duplicate_suppressed(
        user_id: str,
        insight_type: str,
        existing_insight_id: str,
        window_days: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DUPLICATE_SUPPRESSED,
            severity=AuditSeverity.DEBUG,
            entity_type="insight",
            entity_id=existing_insight_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Skipped {insight_type}: active insight within {window_days} days",
            details={
                "insight_type": insight_type,
                "window_days": window_days,
            },
        )

    @staticmethod
    def insight_status_changed(
        insight_id: str,
        user_id: str,
        status: str,
        has_notes: bool,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.INSIGHT_DISMISSED
            if status == "dismissed"
            else AuditEventType.INSIGHT_RESOLVED
        )
        return AuditEvent(
            event_type=event_type,
            entity_type="insight",
            entity_id=insight_id,
            user_id=user_id,
            description=f"Insight marked {status}",
            details={"status": status, "has_notes": has_notes},
            is_user_action=True,
        )

    @staticmethod
    def task_created(
        task_id: str,
        user_id: str,
        task_type: str,
        priority: str,
        source_insight_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TASK_CREATED,
            entity_type="task",
            entity_id=task_id,
            user_id=user_id,
            description=f"Task created: {task_type} ({priority})",
            details={
                "task_type": task_type,
                "priority": priority,
                "source_insight_id": source_insight_id,
            },
            is_user_action=True,
        )

    @staticmethod
    def task_status_updated(
        task_id: str,
        user_id: str,
        status: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TASK_STATUS_UPDATED,
            entity_type="task",
            entity_id=task_id,
            user_id=user_id,
            description=f"Task status updated to {status}",
            details={"status": status},
            is_user_action=True,
        )

    @staticmethod
    def task_deleted(task_id: str, user_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TASK_DELETED,
            entity_type="task",
            entity_id=task_id,
            user_id=user_id,
            description="Task deleted",
            is_user_action=True,
        )

    @staticmethod
    def job_started(job_id: str, job_type: str, user_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.JOB_STARTED,
            entity_type="job",
            entity_id=job_id,
            description=f"Starting {job_type} analysis for {user_count} users",
            details={"job_type": job_type, "user_count": user_count},
        )

    @staticmethod
    def job_completed(
        job_id: str,
        job_type: str,
        succeeded: int,
        failed: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.JOB_COMPLETED,
            severity=AuditSeverity.WARNING if failed else AuditSeverity.INFO,
            entity_type="job",
            entity_id=job_id,
            description=f"{job_type.capitalize()} analysis completed. Success: {succeeded}, Failed: {failed}",
            details={"succeeded": succeeded, "failed": failed},
        )

    @staticmethod
    def job_failed(job_id: str, job_type: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.JOB_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="job",
            entity_id=job_id,
            description=f"{job_type.capitalize()} analysis job failed",
            error_message=error_message,
        )

    @staticmethod
    def user_pipeline_failed(
        user_id: str,
        failed_steps: dict[str, str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_PIPELINE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="pipeline",
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Pipeline failed in {len(failed_steps)} step(s)",
            details={"failed_steps": failed_steps},
            error_message="; ".join(f"{step}: {err}" for step, err in failed_steps.items()),
        )

    @staticmethod
    def calculation_failed(
        user_id: str,
        calculation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CALCULATION_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type=calculation,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Failed to calculate {calculation.replace('_', ' ')}",
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
