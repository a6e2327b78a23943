"""
Background Job Models

Structured status for batch runs of the analysis pipeline. These are what
the batch service exposes for observability; they never block processing
of other users.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from finpulse.clock import utcnow


class JobType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MANUAL = "manual"


class JobState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ProcessingResult(BaseModel):
    """Outcome of one user's pipeline run."""

    user_id: str
    success: bool
    error: Optional[str] = None
    failed_steps: list[str] = Field(default_factory=list)
    duration_ms: float = Field(default=0.0, ge=0)
    timestamp: datetime = Field(default_factory=utcnow)


class BackgroundJobStatus(BaseModel):
    """Status of one batch run over all users."""

    job_id: str
    job_type: JobType
    status: JobState = Field(default=JobState.PENDING)
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    results: list[ProcessingResult] = Field(default_factory=list)
    error: Optional[str] = None

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)


class ProcessingStatistics(BaseModel):
    total_jobs: int = 0
    successful_jobs: int = 0
    failed_jobs: int = 0
    average_duration_ms: float = 0.0
    total_users_processed: int = 0
