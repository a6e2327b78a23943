"""
Background Processing Service

Runs the analysis pipeline (health -> trends -> signals -> alerts) for one
user or for every user, and records the outcome of each batch run.

DESIGN DECISION: Failures are isolated at two levels.
- Within a user, each pipeline step is caught on its own, so a failed
  health score does not stop signals from running. The failed steps are
  reported together as a PipelineError.
- Within a batch, each user is processed on their own and gets a
  ProcessingResult; one bad user never aborts the job.

Users are processed sequentially. Scheduling is left to the caller
(cron, a task queue, etc.); this service only exposes the entry points.
"""

import time
from datetime import timedelta
from typing import Awaitable, Callable, Optional
from uuid import UUID

from finpulse.audit import AuditLogger, create_correlation_id
from finpulse.audit.logger import get_logger
from finpulse.clock import Clock, new_id, utcnow
from finpulse.config import AppSettings, get_settings
from finpulse.intelligence.early_warning import EarlyWarningSystem
from finpulse.intelligence.errors import PipelineError
from finpulse.intelligence.health import FinancialHealthCalculator
from finpulse.intelligence.signals import SignalDetectionEngine
from finpulse.intelligence.trends import TrendAnalysisEngine
from finpulse.jobs.store import InMemoryJobStore, JobStore
from finpulse.models.jobs import (
    BackgroundJobStatus,
    JobState,
    JobType,
    ProcessingResult,
    ProcessingStatistics,
)
from finpulse.services.storage import FinanceStorageInterface, StorageError


logger = get_logger("finpulse.jobs")

PipelineStep = Callable[[str, UUID], Awaitable[object]]


class BackgroundProcessingService:
    """Entry points for per-user and batch analysis runs."""

    def __init__(
        self,
        storage: FinanceStorageInterface,
        health_calculator: FinancialHealthCalculator,
        trend_engine: TrendAnalysisEngine,
        signal_engine: SignalDetectionEngine,
        early_warning: EarlyWarningSystem,
        job_store: Optional[JobStore] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
        clock: Clock = utcnow,
    ):
        self._storage = storage
        self._job_store = job_store or InMemoryJobStore()
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().app
        self._clock = clock

        self._steps: list[tuple[str, PipelineStep]] = [
            ("health", health_calculator.calculate_health_score),
            ("trends", trend_engine.generate_trend_analysis),
            ("signals", signal_engine.generate_signals),
            ("alerts", early_warning.generate_alerts),
        ]

    # -------------------------------------------------------------------------
    # Per-user runs
    # -------------------------------------------------------------------------

    async def run_analysis_pipeline(
        self,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Run every pipeline step for one user.

        Raises:
            PipelineError: If any step failed, after all steps have run
        """
        correlation_id = correlation_id or create_correlation_id()
        failures: dict[str, str] = {}

        for name, step in self._steps:
            try:
                await step(user_id, correlation_id)
            except Exception as e:
                logger.warning(
                    "pipeline_step_failed",
                    user_id=user_id,
                    step=name,
                    error=str(e),
                    correlation_id=str(correlation_id),
                )
                failures[name] = str(e)

        if failures:
            await self._audit.log_user_pipeline_failed(user_id, failures, correlation_id)
            raise PipelineError(user_id, failures)

    async def process_user_analysis(self, user_id: str) -> ProcessingResult:
        """Run the pipeline for one user and report how it went. Never raises."""
        started = time.perf_counter()
        try:
            await self.run_analysis_pipeline(user_id)
        except PipelineError as e:
            return ProcessingResult(
                user_id=user_id,
                success=False,
                error=str(e),
                failed_steps=e.failed_steps,
                duration_ms=(time.perf_counter() - started) * 1000,
                timestamp=self._clock(),
            )

        return ProcessingResult(
            user_id=user_id,
            success=True,
            duration_ms=(time.perf_counter() - started) * 1000,
            timestamp=self._clock(),
        )

    # -------------------------------------------------------------------------
    # Batch runs
    # -------------------------------------------------------------------------

    async def process_daily_analysis(self) -> BackgroundJobStatus:
        return await self._run_job(JobType.DAILY)

    async def process_weekly_analysis(self) -> BackgroundJobStatus:
        # Weekly runs currently execute the same pipeline as daily runs
        return await self._run_job(JobType.WEEKLY)

    async def _run_job(self, job_type: JobType) -> BackgroundJobStatus:
        started_at = self._clock()
        job = BackgroundJobStatus(
            job_id=f"{job_type.value}-{started_at:%Y%m%d%H%M%S}-{new_id()[:8]}",
            job_type=job_type,
            started_at=started_at,
        )
        self._job_store.record(job)
        job.status = JobState.RUNNING

        try:
            user_ids = await self._storage.list_user_ids()
        except StorageError as e:
            job.status = JobState.FAILED
            job.error = str(e)
            job.completed_at = self._clock()
            self._job_store.record(job)
            await self._audit.log_job_failed(job.job_id, job_type.value, str(e))
            return job

        await self._audit.log_job_started(job.job_id, job_type.value, len(user_ids))

        for user_id in user_ids:
            job.results.append(await self.process_user_analysis(user_id))

        job.status = JobState.COMPLETED
        job.completed_at = self._clock()
        self._job_store.record(job)

        await self._audit.log_job_completed(job.job_id, job_type.value, job.succeeded, job.failed)
        return job

    # -------------------------------------------------------------------------
    # Job status
    # -------------------------------------------------------------------------

    def get_job_status(self, job_id: str) -> Optional[BackgroundJobStatus]:
        return self._job_store.get(job_id)

    def get_all_job_statuses(self) -> list[BackgroundJobStatus]:
        return self._job_store.list()

    def get_recent_job_history(self) -> list[BackgroundJobStatus]:
        """Jobs started within the configured history window (24 hours by default)."""
        cutoff = self._clock() - timedelta(hours=self._settings.job_history_hours)
        return [job for job in self._job_store.list() if job.started_at > cutoff]

    def cleanup_old_job_statuses(self) -> int:
        """Evict jobs older than the retention window (7 days by default)."""
        cutoff = self._clock() - timedelta(days=self._settings.job_retention_days)
        return self._job_store.evict(cutoff)

    def get_processing_statistics(self) -> ProcessingStatistics:
        """Aggregate figures over the recent job history."""
        recent = self.get_recent_job_history()
        if not recent:
            return ProcessingStatistics()

        total_duration = sum(r.duration_ms for job in recent for r in job.results)
        return ProcessingStatistics(
            total_jobs=len(recent),
            successful_jobs=sum(1 for job in recent if job.status == JobState.COMPLETED),
            failed_jobs=sum(1 for job in recent if job.status == JobState.FAILED),
            average_duration_ms=total_duration / len(recent),
            total_users_processed=sum(job.succeeded for job in recent),
        )
