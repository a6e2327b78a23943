"""
Job Status Store

Keeps the status of batch runs so operators can inspect recent history.
Statuses are process-local; nothing here coordinates across workers.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from finpulse.models.jobs import BackgroundJobStatus


class JobStore(ABC):
    """Where BackgroundProcessingService records job statuses."""

    @abstractmethod
    def record(self, job: BackgroundJobStatus) -> None:
        """Insert or replace the status for job.job_id."""
        pass

    @abstractmethod
    def get(self, job_id: str) -> Optional[BackgroundJobStatus]:
        pass

    @abstractmethod
    def list(self) -> list[BackgroundJobStatus]:
        """All statuses, oldest first."""
        pass

    @abstractmethod
    def evict(self, older_than: datetime) -> int:
        """
        Drop statuses of jobs started before `older_than`.

        Returns:
            Number of statuses removed
        """
        pass


class InMemoryJobStore(JobStore):
    """Dictionary-backed job store."""

    def __init__(self):
        self._jobs: dict[str, BackgroundJobStatus] = {}

    def record(self, job: BackgroundJobStatus) -> None:
        self._jobs[job.job_id] = job

    def get(self, job_id: str) -> Optional[BackgroundJobStatus]:
        return self._jobs.get(job_id)

    def list(self) -> list[BackgroundJobStatus]:
        return sorted(self._jobs.values(), key=lambda j: j.started_at)

    def evict(self, older_than: datetime) -> int:
        stale = [job_id for job_id, job in self._jobs.items() if job.started_at < older_than]
        for job_id in stale:
            del self._jobs[job_id]
        return len(stale)
