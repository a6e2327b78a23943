"""Background processing package."""

from finpulse.jobs.background import BackgroundProcessingService
from finpulse.jobs.store import InMemoryJobStore, JobStore

__all__ = ["BackgroundProcessingService", "InMemoryJobStore", "JobStore"]
