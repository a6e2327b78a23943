"""Financial intelligence engines package."""

from finpulse.intelligence.early_warning import EarlyWarningSystem
from finpulse.intelligence.errors import (
    CalculationError,
    FinPulseError,
    NotFoundError,
    PipelineError,
    UnauthorizedError,
    ValidationError,
)
from finpulse.intelligence.health import FinancialHealthCalculator
from finpulse.intelligence.insights import InsightService
from finpulse.intelligence.signals import SignalDetectionEngine, SignalRule
from finpulse.intelligence.summary import PeriodSummaryService
from finpulse.intelligence.tasks import TaskManager
from finpulse.intelligence.trends import TrendAnalysisEngine

__all__ = [
    "CalculationError",
    "EarlyWarningSystem",
    "FinPulseError",
    "FinancialHealthCalculator",
    "InsightService",
    "NotFoundError",
    "PeriodSummaryService",
    "PipelineError",
    "SignalDetectionEngine",
    "SignalRule",
    "TaskManager",
    "TrendAnalysisEngine",
    "UnauthorizedError",
    "ValidationError",
]
