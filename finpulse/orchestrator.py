"""
Main Orchestrator for FinPulse

This module ties together all the components and exposes the operations
a caller (web handler, CLI, batch worker) may invoke:
1. Scoring and analysis (health score, trends, signals, alerts)
2. Insight actions (list, resolve, dismiss)
3. Tasks (create from insight, list, update status)
4. Period summary

DESIGN DECISION: The facade enforces the boundaries:
- No operation runs without a resolved caller user id
- Every read and write is scoped to that user
- Storage failures reach callers as CalculationError with a
  human-readable message; the storage detail stays in the audit log
"""

from typing import Any, Awaitable, Optional, TypeVar

from finpulse.audit import AuditLogger, configure_logging
from finpulse.audit.logger import get_logger
from finpulse.clock import Clock, utcnow
from finpulse.config import AnalysisSettings, get_settings
from finpulse.intelligence import (
    CalculationError,
    EarlyWarningSystem,
    FinancialHealthCalculator,
    InsightService,
    PeriodSummaryService,
    SignalDetectionEngine,
    TaskManager,
    TrendAnalysisEngine,
    UnauthorizedError,
)
from finpulse.jobs import BackgroundProcessingService, InMemoryJobStore
from finpulse.models.analysis import (
    HealthScoreResult,
    Insight,
    PeriodSummary,
    Task,
    TaskFilters,
    TaskStatus,
    TrendPeriod,
)
from finpulse.services.storage import (
    FinanceStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsFinanceStorage,
    InMemoryAuditStorage,
    InMemoryFinanceStorage,
    NotFoundError,
    StorageError,
)


logger = get_logger("finpulse.orchestrator")

T = TypeVar("T")


class FinanceIntelligenceService:
    """
    Facade over the intelligence engines.

    Every method takes the caller's resolved user id. A missing id means
    there is no authenticated session and raises UnauthorizedError before
    any data is read.
    """

    def __init__(
        self,
        health_calculator: FinancialHealthCalculator,
        trend_engine: TrendAnalysisEngine,
        signal_engine: SignalDetectionEngine,
        early_warning: EarlyWarningSystem,
        task_manager: TaskManager,
        insight_service: InsightService,
        summary_service: PeriodSummaryService,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._health = health_calculator
        self._trends = trend_engine
        self._signals = signal_engine
        self._alerts = early_warning
        self._tasks = task_manager
        self._insights = insight_service
        self._summary = summary_service
        self._audit = audit_logger or AuditLogger()

    @staticmethod
    def _require_user(user_id: Optional[str]) -> str:
        if not user_id:
            raise UnauthorizedError("Unauthorized")
        return user_id

    async def _guard(self, operation: Awaitable[T], failure_message: str, user_id: str) -> T:
        """Await `operation`, turning raw storage failures into CalculationError."""
        try:
            return await operation
        except NotFoundError:
            raise
        except StorageError as e:
            await self._audit.log_error(
                "storage_error", str(e), details={"user_id": user_id, "operation": failure_message}
            )
            raise CalculationError(failure_message) from e

    # -------------------------------------------------------------------------
    # Scoring and analysis
    # -------------------------------------------------------------------------

    async def calculate_health_score(self, user_id: Optional[str]) -> HealthScoreResult:
        user_id = self._require_user(user_id)
        return await self._health.calculate_health_score(user_id)

    async def generate_trend_analysis(self, user_id: Optional[str]) -> list[TrendPeriod]:
        user_id = self._require_user(user_id)
        return await self._trends.generate_trend_analysis(user_id)

    async def generate_signals(self, user_id: Optional[str]) -> list[Insight]:
        user_id = self._require_user(user_id)
        return await self._signals.generate_signals(user_id)

    async def generate_alerts(self, user_id: Optional[str]) -> list[Insight]:
        user_id = self._require_user(user_id)
        return await self._alerts.generate_alerts(user_id)

    # -------------------------------------------------------------------------
    # Insights
    # -------------------------------------------------------------------------

    async def get_insights(self, user_id: Optional[str], limit: int = 25) -> list[Insight]:
        user_id = self._require_user(user_id)
        return await self._insights.list_active_insights(user_id, limit=limit)

    async def resolve_insight(
        self,
        user_id: Optional[str],
        insight_id: str,
        action: str,
        notes: Optional[str] = None,
    ) -> Insight:
        user_id = self._require_user(user_id)
        return await self._insights.resolve_insight(user_id, insight_id, action, notes)

    # -------------------------------------------------------------------------
    # Tasks
    # -------------------------------------------------------------------------

    async def create_task_from_insight(
        self,
        user_id: Optional[str],
        insight_id: str,
        **options: Any,
    ) -> Task:
        """
        Create a follow-up task for one of the caller's insights.

        Options are passed through: custom_title, custom_description,
        due_date, priority.
        """
        user_id = self._require_user(user_id)
        return await self._guard(
            self._tasks.create_task_from_insight(user_id, insight_id, **options),
            "Failed to create task",
            user_id,
        )

    async def get_tasks(
        self,
        user_id: Optional[str],
        filters: Optional[TaskFilters] = None,
    ) -> list[Task]:
        user_id = self._require_user(user_id)
        return await self._guard(
            self._tasks.get_tasks(user_id, filters), "Failed to fetch tasks", user_id
        )

    async def update_task_status(
        self,
        user_id: Optional[str],
        task_id: str,
        status: TaskStatus,
        notes: Optional[str] = None,
    ) -> Task:
        user_id = self._require_user(user_id)
        return await self._guard(
            self._tasks.update_task_status(user_id, task_id, status, notes),
            "Failed to update task",
            user_id,
        )

    # -------------------------------------------------------------------------
    # Summary
    # -------------------------------------------------------------------------

    async def get_period_summary(self, user_id: Optional[str]) -> PeriodSummary:
        user_id = self._require_user(user_id)
        return await self._summary.get_period_summary(user_id)


def create_app_components(
    use_storage: bool = True,
    settings: Optional[AnalysisSettings] = None,
    clock: Clock = utcnow,
) -> tuple[FinanceIntelligenceService, BackgroundProcessingService, FinanceStorageInterface]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Falls back to in-memory storage when False or when
                    Sheets isn't configured.
        settings: Analysis settings; defaults to the environment
        clock: Time source shared by every engine

    Returns:
        (intelligence_service, background_service, finance_storage)
    """
    app_settings = get_settings().app
    configure_logging(app_settings.debug_mode)

    storage: Optional[FinanceStorageInterface] = None
    audit_logger: Optional[AuditLogger] = None

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            storage = GoogleSheetsFinanceStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            storage = None

    if storage is None:
        storage = InMemoryFinanceStorage()
        audit_logger = AuditLogger(InMemoryAuditStorage())

    settings = settings or get_settings().analysis

    health = FinancialHealthCalculator(storage, settings, audit_logger, clock)
    trends = TrendAnalysisEngine(storage, settings, audit_logger, clock)
    signals = SignalDetectionEngine(storage, settings, audit_logger, clock)
    alerts = EarlyWarningSystem(storage, settings, audit_logger, clock)
    tasks = TaskManager(storage, audit_logger, clock)
    insights = InsightService(storage, audit_logger, clock)
    summary = PeriodSummaryService(storage, audit_logger, clock)

    service = FinanceIntelligenceService(
        health_calculator=health,
        trend_engine=trends,
        signal_engine=signals,
        early_warning=alerts,
        task_manager=tasks,
        insight_service=insights,
        summary_service=summary,
        audit_logger=audit_logger,
    )

    background = BackgroundProcessingService(
        storage=storage,
        health_calculator=health,
        trend_engine=trends,
        signal_engine=signals,
        early_warning=alerts,
        job_store=InMemoryJobStore(),
        audit_logger=audit_logger,
        settings=app_settings,
        clock=clock,
    )

    return service, background, storage
