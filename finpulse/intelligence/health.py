"""
Health Score Calculator

Combines five weighted sub-scores into a single 0-100 score, labels it
with a health state and a trend against the previous snapshot, and
appends a new snapshot on every run.

Components:
- savings_rate: 30-day savings rate mapped from [-50%, +50%] onto [0, 100]
- budget_adherence: fixed at 100 until budget-period reconciliation exists
- income_stability: spread of monthly income over 90 days
- expense_volatility: spread of daily expenses over 30 days
- goal_progress: mean completion of active goals
"""

from datetime import timedelta
from typing import Optional
from uuid import UUID

from finpulse.audit import AuditLogger
from finpulse.clock import Clock, utcnow
from finpulse.config import AnalysisSettings, get_settings
from finpulse.intelligence.errors import CalculationError
from finpulse.intelligence.metrics import (
    clamp,
    coefficient_of_variation,
    daily_expense_totals,
    filter_window,
    monthly_income_totals,
    round_half_up,
    savings_rate,
)
from finpulse.models.analysis import (
    HealthScoreComponents,
    HealthScoreResult,
    HealthScoreSnapshot,
    HealthState,
    TrendDirection,
)
from finpulse.models.ledger import Goal, GoalStatus, LedgerEntry
from finpulse.services.storage import FinanceStorageInterface, StorageError


# Budget-period reconciliation is not implemented; every user scores full
# marks on adherence until it is.
BUDGET_ADHERENCE_PLACEHOLDER = 100.0


def income_stability_score(entries: list[LedgerEntry]) -> float:
    monthly = list(monthly_income_totals(entries).values())
    if len(monthly) < 2:
        return 100.0
    return clamp(100 - coefficient_of_variation(monthly) * 50)


def expense_volatility_score(entries: list[LedgerEntry]) -> float:
    daily = list(daily_expense_totals(entries).values())
    if len(daily) < 2:
        return 100.0
    return clamp(100 - coefficient_of_variation(daily) * 100)


def goal_progress_score(goals: list[Goal]) -> float:
    """Mean of current/target over active goals; 100 when there are none."""
    if not goals:
        return 100.0
    total = 0.0
    for goal in goals:
        if goal.target_amount > 0:
            total += clamp(float(goal.current_amount / goal.target_amount), 0.0, 1.0)
    return total / len(goals) * 100


def weighted_score(components: HealthScoreComponents, settings: AnalysisSettings) -> int:
    return round_half_up(
        components.savings_rate * settings.weight_savings_rate
        + components.budget_adherence * settings.weight_budget_adherence
        + components.income_stability * settings.weight_income_stability
        + components.expense_volatility * settings.weight_expense_volatility
        + components.goal_progress * settings.weight_goal_progress
    )


def trend_direction(
    score: int,
    previous_score: Optional[int],
    threshold: int = 5,
) -> TrendDirection:
    # A previous score of 0 is still a previous score.
    if previous_score is None:
        return TrendDirection.STABLE
    change = score - previous_score
    if change > threshold:
        return TrendDirection.IMPROVING
    if change < -threshold:
        return TrendDirection.DECLINING
    return TrendDirection.STABLE


def health_state(score: int, trend: TrendDirection) -> HealthState:
    """
    Map a score and trend onto a health state.

    A declining trend in [60, 80) has no branch of its own and lands
    on drifting, same as a stable one.
    """
    if score >= 80:
        return HealthState.STABLE
    if score >= 60 and trend == TrendDirection.IMPROVING:
        return HealthState.IMPROVING
    if score >= 60 and trend == TrendDirection.STABLE:
        return HealthState.DRIFTING
    if score >= 40:
        return HealthState.DRIFTING
    return HealthState.AT_RISK


class FinancialHealthCalculator:
    """Calculates and records a user's financial health score."""

    def __init__(
        self,
        storage: FinanceStorageInterface,
        settings: Optional[AnalysisSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Clock = utcnow,
    ):
        self._storage = storage
        self._settings = settings or get_settings().analysis
        self._audit = audit_logger or AuditLogger()
        self._clock = clock

    def calculate_components(
        self,
        recent_entries: list[LedgerEntry],
        trend_entries: list[LedgerEntry],
        goals: list[Goal],
    ) -> HealthScoreComponents:
        return HealthScoreComponents(
            savings_rate=clamp(savings_rate(recent_entries) + 50),
            budget_adherence=BUDGET_ADHERENCE_PLACEHOLDER,
            income_stability=income_stability_score(trend_entries),
            expense_volatility=expense_volatility_score(recent_entries),
            goal_progress=goal_progress_score(goals),
        )

    async def calculate_health_score(
        self,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> HealthScoreResult:
        """
        Calculate the user's health score and append a snapshot.

        Raises:
            CalculationError: If reading inputs or writing the snapshot fails
        """
        now = self._clock()
        today = now.date()
        recent_start = today - timedelta(days=self._settings.health_recent_window_days)
        trend_start = today - timedelta(days=self._settings.health_trend_window_days)

        try:
            trend_entries = await self._storage.list_entries(
                user_id, date_from=min(trend_start, recent_start), date_to=today
            )
            goals = await self._storage.list_goals(user_id, status=GoalStatus.ACTIVE)
            previous = await self._storage.get_latest_health_snapshot(user_id)
        except StorageError as e:
            await self._audit.log_calculation_failed(user_id, "health_score", str(e), correlation_id)
            raise CalculationError("Failed to calculate health score") from e

        recent_entries = filter_window(trend_entries, recent_start, today)
        trend_entries = filter_window(trend_entries, trend_start, today)

        components = self.calculate_components(recent_entries, trend_entries, goals)
        score = weighted_score(components, self._settings)
        previous_score = previous.score if previous is not None else None
        trend = trend_direction(score, previous_score, self._settings.trend_change_threshold)
        state = health_state(score, trend)

        snapshot = HealthScoreSnapshot(
            user_id=user_id,
            score=score,
            health_state=state,
            trend_direction=trend,
            components=components,
            calculated_at=now,
        )
        try:
            await self._storage.append_health_snapshot(snapshot)
        except StorageError as e:
            await self._audit.log_calculation_failed(user_id, "health_score", str(e), correlation_id)
            raise CalculationError("Failed to calculate health score") from e

        await self._audit.log_health_score(
            user_id, score, state.value, trend.value, correlation_id
        )

        return HealthScoreResult(
            score=score,
            health_state=state,
            trend_direction=trend,
            components=components,
            previous_score=previous_score,
        )
