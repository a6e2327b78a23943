"""
Trend Analysis Engine

Computes daily, weekly and monthly period metrics and compares each
period with the one before it and with rolling averages of the
periods before it.

DESIGN DECISION: Nothing is read back from earlier runs. The engine
reads the ledger once, covering the widest window plus the lead-in
periods the rolling averages need, and recomputes every period from
that slice. Re-running gives identical numbers; each run still appends
its own rows.
"""

from datetime import date, timedelta
from typing import Optional
from uuid import UUID

from finpulse.audit import AuditLogger
from finpulse.clock import Clock, utcnow
from finpulse.config import AnalysisSettings, get_settings
from finpulse.intelligence.errors import CalculationError
from finpulse.intelligence.metrics import (
    aggregate,
    average_metrics,
    filter_window,
    percentage_change,
)
from finpulse.models.analysis import (
    PeriodComparison,
    PeriodMetrics,
    PeriodType,
    TrendPeriod,
)
from finpulse.services.storage import FinanceStorageInterface, StorageError


# Preceding periods averaged for each comparison
SHORT_AVERAGE = 3
LONG_AVERAGE = 6

Bounds = tuple[date, date]


def add_months(first_of_month: date, months: int) -> date:
    """First day of the month `months` away from the given month."""
    years, month_index = divmod(first_of_month.month - 1 + months, 12)
    return date(first_of_month.year + years, month_index + 1, 1)


def daily_bounds(today: date, days: int, lead: int = 0) -> list[Bounds]:
    """One period per day from today-days (minus lead days) through today."""
    return [
        (day, day)
        for day in (today - timedelta(days=offset) for offset in range(days + lead, -1, -1))
    ]


def weekly_bounds(today: date, weeks: int, lead: int = 0) -> list[Bounds]:
    """Seven-day periods starting today-7*weeks, while the start is not after today."""
    bounds = []
    start = today - timedelta(weeks=weeks + lead)
    while start <= today:
        bounds.append((start, start + timedelta(days=6)))
        start += timedelta(days=7)
    return bounds


def monthly_bounds(today: date, months: int, lead: int = 0) -> list[Bounds]:
    """Calendar months from `months` months ago through the current month."""
    bounds = []
    first = add_months(today.replace(day=1), -(months + lead))
    while first <= today:
        following = add_months(first, 1)
        bounds.append((first, following - timedelta(days=1)))
        first = following
    return bounds


class TrendAnalysisEngine:
    """Generates and records trend periods for a user."""

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

    def _period_plan(self, today: date) -> dict[PeriodType, tuple[list[Bounds], int]]:
        """Bounds per granularity, including lead-in periods, and the lead-in count."""
        s = self._settings
        return {
            PeriodType.DAILY: (
                daily_bounds(today, s.trend_daily_days, lead=SHORT_AVERAGE),
                SHORT_AVERAGE,
            ),
            PeriodType.WEEKLY: (
                weekly_bounds(today, s.trend_weekly_weeks, lead=SHORT_AVERAGE),
                SHORT_AVERAGE,
            ),
            PeriodType.MONTHLY: (
                monthly_bounds(today, s.trend_monthly_months, lead=LONG_AVERAGE),
                LONG_AVERAGE,
            ),
        }

    def build_periods(
        self,
        user_id: str,
        period_type: PeriodType,
        bounds: list[Bounds],
        lead: int,
        entries: list,
    ) -> list[TrendPeriod]:
        """
        Turn bounds into trend periods, skipping the first `lead` bounds.

        The skipped periods still feed the previous-period and rolling
        average comparisons of the ones after them.
        """
        now = self._clock()
        metrics: list[PeriodMetrics] = [
            aggregate(filter_window(entries, start, end)) for start, end in bounds
        ]

        periods = []
        for idx in range(lead, len(bounds)):
            current = metrics[idx]
            previous = metrics[idx - 1] if idx > 0 else None
            short = average_metrics(metrics[max(0, idx - SHORT_AVERAGE):idx])
            long = None
            if period_type == PeriodType.MONTHLY:
                long = average_metrics(metrics[max(0, idx - LONG_AVERAGE):idx])

            start, end = bounds[idx]
            periods.append(TrendPeriod(
                user_id=user_id,
                period_type=period_type,
                period_start=start,
                period_end=end,
                metrics=current,
                comparisons=PeriodComparison(
                    vs_previous_period=percentage_change(current, previous),
                    vs_3_month_average=percentage_change(current, short),
                    vs_6_month_average=percentage_change(current, long),
                ),
                calculated_at=now,
            ))
        return periods

    async def generate_trend_analysis(
        self,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> list[TrendPeriod]:
        """
        Compute and append daily, weekly and monthly trend periods.

        Returns:
            The periods that were persisted

        Raises:
            CalculationError: If the ledger read or a period write fails
        """
        today = self._clock().date()
        plan = self._period_plan(today)
        earliest = min(bounds[0][0] for bounds, _ in plan.values())

        try:
            entries = await self._storage.list_entries(user_id, date_from=earliest, date_to=today)
        except StorageError as e:
            await self._audit.log_calculation_failed(user_id, "trend_analysis", str(e), correlation_id)
            raise CalculationError("Failed to generate trend analysis") from e

        persisted: list[TrendPeriod] = []
        counts: dict[str, int] = {}
        try:
            for period_type, (bounds, lead) in plan.items():
                periods = self.build_periods(user_id, period_type, bounds, lead, entries)
                for period in periods:
                    await self._storage.append_trend_period(period)
                    persisted.append(period)
                counts[period_type.value] = len(periods)
        except StorageError as e:
            await self._audit.log_calculation_failed(user_id, "trend_analysis", str(e), correlation_id)
            raise CalculationError("Failed to generate trend analysis") from e

        await self._audit.log_trend_analysis(user_id, counts, correlation_id)
        return persisted
