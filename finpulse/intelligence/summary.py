"""
Period Summary

Current calendar month against the previous one, for dashboard headers.
"""

from datetime import date
from typing import Optional

from finpulse.audit import AuditLogger
from finpulse.clock import Clock, utcnow
from finpulse.intelligence.errors import CalculationError
from finpulse.intelligence.metrics import aggregate, filter_window
from finpulse.intelligence.trends import add_months
from finpulse.models.analysis import MonthSummary, PeriodSummary, SummaryComparison
from finpulse.models.ledger import LedgerEntry
from finpulse.services.storage import FinanceStorageInterface, StorageError


TREND_THRESHOLD = 2.0


def pct_change(current: float, previous: float) -> float:
    """Percent change; a move away from 0 counts as 100%."""
    if previous == 0:
        return 0.0 if current == 0 else 100.0
    return (current - previous) / abs(previous) * 100


def trend_label(change: float) -> str:
    if change > TREND_THRESHOLD:
        return "increasing"
    if change < -TREND_THRESHOLD:
        return "decreasing"
    return "stable"


def summarize_month(entries: list[LedgerEntry], month_start: date) -> MonthSummary:
    metrics = aggregate(entries)
    return MonthSummary(
        period=month_start.strftime("%B %Y"),
        income=metrics.income_total,
        expenses=metrics.expense_total,
        savings=metrics.savings_total,
        savings_rate=metrics.savings_rate,
        transaction_count=metrics.transaction_count,
    )


def build_summary(today: date, entries: list[LedgerEntry]) -> PeriodSummary:
    """Summarise the month containing `today` against the month before it."""
    current_start = today.replace(day=1)
    next_start = add_months(current_start, 1)
    previous_start = add_months(current_start, -1)

    current = summarize_month(
        filter_window(entries, current_start, next_start, end_inclusive=False), current_start
    )
    previous = summarize_month(
        filter_window(entries, previous_start, current_start, end_inclusive=False), previous_start
    )

    comparison = SummaryComparison(
        income_change=pct_change(current.income, previous.income),
        expense_change=pct_change(current.expenses, previous.expenses),
        savings_change=pct_change(current.savings, previous.savings),
        savings_rate_change=current.savings_rate - previous.savings_rate,
        transaction_change=pct_change(current.transaction_count, previous.transaction_count),
    )

    return PeriodSummary(
        current_period=current,
        previous_period=previous,
        comparison=comparison,
        trends={
            "income": trend_label(comparison.income_change),
            "expense": trend_label(comparison.expense_change),
            "savings": trend_label(comparison.savings_change),
        },
    )


class PeriodSummaryService:
    """Month-over-month summary for one user."""

    def __init__(
        self,
        storage: FinanceStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        clock: Clock = utcnow,
    ):
        self._storage = storage
        self._audit = audit_logger or AuditLogger()
        self._clock = clock

    async def get_period_summary(self, user_id: str) -> PeriodSummary:
        today = self._clock().date()
        month_start = today.replace(day=1)
        try:
            entries = await self._storage.list_entries(
                user_id,
                date_from=add_months(month_start, -1),
                date_to=add_months(month_start, 1),
            )
        except StorageError as e:
            await self._audit.log_calculation_failed(user_id, "period_summary", str(e))
            raise CalculationError("Failed to fetch period summary") from e

        return build_summary(today, entries)
