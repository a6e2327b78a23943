"""
Metrics Aggregator

Pure functions that turn ledger entries into period totals and the
ratios the other engines compare. Nothing here touches storage or the
clock; the same entries always give the same numbers.

DESIGN DECISION: Amounts are summed as Decimal and converted to float
once at the end, so the result does not depend on entry order.
"""

import math
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from finpulse.models.analysis import PeriodMetrics
from finpulse.models.ledger import LedgerEntry


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (Python's round() is banker's)."""
    return int(math.floor(value + 0.5))


def month_key(day: date) -> str:
    return day.strftime("%Y-%m")


# =============================================================================
# TOTALS
# =============================================================================

def income_total(entries: Iterable[LedgerEntry]) -> float:
    """Sum of positive amounts."""
    return float(sum((e.amount for e in entries if e.amount > 0), Decimal("0")))


def expense_total(entries: Iterable[LedgerEntry]) -> float:
    """Absolute sum of negative amounts."""
    return float(abs(sum((e.amount for e in entries if e.amount < 0), Decimal("0"))))


def savings_rate(entries: Sequence[LedgerEntry]) -> float:
    """Savings as a percentage of income; 0 when there is no income."""
    income = income_total(entries)
    if income <= 0:
        return 0.0
    return (income - expense_total(entries)) / income * 100


def aggregate(entries: Sequence[LedgerEntry]) -> PeriodMetrics:
    """
    Aggregate a window of ledger entries into period metrics.

    Args:
        entries: The entries of one window, already filtered

    Returns:
        PeriodMetrics with income, expense, savings, savings rate,
        count and mean absolute amount
    """
    income = income_total(entries)
    expense = expense_total(entries)
    savings = income - expense
    count = len(entries)

    average = 0.0
    if count:
        average = float(sum((abs(e.amount) for e in entries), Decimal("0"))) / count

    return PeriodMetrics(
        income_total=income,
        expense_total=expense,
        savings_total=savings,
        savings_rate=savings / income * 100 if income > 0 else 0.0,
        transaction_count=count,
        average_transaction=average,
    )


def average_metrics(periods: Sequence[PeriodMetrics]) -> Optional[PeriodMetrics]:
    """Field-wise mean of several period metrics, or None for an empty list."""
    if not periods:
        return None
    n = len(periods)
    return PeriodMetrics(
        income_total=sum(p.income_total for p in periods) / n,
        expense_total=sum(p.expense_total for p in periods) / n,
        savings_total=sum(p.savings_total for p in periods) / n,
        savings_rate=sum(p.savings_rate for p in periods) / n,
        transaction_count=round_half_up(sum(p.transaction_count for p in periods) / n),
        average_transaction=sum(p.average_transaction for p in periods) / n,
    )


# =============================================================================
# COMPARISONS
# =============================================================================

def percentage_change(
    current: Optional[PeriodMetrics],
    previous: Optional[PeriodMetrics],
) -> float:
    """
    Income change between two periods, in percent.

    Only income_total is compared. Returns 0 when either side is
    missing or the previous income is 0.
    """
    if current is None or previous is None or previous.income_total == 0:
        return 0.0
    return (current.income_total - previous.income_total) / abs(previous.income_total) * 100


def relative_change(current: float, baseline: float) -> float:
    """Percentage increase of current over baseline; 0 when baseline is 0."""
    if baseline == 0:
        return 0.0
    return (current - baseline) / baseline * 100


def relative_decrease(current: float, previous: float) -> float:
    """Percentage drop from previous to current; 0 when previous is 0."""
    if previous == 0:
        return 0.0
    return (previous - current) / previous * 100


def coefficient_of_variation(values: Sequence[float]) -> float:
    """
    Population standard deviation over mean.

    Returns 0 for fewer than two values or a zero mean.
    """
    if len(values) < 2:
        return 0.0
    mean = sum(values) / len(values)
    if mean == 0:
        return 0.0
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return math.sqrt(variance) / mean


# =============================================================================
# GROUPING AND FILTERING
# =============================================================================

def filter_window(
    entries: Iterable[LedgerEntry],
    start: date,
    end: date,
    end_inclusive: bool = True,
) -> list[LedgerEntry]:
    """Entries with start <= entry_date <= end (or < end)."""
    if end_inclusive:
        return [e for e in entries if start <= e.entry_date <= end]
    return [e for e in entries if start <= e.entry_date < end]


def group_by_month(entries: Iterable[LedgerEntry]) -> dict[str, list[LedgerEntry]]:
    """Entries keyed by 'YYYY-MM', months in chronological order."""
    groups: dict[str, list[LedgerEntry]] = defaultdict(list)
    for entry in entries:
        groups[month_key(entry.entry_date)].append(entry)
    return dict(sorted(groups.items()))


def monthly_income_totals(entries: Iterable[LedgerEntry]) -> dict[str, float]:
    """Income per month, only for months that have income."""
    return {
        month: income_total(group)
        for month, group in group_by_month(e for e in entries if e.amount > 0).items()
    }


def monthly_expense_totals(entries: Iterable[LedgerEntry]) -> dict[str, float]:
    """Expense per month, only for months that have expenses."""
    return {
        month: expense_total(group)
        for month, group in group_by_month(e for e in entries if e.amount < 0).items()
    }


def daily_expense_totals(entries: Iterable[LedgerEntry]) -> dict[date, float]:
    """Expense per day, only for days that have expenses."""
    totals: dict[date, Decimal] = defaultdict(Decimal)
    for entry in entries:
        if entry.amount < 0:
            totals[entry.entry_date] += abs(entry.amount)
    return {day: float(total) for day, total in sorted(totals.items())}


def category_spending(entries: Iterable[LedgerEntry]) -> dict[str, float]:
    """Expense per category; uncategorised entries are skipped."""
    totals: dict[str, Decimal] = defaultdict(Decimal)
    for entry in entries:
        if entry.amount < 0 and entry.category_id:
            totals[entry.category_id] += abs(entry.amount)
    return {category_id: float(total) for category_id, total in totals.items()}


def debt_payments(entries: Iterable[LedgerEntry], threshold: float) -> float:
    """
    Total of debt-like payments.

    Heuristic: any expense whose magnitude exceeds `threshold` is treated
    as a debt payment. Category types are not consulted.
    """
    limit = Decimal(str(threshold))
    return float(sum(
        (abs(e.amount) for e in entries if e.amount < 0 and abs(e.amount) > limit),
        Decimal("0"),
    ))
