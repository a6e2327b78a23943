"""
Signal Detection Engine

Evaluates a fixed catalogue of rules against three windows of a user's
ledger and records an insight for every rule that fires, unless an
active insight of the same type was raised recently.

Windows (relative to today):
- current:     [today-30, today]
- comparison:  [today-90, today-30)
- historical:  [today-180, today]

All rules are evaluated on every call; none short-circuits another.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Callable, Optional
from uuid import UUID

from finpulse.audit import AuditLogger
from finpulse.clock import Clock, utcnow
from finpulse.config import AnalysisSettings, get_settings
from finpulse.intelligence.errors import CalculationError
from finpulse.intelligence.insights import store_unless_duplicate
from finpulse.intelligence.metrics import (
    category_spending,
    debt_payments,
    expense_total,
    filter_window,
    income_total,
    monthly_expense_totals,
    relative_change,
    relative_decrease,
    savings_rate,
)
from finpulse.models.analysis import Insight, InsightType, Severity
from finpulse.models.ledger import LedgerEntry
from finpulse.services.storage import FinanceStorageInterface, StorageError


@dataclass(frozen=True)
class SignalData:
    """The three ledger slices every rule is evaluated against."""

    today: date
    current: list[LedgerEntry]
    comparison: list[LedgerEntry]
    historical: list[LedgerEntry]


@dataclass(frozen=True)
class SignalRule:
    type: InsightType
    name: str
    description: str
    severity: Severity
    threshold: float
    window_days: int
    check: Callable[[SignalData], bool]
    supporting_data: Callable[[SignalData], dict[str, Any]]
    explain: Callable[[dict[str, Any]], str]


def historical_monthly_average(entries: list[LedgerEntry]) -> float:
    """Mean of the monthly expense totals, over months that have expenses."""
    totals = list(monthly_expense_totals(entries).values())
    if not totals:
        return 0.0
    return sum(totals) / len(totals)


def last_entry_date(entries: list[LedgerEntry]) -> Optional[date]:
    if not entries:
        return None
    return max(e.entry_date for e in entries)


class SignalDetectionEngine:
    """Runs the signal rule catalogue for a user and records new insights."""

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
        self.rules = self._build_rules()

    # -------------------------------------------------------------------------
    # Rule catalogue
    # -------------------------------------------------------------------------

    def _build_rules(self) -> list[SignalRule]:
        s = self._settings
        return [
            SignalRule(
                type=InsightType.SPENDING_SPIKE,
                name="Spending Spike",
                description="Unusual increase in spending compared to recent history",
                severity=Severity.HIGH,
                threshold=s.spending_spike_threshold,
                window_days=s.signal_historical_window_days,
                check=self._check_spending_spike,
                supporting_data=self._spending_spike_data,
                explain=lambda d: (
                    f"Your spending over the last {s.signal_current_window_days} days is "
                    f"{d['percentageIncrease']:.1f}% above your monthly average of "
                    f"{d['historicalAverage']:.2f}. Check for one-off purchases or a shift "
                    "in your regular spending."
                ),
            ),
            SignalRule(
                type=InsightType.SAVINGS_DROP,
                name="Savings Rate Drop",
                description="Significant decrease in savings rate",
                severity=Severity.CRITICAL,
                threshold=s.savings_drop_threshold,
                window_days=s.signal_comparison_window_days,
                check=self._check_savings_drop,
                supporting_data=self._savings_drop_data,
                explain=lambda d: (
                    f"Your savings rate fell from {d['previousSavingsRate']:.1f}% to "
                    f"{d['currentSavingsRate']:.1f}%. A drop this large can push your "
                    "goals back if it continues."
                ),
            ),
            SignalRule(
                type=InsightType.BUDGET_LEAKAGE,
                name="Budget Leakage",
                description="Category spending well above its usual level",
                severity=Severity.MEDIUM,
                threshold=s.budget_leakage_threshold,
                window_days=s.signal_current_window_days,
                check=self._check_budget_leakage,
                supporting_data=self._budget_leakage_data,
                explain=lambda d: (
                    f"Spending in {len(d['categories'])} "
                    f"{'category is' if len(d['categories']) == 1 else 'categories are'} "
                    f"more than {s.budget_leakage_threshold:.1f}% above the previous period. "
                    "Review recent purchases in these categories."
                ),
            ),
            SignalRule(
                type=InsightType.INCOME_DIP,
                name="Income Dip",
                description="Significant decrease in income",
                severity=Severity.HIGH,
                threshold=s.income_dip_threshold,
                window_days=s.signal_comparison_window_days,
                check=self._check_income_dip,
                supporting_data=self._income_dip_data,
                explain=lambda d: (
                    f"Your income is down {d['percentageDecrease']:.1f}% on the previous "
                    "period. You may need to adjust your budget until it recovers."
                ),
            ),
            SignalRule(
                type=InsightType.DEBT_GROWTH,
                name="Debt Growth",
                description="Increasing debt-like payments",
                severity=Severity.MEDIUM,
                threshold=s.debt_growth_threshold,
                window_days=s.signal_comparison_window_days,
                check=self._check_debt_growth,
                supporting_data=self._debt_growth_data,
                explain=lambda d: (
                    f"Large payments rose {d['percentageIncrease']:.1f}% to "
                    f"{d['currentDebtPayments']:.2f}. Make sure they are reducing what "
                    "you owe and fit your repayment plan."
                ),
            ),
            SignalRule(
                type=InsightType.TRANSACTION_SILENCE,
                name="Transaction Silence",
                description="No financial activity for an extended period",
                severity=Severity.LOW,
                threshold=s.transaction_silence_days,
                window_days=s.signal_current_window_days,
                check=self._check_transaction_silence,
                supporting_data=self._transaction_silence_data,
                explain=lambda d: (
                    f"No transactions have been recorded for {d['daysSinceLastTransaction']} days. "
                    "Your tracking may be incomplete or an import may have stopped."
                    if d["daysSinceLastTransaction"] is not None
                    else "No transactions have been recorded yet. Add your accounts or "
                    "import a statement to start tracking."
                ),
            ),
        ]

    # -------------------------------------------------------------------------
    # Checks and supporting data
    # -------------------------------------------------------------------------

    def _check_spending_spike(self, data: SignalData) -> bool:
        baseline = historical_monthly_average(data.historical)
        current = expense_total(data.current)
        return baseline > 0 and relative_change(current, baseline) > self._settings.spending_spike_threshold

    def _spending_spike_data(self, data: SignalData) -> dict[str, Any]:
        current = expense_total(data.current)
        baseline = historical_monthly_average(data.historical)
        return {
            "currentSpending": current,
            "historicalAverage": baseline,
            "percentageIncrease": relative_change(current, baseline),
        }

    def _check_savings_drop(self, data: SignalData) -> bool:
        previous = savings_rate(data.comparison)
        current = savings_rate(data.current)
        return previous > 0 and relative_decrease(current, previous) > self._settings.savings_drop_threshold

    def _savings_drop_data(self, data: SignalData) -> dict[str, Any]:
        current = savings_rate(data.current)
        previous = savings_rate(data.comparison)
        return {
            "currentSavingsRate": current,
            "previousSavingsRate": previous,
            "income": income_total(data.current),
            "expenses": expense_total(data.current),
            "percentageDrop": relative_decrease(current, previous),
        }

    def _leaking_categories(self, data: SignalData) -> list[dict[str, Any]]:
        current = category_spending(data.current)
        previous = category_spending(data.comparison)
        leaks = []
        for category_id, spent in sorted(current.items()):
            baseline = previous.get(category_id, 0.0)
            if baseline > 0:
                increase = relative_change(spent, baseline)
                if increase > self._settings.budget_leakage_threshold:
                    leaks.append({
                        "categoryId": category_id,
                        "current": spent,
                        "previous": baseline,
                        "percentageIncrease": increase,
                    })
        return leaks

    def _check_budget_leakage(self, data: SignalData) -> bool:
        return bool(self._leaking_categories(data))

    def _budget_leakage_data(self, data: SignalData) -> dict[str, Any]:
        return {"categories": self._leaking_categories(data)}

    def _check_income_dip(self, data: SignalData) -> bool:
        previous = income_total(data.comparison)
        current = income_total(data.current)
        return previous > 0 and relative_decrease(current, previous) > self._settings.income_dip_threshold

    def _income_dip_data(self, data: SignalData) -> dict[str, Any]:
        current = income_total(data.current)
        previous = income_total(data.comparison)
        return {
            "currentIncome": current,
            "previousIncome": previous,
            "percentageDecrease": relative_decrease(current, previous),
        }

    def _check_debt_growth(self, data: SignalData) -> bool:
        threshold = self._settings.debt_payment_threshold
        previous = debt_payments(data.comparison, threshold)
        current = debt_payments(data.current, threshold)
        return previous > 0 and relative_change(current, previous) > self._settings.debt_growth_threshold

    def _debt_growth_data(self, data: SignalData) -> dict[str, Any]:
        threshold = self._settings.debt_payment_threshold
        current = debt_payments(data.current, threshold)
        previous = debt_payments(data.comparison, threshold)
        return {
            "currentDebtPayments": current,
            "previousDebtPayments": previous,
            "percentageIncrease": relative_change(current, previous),
        }

    def _days_since_last(self, data: SignalData) -> Optional[int]:
        last = last_entry_date(data.historical)
        return (data.today - last).days if last else None

    def _check_transaction_silence(self, data: SignalData) -> bool:
        if not data.current:
            return True
        days = self._days_since_last(data)
        return days is not None and days > self._settings.transaction_silence_days

    def _transaction_silence_data(self, data: SignalData) -> dict[str, Any]:
        last = last_entry_date(data.historical)
        return {
            "daysSinceLastTransaction": self._days_since_last(data),
            "lastTransactionDate": last.isoformat() if last else None,
        }

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    def build_signal_data(self, today: date, entries: list[LedgerEntry]) -> SignalData:
        s = self._settings
        current_start = today - timedelta(days=s.signal_current_window_days)
        comparison_start = today - timedelta(days=s.signal_comparison_window_days)
        historical_start = today - timedelta(days=s.signal_historical_window_days)
        return SignalData(
            today=today,
            current=filter_window(entries, current_start, today),
            comparison=filter_window(entries, comparison_start, current_start, end_inclusive=False),
            historical=filter_window(entries, historical_start, today),
        )

    def evaluate(self, user_id: str, data: SignalData) -> list[Insight]:
        """Run every rule and build an insight for each one that fires."""
        now = self._clock()
        insights = []
        for rule in self.rules:
            if not rule.check(data):
                continue
            supporting = rule.supporting_data(data)
            insights.append(Insight(
                user_id=user_id,
                insight_type=rule.type,
                severity=rule.severity,
                title=rule.name,
                explanation=rule.explain(supporting),
                supporting_data=supporting,
                created_at=now,
                updated_at=now,
            ))
        return insights

    async def generate_signals(
        self,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> list[Insight]:
        """
        Evaluate all rules and store the insights that aren't duplicates.

        Returns:
            Every insight whose rule fired, stored or suppressed

        Raises:
            CalculationError: If a storage read or write fails. Insights
                stored before the failure stay stored.
        """
        now = self._clock()
        today = now.date()
        since = now - timedelta(days=self._settings.signal_dedup_days)

        try:
            entries = await self._storage.list_entries(
                user_id,
                date_from=today - timedelta(days=self._settings.signal_historical_window_days),
                date_to=today,
            )
            insights = self.evaluate(user_id, self.build_signal_data(today, entries))

            stored = 0
            for insight in insights:
                if await store_unless_duplicate(
                    self._storage, self._audit, insight, since,
                    self._settings.signal_dedup_days, correlation_id,
                ):
                    stored += 1
        except StorageError as e:
            await self._audit.log_calculation_failed(user_id, "signals", str(e), correlation_id)
            raise CalculationError("Failed to generate signals") from e

        await self._audit.log_detection(
            user_id, "signals", [i.insight_type.value for i in insights], stored, correlation_id
        )
        return insights
