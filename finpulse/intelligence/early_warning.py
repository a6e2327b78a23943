"""
Early-Warning System

Forward-looking checks that project where the user is heading rather
than comparing with the past:

1. Budget overrun projection: this month's pace per budgeted category
2. Savings depletion forecast: months of runway at the current burn rate
3. Debt stagnation: payments rising while estimated principal reduction falls

Alerts use the insight shape with their own severity thresholds and a
shorter dedup window than signal detection (3 days instead of 7).
"""

import calendar
from datetime import date, timedelta
from typing import Any, Optional
from uuid import UUID

from finpulse.audit import AuditLogger
from finpulse.clock import Clock, utcnow
from finpulse.config import AnalysisSettings, get_settings
from finpulse.intelligence.errors import CalculationError
from finpulse.intelligence.insights import store_unless_duplicate
from finpulse.intelligence.metrics import (
    category_spending,
    expense_total,
    filter_window,
    group_by_month,
    income_total,
    relative_change,
)
from finpulse.models.analysis import Insight, InsightType, Severity
from finpulse.models.ledger import Budget, BudgetPeriod, LedgerEntry
from finpulse.services.storage import FinanceStorageInterface, StorageError


# Runway reported when savings are not being depleted
UNLIMITED_RUNWAY = 999.0


def months_ago(today: date, months: int) -> date:
    """Same day `months` calendar months back, clamped to the month's length."""
    years, month_index = divmod(today.month - 1 - months, 12)
    year, month = today.year + years, month_index + 1
    return date(year, month, min(today.day, calendar.monthrange(year, month)[1]))


def monthly_budget_amount(budget: Budget, days_in_month: int) -> float:
    """Express a budget of any period as an amount for one calendar month."""
    amount = float(budget.amount)
    if budget.period == BudgetPeriod.WEEKLY:
        return amount * days_in_month / 7
    if budget.period == BudgetPeriod.QUARTERLY:
        return amount / 3
    if budget.period == BudgetPeriod.YEARLY:
        return amount / 12
    return amount


def overrun_severity(overage_percentage: float) -> Severity:
    if overage_percentage > 50:
        return Severity.CRITICAL
    if overage_percentage > 25:
        return Severity.HIGH
    if overage_percentage > 10:
        return Severity.MEDIUM
    return Severity.LOW


def runway_severity(months_of_runway: float) -> Severity:
    if months_of_runway < 1:
        return Severity.CRITICAL
    if months_of_runway < 3:
        return Severity.HIGH
    if months_of_runway < 6:
        return Severity.MEDIUM
    return Severity.LOW


def debt_stagnation_severity(payment_increase: float, reduction_change: float) -> Severity:
    """
    Classify debt stagnation.

    Stagnating means estimated principal reduction fell by more than 10%.
    """
    stagnating = reduction_change < -10
    if stagnating and payment_increase > 20 and reduction_change < -20:
        return Severity.HIGH
    if stagnating and payment_increase > 10:
        return Severity.MEDIUM
    return Severity.LOW


def savings_recommendations(months_of_runway: float, monthly_burn_rate: float) -> list[str]:
    actions = []
    if months_of_runway < 1:
        actions.append("Immediate action required: cut back to essential expenses")
        actions.append("Look into temporary ways to increase income")
    elif months_of_runway < 3:
        actions.append("Review and reduce non-essential expenses")
        actions.append("Consider pausing some financial goals temporarily")
    elif months_of_runway < 6:
        actions.append("Rebalance your budget allocations")
        actions.append("Look for subscriptions and recurring payments to trim")

    if monthly_burn_rate > 1000:
        actions.append("High monthly burn rate: review your largest expense categories")
    return actions


def debt_recommendations(
    payment_increase: float,
    reduction_change: float,
    efficiency: float,
) -> list[str]:
    actions = []
    if payment_increase > 20 and reduction_change < -20:
        actions.append("Review your repayment strategy and confirm payments reduce principal")
        actions.append("Consider consolidation or refinancing options")
    if efficiency < 50:
        actions.append("Check for fees or interest-only payments")
        actions.append("Prioritise paying down high-interest debt")
    actions.append("Review how and when debt payments are allocated")
    return actions


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


class EarlyWarningSystem:
    """Generates and records forward-looking alerts for a user."""

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

    # -------------------------------------------------------------------------
    # Budget overrun projection
    # -------------------------------------------------------------------------

    def project_budget(
        self,
        budget: Budget,
        spent: float,
        today: date,
    ) -> dict[str, Any]:
        """Project this month's spend for one budget from the pace so far."""
        days_in_month = calendar.monthrange(today.year, today.month)[1]
        days_elapsed = today.day
        budget_amount = monthly_budget_amount(budget, days_in_month)

        daily_average = spent / days_elapsed
        projected_total = daily_average * days_in_month
        overage = projected_total - budget_amount
        overage_percentage = overage / budget_amount * 100

        return {
            "budgetId": budget.id,
            "categoryId": budget.category_id,
            "budgetAmount": budget_amount,
            "currentSpending": spent,
            "dailyAverage": daily_average,
            "projectedTotal": projected_total,
            "overage": overage,
            "overagePercentage": overage_percentage,
            "daysElapsed": days_elapsed,
            "daysRemaining": days_in_month - days_elapsed,
        }

    async def check_budget_overruns(
        self,
        user_id: str,
        today: date,
        budgets: list[Budget],
        entries: list[LedgerEntry],
    ) -> list[Insight]:
        month_start = today.replace(day=1)
        spending = category_spending(filter_window(entries, month_start, today))

        alerts = []
        for budget in budgets:
            if not budget.is_in_effect(month_start, today):
                continue

            projection = self.project_budget(budget, spending.get(budget.category_id, 0.0), today)
            severity = overrun_severity(projection["overagePercentage"])
            if severity == Severity.LOW:
                continue

            category = await self._storage.get_category(user_id, budget.category_id)
            name = category.name if category else f"Category {budget.category_id}"
            projection["categoryName"] = name

            alerts.append(self._alert(
                user_id,
                InsightType.BUDGET_LEAKAGE,
                severity,
                f"Projected Budget Overrun: {name}",
                f"At your current pace you will exceed your {name} budget by "
                f"{projection['overagePercentage']:.1f}% ({projection['overage']:.2f}) "
                f"this month. With {projection['daysRemaining']} days remaining, consider "
                "slowing spending here or adjusting the budget.",
                projection,
            ))
        return alerts

    # -------------------------------------------------------------------------
    # Savings depletion forecast
    # -------------------------------------------------------------------------

    def forecast_savings(self, today: date, entries: list[LedgerEntry]) -> dict[str, Any]:
        """
        Forecast how long savings last at the recent burn rate.

        current savings is approximated as the net of the whole ledger up to
        today, floored at 0. It is not an account balance.
        """
        window_start = months_ago(today, self._settings.savings_forecast_months)
        recent = filter_window(entries, window_start, today)
        monthly_savings = [
            income_total(group) - expense_total(group)
            for group in group_by_month(recent).values()
        ]
        average_savings = _mean(monthly_savings)

        current_savings = max(0.0, income_total(entries) - expense_total(entries))
        burn_rate = max(0.0, -average_savings)
        runway = current_savings / burn_rate if burn_rate > 0 else UNLIMITED_RUNWAY

        depletion_date = None
        if runway != UNLIMITED_RUNWAY:
            depletion_date = today + timedelta(days=runway * 30)

        return {
            "averageMonthlySavings": average_savings,
            "currentSavings": current_savings,
            "monthlyBurnRate": burn_rate,
            "monthsOfRunway": runway,
            "projectedDepletionDate": depletion_date.isoformat() if depletion_date else None,
            "recommendedActions": savings_recommendations(runway, burn_rate),
        }

    def check_savings_depletion(
        self,
        user_id: str,
        today: date,
        entries: list[LedgerEntry],
    ) -> list[Insight]:
        forecast = self.forecast_savings(today, entries)
        severity = runway_severity(forecast["monthsOfRunway"])
        if severity == Severity.LOW:
            return []

        if forecast["projectedDepletionDate"]:
            explanation = (
                f"At your current pace your savings would run out in "
                f"{forecast['monthsOfRunway']:.1f} months (around "
                f"{forecast['projectedDepletionDate']}). Increase income or reduce "
                "expenses to extend your runway."
            )
        else:
            explanation = (
                f"Your savings are shrinking by {forecast['monthlyBurnRate']:.2f} per month. "
                "Address this to keep your finances stable."
            )

        return [self._alert(
            user_id,
            InsightType.SAVINGS_DROP,
            severity,
            "Savings Depletion Warning",
            explanation,
            forecast,
        )]

    # -------------------------------------------------------------------------
    # Debt stagnation
    # -------------------------------------------------------------------------

    def analyze_debt(self, today: date, entries: list[LedgerEntry]) -> Optional[dict[str, Any]]:
        """
        Compare recent and older debt-like payments and estimated reduction.

        Returns None with fewer than three months of data.
        """
        s = self._settings
        window = filter_window(entries, months_ago(today, s.stagnation_window_months), today)
        months = group_by_month(window)
        if len(months) < 3:
            return None

        limit = s.stagnation_payment_threshold
        payments = [
            sum(float(abs(e.amount)) for e in group if e.amount < 0 and abs(e.amount) > limit)
            for group in months.values()
        ]
        reductions = [p * s.principal_reduction_ratio for p in payments]

        recent_payment, older_payment = _mean(payments[-3:]), _mean(payments[-6:-3])
        recent_reduction, older_reduction = _mean(reductions[-3:]), _mean(reductions[-6:-3])

        payment_increase = relative_change(recent_payment, older_payment)
        reduction_change = relative_change(recent_reduction, older_reduction)
        efficiency = recent_reduction / recent_payment * 100 if recent_payment > 0 else 0.0

        return {
            "debtPayments": recent_payment,
            "debtReduction": recent_reduction,
            "paymentEfficiency": efficiency,
            "paymentIncrease": payment_increase,
            "reductionChange": reduction_change,
            "stagnationMonths": 1 if reduction_change < -10 else 0,
            "recommendedActions": debt_recommendations(payment_increase, reduction_change, efficiency),
        }

    def check_debt_stagnation(
        self,
        user_id: str,
        today: date,
        entries: list[LedgerEntry],
    ) -> list[Insight]:
        analysis = self.analyze_debt(today, entries)
        if analysis is None:
            return []

        severity = debt_stagnation_severity(analysis["paymentIncrease"], analysis["reductionChange"])
        if severity == Severity.LOW:
            return []

        return [self._alert(
            user_id,
            InsightType.DEBT_GROWTH,
            severity,
            "Debt Payment Inefficiency Detected",
            f"Your debt payments are up {analysis['paymentIncrease']:.1f}% while the amount "
            "going to principal has fallen. Review your repayment strategy and make sure "
            "payments reduce what you owe.",
            analysis,
        )]

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    def _alert(
        self,
        user_id: str,
        insight_type: InsightType,
        severity: Severity,
        title: str,
        explanation: str,
        supporting_data: dict[str, Any],
    ) -> Insight:
        now = self._clock()
        return Insight(
            user_id=user_id,
            insight_type=insight_type,
            severity=severity,
            title=title,
            explanation=explanation,
            supporting_data=supporting_data,
            created_at=now,
            updated_at=now,
        )

    async def generate_alerts(
        self,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> list[Insight]:
        """
        Run all three checks and store the alerts that aren't duplicates.

        Alerts are matched on type within the dedup window, whatever their
        status, so a dismissed alert stays quiet too. Only the first of
        several same-type alerts from one run is stored.

        Returns:
            The alerts that were stored

        Raises:
            CalculationError: If a storage read or write fails
        """
        now = self._clock()
        today = now.date()
        since = now - timedelta(days=self._settings.alert_dedup_days)

        try:
            entries = await self._storage.list_entries(user_id, date_to=today)
            budgets = await self._storage.list_budgets(user_id, active_only=True)

            alerts = await self.check_budget_overruns(user_id, today, budgets, entries)
            alerts.extend(self.check_savings_depletion(user_id, today, entries))
            alerts.extend(self.check_debt_stagnation(user_id, today, entries))

            stored = []
            for alert in alerts:
                if await store_unless_duplicate(
                    self._storage, self._audit, alert, since,
                    self._settings.alert_dedup_days, correlation_id, status=None,
                ):
                    stored.append(alert)
        except StorageError as e:
            await self._audit.log_calculation_failed(user_id, "alerts", str(e), correlation_id)
            raise CalculationError("Failed to generate alerts") from e

        await self._audit.log_detection(
            user_id, "alerts", [a.insight_type.value for a in alerts], len(stored), correlation_id
        )
        return stored
