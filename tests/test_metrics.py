"""Tests for the metrics aggregator and shared calculations."""

from datetime import date

import pytest

from finpulse.intelligence.metrics import (
    aggregate,
    average_metrics,
    category_spending,
    coefficient_of_variation,
    debt_payments,
    filter_window,
    group_by_month,
    monthly_income_totals,
    percentage_change,
    relative_change,
    relative_decrease,
    round_half_up,
)
from finpulse.models.analysis import PeriodMetrics


class TestAggregate:
    """Tests for aggregate()."""

    def test_empty_window(self):
        """An empty window gives all-zero metrics."""
        metrics = aggregate([])
        assert metrics == PeriodMetrics()
        assert metrics.savings_rate == 0.0
        assert metrics.average_transaction == 0.0

    def test_mixed_entries(self, make_entry):
        """Income and expenses are summed separately."""
        entries = [
            make_entry(1000, date(2026, 6, 1)),
            make_entry(-250, date(2026, 6, 2)),
            make_entry(-150, date(2026, 6, 3)),
        ]
        metrics = aggregate(entries)

        assert metrics.income_total == 1000.0
        assert metrics.expense_total == 400.0
        assert metrics.savings_total == 600.0
        assert metrics.savings_rate == pytest.approx(60.0)
        assert metrics.transaction_count == 3
        assert metrics.average_transaction == pytest.approx(1400 / 3)

    def test_no_income_means_zero_savings_rate(self, make_entry):
        """Savings rate is guarded to 0 when there is no income."""
        metrics = aggregate([make_entry(-80, date(2026, 6, 1))])
        assert metrics.savings_total == -80.0
        assert metrics.savings_rate == 0.0

    def test_order_does_not_matter(self, make_entry):
        entries = [
            make_entry("0.10", date(2026, 6, 1)),
            make_entry("0.20", date(2026, 6, 2)),
            make_entry("-0.30", date(2026, 6, 3)),
        ]
        assert aggregate(entries) == aggregate(list(reversed(entries)))
        assert aggregate(entries).savings_total == 0.0


class TestComparisons:
    """Tests for percentage and relative changes."""

    def test_percentage_change_compares_income(self):
        current = PeriodMetrics(income_total=1200, expense_total=5000)
        previous = PeriodMetrics(income_total=1000, expense_total=10)
        assert percentage_change(current, previous) == pytest.approx(20.0)

    def test_percentage_change_with_zero_previous_income(self):
        """A previous period without income compares as 0."""
        current = PeriodMetrics(income_total=1200)
        assert percentage_change(current, PeriodMetrics()) == 0.0

    def test_percentage_change_with_missing_side(self):
        assert percentage_change(PeriodMetrics(income_total=5), None) == 0.0
        assert percentage_change(None, PeriodMetrics(income_total=5)) == 0.0

    def test_relative_change_and_decrease(self):
        assert relative_change(150, 100) == pytest.approx(50.0)
        assert relative_change(150, 0) == 0.0
        assert relative_decrease(70, 100) == pytest.approx(30.0)
        assert relative_decrease(70, 0) == 0.0

    def test_coefficient_of_variation(self):
        assert coefficient_of_variation([10, 30]) == pytest.approx(0.5)

    def test_coefficient_of_variation_edge_cases(self):
        """Fewer than two values or a zero mean give 0."""
        assert coefficient_of_variation([]) == 0.0
        assert coefficient_of_variation([5]) == 0.0
        assert coefficient_of_variation([0, 0]) == 0.0

    def test_average_metrics(self):
        periods = [
            PeriodMetrics(income_total=100, transaction_count=1),
            PeriodMetrics(income_total=300, transaction_count=2),
        ]
        average = average_metrics(periods)
        assert average.income_total == pytest.approx(200.0)
        assert average.transaction_count == 2

    def test_average_metrics_empty(self):
        assert average_metrics([]) is None


class TestRounding:

    def test_half_rounds_up(self):
        assert round_half_up(72.5) == 73
        assert round_half_up(87.5) == 88

    def test_below_half_rounds_down(self):
        assert round_half_up(72.49) == 72


class TestGrouping:
    """Tests for window filtering and grouping helpers."""

    def test_filter_window_inclusive_and_exclusive(self, make_entry):
        entries = [
            make_entry(-1, date(2026, 6, 1)),
            make_entry(-1, date(2026, 6, 15)),
            make_entry(-1, date(2026, 6, 30)),
        ]
        assert len(filter_window(entries, date(2026, 6, 1), date(2026, 6, 30))) == 3
        assert len(
            filter_window(entries, date(2026, 6, 1), date(2026, 6, 30), end_inclusive=False)
        ) == 2

    def test_group_by_month_is_chronological(self, make_entry):
        entries = [
            make_entry(10, date(2026, 3, 5)),
            make_entry(10, date(2026, 1, 5)),
            make_entry(10, date(2026, 1, 20)),
        ]
        groups = group_by_month(entries)
        assert list(groups) == ["2026-01", "2026-03"]
        assert len(groups["2026-01"]) == 2

    def test_monthly_income_skips_expense_only_months(self, make_entry):
        entries = [
            make_entry(500, date(2026, 1, 5)),
            make_entry(-200, date(2026, 2, 5)),
        ]
        assert monthly_income_totals(entries) == {"2026-01": 500.0}

    def test_category_spending_skips_uncategorised(self, make_entry):
        entries = [
            make_entry(-40, date(2026, 6, 1), category_id="food"),
            make_entry(-60, date(2026, 6, 2), category_id="food"),
            make_entry(-99, date(2026, 6, 3)),
            make_entry(300, date(2026, 6, 4), category_id="food"),
        ]
        assert category_spending(entries) == {"food": 100.0}

    def test_debt_payments_threshold_is_exclusive(self, make_entry):
        """Only expenses strictly above the threshold count as debt-like."""
        entries = [
            make_entry("-100.00", date(2026, 6, 1)),
            make_entry("-100.01", date(2026, 6, 2)),
            make_entry(500, date(2026, 6, 3)),
        ]
        assert debt_payments(entries, 100) == pytest.approx(100.01)
