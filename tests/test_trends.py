"""Tests for the trend analysis engine."""

from datetime import date, timedelta

import pytest

from finpulse.intelligence.trends import (
    TrendAnalysisEngine,
    add_months,
    daily_bounds,
    monthly_bounds,
    weekly_bounds,
)
from finpulse.models.analysis import PeriodType
from finpulse.models.audit import AuditEventType


TODAY = date(2026, 6, 30)


class TestPeriodBounds:
    """Tests for the period boundary helpers."""

    def test_daily_bounds(self):
        bounds = daily_bounds(TODAY, 30)
        assert len(bounds) == 31
        assert bounds[0] == (TODAY - timedelta(days=30), TODAY - timedelta(days=30))
        assert bounds[-1] == (TODAY, TODAY)

    def test_weekly_bounds(self):
        bounds = weekly_bounds(TODAY, 12)
        assert len(bounds) == 13
        assert bounds[0][0] == TODAY - timedelta(days=84)
        assert bounds[-1] == (TODAY, TODAY + timedelta(days=6))

    def test_monthly_bounds(self):
        bounds = monthly_bounds(TODAY, 12)
        assert len(bounds) == 13
        assert bounds[0] == (date(2025, 6, 1), date(2025, 6, 30))
        assert bounds[-1] == (date(2026, 6, 1), date(2026, 6, 30))

    def test_add_months_crosses_years(self):
        assert add_months(date(2026, 1, 1), -1) == date(2025, 12, 1)
        assert add_months(date(2025, 12, 1), 1) == date(2026, 1, 1)


class TestTrendAnalysisEngine:

    @pytest.fixture
    def engine(self, storage, settings, audit_logger, clock):
        return TrendAnalysisEngine(storage, settings, audit_logger, clock)

    @pytest.mark.asyncio
    async def test_period_counts(self, engine, storage, audit_storage, user_id):
        periods = await engine.generate_trend_analysis(user_id)

        counts = {t: sum(1 for p in periods if p.period_type == t) for t in PeriodType}
        assert counts == {PeriodType.DAILY: 31, PeriodType.WEEKLY: 13, PeriodType.MONTHLY: 13}
        assert len(await storage.list_trend_periods(user_id)) == 57

        event = audit_storage.events[-1]
        assert event.event_type == AuditEventType.TREND_ANALYSIS_GENERATED
        assert event.details["period_counts"] == {"daily": 31, "weekly": 13, "monthly": 13}

    @pytest.mark.asyncio
    async def test_monthly_comparisons(self, engine, seed, make_entry, user_id):
        """June income of 1500 against 1000 in each of Jan-May."""
        await seed(
            *(make_entry(1000, date(2026, month, 10)) for month in range(1, 6)),
            make_entry(1500, date(2026, 6, 10)),
            make_entry(-400, date(2026, 6, 11)),
        )

        periods = await engine.generate_trend_analysis(user_id)
        june = next(
            p for p in periods
            if p.period_type == PeriodType.MONTHLY and p.period_start == date(2026, 6, 1)
        )

        assert june.metrics.income_total == 1500.0
        assert june.metrics.expense_total == 400.0
        assert june.comparisons.vs_previous_period == pytest.approx(50.0)
        assert june.comparisons.vs_3_month_average == pytest.approx(50.0)
        # December 2025 had no income, so the six-month average is 833.33
        assert june.comparisons.vs_6_month_average == pytest.approx(80.0)

    @pytest.mark.asyncio
    async def test_first_month_uses_lead_in_history(self, engine, seed, make_entry, user_id):
        """The oldest emitted month still compares against the month before it."""
        await seed(
            make_entry(1000, date(2025, 5, 10)),
            make_entry(2000, date(2025, 6, 10)),
        )

        periods = await engine.generate_trend_analysis(user_id)
        first = next(p for p in periods if p.period_type == PeriodType.MONTHLY)

        assert first.period_start == date(2025, 6, 1)
        assert first.comparisons.vs_previous_period == pytest.approx(100.0)

    @pytest.mark.asyncio
    async def test_daily_and_weekly_have_no_six_period_average(
        self, engine, seed, make_entry, user_id
    ):
        await seed(*(make_entry(100 + day, TODAY - timedelta(days=day)) for day in range(40)))

        periods = await engine.generate_trend_analysis(user_id)

        for period in periods:
            if period.period_type != PeriodType.MONTHLY:
                assert period.comparisons.vs_6_month_average == 0.0

    @pytest.mark.asyncio
    async def test_rerun_is_identical(self, engine, storage, seed, make_entry, user_id):
        """Each run appends rows, and the values do not change between runs."""
        await seed(
            make_entry(2500, date(2026, 5, 1)),
            make_entry(-900, date(2026, 6, 3)),
        )

        first = await engine.generate_trend_analysis(user_id)
        second = await engine.generate_trend_analysis(user_id)

        assert [(p.metrics, p.comparisons) for p in first] == \
            [(p.metrics, p.comparisons) for p in second]
        assert len(await storage.list_trend_periods(user_id)) == 2 * len(first)

    @pytest.mark.asyncio
    async def test_other_users_entries_are_ignored(self, engine, seed, make_entry, user_id):
        await seed(make_entry(999, date(2026, 6, 10), owner="someone-else"))

        periods = await engine.generate_trend_analysis(user_id)

        assert all(p.metrics.transaction_count == 0 for p in periods)
