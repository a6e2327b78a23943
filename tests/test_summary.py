"""Tests for the month-over-month period summary."""

from datetime import date, datetime

import pytest

from finpulse.intelligence.errors import CalculationError
from finpulse.intelligence.summary import (
    PeriodSummaryService,
    build_summary,
    pct_change,
    trend_label,
)
from finpulse.models.audit import AuditEventType
from finpulse.services.storage import InMemoryFinanceStorage, StorageError


class TestHelpers:

    def test_pct_change(self):
        assert pct_change(150, 100) == pytest.approx(50.0)
        assert pct_change(-50, -100) == pytest.approx(50.0)
        assert pct_change(0, 0) == 0.0
        assert pct_change(10, 0) == 100.0

    @pytest.mark.parametrize("change,label", [
        (2.1, "increasing"),
        (2.0, "stable"),
        (-2.0, "stable"),
        (-2.1, "decreasing"),
    ])
    def test_trend_label(self, change, label):
        assert trend_label(change) == label


class TestBuildSummary:

    def test_june_against_may(self, make_entry):
        entries = [
            make_entry(4000, date(2026, 5, 1)),
            make_entry(-3000, date(2026, 5, 31)),
            make_entry(4000, date(2026, 6, 1)),
            make_entry(-2000, date(2026, 6, 14)),
            make_entry(-999, date(2026, 7, 1)),
        ]

        summary = build_summary(date(2026, 6, 15), entries)

        assert summary.current_period.period == "June 2026"
        assert summary.previous_period.period == "May 2026"
        assert summary.current_period.savings == 2000.0
        assert summary.previous_period.savings == 1000.0
        assert summary.comparison.income_change == 0.0
        assert summary.comparison.expense_change == pytest.approx(-33.333, abs=0.001)
        assert summary.comparison.savings_change == pytest.approx(100.0)
        assert summary.comparison.savings_rate_change == pytest.approx(25.0)
        assert summary.trends == {
            "income": "stable",
            "expense": "decreasing",
            "savings": "increasing",
        }

    def test_january_compares_with_december(self, make_entry):
        summary = build_summary(date(2026, 1, 10), [make_entry(100, date(2025, 12, 20))])

        assert summary.previous_period.period == "December 2025"
        assert summary.previous_period.income == 100.0
        assert summary.current_period.transaction_count == 0


class TestPeriodSummaryService:

    @pytest.mark.asyncio
    async def test_reads_two_months(self, storage, audit_logger, seed, make_entry, user_id):
        await seed(
            make_entry(500, date(2026, 4, 30)),
            make_entry(1000, date(2026, 5, 2)),
            make_entry(1200, date(2026, 6, 2)),
        )
        service = PeriodSummaryService(storage, audit_logger, lambda: datetime(2026, 6, 15))

        summary = await service.get_period_summary(user_id)

        assert summary.previous_period.income == 1000.0
        assert summary.current_period.income == 1200.0
        assert summary.comparison.income_change == pytest.approx(20.0)

    @pytest.mark.asyncio
    async def test_storage_failure(self, audit_logger, audit_storage, clock, user_id):

        class BrokenStorage(InMemoryFinanceStorage):
            async def list_entries(self, *args, **kwargs):
                raise StorageError("timeout")

        service = PeriodSummaryService(BrokenStorage(), audit_logger, clock)

        with pytest.raises(CalculationError, match="Failed to fetch period summary"):
            await service.get_period_summary(user_id)
        assert audit_storage.events[-1].event_type == AuditEventType.CALCULATION_FAILED
