"""Tests for the health score calculator."""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from finpulse.intelligence.errors import CalculationError
from finpulse.intelligence.health import (
    FinancialHealthCalculator,
    goal_progress_score,
    health_state,
    income_stability_score,
    trend_direction,
    weighted_score,
)
from finpulse.models.analysis import (
    HealthScoreComponents,
    HealthScoreSnapshot,
    HealthState,
    TrendDirection,
)
from finpulse.models.audit import AuditEventType
from finpulse.models.ledger import Goal, GoalStatus
from finpulse.services.storage import InMemoryFinanceStorage, StorageError


def snapshot(user_id, score, calculated_at):
    return HealthScoreSnapshot(
        user_id=user_id,
        score=score,
        health_state=HealthState.DRIFTING,
        trend_direction=TrendDirection.STABLE,
        components=HealthScoreComponents(
            savings_rate=50,
            budget_adherence=100,
            income_stability=100,
            expense_volatility=100,
            goal_progress=100,
        ),
        calculated_at=calculated_at,
    )


class TestTrendDirection:

    def test_no_previous_score_is_stable(self):
        assert trend_direction(70, None) == TrendDirection.STABLE

    def test_change_must_exceed_threshold(self):
        assert trend_direction(70, 65) == TrendDirection.STABLE
        assert trend_direction(70, 64) == TrendDirection.IMPROVING
        assert trend_direction(59, 65) == TrendDirection.DECLINING

    def test_previous_score_of_zero_counts(self):
        assert trend_direction(40, 0) == TrendDirection.IMPROVING


class TestHealthState:
    """Boundaries of the score/trend -> state table."""

    @pytest.mark.parametrize("score,trend,expected", [
        (80, TrendDirection.DECLINING, HealthState.STABLE),
        (79, TrendDirection.IMPROVING, HealthState.IMPROVING),
        (79, TrendDirection.STABLE, HealthState.DRIFTING),
        (60, TrendDirection.IMPROVING, HealthState.IMPROVING),
        (70, TrendDirection.DECLINING, HealthState.DRIFTING),
        (59, TrendDirection.IMPROVING, HealthState.DRIFTING),
        (40, TrendDirection.DECLINING, HealthState.DRIFTING),
        (39, TrendDirection.IMPROVING, HealthState.AT_RISK),
        (0, TrendDirection.STABLE, HealthState.AT_RISK),
    ])
    def test_state_table(self, score, trend, expected):
        assert health_state(score, trend) == expected


class TestComponents:

    def test_goal_progress_without_goals(self):
        assert goal_progress_score([]) == 100.0

    def test_goal_progress_is_capped_per_goal(self, user_id):
        goals = [
            Goal(user_id=user_id, name="Trip", target_amount=Decimal("1000"),
                 current_amount=Decimal("500")),
            Goal(user_id=user_id, name="Car", target_amount=Decimal("1000"),
                 current_amount=Decimal("1500")),
        ]
        assert goal_progress_score(goals) == pytest.approx(75.0)

    def test_goal_with_zero_target_contributes_nothing(self, user_id):
        goals = [
            Goal(user_id=user_id, name="Empty", target_amount=Decimal("0")),
            Goal(user_id=user_id, name="Done", target_amount=Decimal("100"),
                 current_amount=Decimal("100")),
        ]
        assert goal_progress_score(goals) == pytest.approx(50.0)

    def test_income_stability_needs_two_months(self, make_entry):
        assert income_stability_score([make_entry(3000, date(2026, 6, 1))]) == 100.0

    @pytest.mark.parametrize("values,expected", [
        ((100, 100, 100, 100, 100), 100),
        ((0, 0, 0, 0, 0), 0),
        ((100, 100, 0, 0, 0), 50),
        ((0, 0, 100, 100, 100), 50),
        ((100, 0, 0, 0, 0), 25),
        ((0, 0, 0, 0, 100), 15),
    ])
    def test_weighted_score_stays_in_bounds(self, settings, values, expected):
        components = HealthScoreComponents(
            savings_rate=values[0],
            budget_adherence=values[1],
            income_stability=values[2],
            expense_volatility=values[3],
            goal_progress=values[4],
        )

        score = weighted_score(components, settings)

        assert score == expected
        assert 0 <= score <= 100
        for trend in TrendDirection:
            assert health_state(score, trend) in set(HealthState)


class TestFinancialHealthCalculator:
    """Tests for calculate_health_score against in-memory storage."""

    @pytest.fixture
    def calculator(self, storage, settings, audit_logger, clock):
        return FinancialHealthCalculator(storage, settings, audit_logger, clock)

    @pytest.mark.asyncio
    async def test_empty_ledger(self, calculator, storage, user_id):
        """No data scores 88: only the savings component sits at its midpoint."""
        result = await calculator.calculate_health_score(user_id)

        assert result.components.savings_rate == 50.0
        assert result.components.budget_adherence == 100.0
        assert result.score == 88
        assert result.trend_direction == TrendDirection.STABLE
        assert result.health_state == HealthState.STABLE
        assert result.previous_score is None

        snapshots = await storage.list_health_snapshots(user_id)
        assert len(snapshots) == 1
        assert snapshots[0].score == 88

    @pytest.mark.asyncio
    async def test_realistic_ledger(self, calculator, seed, make_entry, user_id):
        """Break-even month with uneven spending and varying income."""
        await seed(
            make_entry(4000, date(2026, 4, 15)),
            make_entry(2000, date(2026, 5, 15)),
            make_entry(-1000, date(2026, 6, 10)),
            make_entry(4000, date(2026, 6, 15)),
            make_entry(-3000, date(2026, 6, 20)),
        )

        result = await calculator.calculate_health_score(user_id)

        assert result.components.savings_rate == pytest.approx(50.0)
        assert result.components.expense_volatility == pytest.approx(50.0)
        assert result.components.income_stability == pytest.approx(85.858, abs=0.01)
        assert result.components.goal_progress == 100.0
        assert result.score == 77
        assert result.health_state == HealthState.DRIFTING

    @pytest.mark.asyncio
    async def test_trend_against_previous_snapshot(
        self, calculator, storage, user_id, now
    ):
        await storage.append_health_snapshot(snapshot(user_id, 75, now - timedelta(days=1)))

        result = await calculator.calculate_health_score(user_id)

        assert result.previous_score == 75
        assert result.trend_direction == TrendDirection.IMPROVING

    @pytest.mark.asyncio
    async def test_previous_zero_score_is_used(self, calculator, storage, user_id, now):
        await storage.append_health_snapshot(snapshot(user_id, 0, now - timedelta(days=1)))

        result = await calculator.calculate_health_score(user_id)

        assert result.previous_score == 0
        assert result.trend_direction == TrendDirection.IMPROVING

    @pytest.mark.asyncio
    async def test_snapshots_are_appended(self, calculator, storage, user_id):
        await calculator.calculate_health_score(user_id)
        await calculator.calculate_health_score(user_id)

        assert len(await storage.list_health_snapshots(user_id)) == 2

    @pytest.mark.asyncio
    async def test_only_active_goals_count(self, calculator, storage, user_id):
        await storage.save_goal(Goal(
            user_id=user_id, name="Paused", target_amount=Decimal("1000"),
            status=GoalStatus.PAUSED,
        ))
        result = await calculator.calculate_health_score(user_id)
        assert result.components.goal_progress == 100.0

    @pytest.mark.asyncio
    async def test_storage_failure(self, settings, audit_logger, audit_storage, clock, user_id):
        """A failed read surfaces as CalculationError and is audited."""

        class BrokenStorage(InMemoryFinanceStorage):
            async def list_entries(self, *args, **kwargs):
                raise StorageError("sheet unavailable")

        calculator = FinancialHealthCalculator(BrokenStorage(), settings, audit_logger, clock)

        with pytest.raises(CalculationError) as exc_info:
            await calculator.calculate_health_score(user_id)

        assert "sheet unavailable" not in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, StorageError)
        assert [e.event_type for e in audit_storage.events] == [AuditEventType.CALCULATION_FAILED]
