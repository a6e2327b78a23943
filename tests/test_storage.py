"""
Tests for the storage layer.

The Google Sheets store runs against an in-process fake of the gspread
worksheet API, so no network or credentials are needed.
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from finpulse.config import GoogleSheetsSettings
from finpulse.models.analysis import (
    HealthScoreComponents,
    HealthScoreSnapshot,
    HealthState,
    Insight,
    InsightStatus,
    InsightType,
    Severity,
    Task,
    TaskType,
    TrendDirection,
)
from finpulse.models.audit import AuditEvent, AuditEventType
from finpulse.models.ledger import Budget, Goal
from finpulse.services.storage import (
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsFinanceStorage,
    NotFoundError,
)
from finpulse.services.storage.google_sheets import (
    INSIGHT_COLUMNS,
    model_to_row,
    row_to_model,
)


class FakeWorksheet:
    """The subset of gspread.Worksheet the storage layer calls."""

    def __init__(self, columns):
        self.rows = [list(columns)]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, row, value_input_option=None):
        self.rows.append([str(v) for v in row])

    def update_cell(self, row, col, value):
        target = self.rows[row - 1]
        while len(target) < col:
            target.append("")
        target[col - 1] = str(value)

    def delete_rows(self, index):
        del self.rows[index - 1]


class FakeSheetsClient:

    def __init__(self, settings):
        self.settings = settings
        self.worksheets = {}

    def get_worksheet(self, title, columns, rows=1000):
        if title not in self.worksheets:
            self.worksheets[title] = FakeWorksheet(columns)
        return self.worksheets[title]


@pytest.fixture
def sheets_client(tmp_path):
    credentials = tmp_path / "credentials.json"
    credentials.write_text("{}")
    settings = GoogleSheetsSettings(
        credentials_path=str(credentials),
        spreadsheet_id="test-spreadsheet",
    )
    return FakeSheetsClient(settings)


@pytest.fixture
def sheets_storage(sheets_client):
    return GoogleSheetsFinanceStorage(sheets_client)


def make_insight(user_id, created_at, **overrides):
    fields = dict(
        user_id=user_id,
        insight_type=InsightType.SPENDING_SPIKE,
        severity=Severity.HIGH,
        title="Spending Spike",
        explanation="Spending is up 35.1% on your average.",
        supporting_data={"percentageIncrease": 35.1, "categories": [{"categoryId": "dining"}]},
        created_at=created_at,
        updated_at=created_at,
    )
    fields.update(overrides)
    return Insight(**fields)


class TestInMemoryFinanceStorage:

    @pytest.mark.asyncio
    async def test_duplicate_ids_are_rejected(self, storage, make_entry, user_id, now):
        entry = make_entry(10, date(2026, 6, 1))
        await storage.save_entry(entry)
        with pytest.raises(DuplicateError):
            await storage.save_entry(entry)

        insight = make_insight(user_id, now)
        await storage.append_insight(insight)
        with pytest.raises(DuplicateError):
            await storage.append_insight(insight)

    @pytest.mark.asyncio
    async def test_updating_a_missing_record(self, storage, user_id, now):
        with pytest.raises(NotFoundError):
            await storage.update_insight(make_insight(user_id, now))
        with pytest.raises(NotFoundError):
            await storage.update_task(Task(
                user_id=user_id, title="Ghost", task_type=TaskType.SPENDING_REVIEW,
            ))

    @pytest.mark.asyncio
    async def test_returned_records_are_copies(self, storage, user_id, now):
        insight = make_insight(user_id, now)
        await storage.append_insight(insight)

        fetched = await storage.get_insight(user_id, insight.id)
        fetched.status = InsightStatus.DISMISSED

        assert (await storage.get_insight(user_id, insight.id)).status == InsightStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_list_entries_window(self, storage, seed, make_entry, user_id):
        await seed(
            make_entry(1, date(2026, 6, 3)),
            make_entry(2, date(2026, 6, 1)),
            make_entry(3, date(2026, 5, 31), category_id="food"),
            make_entry(4, date(2026, 6, 2), owner="someone-else"),
        )

        entries = await storage.list_entries(user_id, date_from=date(2026, 6, 1))
        assert [e.entry_date for e in entries] == [date(2026, 6, 1), date(2026, 6, 3)]

        food = await storage.list_entries(user_id, category_id="food")
        assert [e.amount for e in food] == [Decimal("3")]

    @pytest.mark.asyncio
    async def test_latest_snapshot_wins_ties(self, storage, user_id, now):
        components = HealthScoreComponents(
            savings_rate=50, budget_adherence=100, income_stability=100,
            expense_volatility=100, goal_progress=100,
        )
        for score in (70, 80):
            await storage.append_health_snapshot(HealthScoreSnapshot(
                user_id=user_id, score=score, health_state=HealthState.DRIFTING,
                trend_direction=TrendDirection.STABLE, components=components,
                calculated_at=now,
            ))

        assert (await storage.get_latest_health_snapshot(user_id)).score == 80

    @pytest.mark.asyncio
    async def test_list_user_ids(self, storage, make_entry, user_id):
        await storage.save_entry(make_entry(10, date(2026, 6, 1), owner="bob"))
        await storage.save_goal(Goal(user_id="alice", name="Trip", target_amount=Decimal("100")))
        await storage.save_budget(Budget(
            user_id="bob", category_id="food", amount=Decimal("50"), start_date=date(2026, 1, 1),
        ))

        assert await storage.list_user_ids() == ["alice", "bob"]


class TestRowConversion:

    def test_json_columns_round_trip(self, now):
        insight = make_insight("user-1", now, resolved_at=None)

        row = model_to_row(insight, INSIGHT_COLUMNS)

        assert row[INSIGHT_COLUMNS.index("resolved_at")] == ""
        assert row_to_model(Insight, row, INSIGHT_COLUMNS) == insight

    def test_short_rows_use_defaults(self, now):
        row = model_to_row(make_insight("user-1", now), INSIGHT_COLUMNS)[:7]

        restored = row_to_model(Insight, row, INSIGHT_COLUMNS)

        assert restored.status == InsightStatus.ACTIVE
        assert restored.resolved_at is None


class TestGoogleSheetsFinanceStorage:

    @pytest.mark.asyncio
    async def test_entries(self, sheets_storage, make_entry, user_id):
        await sheets_storage.save_entry(make_entry("-12.50", date(2026, 6, 2), category_id="food"))
        await sheets_storage.save_entry(make_entry(3000, date(2026, 6, 1)))
        await sheets_storage.save_entry(make_entry(99, date(2026, 6, 1), owner="someone-else"))

        entries = await sheets_storage.list_entries(user_id)

        assert [e.amount for e in entries] == [Decimal("3000"), Decimal("-12.50")]
        assert entries[1].category_id == "food"
        assert await sheets_storage.list_user_ids() == ["someone-else", user_id]

    @pytest.mark.asyncio
    async def test_malformed_rows_are_skipped(self, sheets_storage, sheets_client, make_entry, user_id):
        await sheets_storage.save_entry(make_entry(10, date(2026, 6, 1)))
        sheet = sheets_client.worksheets[sheets_client.settings.ledger_sheet_name]
        sheet.rows.append(["bad-row", user_id, "acct", "", "not-a-number", "yesterday", ""])

        assert len(await sheets_storage.list_entries(user_id)) == 1

    @pytest.mark.asyncio
    async def test_insight_round_trip_and_update(self, sheets_storage, user_id, now):
        insight = make_insight(user_id, now)
        await sheets_storage.append_insight(insight)

        fetched = await sheets_storage.get_insight(user_id, insight.id)
        assert fetched == insight
        assert await sheets_storage.get_insight("someone-else", insight.id) is None

        fetched.status = InsightStatus.RESOLVED
        fetched.resolved_at = now
        await sheets_storage.update_insight(fetched)

        assert (await sheets_storage.get_insight(user_id, insight.id)).status == \
            InsightStatus.RESOLVED
        assert await sheets_storage.list_insights(user_id, status=InsightStatus.ACTIVE) == []

    @pytest.mark.asyncio
    async def test_update_missing_insight(self, sheets_storage, user_id, now):
        with pytest.raises(NotFoundError):
            await sheets_storage.update_insight(make_insight(user_id, now))

    @pytest.mark.asyncio
    async def test_find_recent_insight(self, sheets_storage, user_id, now):
        await sheets_storage.append_insight(make_insight(user_id, now - timedelta(days=10)))
        recent = make_insight(user_id, now - timedelta(days=1))
        await sheets_storage.append_insight(recent)

        found = await sheets_storage.find_recent_insight(
            user_id, InsightType.SPENDING_SPIKE, now - timedelta(days=7)
        )

        assert found.id == recent.id
        assert await sheets_storage.find_recent_insight(
            user_id, InsightType.INCOME_DIP, now - timedelta(days=7)
        ) is None

    @pytest.mark.asyncio
    async def test_task_delete(self, sheets_storage, user_id):
        keep = Task(user_id=user_id, title="Keep", task_type=TaskType.GOAL_REVIEW)
        drop = Task(user_id=user_id, title="Drop", task_type=TaskType.GOAL_REVIEW)
        await sheets_storage.save_task(keep)
        await sheets_storage.save_task(drop)

        assert await sheets_storage.delete_task("someone-else", drop.id) is False
        assert await sheets_storage.delete_task(user_id, drop.id) is True

        assert [t.id for t in await sheets_storage.list_tasks(user_id)] == [keep.id]

    @pytest.mark.asyncio
    async def test_budget_upsert(self, sheets_storage, sheets_client, user_id):
        budget = Budget(
            user_id=user_id, category_id="food", amount=Decimal("400.00"),
            start_date=date(2026, 1, 1),
        )
        await sheets_storage.save_budget(budget)
        budget.is_active = False
        await sheets_storage.save_budget(budget)

        sheet = sheets_client.worksheets[sheets_client.settings.budgets_sheet_name]
        assert len(sheet.rows) == 2
        assert await sheets_storage.list_budgets(user_id) == []
        assert len(await sheets_storage.list_budgets(user_id, active_only=False)) == 1


class TestGoogleSheetsAuditStorage:

    @pytest.mark.asyncio
    async def test_events_by_correlation_id(self, sheets_client):
        audit = GoogleSheetsAuditStorage(sheets_client)
        correlation_id = uuid4()
        first = AuditEvent(
            event_type=AuditEventType.SIGNALS_GENERATED,
            correlation_id=correlation_id,
            user_id="user-1",
            description="Signal detection completed",
            details={"signals": 2},
        )
        unrelated = AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR, description="System error", error_message="boom"
        )
        await audit.append_event(first)
        await audit.append_event(unrelated)

        events = await audit.get_events_by_correlation_id(correlation_id)

        assert [e.event_id for e in events] == [first.event_id]
        assert events[0].details == {"signals": 2}
        assert events[0].user_id == "user-1"
        assert len(await audit.get_recent_events()) == 2
