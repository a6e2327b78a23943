"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the initial storage backend because:
1. Users can inspect their scores, insights and tasks directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (fine for a personal ledger)
- No transactions, so the dedup check-then-insert is not atomic
- Limited query capabilities (we filter in Python)

Each record type lives in its own worksheet, one record per row. Nested
fields (score components, period metrics, supporting data) are stored as
JSON in columns suffixed with `_json`.
"""

import json
from datetime import date, datetime
from typing import Optional, TypeVar
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from pydantic import BaseModel
from tenacity import retry, stop_after_attempt, wait_exponential

from finpulse.config import GoogleSheetsSettings, get_settings
from finpulse.models.analysis import (
    HealthScoreSnapshot,
    Insight,
    InsightStatus,
    InsightType,
    PeriodType,
    Task,
    TrendPeriod,
)
from finpulse.models.audit import AuditEvent, AuditEventType, AuditSeverity
from finpulse.models.ledger import (
    Budget,
    Category,
    Goal,
    GoalStatus,
    LedgerEntry,
)
from finpulse.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    FinanceStorageInterface,
    NotFoundError,
    StorageError,
)


ModelT = TypeVar("ModelT", bound=BaseModel)


CATEGORY_COLUMNS = ["id", "user_id", "name", "type"]

LEDGER_COLUMNS = [
    "id",
    "user_id",
    "account_id",
    "category_id",
    "amount",
    "entry_date",
    "description",
]

BUDGET_COLUMNS = [
    "id",
    "user_id",
    "category_id",
    "period",
    "amount",
    "start_date",
    "end_date",
    "is_active",
]

GOAL_COLUMNS = [
    "id",
    "user_id",
    "name",
    "goal_type",
    "target_amount",
    "current_amount",
    "target_date",
    "status",
    "created_at",
]

HEALTH_SCORE_COLUMNS = [
    "id",
    "user_id",
    "score",
    "health_state",
    "trend_direction",
    "components_json",
    "calculated_at",
]

TREND_COLUMNS = [
    "id",
    "user_id",
    "period_type",
    "period_start",
    "period_end",
    "metrics_json",
    "comparisons_json",
    "calculated_at",
]

INSIGHT_COLUMNS = [
    "id",
    "user_id",
    "insight_type",
    "severity",
    "title",
    "explanation",
    "supporting_data_json",
    "status",
    "created_at",
    "updated_at",
    "resolved_at",
]

TASK_COLUMNS = [
    "id",
    "user_id",
    "source_insight_id",
    "title",
    "description",
    "task_type",
    "priority",
    "status",
    "due_date",
    "completed_at",
    "created_at",
    "updated_at",
]

# Matches AuditEvent.to_sheets_row()
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "user_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _field_name(column: str) -> str:
    return column[:-5] if column.endswith("_json") else column


def model_to_row(model: BaseModel, columns: list[str]) -> list[str]:
    """Convert a model to a spreadsheet row following `columns`."""
    data = model.model_dump(mode="json")
    row = []
    for column in columns:
        value = data.get(_field_name(column))
        if column.endswith("_json"):
            row.append(json.dumps(value, default=str))
        elif value is None:
            row.append("")
        else:
            row.append(str(value))
    return row


def row_to_model(model_cls: type[ModelT], row: list, columns: list[str]) -> ModelT:
    """
    Convert a spreadsheet row back into a model.

    Empty cells are left out so the model's defaults apply.
    """
    data = {}
    for idx, column in enumerate(columns):
        value = row[idx] if idx < len(row) else ""
        if value == "":
            continue
        if column.endswith("_json"):
            data[_field_name(column)] = json.loads(value)
        else:
            data[column] = value
    return model_cls.model_validate(data)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._worksheets: dict[str, gspread.Worksheet] = {}
        self.settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self.settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self.settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self.settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self.settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(
        self,
        title: str,
        columns: list[str],
        rows: int = 1000,
    ) -> gspread.Worksheet:
        """Get or create a worksheet, writing the header row on creation."""
        if title in self._worksheets:
            return self._worksheets[title]

        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)

        self._worksheets[title] = sheet
        return sheet


class GoogleSheetsFinanceStorage(FinanceStorageInterface):
    """
    Google Sheets implementation of finance storage.

    Reads pull the whole worksheet and filter in Python; malformed rows
    are skipped rather than failing the read.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._sheets = self._client.settings

    # -------------------------------------------------------------------------
    # Row helpers
    # -------------------------------------------------------------------------

    def _read_all(
        self,
        title: str,
        columns: list[str],
        model_cls: type[ModelT],
    ) -> list[ModelT]:
        sheet = self._client.get_worksheet(title, columns)
        records = []
        for row in sheet.get_all_values()[1:]:  # Skip header
            if not row or not row[0]:
                continue
            try:
                records.append(row_to_model(model_cls, row, columns))
            except Exception:
                continue  # Skip malformed rows
        return records

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _append(self, title: str, columns: list[str], model: BaseModel) -> bool:
        try:
            sheet = self._client.get_worksheet(title, columns)
            sheet.append_row(model_to_row(model, columns), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to append to {title}: {e}")

    def _find_row(self, sheet: gspread.Worksheet, record_id: str) -> Optional[int]:
        all_rows = sheet.get_all_values()
        for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is the header
            if row and row[0] == record_id:
                return idx
        return None

    async def _replace(
        self,
        title: str,
        columns: list[str],
        model: BaseModel,
        label: str,
    ) -> bool:
        try:
            sheet = self._client.get_worksheet(title, columns)
            idx = self._find_row(sheet, model.id)
            if idx is None:
                raise NotFoundError(f"{label} not found: {model.id}")

            for col_idx, value in enumerate(model_to_row(model, columns), start=1):
                sheet.update_cell(idx, col_idx, value)
            return True
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {label.lower()}: {e}")

    async def _upsert(
        self,
        title: str,
        columns: list[str],
        model: BaseModel,
        label: str,
    ) -> bool:
        try:
            return await self._replace(title, columns, model, label)
        except NotFoundError:
            return await self._append(title, columns, model)

    def _read(self, title: str, columns: list[str], model_cls: type[ModelT]) -> list[ModelT]:
        try:
            return self._read_all(title, columns, model_cls)
        except Exception as e:
            raise StorageError(f"Failed to read {title}: {e}")

    # -------------------------------------------------------------------------
    # Users and ledger
    # -------------------------------------------------------------------------

    async def list_user_ids(self) -> list[str]:
        user_ids = set()
        user_ids.update(
            e.user_id for e in self._read(self._sheets.ledger_sheet_name, LEDGER_COLUMNS, LedgerEntry)
        )
        user_ids.update(
            b.user_id for b in self._read(self._sheets.budgets_sheet_name, BUDGET_COLUMNS, Budget)
        )
        user_ids.update(
            g.user_id for g in self._read(self._sheets.goals_sheet_name, GOAL_COLUMNS, Goal)
        )
        return sorted(user_ids)

    async def save_category(self, category: Category) -> bool:
        return await self._upsert(
            self._sheets.categories_sheet_name, CATEGORY_COLUMNS, category, "Category"
        )

    async def get_category(self, user_id: str, category_id: str) -> Optional[Category]:
        for category in self._read(self._sheets.categories_sheet_name, CATEGORY_COLUMNS, Category):
            if category.id == category_id and category.user_id == user_id:
                return category
        return None

    async def save_entry(self, entry: LedgerEntry) -> bool:
        return await self._append(self._sheets.ledger_sheet_name, LEDGER_COLUMNS, entry)

    async def list_entries(
        self,
        user_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        category_id: Optional[str] = None,
    ) -> list[LedgerEntry]:
        entries = []
        for entry in self._read(self._sheets.ledger_sheet_name, LEDGER_COLUMNS, LedgerEntry):
            if entry.user_id != user_id:
                continue
            if date_from and entry.entry_date < date_from:
                continue
            if date_to and entry.entry_date > date_to:
                continue
            if category_id and entry.category_id != category_id:
                continue
            entries.append(entry)

        entries.sort(key=lambda e: e.entry_date)
        return entries

    async def save_budget(self, budget: Budget) -> bool:
        return await self._upsert(self._sheets.budgets_sheet_name, BUDGET_COLUMNS, budget, "Budget")

    async def list_budgets(self, user_id: str, active_only: bool = True) -> list[Budget]:
        return [
            b for b in self._read(self._sheets.budgets_sheet_name, BUDGET_COLUMNS, Budget)
            if b.user_id == user_id and (b.is_active or not active_only)
        ]

    async def save_goal(self, goal: Goal) -> bool:
        return await self._upsert(self._sheets.goals_sheet_name, GOAL_COLUMNS, goal, "Goal")

    async def list_goals(
        self,
        user_id: str,
        status: Optional[GoalStatus] = None,
    ) -> list[Goal]:
        return [
            g for g in self._read(self._sheets.goals_sheet_name, GOAL_COLUMNS, Goal)
            if g.user_id == user_id and (status is None or g.status == status)
        ]

    # -------------------------------------------------------------------------
    # Health scores and trends
    # -------------------------------------------------------------------------

    async def append_health_snapshot(self, snapshot: HealthScoreSnapshot) -> bool:
        return await self._append(
            self._sheets.health_scores_sheet_name, HEALTH_SCORE_COLUMNS, snapshot
        )

    async def get_latest_health_snapshot(
        self,
        user_id: str,
    ) -> Optional[HealthScoreSnapshot]:
        snapshots = await self.list_health_snapshots(user_id, limit=1)
        return snapshots[0] if snapshots else None

    async def list_health_snapshots(
        self,
        user_id: str,
        limit: int = 30,
    ) -> list[HealthScoreSnapshot]:
        rows = self._read(
            self._sheets.health_scores_sheet_name, HEALTH_SCORE_COLUMNS, HealthScoreSnapshot
        )
        owned = [s for s in reversed(rows) if s.user_id == user_id]
        owned.sort(key=lambda s: s.calculated_at, reverse=True)
        return owned[:limit]

    async def append_trend_period(self, period: TrendPeriod) -> bool:
        return await self._append(self._sheets.trends_sheet_name, TREND_COLUMNS, period)

    async def list_trend_periods(
        self,
        user_id: str,
        period_type: Optional[PeriodType] = None,
    ) -> list[TrendPeriod]:
        periods = [
            p for p in self._read(self._sheets.trends_sheet_name, TREND_COLUMNS, TrendPeriod)
            if p.user_id == user_id and (period_type is None or p.period_type == period_type)
        ]
        periods.sort(key=lambda p: (p.period_type.value, p.period_start))
        return periods

    # -------------------------------------------------------------------------
    # Insights
    # -------------------------------------------------------------------------

    async def append_insight(self, insight: Insight) -> bool:
        return await self._append(self._sheets.insights_sheet_name, INSIGHT_COLUMNS, insight)

    async def get_insight(self, user_id: str, insight_id: str) -> Optional[Insight]:
        for insight in self._read(self._sheets.insights_sheet_name, INSIGHT_COLUMNS, Insight):
            if insight.id == insight_id and insight.user_id == user_id:
                return insight
        return None

    async def update_insight(self, insight: Insight) -> bool:
        return await self._replace(
            self._sheets.insights_sheet_name, INSIGHT_COLUMNS, insight, "Insight"
        )

    async def list_insights(
        self,
        user_id: str,
        status: Optional[InsightStatus] = None,
    ) -> list[Insight]:
        return [
            i for i in self._read(self._sheets.insights_sheet_name, INSIGHT_COLUMNS, Insight)
            if i.user_id == user_id and (status is None or i.status == status)
        ]

    async def find_recent_insight(
        self,
        user_id: str,
        insight_type: InsightType,
        since: datetime,
        status: Optional[InsightStatus] = InsightStatus.ACTIVE,
    ) -> Optional[Insight]:
        matches = [
            i for i in await self.list_insights(user_id, status=status)
            if i.insight_type == insight_type
            and i.created_at >= since
        ]
        if not matches:
            return None
        return max(matches, key=lambda i: i.created_at)

    # -------------------------------------------------------------------------
    # Tasks
    # -------------------------------------------------------------------------

    async def save_task(self, task: Task) -> bool:
        return await self._append(self._sheets.tasks_sheet_name, TASK_COLUMNS, task)

    async def get_task(self, user_id: str, task_id: str) -> Optional[Task]:
        for task in self._read(self._sheets.tasks_sheet_name, TASK_COLUMNS, Task):
            if task.id == task_id and task.user_id == user_id:
                return task
        return None

    async def update_task(self, task: Task) -> bool:
        return await self._replace(self._sheets.tasks_sheet_name, TASK_COLUMNS, task, "Task")

    async def delete_task(self, user_id: str, task_id: str) -> bool:
        if await self.get_task(user_id, task_id) is None:
            return False
        try:
            sheet = self._client.get_worksheet(self._sheets.tasks_sheet_name, TASK_COLUMNS)
            idx = self._find_row(sheet, task_id)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete task: {e}")

    async def list_tasks(self, user_id: str) -> list[Task]:
        return [
            t for t in self._read(self._sheets.tasks_sheet_name, TASK_COLUMNS, Task)
            if t.user_id == user_id
        ]


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _get_sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(
            self._client.settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=safe_get(5) or None,
            user_id=safe_get(6) or None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
            is_user_action=safe_get(11).lower() == "true",
        )

    def _read_events(self, predicate) -> list[AuditEvent]:
        try:
            all_rows = self._get_sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if not row or not row[0] or not predicate(row):
                continue
            try:
                events.append(self._row_to_event(row))
            except Exception:
                continue
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            self._get_sheet().append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = self._read_events(
            lambda row: len(row) > 7 and row[7] == str(correlation_id)
        )
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = self._read_events(
            lambda row: len(row) > 5 and row[4] == entity_type and row[5] == entity_id
        )
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = self._read_events(lambda row: True)
        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
