"""
Shared fixtures for FinPulse tests.

Test strategy:
1. Pure calculations are tested directly, without storage
2. Engines run against in-memory storage with a pinned clock, so every
   window is deterministic
3. No real Google API calls (Sheets storage is tested with fakes)
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

import pytest

from finpulse.audit import AuditLogger
from finpulse.config import AnalysisSettings
from finpulse.models.ledger import LedgerEntry
from finpulse.services.storage import InMemoryAuditStorage, InMemoryFinanceStorage


NOW = datetime(2026, 6, 30, 12, 0, 0)


@pytest.fixture
def user_id() -> str:
    return "user-1"


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def settings() -> AnalysisSettings:
    return AnalysisSettings()


@pytest.fixture
def storage() -> InMemoryFinanceStorage:
    return InMemoryFinanceStorage()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def make_entry(user_id):
    """Build a ledger entry; positive amounts are income, negative are expenses."""
    def _make(
        amount,
        entry_date: date,
        category_id: Optional[str] = None,
        owner: Optional[str] = None,
    ) -> LedgerEntry:
        return LedgerEntry(
            user_id=owner or user_id,
            account_id="acct-checking",
            category_id=category_id,
            amount=Decimal(str(amount)),
            entry_date=entry_date,
        )
    return _make


@pytest.fixture
def seed(storage):
    """Save ledger entries into the in-memory store."""
    async def _seed(*entries: LedgerEntry) -> None:
        for entry in entries:
            await storage.save_entry(entry)
    return _seed
