"""Tests for insight storage helpers and user actions on insights."""

from datetime import timedelta

import pytest

from finpulse.intelligence.errors import CalculationError, NotFoundError, ValidationError
from finpulse.intelligence.insights import InsightService, store_unless_duplicate
from finpulse.models.analysis import Insight, InsightStatus, InsightType, Severity
from finpulse.models.audit import AuditEventType
from finpulse.services.storage import InMemoryFinanceStorage, StorageError


def make_insight(user_id, created_at, severity=Severity.MEDIUM, title="Income Dip", **kwargs):
    return Insight(
        user_id=user_id,
        insight_type=InsightType.INCOME_DIP,
        severity=severity,
        title=title,
        explanation="Income fell on the previous period.",
        created_at=created_at,
        updated_at=created_at,
        **kwargs,
    )


@pytest.fixture
def service(storage, audit_logger, clock):
    return InsightService(storage, audit_logger, clock)


class TestResolveInsight:

    @pytest.mark.asyncio
    async def test_dismiss_with_notes(
        self, service, storage, audit_storage, user_id, now
    ):
        insight = make_insight(user_id, now - timedelta(days=1), supporting_data={"a": 1})
        await storage.append_insight(insight)

        updated = await service.resolve_insight(user_id, insight.id, "dismissed", "Bonus month")

        assert updated.status == InsightStatus.DISMISSED
        assert updated.resolved_at == now
        assert updated.supporting_data == {"a": 1, "resolutionNotes": "Bonus month"}
        assert await storage.get_insight(user_id, insight.id) == updated

        event = audit_storage.events[-1]
        assert event.event_type == AuditEventType.INSIGHT_DISMISSED
        assert event.entity_id == insight.id
        assert event.is_user_action

    @pytest.mark.asyncio
    async def test_resolve_without_notes(self, service, storage, audit_storage, user_id, now):
        insight = make_insight(user_id, now)
        await storage.append_insight(insight)

        updated = await service.resolve_insight(user_id, insight.id, "resolved")

        assert updated.status == InsightStatus.RESOLVED
        assert "resolutionNotes" not in updated.supporting_data
        assert audit_storage.events[-1].event_type == AuditEventType.INSIGHT_RESOLVED

    @pytest.mark.asyncio
    async def test_invalid_action(self, service, storage, user_id, now):
        insight = make_insight(user_id, now)
        await storage.append_insight(insight)

        with pytest.raises(ValidationError, match="Invalid action 'escalated'"):
            await service.resolve_insight(user_id, insight.id, "escalated")

    @pytest.mark.asyncio
    async def test_missing_id(self, service, user_id):
        with pytest.raises(ValidationError):
            await service.resolve_insight(user_id, "", "resolved")

    @pytest.mark.asyncio
    async def test_other_users_insight(self, service, storage, user_id, now):
        insight = make_insight("someone-else", now)
        await storage.append_insight(insight)

        with pytest.raises(NotFoundError):
            await service.resolve_insight(user_id, insight.id, "resolved")

        assert (await storage.get_insight("someone-else", insight.id)).status == \
            InsightStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_storage_failure(self, audit_logger, clock, user_id, now):

        class BrokenStorage(InMemoryFinanceStorage):
            async def update_insight(self, insight):
                raise StorageError("write failed")

        storage = BrokenStorage()
        insight = make_insight(user_id, now)
        await storage.append_insight(insight)
        service = InsightService(storage, audit_logger, clock)

        with pytest.raises(CalculationError, match="Failed to update insight"):
            await service.resolve_insight(user_id, insight.id, "resolved")


class TestListActiveInsights:

    @pytest.mark.asyncio
    async def test_most_severe_then_newest(self, service, storage, user_id, now):
        old_high = make_insight(user_id, now - timedelta(days=3), Severity.HIGH, "Old high")
        new_high = make_insight(user_id, now - timedelta(days=1), Severity.HIGH, "New high")
        critical = make_insight(user_id, now - timedelta(days=5), Severity.CRITICAL, "Critical")
        low = make_insight(user_id, now, Severity.LOW, "Low")
        dismissed = make_insight(
            user_id, now, Severity.CRITICAL, "Dismissed", status=InsightStatus.DISMISSED
        )
        for insight in (old_high, new_high, critical, low, dismissed):
            await storage.append_insight(insight)

        listed = await service.list_active_insights(user_id)

        assert [i.title for i in listed] == ["Critical", "New high", "Old high", "Low"]
        assert len(await service.list_active_insights(user_id, limit=2)) == 2


class TestStoreUnlessDuplicate:

    @pytest.mark.asyncio
    async def test_same_type_is_suppressed_whatever_the_title(
        self, storage, audit_logger, audit_storage, user_id, now
    ):
        since = now - timedelta(days=3)
        first = make_insight(user_id, now, title="Projected Budget Overrun: Dining")
        other_title = make_insight(user_id, now, title="Projected Budget Overrun: Fuel")

        stored = [
            await store_unless_duplicate(storage, audit_logger, insight, since, 3, status=None)
            for insight in (first, other_title)
        ]

        assert stored == [True, False]
        assert [i.id for i in await storage.list_insights(user_id)] == [first.id]
        assert audit_storage.events[-1].event_type == AuditEventType.DUPLICATE_SUPPRESSED

    @pytest.mark.asyncio
    async def test_older_insight_is_outside_the_window(self, storage, audit_logger, user_id, now):
        await storage.append_insight(make_insight(user_id, now - timedelta(days=4)))

        assert await store_unless_duplicate(
            storage, audit_logger, make_insight(user_id, now), now - timedelta(days=3), 3
        )
