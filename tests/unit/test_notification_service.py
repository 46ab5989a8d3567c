"""Unit tests for the notification emitter and message catalogue."""

import pytest

from src.core.clock import parse_timestamp
from src.core.errors import DatabaseError
from src.domain.notification import NotificationPriority, NotificationType
from src.domain.trade import Trade
from src.services import notification_service
from tests.unit.mocks import NOW


@pytest.fixture
def trade() -> Trade:
    return Trade(
        id="trade_1",
        title="Spanish tutoring for web design",
        status="pending_confirmation",
        creator_id="user_alice",
        participant_id="user_bob",
    )


@pytest.mark.unit
class TestEmit:
    async def test_creates_unread_notification(self, patched_db):
        result = await notification_service.emit(
            user_id="user_bob",
            type=NotificationType.TRADE_CONFIRMATION,
            title="Reminder: Trade Completion",
            content="Please confirm",
            related_id="trade_1",
            priority=NotificationPriority.LOW,
            now=NOW,
        )

        assert result.success is True
        assert result.user_id == "user_bob"
        stored = patched_db.records("notifications")
        assert len(stored) == 1
        assert stored[0]["id"] == result.notification_id
        assert stored[0]["type"] == "trade_confirmation"
        assert stored[0]["priority"] == "low"
        assert stored[0]["related_id"] == "trade_1"
        assert stored[0]["read"] is False
        assert parse_timestamp(stored[0]["created_at"]) == NOW

    async def test_failure_is_returned_not_raised(self, patched_db):
        patched_db.fail_next("create_record", DatabaseError("disk full"))

        result = await notification_service.emit(
            user_id="user_bob",
            type=NotificationType.TRADE_COMPLETION,
            title="Trade Auto-Completed",
            content="Done",
            related_id="trade_1",
            priority=NotificationPriority.MEDIUM,
        )

        assert result.success is False
        assert result.notification_id is None
        assert "disk full" in result.error
        assert patched_db.records("notifications") == []


@pytest.mark.unit
class TestMessages:
    def test_first_reminder(self, trade):
        title, content = notification_service.first_reminder_message(trade)

        assert title == "Reminder: Trade Completion"
        assert "Spanish tutoring for web design" in content

    def test_second_reminder_mentions_seven_days(self, trade):
        _, content = notification_service.second_reminder_message(trade)

        assert "7 days" in content

    @pytest.mark.parametrize(("days_left", "phrase"), [(4, "in 4 days"), (1, "in 1 day ")])
    def test_final_reminder(self, trade, days_left, phrase):
        title, content = notification_service.final_reminder_message(trade, days_left)

        assert title == "Final Reminder: Trade Completion"
        assert phrase in content

    def test_auto_completed(self, trade):
        title, content = notification_service.auto_completed_message(trade)

        assert title == "Trade Auto-Completed"
        assert "no response after 14 days" in content
