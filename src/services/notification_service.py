"""Notification emitter: writes notification records for users.

Fire-and-forget from the engines' point of view. Failures are logged here and
reported in the returned NotificationResult; they are never raised.
"""

import logging
from datetime import datetime

from src.core import db_client
from src.core.clock import to_store_timestamp, utc_now
from src.core.errors import ErrorCategory
from src.domain.notification import NotificationPriority, NotificationType
from src.domain.trade import Trade
from src.models.service_models import NotificationResult


logger = logging.getLogger(__name__)

COLLECTION = "notifications"


async def emit(
    *,
    user_id: str,
    type: NotificationType,  # noqa: A002 - mirrors the stored field name
    title: str,
    content: str,
    related_id: str | None,
    priority: NotificationPriority,
    now: datetime | None = None,
) -> NotificationResult:
    """Create an unread notification for one user.

    Args:
        user_id: Recipient user ID
        type: Notification kind
        title: Short headline
        content: Message body
        related_id: ID of the trade or challenge the notification is about
        priority: Display priority
        now: Creation instant (defaults to the current time)

    Returns:
        NotificationResult with the new record ID, or the error on failure
    """
    data = {
        "user_id": user_id,
        "type": str(type),
        "title": title,
        "content": content,
        "related_id": related_id,
        "priority": str(priority),
        "created_at": to_store_timestamp(now or utc_now()),
        "read": False,
    }

    try:
        record = await db_client.create_record(collection=COLLECTION, data=data)
    except Exception as e:
        logger.error(
            "Error creating notification",
            extra={
                "user_id": user_id,
                "related_id": related_id,
                "type": str(type),
                "category": ErrorCategory.NOTIFICATION_FAILURE.value,
                "error": str(e),
            },
        )
        return NotificationResult(user_id=user_id, success=False, error=str(e))

    logger.info(
        "Notification created",
        extra={"user_id": user_id, "related_id": related_id, "type": str(type), "notification_id": record["id"]},
    )
    return NotificationResult(user_id=user_id, success=True, notification_id=record["id"])


def first_reminder_message(trade: Trade) -> tuple[str, str]:
    """Title and content of the 3-day reminder."""
    return (
        "Reminder: Trade Completion",
        f"Please confirm completion of trade: {trade.title}. Your partner is waiting for your confirmation.",
    )


def second_reminder_message(trade: Trade) -> tuple[str, str]:
    """Title and content of the 7-day reminder."""
    return (
        "Reminder: Trade Completion",
        f"Please confirm completion of trade: {trade.title}. This trade has been pending for 7 days.",
    )


def final_reminder_message(trade: Trade, days_left: int) -> tuple[str, str]:
    """Title and content of the 10-day reminder."""
    day_word = "day" if days_left == 1 else "days"
    return (
        "Final Reminder: Trade Completion",
        f"This is your final reminder to confirm completion of trade: {trade.title}. "
        f"The trade will be auto-completed in {days_left} {day_word} if no action is taken.",
    )


def auto_completed_message(trade: Trade) -> tuple[str, str]:
    """Title and content sent to both parties after auto-completion."""
    return (
        "Trade Auto-Completed",
        f'Trade "{trade.title}" has been automatically marked as completed due to no response after 14 days.',
    )
