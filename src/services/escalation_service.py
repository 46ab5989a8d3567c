"""Escalation engine for trades waiting on the other party's confirmation.

A trade in ``pending_confirmation`` escalates by age of its completion request:

    day 3  -> first reminder   (reminders_sent = 1)
    day 7  -> second reminder  (reminders_sent = 2)
    day 10 -> final reminder   (reminders_sent = 3)
    day 14 -> auto-completed, both parties notified

Tiers are checked most-advanced first, so a trade that was never reminded
(e.g. the scheduler was down) jumps straight to the most urgent tier. A
reminder counter is only advanced once its notification was written, so a
failed emission is retried by the next scan instead of being lost.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from pydantic import ValidationError

from src.core import db_client
from src.core.clock import days_until_auto_completion, elapsed_days, has_aged, parse_timestamp, to_store_timestamp
from src.core.config import Constants
from src.core.errors import classify_store_error
from src.core.logging import span
from src.domain.notification import NotificationPriority, NotificationType
from src.domain.trade import Trade, TradeStatus
from src.models.service_models import EscalationOutcome, EscalationSummary
from src.services import notification_service
from src.services.store_queries import fetch_all, scan_instant


logger = logging.getLogger(__name__)

COLLECTION = "trades"


@dataclass(frozen=True)
class EscalationTier:
    """One reminder step: due after ``days`` unless ``reminders_value`` was already reached."""

    days: int
    reminders_value: int
    outcome: EscalationOutcome
    priority: NotificationPriority
    message: Callable[[Trade, datetime, datetime], tuple[str, str]]


REMINDER_TIERS: tuple[EscalationTier, ...] = (
    EscalationTier(
        days=Constants.FINAL_REMINDER_DAYS,
        reminders_value=3,
        outcome=EscalationOutcome.FINAL_REMINDER,
        priority=NotificationPriority.HIGH,
        message=lambda trade, requested_at, now: notification_service.final_reminder_message(
            trade, days_until_auto_completion(requested_at, now)
        ),
    ),
    EscalationTier(
        days=Constants.SECOND_REMINDER_DAYS,
        reminders_value=2,
        outcome=EscalationOutcome.SECOND_REMINDER,
        priority=NotificationPriority.MEDIUM,
        message=lambda trade, _requested_at, _now: notification_service.second_reminder_message(trade),
    ),
    EscalationTier(
        days=Constants.FIRST_REMINDER_DAYS,
        reminders_value=1,
        outcome=EscalationOutcome.FIRST_REMINDER,
        priority=NotificationPriority.LOW,
        message=lambda trade, _requested_at, _now: notification_service.first_reminder_message(trade),
    ),
)


def due_tier(requested_at: datetime, reminders_sent: int, now: datetime) -> EscalationTier | None:
    """The reminder tier to send now, or None if nothing is due.

    Does not cover auto-completion; callers check that first.
    """
    for tier in REMINDER_TIERS:
        if has_aged(requested_at, now, tier.days) and reminders_sent < tier.reminders_value:
            return tier
    return None


async def _auto_complete(trade: Trade, now: datetime) -> EscalationOutcome:
    stamp = to_store_timestamp(now)
    await db_client.update_record(
        collection=COLLECTION,
        record_id=trade.id,
        data={
            "status": str(TradeStatus.COMPLETED),
            "auto_completed": True,
            "auto_completion_reason": Constants.AUTO_COMPLETION_REASON,
            "completion_confirmed_at": stamp,
            "updated_at": stamp,
        },
    )
    logger.info("Auto-completed trade %s: %s", trade.id, trade.title)

    title, content = notification_service.auto_completed_message(trade)
    for user_id in trade.parties():
        result = await notification_service.emit(
            user_id=user_id,
            type=NotificationType.TRADE_COMPLETION,
            title=title,
            content=content,
            related_id=trade.id,
            priority=NotificationPriority.MEDIUM,
            now=now,
        )
        if not result.success:
            logger.warning(
                "Auto-completion notice not delivered",
                extra={"trade_id": trade.id, "user_id": user_id, "error": result.error},
            )

    return EscalationOutcome.AUTO_COMPLETED


async def process_pending_trade(trade: Trade, now: datetime) -> EscalationOutcome:
    """Apply at most one escalation step to a pending trade.

    Args:
        trade: Trade in ``pending_confirmation``
        now: Instant the whole scan is judged against

    Returns:
        The outcome for this trade

    Raises:
        DatabaseError: If the trade document could not be updated
    """
    requested_at = parse_timestamp(trade.completion_requested_at)
    if requested_at is None or not trade.completion_requested_by:
        logger.debug("Trade %s has no completion request recorded yet, skipping", trade.id)
        return EscalationOutcome.SKIPPED

    recipient_id = trade.confirming_party()
    if not recipient_id:
        logger.warning(
            "Cannot resolve confirming party for trade, skipping",
            extra={"trade_id": trade.id, "requested_by": trade.completion_requested_by},
        )
        return EscalationOutcome.SKIPPED

    if has_aged(requested_at, now, Constants.AUTO_COMPLETE_DAYS):
        return await _auto_complete(trade, now)

    tier = due_tier(requested_at, trade.reminders_sent, now)
    if tier is None:
        return EscalationOutcome.NO_CHANGE

    title, content = tier.message(trade, requested_at, now)
    result = await notification_service.emit(
        user_id=recipient_id,
        type=NotificationType.TRADE_CONFIRMATION,
        title=title,
        content=content,
        related_id=trade.id,
        priority=tier.priority,
        now=now,
    )
    if not result.success:
        logger.warning(
            "Reminder not delivered, leaving counter for the next scan",
            extra={"trade_id": trade.id, "tier": str(tier.outcome), "error": result.error},
        )
        return EscalationOutcome.REMINDER_DEFERRED

    await db_client.update_record(
        collection=COLLECTION,
        record_id=trade.id,
        data={"reminders_sent": tier.reminders_value, "updated_at": to_store_timestamp(now)},
    )
    logger.info("Sent %s for trade %s (%.1f days pending)", tier.outcome, trade.id, elapsed_days(requested_at, now))
    return tier.outcome


def _tally(summary: EscalationSummary, outcome: EscalationOutcome) -> None:
    if outcome == EscalationOutcome.AUTO_COMPLETED:
        summary.auto_completed += 1
    elif outcome == EscalationOutcome.REMINDER_DEFERRED:
        summary.deferred += 1
    elif outcome == EscalationOutcome.SKIPPED:
        summary.skipped += 1
    elif outcome == EscalationOutcome.NO_CHANGE:
        summary.unchanged += 1
    else:
        summary.reminders_sent += 1


async def check_pending_trades(now: datetime | None = None) -> EscalationSummary:
    """Scan all pending trades and escalate each one.

    Trades are processed one at a time. A failure on one trade is counted and
    logged; the remaining trades are still processed.

    Args:
        now: Scan instant; defaults to the store's clock

    Returns:
        EscalationSummary with per-outcome counts

    Raises:
        DatabaseError: If the pending-trade query fails after retries
    """
    with span("escalation_service.check_pending_trades"):
        now = await scan_instant(now)
        records = await fetch_all(
            collection=COLLECTION,
            filter_query=f'status = "{TradeStatus.PENDING_CONFIRMATION}"',
        )
        logger.info("Found %d pending trades", len(records))

        summary = EscalationSummary(scanned=len(records))
        for record in records:
            try:
                trade = Trade.model_validate(record)
            except ValidationError as e:
                logger.warning("Malformed trade %s skipped: %s", record.get("id"), e)
                summary.skipped += 1
                continue

            try:
                outcome = await process_pending_trade(trade, now)
            except Exception as e:
                logger.error(
                    "Failed to escalate trade %s: %s",
                    trade.id,
                    e,
                    extra={"trade_id": trade.id, "category": classify_store_error(e).value},
                )
                summary.failed += 1
                summary.failed_ids.append(trade.id)
                continue

            _tally(summary, outcome)

        logger.info(
            "Pending confirmations check completed",
            extra=summary.model_dump(exclude={"failed_ids"}),
        )
        return summary
