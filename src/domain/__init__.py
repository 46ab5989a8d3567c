"""Domain models and DTOs."""

from src.domain.challenge import Challenge, ChallengeStatus, ChallengeTemplate, Recurrence
from src.domain.notification import Notification, NotificationPriority, NotificationType
from src.domain.trade import Trade, TradeStatus


__all__ = [
    "Challenge",
    "ChallengeStatus",
    "ChallengeTemplate",
    "Notification",
    "NotificationPriority",
    "NotificationType",
    "Recurrence",
    "Trade",
    "TradeStatus",
]
