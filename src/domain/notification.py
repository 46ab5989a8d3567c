"""Notification domain models."""

from enum import StrEnum

from pydantic import BaseModel, Field


class NotificationType(StrEnum):
    """Kinds of notification the engine emits."""

    TRADE_CONFIRMATION = "trade_confirmation"
    TRADE_COMPLETION = "trade_completion"


class NotificationPriority(StrEnum):
    """Display priority of a notification."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Notification(BaseModel):
    """Notification record as written to the notifications collection."""

    id: str = Field(..., description="Unique notification ID from the store")
    user_id: str = Field(..., description="Recipient user ID")
    type: NotificationType = Field(..., description="Notification kind")
    title: str = Field(..., description="Short headline")
    content: str = Field(..., description="Message body")
    related_id: str | None = Field(default=None, description="Entity the notification is about")
    priority: NotificationPriority = Field(default=NotificationPriority.MEDIUM, description="Display priority")
    created_at: str = Field(..., description="Creation timestamp (ISO)")
    read: bool = Field(default=False, description="Whether the user has read it")
