"""Trade domain models and enums."""

from enum import StrEnum

from pydantic import BaseModel, Field, field_validator

from src.core.config import Constants


class TradeStatus(StrEnum):
    """Trade lifecycle status."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    PENDING_CONFIRMATION = "pending_confirmation"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Trade(BaseModel):
    """Trade data transfer object.

    Only the fields the lifecycle engine reads are modelled; the rest of the
    document is left untouched by updates.
    """

    id: str = Field(..., description="Unique trade ID from the store")
    title: str = Field(default="", description="Trade title shown in notifications")
    status: TradeStatus = Field(..., description="Current lifecycle status")
    creator_id: str | None = Field(default=None, description="User who created the trade")
    participant_id: str | None = Field(default=None, description="User who accepted the trade")
    completion_requested_at: str | None = Field(default=None, description="When completion was asserted (ISO)")
    completion_requested_by: str | None = Field(default=None, description="User who asserted completion")
    completion_confirmed_at: str | None = Field(default=None, description="When completion was confirmed (ISO)")
    reminders_sent: int = Field(default=0, description="Highest reminder tier already sent")
    auto_completed: bool = Field(default=False, description="Completed by the engine, not a user")
    auto_completion_reason: str | None = Field(default=None, description="Why the engine completed it")

    @field_validator("reminders_sent", mode="before")
    @classmethod
    def clamp_reminders(cls, v: object) -> int:
        """Treat missing counters as zero and cap at the final tier."""
        if v is None or v == "":
            return 0
        return max(0, min(int(v), Constants.MAX_REMINDERS))

    def confirming_party(self) -> str | None:
        """The party who still has to confirm: whoever did not request completion."""
        if not self.completion_requested_by:
            return None
        if self.completion_requested_by == self.creator_id:
            return self.participant_id or None
        return self.creator_id or None

    def parties(self) -> list[str]:
        """Both parties of the trade, skipping unset ids."""
        return [user_id for user_id in (self.creator_id, self.participant_id) if user_id]
