"""Challenge and challenge template domain models."""

from enum import StrEnum

from pydantic import BaseModel, Field


class Recurrence(StrEnum):
    """Supported template cadences."""

    DAILY = "daily"
    WEEKLY = "weekly"


class ChallengeStatus(StrEnum):
    """Challenge lifecycle status, advanced purely by age."""

    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"


# Descriptive fields copied verbatim from a template into each generated challenge
TEMPLATE_COPY_FIELDS: tuple[str, ...] = (
    "title",
    "description",
    "category",
    "difficulty",
    "rewards",
)


class ChallengeTemplate(BaseModel):
    """Recurring definition a challenge is generated from."""

    id: str = Field(..., description="Unique template ID from the store")
    recurrence: Recurrence = Field(..., description="How often instances are generated")
    title: str = Field(..., description="Challenge title")
    description: str = Field(default="", description="Challenge description")
    category: str | None = Field(default=None, description="Challenge category")
    difficulty: str | None = Field(default=None, description="Difficulty label")
    rewards: dict | None = Field(default=None, description="Reward definition (XP, badges, ...)")


class Challenge(BaseModel):
    """Generated challenge instance."""

    id: str = Field(..., description="Unique challenge ID from the store")
    title: str = Field(..., description="Challenge title")
    status: ChallengeStatus = Field(..., description="Current lifecycle status")
    start_date: str = Field(..., description="When the challenge becomes active (ISO)")
    end_date: str = Field(..., description="When the challenge completes (ISO)")
    template_id: str | None = Field(default=None, description="Template this instance came from")
    recurrence: Recurrence | None = Field(default=None, description="Cadence of the source template")
    created_by: str = Field(default="system", description="Creator of the instance")
    generation_key: str | None = Field(default=None, description="Template id plus window start date")
