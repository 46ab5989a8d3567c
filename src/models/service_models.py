"""Pydantic models for service layer return types.

These models give every engine entry point a typed result instead of a bare
dict or tuple.
"""

from enum import StrEnum

from pydantic import BaseModel


class NotificationResult(BaseModel):
    """Result of emitting one notification."""

    user_id: str
    success: bool
    notification_id: str | None = None
    error: str | None = None


class EscalationOutcome(StrEnum):
    """What one escalation pass did to a pending trade."""

    FIRST_REMINDER = "first_reminder"
    SECOND_REMINDER = "second_reminder"
    FINAL_REMINDER = "final_reminder"
    AUTO_COMPLETED = "auto_completed"
    REMINDER_DEFERRED = "reminder_deferred"  # notification failed, counter left for the next scan
    SKIPPED = "skipped"  # data-integrity gap
    NO_CHANGE = "no_change"


class EscalationSummary(BaseModel):
    """Totals for one escalation scan."""

    scanned: int = 0
    reminders_sent: int = 0
    auto_completed: int = 0
    deferred: int = 0
    skipped: int = 0
    unchanged: int = 0
    failed: int = 0
    failed_ids: list[str] = []


class TransitionResult(BaseModel):
    """Result of one age-cutoff batch transition."""

    count: int = 0
    error: str | None = None


class GenerationResult(BaseModel):
    """Result of one template generation run."""

    count: int = 0
    skipped: int = 0
    error: str | None = None


class TriggerReport(BaseModel):
    """What one named trigger invocation did."""

    trigger: str
    transitions: dict[str, TransitionResult] = {}
    escalation: EscalationSummary | None = None
    generation: GenerationResult | None = None

    def describe(self) -> str:
        """One-line summary for job health records."""
        parts = [f"{name}: {result.count}" for name, result in self.transitions.items()]
        if self.escalation is not None:
            parts.append(
                f"reminders: {self.escalation.reminders_sent}, auto_completed: {self.escalation.auto_completed}"
            )
        if self.generation is not None:
            parts.append(f"generated: {self.generation.count}")
        return f"{self.trigger} (" + "; ".join(parts) + ")"

    def __str__(self) -> str:
        return self.describe()


class RunnerResult(BaseModel):
    """Outcome of an opportunistic client-side run attempt."""

    ran: bool
    reason: str
    last_run_at: str | None = None
    reports: list[TriggerReport] = []
    errors: list[str] = []
