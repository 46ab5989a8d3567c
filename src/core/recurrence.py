"""Recurrence helpers for challenge template generation."""

from datetime import datetime, timedelta

from src.core.config import Constants
from src.domain.challenge import Recurrence


_INTERVALS: dict[Recurrence, timedelta] = {
    Recurrence.DAILY: timedelta(days=Constants.DAILY_INTERVAL_DAYS),
    Recurrence.WEEKLY: timedelta(days=Constants.WEEKLY_INTERVAL_DAYS),
}

SUPPORTED_RECURRENCES: tuple[Recurrence, ...] = tuple(_INTERVALS)


def parse_recurrence(value: str | Recurrence) -> Recurrence:
    """Parse a stored recurrence value.

    Raises:
        ValueError: If the value is not a supported cadence
    """
    try:
        return Recurrence(str(value).strip().lower())
    except ValueError:
        msg = f"Invalid recurrence: {value}. Supported: {', '.join(r.value for r in SUPPORTED_RECURRENCES)}"
        raise ValueError(msg) from None


def recurrence_interval(recurrence: str | Recurrence) -> timedelta:
    """Length of one recurrence window."""
    return _INTERVALS[parse_recurrence(recurrence)]


def next_window(recurrence: str | Recurrence, now: datetime) -> tuple[datetime, datetime]:
    """Compute the start and end of the next instance generated at ``now``.

    The instance starts one interval after ``now`` and lasts one interval.
    """
    interval = recurrence_interval(recurrence)
    start = now + interval
    return start, start + interval


def describe_recurrence(recurrence: str | Recurrence) -> str:
    """Human-readable cadence for log lines ("every day", "every 7 days")."""
    days = recurrence_interval(recurrence).days
    if days == 1:
        return "every day"
    return f"every {days} days"
