"""Time helpers shared by every engine: store timestamps and day thresholds."""

from datetime import UTC, datetime, timedelta

from src.core.config import Constants


STORE_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def to_store_timestamp(value: datetime) -> str:
    """Format a datetime as the fixed-width UTC string the store compares lexically.

    Naive datetimes are assumed to already be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime(STORE_TIMESTAMP_FORMAT)


def parse_timestamp(value: datetime | str | None) -> datetime | None:
    """Parse a stored timestamp into an aware UTC datetime.

    Returns None for missing or unparseable values.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except (ValueError, TypeError, AttributeError):
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def days_ago(now: datetime, days: int) -> datetime:
    """Cutoff instant ``days`` whole days before ``now``."""
    return now - timedelta(days=days)


def elapsed_days(since: datetime, now: datetime) -> float:
    """Fractional days elapsed between two instants (negative if ``since`` is in the future)."""
    return (now - since) / timedelta(days=1)


def has_aged(since: datetime, now: datetime, days: int) -> bool:
    """True once at least ``days`` full days have passed since ``since``."""
    return since <= days_ago(now, days)


def auto_completion_date(requested_at: datetime) -> datetime:
    """When a pending trade will be auto-completed if nobody confirms it."""
    return requested_at + timedelta(days=Constants.AUTO_COMPLETE_DAYS)


def days_until_auto_completion(requested_at: datetime, now: datetime) -> int:
    """Whole days left before auto-completion, rounded up and never negative."""
    remaining = auto_completion_date(requested_at) - now
    if remaining <= timedelta(0):
        return 0
    whole_days, rest = divmod(remaining, timedelta(days=1))
    return whole_days + (1 if rest else 0)
