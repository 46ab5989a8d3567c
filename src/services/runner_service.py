"""Runner shell: decides when the engines run, never how.

Two independent callers drive the engines:

* the scheduled path, ``run_trigger(name)``, invoked by the in-process
  scheduler, the trigger endpoint or the CLI on a fixed cadence;
* the client path, ``OpportunisticRunner``, invoked when a client visits and
  rate-limited by a timestamp kept in a client-local file.

There is no lock between them. Every engine write is idempotent, so overlapping
runs are safe.
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

from src.core.clock import utc_now
from src.core.config import settings
from src.core.errors import TriggerFailedError
from src.core.logging import log_with_context
from src.models.service_models import RunnerResult, TriggerReport
from src.services import escalation_service, generation_service, transition_service


logger = logging.getLogger(__name__)

HOURLY = "hourly"
DAILY = "daily"
WEEKLY = "weekly"

TRIGGERS: tuple[str, ...] = (HOURLY, DAILY, WEEKLY)

# The client path never generates challenges; generation belongs to the weekly cadence only.
CLIENT_TRIGGERS: tuple[str, ...] = (HOURLY, DAILY)


async def _run_hourly(now: datetime | None) -> TriggerReport:
    report = TriggerReport(trigger=HOURLY)
    report.transitions["activated"] = await transition_service.activate_scheduled_challenges(now)
    report.transitions["completed"] = await transition_service.complete_expired_challenges(now)

    errors = [f"{name}: {result.error}" for name, result in report.transitions.items() if result.error]
    if errors:
        raise TriggerFailedError(HOURLY, "; ".join(errors))
    return report


async def _run_daily(now: datetime | None) -> TriggerReport:
    summary = await escalation_service.check_pending_trades(now)
    if summary.failed:
        raise TriggerFailedError(DAILY, f"{summary.failed} trades failed: {', '.join(summary.failed_ids)}")
    return TriggerReport(trigger=DAILY, escalation=summary)


async def _run_weekly(now: datetime | None) -> TriggerReport:
    result = await generation_service.generate_from_templates(settings.template_generation_limit, now)
    if result.error:
        raise TriggerFailedError(WEEKLY, result.error)
    return TriggerReport(trigger=WEEKLY, generation=result)


_HANDLERS: dict[str, Callable[[datetime | None], Awaitable[TriggerReport]]] = {
    HOURLY: _run_hourly,
    DAILY: _run_daily,
    WEEKLY: _run_weekly,
}


async def run_trigger(name: str, now: datetime | None = None) -> TriggerReport:
    """Run the engine work behind one named trigger.

    Args:
        name: One of ``hourly``, ``daily`` or ``weekly``
        now: Instant to judge entities against; defaults to the store's clock

    Returns:
        TriggerReport describing what changed

    Raises:
        KeyError: If ``name`` is not a known trigger
        TriggerFailedError: If the engine reported an error or raised
    """
    if name not in _HANDLERS:
        msg = f"Unknown trigger: {name}"
        raise KeyError(msg)

    logger.info("Running %s trigger", name)
    try:
        report = await _HANDLERS[name](now)
    except TriggerFailedError:
        raise
    except Exception as e:
        raise TriggerFailedError(name, str(e) or type(e).__name__) from e

    log_with_context(logger, "info", "Trigger finished", trigger=name, summary=report.describe())
    return report


class LastRunStore:
    """Client-local file holding the last opportunistic run as an ISO-8601 string."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()

    def load(self) -> datetime | None:
        """Last run instant, or None when the client has never run."""
        try:
            raw = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Could not read last-run state from %s: %s", self.path, e)
            return None

        try:
            value = datetime.fromisoformat(raw)
        except ValueError:
            logger.warning("Ignoring unreadable last-run state in %s: %r", self.path, raw)
            return None

        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value

    def save(self, when: datetime) -> None:
        """Persist ``when`` as the last run instant."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(when.isoformat(), encoding="utf-8")


class OpportunisticRunner:
    """Client-visit runner, rate-limited to one run per ``interval``.

    The clock is injected so the rate limit can be exercised without waiting
    on the wall clock.
    """

    def __init__(
        self,
        store: LastRunStore,
        clock: Callable[[], datetime] = utc_now,
        interval: timedelta | None = None,
    ) -> None:
        self.store = store
        self.clock = clock
        self.interval = interval or timedelta(hours=settings.client_run_interval_hours)

    def is_due(self, now: datetime) -> tuple[bool, str]:
        """Whether a run is due at ``now``, with the reason."""
        last_run = self.store.load()
        if last_run is None:
            return True, "never_run"
        if last_run > now:
            logger.warning("Last opportunistic run %s is in the future, running now", last_run.isoformat())
            return True, "interval_elapsed"
        if now - last_run < self.interval:
            return False, "rate_limited"
        return True, "interval_elapsed"

    async def maybe_run(self) -> RunnerResult:
        """Run the hourly and daily work unless a run happened within the interval.

        The last-run time is stamped before any work starts so a slow or
        failing run does not cause every following visit to retry it. A failed
        trigger is logged and reported, never raised; the scheduled path owns
        alerting.
        """
        now = self.clock()
        due, reason = self.is_due(now)
        if not due:
            logger.debug("Opportunistic run skipped, last run within %s", self.interval)
            return RunnerResult(ran=False, reason=reason)

        self.store.save(now)
        result = RunnerResult(ran=True, reason=reason, last_run_at=now.isoformat())

        for name in CLIENT_TRIGGERS:
            try:
                result.reports.append(await run_trigger(name))
            except TriggerFailedError as e:
                logger.warning("Opportunistic %s run failed: %s", name, e)
                result.errors.append(str(e))

        return result
