"""Scheduler for the engine triggers (hourly, daily, weekly)."""

import logging

from apscheduler.events import EVENT_JOB_ERROR, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from src.core.config import settings
from src.core.scheduler_tracker import run_tracked_job
from src.models.service_models import TriggerReport
from src.services import runner_service


logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler(timezone="UTC")


def job_id(trigger: str) -> str:
    """Scheduler job ID (and tracker job name) for a named trigger."""
    return f"{trigger}_trigger"


def trigger_crons() -> dict[str, str]:
    """Cron expression configured for each trigger."""
    return {
        runner_service.HOURLY: settings.hourly_trigger_cron,
        runner_service.DAILY: settings.daily_trigger_cron,
        runner_service.WEEKLY: settings.weekly_trigger_cron,
    }


async def run_scheduled_trigger(trigger: str) -> TriggerReport:
    """Run one trigger under job tracking; failures propagate to the scheduler."""
    return await run_tracked_job(lambda: runner_service.run_trigger(trigger), job_id(trigger))


def _on_job_error(event: JobExecutionEvent) -> None:
    logger.error(
        "Scheduled job %s failed",
        event.job_id,
        extra={"job_id": event.job_id, "error": str(event.exception)},
    )


def register_jobs() -> None:
    """Register every trigger with the scheduler without starting it."""
    for trigger, cron in trigger_crons().items():
        scheduler.add_job(
            run_scheduled_trigger,
            trigger=CronTrigger.from_crontab(cron, timezone="UTC"),
            args=[trigger],
            id=job_id(trigger),
            name=f"Run {trigger} trigger",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        logger.info("Scheduled %s trigger: %s", trigger, cron)


def start_scheduler() -> None:
    """Start the scheduler and register all jobs.

    This should be called during FastAPI app startup.
    """
    logger.info("Starting scheduler")
    register_jobs()
    scheduler.add_listener(_on_job_error, EVENT_JOB_ERROR)
    scheduler.start()
    logger.info("Scheduler started successfully")


def stop_scheduler() -> None:
    """Stop the scheduler.

    This should be called during FastAPI app shutdown.
    """
    logger.info("Stopping scheduler")
    scheduler.shutdown(wait=True)
    logger.info("Scheduler stopped")
