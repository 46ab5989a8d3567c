"""Execution tracking for scheduled triggers."""

import logging
from collections import deque
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any, TypeVar

from src.core.config import Constants
from src.core.redis_client import RedisClient, redis_client


logger = logging.getLogger(__name__)

T = TypeVar("T")


def _key(job_name: str, field: str) -> str:
    return f"scheduler:job:{job_name}:{field}"


class JobTracker:
    """Track job execution history and health status.

    Records go to Redis when it is configured so every runner process sees
    them; otherwise they live in this process's memory.
    """

    def __init__(self, redis: RedisClient | None = None) -> None:
        self._redis = redis or redis_client
        self._memory_storage: dict[str, dict[str, Any]] = {}
        self._dead_letter_queue: deque[dict[str, str]] = deque(maxlen=Constants.TRACKER_DEAD_LETTER_QUEUE_MAXLEN)

    def _memory(self, job_name: str) -> dict[str, Any]:
        return self._memory_storage.setdefault(job_name, {})

    async def record_job_start(self, job_name: str) -> None:
        """Record job execution start."""
        now = datetime.now(UTC).isoformat()
        if self._redis.is_available:
            await self._redis.set(_key(job_name, "current_run"), now, ttl_seconds=3600)
        else:
            self._memory(job_name)["current_run"] = now

    async def record_job_success(self, job_name: str, summary: str = "") -> None:
        """Record successful job execution.

        Args:
            job_name: Name of the scheduled job
            summary: Short result description (e.g. "3 challenges activated")
        """
        now = datetime.now(UTC).isoformat()
        ttl = Constants.TRACKER_KEY_TTL_SECONDS

        if self._redis.is_available:
            await self._redis.set(_key(job_name, "last_success"), now, ttl_seconds=ttl)
            await self._redis.set(_key(job_name, "last_summary"), summary, ttl_seconds=ttl)
            await self._redis.set(_key(job_name, "consecutive_failures"), "0", ttl_seconds=ttl)
            await self._redis.increment(_key(job_name, "success_count"), ttl_seconds=ttl)
            await self._redis.delete(_key(job_name, "current_run"))
            return

        job = self._memory(job_name)
        job["last_success"] = now
        job["last_summary"] = summary
        job["consecutive_failures"] = 0
        job["success_count"] = job.get("success_count", 0) + 1
        job.pop("current_run", None)

    async def record_job_failure(self, job_name: str, error: str) -> int:
        """Record failed job execution.

        Returns:
            The number of consecutive failures including this one
        """
        now = datetime.now(UTC).isoformat()
        ttl = Constants.TRACKER_KEY_TTL_SECONDS

        if self._redis.is_available:
            await self._redis.set(_key(job_name, "last_failure"), now, ttl_seconds=ttl)
            await self._redis.set(_key(job_name, "last_error"), error[:500], ttl_seconds=ttl)
            consecutive = await self._redis.increment(_key(job_name, "consecutive_failures"), ttl_seconds=ttl)
            await self._redis.increment(_key(job_name, "failure_count"), ttl_seconds=ttl)
            await self._redis.delete(_key(job_name, "current_run"))
            return consecutive or 1

        job = self._memory(job_name)
        job["last_failure"] = now
        job["last_error"] = error[:500]
        job["consecutive_failures"] = job.get("consecutive_failures", 0) + 1
        job["failure_count"] = job.get("failure_count", 0) + 1
        job.pop("current_run", None)
        return job["consecutive_failures"]

    async def get_job_status(self, job_name: str) -> dict[str, Any]:
        """Get job execution status."""
        if self._redis.is_available:
            fields = {
                name: await self._redis.get(_key(job_name, name))
                for name in (
                    "last_success",
                    "last_summary",
                    "last_failure",
                    "last_error",
                    "consecutive_failures",
                    "success_count",
                    "failure_count",
                    "current_run",
                )
            }
        else:
            fields = dict(self._memory_storage.get(job_name, {}))

        return {
            "job_name": job_name,
            "last_success": fields.get("last_success"),
            "last_summary": fields.get("last_summary"),
            "last_failure": fields.get("last_failure"),
            "last_error": fields.get("last_error"),
            "consecutive_failures": int(fields.get("consecutive_failures") or 0),
            "success_count": int(fields.get("success_count") or 0),
            "failure_count": int(fields.get("failure_count") or 0),
            "currently_running": fields.get("current_run") is not None,
            "current_run_started": fields.get("current_run"),
        }

    def add_to_dead_letter_queue(self, job_name: str, error: str, context: str) -> None:
        """Remember a persistently failing job for the health endpoint."""
        self._dead_letter_queue.append({"job_name": job_name, "error": error, "context": context})
        logger.error(
            "Job added to dead letter queue",
            extra={"job_name": job_name, "error": error, "context": context},
        )

    def get_dead_letter_queue(self) -> list[dict[str, str]]:
        """Get all items in dead letter queue."""
        return list(self._dead_letter_queue)


# Global job tracker instance
job_tracker = JobTracker()


async def run_tracked_job(
    job_func: Callable[[], Awaitable[T]],
    job_name: str,
    tracker: JobTracker | None = None,
) -> T:
    """Run one trigger invocation and record its outcome.

    The job is attempted exactly once. Failures are recorded and re-raised so
    the caller (APScheduler or an external cron) sees a failed invocation; the
    next scheduled tick is the retry.
    """
    tracker = tracker or job_tracker
    await tracker.record_job_start(job_name)
    logger.info("Executing %s", job_name)

    try:
        result = await job_func()
    except Exception as e:
        error = str(e) or type(e).__name__
        consecutive_failures = await tracker.record_job_failure(job_name, error)
        logger.error(
            "%s failed",
            job_name,
            extra={"job_name": job_name, "error": error, "consecutive_failures": consecutive_failures},
        )
        if consecutive_failures >= Constants.TRACKER_CONSECUTIVE_FAILURE_THRESHOLD:
            tracker.add_to_dead_letter_queue(
                job_name=job_name,
                error=error,
                context=f"Failed {consecutive_failures} consecutive times",
            )
        raise

    await tracker.record_job_success(job_name, summary=str(result) if result is not None else "")
    logger.info("%s completed successfully", job_name)
    return result
