"""tradecycle - time-windowed escalation and transition engine for a trading marketplace."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from src.core.config import settings
from src.core.db_client import init_db
from src.core.logging import configure_logfire, instrument_fastapi
from src.core.redis_client import redis_client
from src.core.scheduler import job_id, start_scheduler, stop_scheduler
from src.core.scheduler_tracker import job_tracker
from src.interface.trigger_router import router as trigger_router
from src.services.runner_service import TRIGGERS


logger = logging.getLogger(__name__)


async def check_redis_connectivity() -> None:
    """Verify Redis connectivity (optional service).

    Only checks if Redis is configured. Logs warning if unavailable but doesn't fail.
    """
    if not redis_client.is_available:
        logger.info("startup_validation", extra={"service": "redis", "status": "disabled"})
        return

    if await redis_client.ping():
        logger.info("startup_validation", extra={"service": "redis", "status": "ok"})
    else:
        logger.warning("startup_validation", extra={"service": "redis", "status": "unavailable"})


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Startup
    # Configure logging first so startup logs are captured
    configure_logfire()

    await init_db()
    logger.info("Database initialized")

    await check_redis_connectivity()

    if settings.enable_scheduler:
        start_scheduler()
    else:
        logger.info("In-process scheduler disabled, expecting external trigger calls")
    yield
    # Shutdown
    if settings.enable_scheduler:
        stop_scheduler()
    await redis_client.close()


app = FastAPI(
    title="tradecycle",
    description="Trade reminders, auto-completion and challenge lifecycle engine",
    version="0.1.0",
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
instrument_fastapi(app)

# Register routers
app.include_router(trigger_router)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "healthy"}, status_code=200)


@app.get("/health/scheduler")
async def scheduler_health_check() -> JSONResponse:
    """Scheduler health check endpoint with job statuses."""
    job_statuses = {}
    for trigger in TRIGGERS:
        name = job_id(trigger)
        job_statuses[name] = await job_tracker.get_job_status(name)

    dlq = job_tracker.get_dead_letter_queue()

    # Determine overall health
    has_failures = any(status["consecutive_failures"] > 0 for status in job_statuses.values())

    overall_status = "degraded" if has_failures else "healthy"
    if len(dlq) > 0:
        overall_status = "critical"

    return JSONResponse(
        content={
            "status": overall_status,
            "jobs": job_statuses,
            "redis": redis_client.get_health_status(),
            "dead_letter_queue_size": len(dlq),
            "dead_letter_queue": dlq,
        },
        status_code=200 if overall_status == "healthy" else 503,
    )
