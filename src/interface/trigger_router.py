"""HTTP trigger surface so an external cron can invoke the engine triggers."""

import logging
import secrets
from typing import NamedTuple

from fastapi import APIRouter, Header, HTTPException, status
from fastapi.responses import JSONResponse

from src.core.config import settings
from src.core.errors import TriggerFailedError
from src.core.scheduler import job_id
from src.core.scheduler_tracker import run_tracked_job
from src.services import runner_service


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/triggers", tags=["triggers"])


class TriggerAuthResult(NamedTuple):
    """Result of trigger secret validation."""

    is_valid: bool
    error_message: str | None
    http_status_code: int | None


def validate_trigger_secret(received_secret: str | None, expected_secret: str | None) -> TriggerAuthResult:
    """Validate the shared trigger secret.

    Fails closed: without a configured secret no trigger can be invoked over HTTP.

    Args:
        received_secret: Secret received in the X-Trigger-Secret header
        expected_secret: Secret configured in settings

    Returns:
        TriggerAuthResult indicating if the caller may run a trigger
    """
    if not expected_secret:
        logger.warning("Trigger secret not configured, rejecting HTTP trigger")
        return TriggerAuthResult(
            is_valid=False,
            error_message="Trigger endpoint disabled",
            http_status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    if not received_secret:
        logger.warning("Missing trigger secret")
        return TriggerAuthResult(
            is_valid=False,
            error_message="Missing trigger secret",
            http_status_code=status.HTTP_401_UNAUTHORIZED,
        )

    if not secrets.compare_digest(received_secret.encode(), expected_secret.encode()):
        logger.warning("Invalid trigger secret")
        return TriggerAuthResult(
            is_valid=False,
            error_message="Invalid trigger secret",
            http_status_code=status.HTTP_401_UNAUTHORIZED,
        )

    return TriggerAuthResult(is_valid=True, error_message=None, http_status_code=None)


@router.post("/{name}")
async def invoke_trigger(
    name: str,
    x_trigger_secret: str | None = Header(default=None),
) -> JSONResponse:
    """Run one named trigger and report what it did.

    A failed run answers 500 so the calling scheduler's own alerting fires.
    """
    auth = validate_trigger_secret(x_trigger_secret, settings.trigger_secret)
    if not auth.is_valid:
        raise HTTPException(status_code=auth.http_status_code, detail=auth.error_message)

    if name not in runner_service.TRIGGERS:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown trigger: {name}")

    try:
        report = await run_tracked_job(lambda: runner_service.run_trigger(name), job_id(name))
    except TriggerFailedError as e:
        logger.error("HTTP trigger failed", extra={"trigger": name, "error": e.cause})
        return JSONResponse(
            content={"status": "failed", "trigger": name, "error": e.cause},
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    return JSONResponse(
        content={"status": "ok", "trigger": name, "report": report.model_dump(mode="json")},
        status_code=status.HTTP_200_OK,
    )
