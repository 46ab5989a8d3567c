"""Age-cutoff batch transitions (challenge activation and completion)."""

import logging
from datetime import datetime
from typing import Any

from src.core import db_client
from src.core.clock import to_store_timestamp
from src.core.db_client import BatchOperation
from src.core.errors import classify_store_error
from src.core.logging import span
from src.domain.challenge import ChallengeStatus
from src.models.service_models import TransitionResult
from src.services.store_queries import fetch_all, scan_instant


logger = logging.getLogger(__name__)


async def apply_age_cutoff_transition(
    *,
    source_status: str,
    date_field: str,
    cutoff: datetime,
    target_status: str,
    extra_fields: dict[str, Any] | None = None,
    collection: str = "challenges",
) -> TransitionResult:
    """Move every document in ``source_status`` whose ``date_field`` is at or before ``cutoff``.

    All matches are updated in one atomic batch: either every selected document
    reaches ``target_status`` or none does. Documents already in
    ``target_status`` are never selected, so repeated runs converge.

    Args:
        source_status: Status documents must currently have
        date_field: Timestamp field compared against the cutoff
        cutoff: Inclusive upper bound for ``date_field``
        target_status: Status to set
        extra_fields: Additional fields merged into every update
        collection: Collection to scan

    Returns:
        TransitionResult with the number transitioned, or the error with count 0
    """
    if source_status == target_status:
        msg = "source_status and target_status must differ"
        raise ValueError(msg)

    with span(f"transition_service.{collection}.{source_status}_to_{target_status}"):
        filter_query = f'status = "{source_status}" && {date_field} <= "{to_store_timestamp(cutoff)}"'
        try:
            matches = await fetch_all(collection=collection, filter_query=filter_query)
        except Exception as e:
            logger.error(
                "Transition query failed",
                extra={"collection": collection, "source_status": source_status, "error": str(e)},
            )
            return TransitionResult(count=0, error=str(e))

        if not matches:
            logger.info("No %s %s due for %s", source_status, collection, target_status)
            return TransitionResult(count=0)

        update = {**(extra_fields or {}), "status": str(target_status)}
        operations = [
            BatchOperation(kind="update", collection=collection, record_id=record["id"], data=update)
            for record in matches
        ]

        try:
            await db_client.commit_batch(operations)
        except Exception as e:
            logger.error(
                "Transition batch failed",
                extra={
                    "collection": collection,
                    "target_status": target_status,
                    "count": len(operations),
                    "category": classify_store_error(e).value,
                    "error": str(e),
                },
            )
            return TransitionResult(count=0, error=str(e))

        logger.info(
            "Transitioned %d %s from %s to %s",
            len(operations),
            collection,
            source_status,
            target_status,
        )
        return TransitionResult(count=len(operations))


async def activate_scheduled_challenges(now: datetime | None = None) -> TransitionResult:
    """Make every upcoming challenge whose start date has passed active."""
    try:
        now = await scan_instant(now)
    except Exception as e:
        return TransitionResult(count=0, error=str(e))
    return await apply_age_cutoff_transition(
        source_status=ChallengeStatus.UPCOMING,
        date_field="start_date",
        cutoff=now,
        target_status=ChallengeStatus.ACTIVE,
        extra_fields={"updated_at": to_store_timestamp(now)},
    )


async def complete_expired_challenges(now: datetime | None = None) -> TransitionResult:
    """Complete every active challenge whose end date has passed."""
    try:
        now = await scan_instant(now)
    except Exception as e:
        return TransitionResult(count=0, error=str(e))
    return await apply_age_cutoff_transition(
        source_status=ChallengeStatus.ACTIVE,
        date_field="end_date",
        cutoff=now,
        target_status=ChallengeStatus.COMPLETED,
        extra_fields={"updated_at": to_store_timestamp(now)},
    )
