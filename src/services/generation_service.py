"""Challenge generation from recurring templates."""

import logging
from datetime import datetime

from pydantic import ValidationError

from src.core import db_client
from src.core.clock import to_store_timestamp
from src.core.db_client import BatchOperation
from src.core.logging import span
from src.core.recurrence import SUPPORTED_RECURRENCES, describe_recurrence, next_window
from src.core.retry import with_retry
from src.core.config import settings
from src.domain.challenge import TEMPLATE_COPY_FIELDS, ChallengeStatus, ChallengeTemplate
from src.models.service_models import GenerationResult
from src.services.store_queries import scan_instant


logger = logging.getLogger(__name__)

TEMPLATES_COLLECTION = "challenge_templates"
CHALLENGES_COLLECTION = "challenges"


def generation_key(template_id: str, start: datetime) -> str:
    """Deterministic identity of the instance a template produces for one window."""
    return f"{template_id}:{start.date().isoformat()}"


def build_challenge(template: ChallengeTemplate, now: datetime) -> dict:
    """Materialize the next challenge document for ``template``."""
    start, end = next_window(template.recurrence, now)
    document = {name: getattr(template, name) for name in TEMPLATE_COPY_FIELDS}
    document.update(
        {
            "status": str(ChallengeStatus.UPCOMING),
            "start_date": to_store_timestamp(start),
            "end_date": to_store_timestamp(end),
            "template_id": template.id,
            "recurrence": str(template.recurrence),
            "created_by": "system",
            "generation_key": generation_key(template.id, start),
            "created_at": to_store_timestamp(now),
            "updated_at": to_store_timestamp(now),
        }
    )
    return document


async def _already_generated(key: str) -> bool:
    existing = await with_retry(
        lambda: db_client.get_first_record(
            collection=CHALLENGES_COLLECTION,
            filter_query=f'generation_key = "{db_client.sanitize_param(key)}"',
        ),
        max_attempts=settings.store_retry_attempts,
    )
    return existing is not None


async def generate_from_templates(limit: int, now: datetime | None = None) -> GenerationResult:
    """Create the next challenge for up to ``limit`` recurring templates.

    Every new challenge is written in one atomic batch. A template whose
    instance for the same window already exists is skipped, so a repeated
    invocation on the same day creates nothing new.

    Args:
        limit: Maximum number of templates to read
        now: Generation instant; defaults to the store's clock

    Returns:
        GenerationResult with the number created, or the error with count 0

    Raises:
        ValueError: If limit is less than 1
    """
    if limit < 1:
        msg = f"limit must be at least 1, got {limit}"
        raise ValueError(msg)

    with span("generation_service.generate_from_templates"):
        recurrence_filter = " || ".join(f'recurrence = "{r}"' for r in SUPPORTED_RECURRENCES)
        try:
            now = await scan_instant(now)
            records = await with_retry(
                lambda: db_client.list_records(
                    collection=TEMPLATES_COLLECTION,
                    filter_query=f"({recurrence_filter})",
                    per_page=limit,
                ),
                max_attempts=settings.store_retry_attempts,
            )
        except Exception as e:
            logger.error("Template query failed", extra={"error": str(e)})
            return GenerationResult(count=0, error=str(e))

        operations: list[BatchOperation] = []
        skipped = 0
        for record in records:
            try:
                template = ChallengeTemplate.model_validate(record)
            except ValidationError as e:
                logger.warning("Malformed challenge template %s skipped: %s", record.get("id"), e)
                skipped += 1
                continue

            document = build_challenge(template, now)
            try:
                if await _already_generated(document["generation_key"]):
                    logger.info("Challenge %s already generated, skipping", document["generation_key"])
                    skipped += 1
                    continue
            except Exception as e:
                logger.error("Duplicate check failed", extra={"template_id": template.id, "error": str(e)})
                return GenerationResult(count=0, skipped=skipped, error=str(e))

            logger.debug(
                "Generating %s challenge from template %s",
                describe_recurrence(template.recurrence),
                template.id,
            )
            operations.append(BatchOperation(kind="create", collection=CHALLENGES_COLLECTION, data=document))

        if not operations:
            return GenerationResult(count=0, skipped=skipped)

        try:
            await db_client.commit_batch(operations)
        except Exception as e:
            logger.error("Challenge generation batch failed", extra={"count": len(operations), "error": str(e)})
            return GenerationResult(count=0, skipped=skipped, error=str(e))

        logger.info("Generated %d challenges from templates", len(operations))
        return GenerationResult(count=len(operations), skipped=skipped)
