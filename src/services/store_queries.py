"""Query helpers shared by the engine scans."""

from datetime import datetime
from typing import Any

from src.core import db_client
from src.core.config import Constants, settings
from src.core.retry import with_retry


async def scan_instant(now: datetime | None = None) -> datetime:
    """The single instant a whole scan is judged against.

    Uses the store's clock so computed cutoffs compare correctly with stored values.
    """
    if now is not None:
        return now
    return await with_retry(db_client.server_now, max_attempts=settings.store_retry_attempts)


async def fetch_all(*, collection: str, filter_query: str, sort: str = "created") -> list[dict[str, Any]]:
    """Read every page matching ``filter_query`` before any of it is processed.

    Each page read is retried on its own; processing never starts on a
    partial result set.
    """
    per_page = Constants.SCAN_PER_PAGE_LIMIT
    records: list[dict[str, Any]] = []
    page = 1

    while True:
        batch = await with_retry(
            lambda: db_client.list_records(
                collection=collection,
                filter_query=filter_query,
                sort=sort,
                page=page,
                per_page=per_page,
            ),
            max_attempts=settings.store_retry_attempts,
        )
        records.extend(batch)
        if len(batch) < per_page:
            return records
        page += 1
