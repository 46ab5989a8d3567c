"""Document store schema management (code-first approach)."""

import logging

from src.core import db_client


logger = logging.getLogger(__name__)


# Central list of all collections in the schema
COLLECTIONS = [
    "trades",
    "challenges",
    "challenge_templates",
    "notifications",
]

# Document fields the engine scans on, indexed per collection
INDEXED_FIELDS: dict[str, list[str]] = {
    "trades": ["status", "completion_requested_at"],
    "challenges": ["status", "start_date", "end_date", "generation_key"],
    "challenge_templates": ["recurrence"],
    "notifications": ["user_id"],
}


def _table_ddl(collection: str) -> list[str]:
    statements = [
        f"CREATE TABLE IF NOT EXISTS {collection} ("
        "id TEXT PRIMARY KEY, "
        "data TEXT NOT NULL DEFAULT '{}', "
        "created TEXT NOT NULL, "
        "updated TEXT NOT NULL)"
    ]
    statements.extend(
        f"CREATE INDEX IF NOT EXISTS idx_{collection}_{field} ON {collection} (json_extract(data, '$.{field}'))"
        for field in INDEXED_FIELDS.get(collection, [])
    )
    return statements


async def init_db(*, db_path: str | None = None) -> None:
    """Create every collection table and its indexes if they do not exist yet."""
    conn = await db_client.get_connection(db_path=db_path)
    for collection in COLLECTIONS:
        for statement in _table_ddl(collection):
            await conn.execute(statement)
    await conn.commit()
    logger.info("Schema initialized", extra={"collections": COLLECTIONS})
