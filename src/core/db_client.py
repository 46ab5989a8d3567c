"""SQLite-backed document store client with CRUD, filtered queries and atomic batches."""

import asyncio
import json
import logging
import re
import threading
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal

import aiosqlite

from src.core.clock import to_store_timestamp
from src.core.config import settings
from src.core.errors import BatchCommitError, DatabaseError, RecordNotFoundError


logger = logging.getLogger(__name__)

__all__ = [
    "BatchCommitError",
    "BatchOperation",
    "DatabaseError",
    "RecordNotFoundError",
    "commit_batch",
    "create_record",
    "delete_record",
    "get_first_record",
    "get_record",
    "list_records",
    "server_now",
    "update_record",
]

# Columns stored outside the JSON document
_META_COLUMNS = {"id", "created", "updated"}


def _validate_collection_name(collection: str) -> None:
    """Validate that a collection name contains only alphanumeric characters and underscores."""
    if not re.match(r"^[a-zA-Z_][a-zA-Z0-9_]*$", collection):
        msg = f"Invalid collection name: {collection}. Only alphanumeric characters and underscores are allowed."
        raise ValueError(msg)


def sanitize_param(value: str | int | float | bool | None) -> str:
    """Escape a value for safe embedding in a filter string via json.dumps."""
    return json.dumps(str(value))[1:-1]


def _json_default(value: object) -> object:
    if isinstance(value, datetime):
        return to_store_timestamp(value)
    msg = f"Object of type {type(value).__name__} is not JSON serializable"
    raise TypeError(msg)


def _encode_document(data: dict[str, Any]) -> str:
    """Serialize a document body, dropping meta columns and formatting datetimes."""
    body = {key: value for key, value in data.items() if key not in _META_COLUMNS}
    return json.dumps(body, default=_json_default)


def _decode_row(row: tuple) -> dict[str, Any]:
    record_id, data, created, updated = row
    return {"id": record_id, "created": created, "updated": updated, **json.loads(data)}


def _field_expr(name: str) -> str:
    """SQL expression that reads a document field."""
    if not re.match(r"^[A-Za-z_][A-Za-z0-9_]*$", name):
        msg = f"Invalid field name: {name}"
        raise ValueError(msg)
    if name in _META_COLUMNS:
        return name
    return f"json_extract(data, '$.{name}')"


def get_db_path(db_path: str | None = None) -> Path:
    """Get the resolved SQLite database file path."""
    path_str = db_path or settings.sqlite_db_path
    return Path(path_str).expanduser().resolve()


def _parse_value(value: str, *, is_like: bool = False) -> str | int | float | bool | None:
    """Parse a filter literal to the Python type SQLite should compare against."""
    if is_like:
        return "%" + value.replace("%", "\\%").replace("_", "\\_") + "%"

    if value.isdigit():
        return int(value)
    if value.replace(".", "", 1).isdigit():
        return float(value)

    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False

    return value


def _get_sql_operator(op: str) -> str:
    """Map filter operator to SQL operator."""
    op_map = {
        "=": "=",
        "!=": "!=",
        ">": ">",
        "<": "<",
        ">=": ">=",
        "<=": "<=",
        "~": "LIKE",
    }
    sql_op = op_map.get(op)
    if not sql_op:
        msg = f"Unsupported operator: {op}"
        raise ValueError(msg)
    return sql_op


_COMPARISON_RE = re.compile(
    r"""^(\w+)\s*(!=|>=|<=|=|>|<|~)\s*(?:"((?:[^"\\]|\\.)*)"|'((?:[^'\\]|\\.)*)')$""",
    re.DOTALL,
)


def _unescape(value: str) -> str:
    """Undo the backslash escaping applied by sanitize_param."""
    return re.sub(r"\\(.)", r"\1", value, flags=re.DOTALL)


def _parse_single_comparison(comparison: str) -> tuple[str, str | int | float | bool | None]:
    """Parse a single comparison expression into a SQL condition and parameter."""
    match = _COMPARISON_RE.match(comparison.strip())
    if not match:
        msg = f"Invalid filter syntax: {comparison}"
        raise ValueError(msg)

    field_name = match.group(1)
    op = match.group(2)
    quoted = match.group(3) if match.group(3) is not None else match.group(4)
    raw_value = _unescape(quoted)

    sql_op = _get_sql_operator(op)
    is_like = sql_op == "LIKE"
    value = _parse_value(raw_value, is_like=is_like)
    suffix = " ESCAPE '\\'" if is_like else ""

    return f"{_field_expr(field_name)} {sql_op} ?{suffix}", value


def _split_top_level(text: str, separator: str) -> list[str]:
    """Split on ``separator`` outside quoted values and parenthesized groups."""
    parts = []
    current = ""
    paren_depth = 0
    quote: str | None = None
    escaped = False

    for char in text:
        current += char
        if quote:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
            continue

        if char in "\"'":
            quote = char
        elif char == "(":
            paren_depth += 1
        elif char == ")":
            paren_depth -= 1
        elif paren_depth == 0 and current.endswith(separator):
            parts.append(current[: -len(separator)].strip())
            current = ""

    if current.strip():
        parts.append(current.strip())

    return parts


def _parse_or_group(or_group: str) -> tuple[str, list[str | int | float | bool | None]]:
    """Parse a parenthesized OR group into a SQL condition and parameters."""
    inner = or_group[1:-1]
    or_conditions = []
    or_params = []

    for part in _split_top_level(inner, "||"):
        cond, value = _parse_single_comparison(part)
        or_conditions.append(cond)
        or_params.append(value)

    return f"({' OR '.join(or_conditions)})", or_params


def parse_filter(filter_query: str) -> tuple[str, list[str | int | float | bool | None]]:
    """Parse filter syntax into a SQL WHERE clause and parameter list.

    Supports ``field op "value"`` comparisons joined by ``&&`` and
    parenthesized ``||`` groups, e.g.
    ``status = "upcoming" && start_date <= "2026-01-01T00:00:00.000000Z"``.
    """
    if not filter_query:
        return "", []

    conditions = []
    params: list[str | int | float | bool | None] = []

    for raw_part in _split_top_level(filter_query, "&&"):
        part = raw_part.strip()

        if part.startswith("(") and part.endswith(")"):
            cond, cond_params = _parse_or_group(part)
            conditions.append(cond)
            params.extend(cond_params)
        else:
            cond, value = _parse_single_comparison(part)
            conditions.append(cond)
            params.append(value)

    return " AND ".join(conditions), params


def _parse_sort(sort: str) -> str:
    """Translate ``field`` / ``-field`` into an ORDER BY clause."""
    if not sort:
        return "created ASC"
    descending = sort.startswith("-")
    name = sort.lstrip("-+").strip()
    try:
        expr = _field_expr(name)
    except ValueError:
        logger.warning("Invalid sort parameter, using default", extra={"sort": sort})
        return "created ASC"
    return f"{expr} {'DESC' if descending else 'ASC'}"


_db_connections: dict[tuple[int, int, str], aiosqlite.Connection] = {}
_connection_locks: dict[tuple[int, int, str], asyncio.Lock] = {}
_db_lock = asyncio.Lock()


def _cache_key(db_path: str | None = None) -> tuple[int, int, str]:
    """Connections are cached per thread, event loop and database file."""
    return (threading.get_ident(), id(asyncio.get_running_loop()), str(get_db_path(db_path)))


async def get_connection(*, db_path: str | None = None) -> aiosqlite.Connection:
    """Get or create a cached connection for the current thread, loop, and db path."""
    cache_key = _cache_key(db_path)
    thread_id, loop_id, path_str = cache_key

    if cache_key in _db_connections:
        return _db_connections[cache_key]

    async with _db_lock:
        # Double-check after acquiring lock
        if cache_key in _db_connections:
            return _db_connections[cache_key]

        path = Path(path_str)
        path.parent.mkdir(parents=True, exist_ok=True)

        conn = await aiosqlite.connect(path_str)
        await conn.execute("PRAGMA journal_mode = WAL")

        _db_connections[cache_key] = conn
        _connection_locks[cache_key] = asyncio.Lock()

        logger.info(
            "Created new SQLite connection",
            extra={"db_path": path_str, "thread_id": thread_id, "loop_id": loop_id},
        )
        return conn


@asynccontextmanager
async def _exclusive_connection(*, db_path: str | None = None) -> AsyncIterator[aiosqlite.Connection]:
    """Hold the cached connection for one unit of work.

    Coroutines on a loop share one connection and therefore one transaction.
    Every statement runs under the connection's lock, so no other coroutine can
    commit, roll back or read a batch that is still being written.
    """
    conn = await get_connection(db_path=db_path)
    async with _connection_locks[_cache_key(db_path)]:
        yield conn


async def close_connection(*, db_path: str | None = None) -> None:
    """Close the cached SQLite connection for the current thread, loop, and db path."""
    cache_key = _cache_key(db_path)
    path_str = cache_key[2]

    async with _db_lock:
        conn = _db_connections.pop(cache_key, None)
        lock = _connection_locks.pop(cache_key, None) or asyncio.Lock()
        if conn is None:
            return
        try:
            async with lock:
                await conn.close()
            logger.info("Closed SQLite connection", extra={"db_path": path_str})
        except (aiosqlite.Error, ValueError) as e:
            logger.warning("Error closing SQLite connection", extra={"error": str(e), "db_path": path_str})


async def init_db(*, db_path: str | None = None) -> None:
    """Initialize the collection tables by delegating to schema.init_db()."""
    from src.core import schema

    await schema.init_db(db_path=db_path)


def _wrap_error(action: str, collection: str, e: Exception) -> DatabaseError:
    if isinstance(e, aiosqlite.OperationalError) and "no such table" in str(e):
        return DatabaseError(f"Table '{collection}' does not exist. Call init_db() first.")
    return DatabaseError(f"Failed to {action} {collection}: {e}")


async def _insert(conn: aiosqlite.Connection, collection: str, data: dict[str, Any]) -> str:
    record_id = str(data.get("id") or uuid.uuid4().hex)
    stamp = to_store_timestamp(datetime.now(UTC))
    query = f"INSERT INTO {collection} (id, data, created, updated) VALUES (?, ?, ?, ?)"  # noqa: S608 - collection is validated
    await conn.execute(query, (record_id, _encode_document(data), stamp, stamp))
    return record_id


async def _patch(conn: aiosqlite.Connection, collection: str, record_id: str, data: dict[str, Any]) -> None:
    stamp = to_store_timestamp(datetime.now(UTC))
    query = f"UPDATE {collection} SET data = json_patch(data, ?), updated = ? WHERE id = ?"  # noqa: S608 - collection is validated
    cursor = await conn.execute(query, (_encode_document(data), stamp, record_id))
    if cursor.rowcount == 0:
        msg = f"Record not found in {collection}: {record_id}"
        raise RecordNotFoundError(msg)


async def _remove(conn: aiosqlite.Connection, collection: str, record_id: str) -> None:
    query = f"DELETE FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
    cursor = await conn.execute(query, (record_id,))
    if cursor.rowcount == 0:
        msg = f"Record not found in {collection}: {record_id}"
        raise RecordNotFoundError(msg)


async def create_record(*, collection: str, data: dict[str, Any]) -> dict[str, Any]:
    """Insert a new document and return it with its assigned id."""
    _validate_collection_name(collection)
    try:
        async with _exclusive_connection() as conn:
            record_id = await _insert(conn, collection, data)
            await conn.commit()
    except Exception as e:
        logger.error("create_record_failed", extra={"collection": collection, "error": str(e)})
        raise _wrap_error("create record in", collection, e) from e

    logger.debug("Created record", extra={"collection": collection, "record_id": record_id})
    return await get_record(collection=collection, record_id=record_id)


async def get_record(*, collection: str, record_id: str) -> dict[str, Any]:
    """Fetch a single document by ID, raising RecordNotFoundError if not found."""
    _validate_collection_name(collection)
    try:
        async with _exclusive_connection() as conn:
            query = f"SELECT id, data, created, updated FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
            cursor = await conn.execute(query, (record_id,))
            row = await cursor.fetchone()
    except Exception as e:
        logger.error("get_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        raise _wrap_error("get record from", collection, e) from e

    if row is None:
        msg = f"Record not found in {collection}: {record_id}"
        raise RecordNotFoundError(msg)
    return _decode_row(row)


async def update_record(*, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Merge ``data`` into a document and return the updated document."""
    if not data:
        msg = "Empty update payload"
        raise ValueError(msg)
    _validate_collection_name(collection)

    try:
        async with _exclusive_connection() as conn:
            await _patch(conn, collection, record_id, data)
            await conn.commit()
    except RecordNotFoundError:
        raise
    except Exception as e:
        logger.error("update_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        raise _wrap_error("update record in", collection, e) from e

    logger.debug("Updated record", extra={"collection": collection, "record_id": record_id})
    return await get_record(collection=collection, record_id=record_id)


async def delete_record(*, collection: str, record_id: str) -> None:
    """Delete a document by ID, raising RecordNotFoundError if not found."""
    _validate_collection_name(collection)
    try:
        async with _exclusive_connection() as conn:
            await _remove(conn, collection, record_id)
            await conn.commit()
    except RecordNotFoundError:
        raise
    except Exception as e:
        logger.error("delete_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        raise _wrap_error("delete record from", collection, e) from e

    logger.debug("Deleted record", extra={"collection": collection, "record_id": record_id})


async def list_records(
    *,
    collection: str,
    page: int = 1,
    per_page: int = 50,
    filter_query: str = "",
    sort: str = "",
) -> list[dict[str, Any]]:
    """List documents with optional filtering, sorting, and pagination."""
    _validate_collection_name(collection)
    try:
        where_clause, params = parse_filter(filter_query)
        where_sql = f"WHERE {where_clause}" if where_clause else ""
        order_sql = _parse_sort(sort)
        offset = (page - 1) * per_page

        async with _exclusive_connection() as conn:
            query = f"SELECT id, data, created, updated FROM {collection} {where_sql} ORDER BY {order_sql} LIMIT ? OFFSET ?"  # noqa: S608 - collection and fields are validated
            cursor = await conn.execute(query, [*params, per_page, offset])
            rows = await cursor.fetchall()
    except ValueError:
        raise
    except Exception as e:
        logger.error("list_records_failed", extra={"collection": collection, "error": str(e)})
        raise _wrap_error("list records from", collection, e) from e

    records = [_decode_row(row) for row in rows]
    logger.debug("Listed records", extra={"collection": collection, "count": len(records)})
    return records


async def get_first_record(*, collection: str, filter_query: str) -> dict[str, Any] | None:
    """Return the first document matching the filter, or None."""
    records = await list_records(collection=collection, filter_query=filter_query, per_page=1)
    return records[0] if records else None


@dataclass
class BatchOperation:
    """One write inside an atomic batch."""

    kind: Literal["create", "update", "delete"]
    collection: str
    record_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


async def commit_batch(operations: list[BatchOperation]) -> list[str]:
    """Apply all operations in one transaction: every write succeeds or none do.

    Args:
        operations: Writes to apply, in order

    Returns:
        IDs of the affected documents, in operation order

    Raises:
        BatchCommitError: If any write fails; the transaction is rolled back
    """
    if not operations:
        return []

    for op in operations:
        _validate_collection_name(op.collection)
        if op.kind != "create" and not op.record_id:
            msg = f"Batch {op.kind} on {op.collection} requires a record_id"
            raise ValueError(msg)

    record_ids: list[str] = []
    async with _exclusive_connection() as conn:
        try:
            for op in operations:
                if op.kind == "create":
                    record_ids.append(await _insert(conn, op.collection, op.data))
                elif op.kind == "update":
                    await _patch(conn, op.collection, op.record_id, op.data)
                    record_ids.append(op.record_id)
                else:
                    await _remove(conn, op.collection, op.record_id)
                    record_ids.append(op.record_id)
            await conn.commit()
        except Exception as e:
            await conn.rollback()
            logger.error("commit_batch_failed", extra={"operations": len(operations), "error": str(e)})
            msg = f"Batch of {len(operations)} writes rolled back: {e}"
            raise BatchCommitError(msg) from e

    logger.info("Committed batch", extra={"operations": len(operations)})
    return record_ids


async def server_now() -> datetime:
    """The store's notion of "now", as an aware UTC datetime."""
    try:
        async with _exclusive_connection() as conn:
            cursor = await conn.execute("SELECT strftime('%Y-%m-%d %H:%M:%f', 'now')")
            row = await cursor.fetchone()
    except Exception as e:
        raise DatabaseError(f"Failed to read store clock: {e}") from e
    return datetime.fromisoformat(row[0]).replace(tzinfo=UTC)
