"""SQLite storage adapter for structured log entries."""

import asyncio
import json
from collections.abc import AsyncIterable, AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import aiosqlite

from vitalwatch.core.clock import from_iso
from vitalwatch.core.encoding.ndjson import format_log_entry
from vitalwatch.core.models import LogEntry

_LOGS_SCHEMA = """
CREATE TABLE IF NOT EXISTS log_entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp REAL NOT NULL,
    level TEXT NOT NULL,
    type TEXT NOT NULL,
    correlation_id TEXT NOT NULL,
    body TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_log_entries_timestamp ON log_entries(timestamp);
CREATE INDEX IF NOT EXISTS idx_log_entries_correlation
    ON log_entries(correlation_id);
"""

_INSERT_ENTRY = """
INSERT INTO log_entries (timestamp, level, type, correlation_id, body)
VALUES (?, ?, ?, ?, ?)
"""

_SELECT_ENTRIES = """
SELECT body
FROM log_entries
WHERE timestamp > ?
ORDER BY timestamp ASC, id ASC
"""

_SELECT_ENTRIES_BY_LEVEL = """
SELECT body
FROM log_entries
WHERE timestamp > ? AND UPPER(level) = UPPER(?)
ORDER BY timestamp ASC, id ASC
"""

_SELECT_BY_CORRELATION = """
SELECT body
FROM log_entries
WHERE correlation_id = ?
ORDER BY timestamp ASC, id ASC
"""

_COUNT_ENTRIES = """
SELECT COUNT(*) FROM log_entries
"""

_DELETE_ENTRIES_BEFORE = """
DELETE FROM log_entries WHERE timestamp < ?
"""


def _safe_json_loads(data: str) -> dict[str, Any]:
    """Parse a stored entry body, returning an empty dict on decode error."""
    try:
        result: dict[str, Any] = json.loads(data)
        return result
    except json.JSONDecodeError:
        return {}


class SQLiteLogStorage:
    """SQLite implementation of LogStoragePort.

    Stores each entry as its JSON serialization alongside indexed timestamp,
    level and correlation ID columns, using aiosqlite for non-blocking
    operations. Uses WAL mode for file databases.

    For :memory: databases, a persistent connection is maintained since
    in-memory databases are connection-scoped in SQLite.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._initialized = False
        self._init_lock: asyncio.Lock | None = None
        self._persistent_conn: aiosqlite.Connection | None = None

    def _get_lock(self) -> asyncio.Lock:
        """Get or create the initialization lock (lazy to avoid event loop issues)."""
        if self._init_lock is None:
            self._init_lock = asyncio.Lock()
        return self._init_lock

    async def _ensure_initialized(self) -> None:
        """Initialize database schema once."""
        if self._initialized:
            return
        async with self._get_lock():
            if self._initialized:
                return
            if self._db_path == ":memory:":
                self._persistent_conn = await aiosqlite.connect(":memory:")
                await self._persistent_conn.executescript(_LOGS_SCHEMA)
            else:
                async with aiosqlite.connect(self._db_path) as db:
                    await db.execute("PRAGMA journal_mode=WAL")
                    await db.executescript(_LOGS_SCHEMA)
            self._initialized = True

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Yield a connection, closing it afterwards for file databases."""
        await self._ensure_initialized()
        if self._db_path == ":memory:":
            if self._persistent_conn is None:
                raise RuntimeError("Memory database connection not initialized")
            yield self._persistent_conn
            return
        db = await aiosqlite.connect(self._db_path)
        try:
            yield db
        finally:
            await db.close()

    async def write(self, entry: LogEntry) -> None:
        """Write a log entry to storage."""
        async with self._connection() as db:
            await db.execute(
                _INSERT_ENTRY,
                (
                    from_iso(entry.timestamp),
                    entry.level,
                    entry.entry_type,
                    entry.correlation_id,
                    format_log_entry(entry),
                ),
            )
            await db.commit()

    async def read(
        self, since: float = 0, level: str | None = None
    ) -> AsyncIterable[dict[str, Any]]:
        """Read entries with timestamp > since, optionally filtered by level."""
        async with self._connection() as db:
            if level is None:
                cursor = await db.execute(_SELECT_ENTRIES, (since,))
            else:
                cursor = await db.execute(_SELECT_ENTRIES_BY_LEVEL, (since, level))
            rows = await cursor.fetchall()
        for (body,) in rows:
            yield _safe_json_loads(body)

    async def read_correlated(self, correlation_id: str) -> list[dict[str, Any]]:
        """Return every stored entry logged under one correlation ID."""
        async with self._connection() as db:
            cursor = await db.execute(_SELECT_BY_CORRELATION, (correlation_id,))
            rows = await cursor.fetchall()
        return [_safe_json_loads(body) for (body,) in rows]

    async def count(self) -> int:
        """Return the number of stored entries."""
        async with self._connection() as db:
            cursor = await db.execute(_COUNT_ENTRIES)
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def delete_before(self, timestamp: float) -> int:
        """Delete entries older than timestamp and return how many were removed."""
        async with self._connection() as db:
            cursor = await db.execute(_DELETE_ENTRIES_BEFORE, (timestamp,))
            await db.commit()
            return cursor.rowcount

    async def close(self) -> None:
        """Close persistent connection (for :memory: databases)."""
        if self._persistent_conn is not None:
            await self._persistent_conn.close()
            self._persistent_conn = None
            self._initialized = False
