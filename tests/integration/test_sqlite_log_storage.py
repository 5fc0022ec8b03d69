"""Tests for SQLite log storage adapter."""

from collections.abc import AsyncGenerator

import pytest
from tests.fakes import EPOCH

from vitalwatch.adapters.storage.sqlite_logs import SQLiteLogStorage
from vitalwatch.core.clock import to_iso
from vitalwatch.core.logger import LoggerConfig, StructuredLogger
from vitalwatch.core.models import CustomLogEntry, ErrorInfo, ErrorLogEntry, EventInfo
from vitalwatch.core.ports import LogStoragePort

# All tests in this module are tier 2 (integration tests with file I/O)
pytestmark = [pytest.mark.integration, pytest.mark.storage, pytest.mark.tier(2)]

CORRELATION_ID = "8f14e45f-ceea-467f-a9d2-3b2c1a0e9b7d"


def make_entry(
    message: str = "test",
    offset: float = 0,
    level: str = "info",
    correlation_id: str = CORRELATION_ID,
) -> CustomLogEntry:
    return CustomLogEntry(
        timestamp=to_iso(EPOCH + offset),
        level=level,
        message=message,
        correlation_id=correlation_id,
        event=EventInfo(name=f"{level}_log", category="information"),
    )


@pytest.fixture
async def memory_log_storage() -> AsyncGenerator[SQLiteLogStorage]:
    """In-memory log storage with proper cleanup."""
    storage = SQLiteLogStorage(":memory:")
    yield storage
    await storage.close()


@pytest.mark.tra("Adapter.SQLiteStorage.ImplementsLogStoragePort")
class TestSQLiteLogStorage:
    """Tests for SQLiteLogStorage adapter."""

    def test_implements_log_storage_port(self) -> None:
        """SQLiteLogStorage must satisfy LogStoragePort protocol."""
        assert isinstance(SQLiteLogStorage(":memory:"), LogStoragePort)

    async def test_memory_database_write_and_read(
        self, memory_log_storage: SQLiteLogStorage
    ) -> None:
        """In-memory database should persist data within same instance."""
        await memory_log_storage.write(make_entry())

        result = [e async for e in memory_log_storage.read()]

        assert len(result) == 1
        assert result[0]["message"] == "test"

    async def test_memory_database_close(
        self, memory_log_storage: SQLiteLogStorage
    ) -> None:
        """After close, the in-memory database starts over."""
        await memory_log_storage.write(make_entry("first"))
        await memory_log_storage.close()

        await memory_log_storage.write(make_entry("second", 1))
        result = [e async for e in memory_log_storage.read()]

        assert [e["message"] for e in result] == ["second"]

    async def test_round_trips_entry_document(self, log_db_path: str) -> None:
        """Stored entries come back as their JSON documents with a type tag."""
        storage = SQLiteLogStorage(log_db_path)
        entry = ErrorLogEntry(
            timestamp=to_iso(EPOCH),
            level="error",
            message="payment failed",
            correlation_id=CORRELATION_ID,
            error=ErrorInfo(name="ValueError", message="card declined"),
            context={"order": 7},
            url="https://shop.example.com/checkout",
        )

        await storage.write(entry)
        (stored,) = [e async for e in storage.read()]

        assert stored["type"] == "error"
        assert stored["timestamp"] == "2024-01-01T00:00:00.000Z"
        assert stored["error"]["name"] == "ValueError"
        assert stored["context"] == {"order": 7}

    async def test_read_returns_empty_when_no_entries(self, log_db_path: str) -> None:
        """Read returns empty iterable when storage is empty."""
        storage = SQLiteLogStorage(log_db_path)

        assert [e async for e in storage.read()] == []

    async def test_read_filters_by_since_timestamp(self, log_db_path: str) -> None:
        """Read only returns entries with timestamp > since."""
        storage = SQLiteLogStorage(log_db_path)
        await storage.write(make_entry("old"))
        await storage.write(make_entry("new", 60))

        result = [e async for e in storage.read(since=EPOCH)]

        assert [e["message"] for e in result] == ["new"]

    async def test_read_orders_by_timestamp(self, log_db_path: str) -> None:
        """Read returns entries ordered by timestamp ascending."""
        storage = SQLiteLogStorage(log_db_path)
        await storage.write(make_entry("third", 3))
        await storage.write(make_entry("first", 1))
        await storage.write(make_entry("second", 2))

        result = [e async for e in storage.read()]

        assert [e["message"] for e in result] == ["first", "second", "third"]

    async def test_read_filters_by_level_case_insensitively(
        self, log_db_path: str
    ) -> None:
        """Level filtering ignores case."""
        storage = SQLiteLogStorage(log_db_path)
        await storage.write(make_entry("kept", level="warn"))
        await storage.write(make_entry("skipped", 1, level="info"))

        result = [e async for e in storage.read(level="WARN")]

        assert [e["message"] for e in result] == ["kept"]

    async def test_read_correlated(self, log_db_path: str) -> None:
        """Entries can be fetched by the correlation ID they were logged under."""
        storage = SQLiteLogStorage(log_db_path)
        other = "0b6c2a3e-51f4-4d0e-9a55-3f0f2c1d9e88"
        await storage.write(make_entry("a", 0))
        await storage.write(make_entry("b", 1, correlation_id=other))
        await storage.write(make_entry("c", 2))

        result = await storage.read_correlated(CORRELATION_ID)

        assert [e["message"] for e in result] == ["a", "c"]

    async def test_count_and_delete_before(self, log_db_path: str) -> None:
        """delete_before removes older entries and reports how many."""
        storage = SQLiteLogStorage(log_db_path)
        for i in range(4):
            await storage.write(make_entry(f"m{i}", i * 60))

        deleted = await storage.delete_before(EPOCH + 120)

        assert deleted == 2
        assert await storage.count() == 2

    async def test_persists_across_instances(self, log_db_path: str) -> None:
        """File databases keep entries for a new storage instance."""
        await SQLiteLogStorage(log_db_path).write(make_entry("kept"))

        assert await SQLiteLogStorage(log_db_path).count() == 1

    async def test_structured_logger_flushes_into_storage(
        self, log_db_path: str, clock
    ) -> None:
        """A structured logger writes its buffered entries on flush."""
        storage = SQLiteLogStorage(log_db_path)
        structured = StructuredLogger(
            LoggerConfig(enable_console=False), sinks=[storage], clock=clock
        )

        structured.info("checkout started", {"cart_items": 3})
        structured.warn("slow response")
        await structured.flush()
        structured.destroy()

        result = [e async for e in storage.read()]
        assert [e["message"] for e in result] == ["checkout started", "slow response"]
        assert result[0]["context"] == {"cart_items": 3}
        assert structured.get_entries() == ()
