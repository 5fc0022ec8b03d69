"""Tests for in-memory log storage adapter."""

import pytest
from tests.fakes import EPOCH

from vitalwatch.adapters.storage.in_memory import InMemoryLogStorage
from vitalwatch.core.clock import to_iso
from vitalwatch.core.models import CustomLogEntry, EventInfo
from vitalwatch.core.ports import LogStoragePort

pytestmark = [pytest.mark.integration, pytest.mark.storage, pytest.mark.tier(2)]


def make_entry(message: str, offset: float = 0, level: str = "info") -> CustomLogEntry:
    return CustomLogEntry(
        timestamp=to_iso(EPOCH + offset),
        level=level,
        message=message,
        correlation_id="8f14e45f-ceea-467f-a9d2-3b2c1a0e9b7d",
        event=EventInfo(name=f"{level}_log", category="information"),
    )


@pytest.mark.tra("Adapter.InMemoryStorage.ImplementsLogStoragePort")
class TestInMemoryLogStorage:
    """Tests for InMemoryLogStorage."""

    def test_implements_log_storage_port(self) -> None:
        """InMemoryLogStorage must satisfy LogStoragePort protocol."""
        assert isinstance(InMemoryLogStorage(), LogStoragePort)

    async def test_write_keeps_entries(self) -> None:
        """Written entries are kept as-is."""
        storage = InMemoryLogStorage()
        entry = make_entry("kept")

        await storage.write(entry)

        assert storage.entries == (entry,)

    async def test_read_yields_documents_in_time_order(self) -> None:
        """Read yields entry documents with timestamp > since, oldest first."""
        storage = InMemoryLogStorage()
        await storage.write(make_entry("late", 2))
        await storage.write(make_entry("early", 1))
        await storage.write(make_entry("too old", 0))

        result = [e async for e in storage.read(since=EPOCH)]

        assert [e["message"] for e in result] == ["early", "late"]
        assert result[0]["type"] == "custom"

    async def test_read_filters_by_level(self) -> None:
        """Level filtering ignores case."""
        storage = InMemoryLogStorage()
        await storage.write(make_entry("debugging", level="debug"))
        await storage.write(make_entry("failure", level="error"))

        result = [e async for e in storage.read(level="ERROR")]

        assert [e["message"] for e in result] == ["failure"]
