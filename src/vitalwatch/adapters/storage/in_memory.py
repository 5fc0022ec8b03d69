"""In-memory storage adapter for structured log entries."""

from collections.abc import AsyncIterable
from typing import Any

from vitalwatch.core.clock import from_iso
from vitalwatch.core.encoding.ndjson import entry_to_dict
from vitalwatch.core.models import LogEntry


class InMemoryLogStorage:
    """In-memory implementation of LogStoragePort.

    Stores log entries in a list. Suitable for testing and
    low-volume applications where persistence is not required.
    """

    def __init__(self) -> None:
        self._entries: list[LogEntry] = []

    @property
    def entries(self) -> tuple[LogEntry, ...]:
        return tuple(self._entries)

    async def write(self, entry: LogEntry) -> None:
        """Write a log entry to storage."""
        self._entries.append(entry)

    async def read(
        self, since: float = 0, level: str | None = None
    ) -> AsyncIterable[dict[str, Any]]:
        """Read log entries since the given timestamp.

        Returns entries with timestamp > since, ordered by timestamp ascending.
        """
        filtered = [
            e
            for e in self._entries
            if from_iso(e.timestamp) > since
            and (level is None or e.level.lower() == level.lower())
        ]
        for entry in sorted(filtered, key=lambda e: from_iso(e.timestamp)):
            yield entry_to_dict(entry)
