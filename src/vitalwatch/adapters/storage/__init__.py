"""Storage adapters implementing LogStoragePort."""

from vitalwatch.adapters.storage.in_memory import InMemoryLogStorage
from vitalwatch.adapters.storage.sqlite_logs import SQLiteLogStorage

__all__ = [
    "InMemoryLogStorage",
    "SQLiteLogStorage",
]
