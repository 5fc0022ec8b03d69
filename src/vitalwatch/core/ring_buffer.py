"""Ring buffer used for every bounded in-memory buffer in the package.

Provides bounded storage that automatically evicts the oldest items when
the buffer is full. Useful for production services that need predictable
memory usage.
"""

from collections import deque
from collections.abc import Iterator
from typing import Generic, TypeVar

T = TypeVar("T")


class RingBuffer(Generic[T]):
    """Fixed-size FIFO buffer.

    When the buffer is full, appending evicts the oldest item, so the buffer
    always holds the most recent `max_size` items in insertion order.

    Args:
        max_size: Maximum number of items to store.
    """

    def __init__(self, max_size: int) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._buffer: deque[T] = deque(maxlen=max_size)

    @property
    def max_size(self) -> int:
        return self._buffer.maxlen or 0

    def append(self, item: T) -> None:
        self._buffer.append(item)

    def snapshot(self) -> tuple[T, ...]:
        """Return the buffered items, oldest first, without removing them."""
        return tuple(self._buffer)

    def drain(self) -> tuple[T, ...]:
        """Remove and return all buffered items, oldest first."""
        items = tuple(self._buffer)
        self._buffer.clear()
        return items

    def clear(self) -> None:
        self._buffer.clear()

    def discard(self, items: tuple[T, ...]) -> None:
        """Remove exactly the given items (by identity), keeping anything newer."""
        flushed = {id(item) for item in items}
        kept = [item for item in self._buffer if id(item) not in flushed]
        self._buffer.clear()
        self._buffer.extend(kept)

    def __len__(self) -> int:
        return len(self._buffer)

    def __iter__(self) -> Iterator[T]:
        return iter(tuple(self._buffer))
