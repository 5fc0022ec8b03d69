"""Correlation ID management for request tracing.

The current correlation ID lives in a ContextVar, so every asyncio task and
thread observes its own value. Entry points (request handlers, UI event
handlers) are expected to set one per logical operation; everything that logs,
measures or reports reads it from here.
"""

import inspect
import logging
import os
import random
import re
import uuid
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import TypeVar

from vitalwatch.core.errors import InvalidCorrelationIdError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# UUID v4 format: xxxxxxxx-xxxx-4xxx-yxxx-xxxxxxxxxxxx
_UUID_V4_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

_current_correlation_id: ContextVar[str | None] = ContextVar(
    "vitalwatch_correlation_id", default=None
)

# Randomness sources, strongest first. Module attributes so they can be replaced.
_secure_uuid4: Callable[[], uuid.UUID] = uuid.uuid4
_secure_bytes: Callable[[int], bytes] = os.urandom


def validate_correlation_id(value: object) -> bool:
    """Return True if value is a UUID v4 string."""
    if not isinstance(value, str):
        return False
    return _UUID_V4_PATTERN.match(value) is not None


def _format_uuid_bytes(buffer: bytearray) -> str:
    # RFC 4122: version 4, variant 10
    buffer[6] = (buffer[6] & 0x0F) | 0x40
    buffer[8] = (buffer[8] & 0x3F) | 0x80
    return str(uuid.UUID(bytes=bytes(buffer)))


def generate_correlation_id() -> str:
    """Generate a UUID v4 correlation ID.

    Prefers the platform UUID generator, then raw bytes from the OS CSPRNG,
    and finally a non-cryptographic generator (with a warning). Never raises.
    """
    try:
        return str(_secure_uuid4())
    except (NotImplementedError, OSError):
        pass

    try:
        return _format_uuid_bytes(bytearray(_secure_bytes(16)))
    except (NotImplementedError, OSError):
        pass

    logger.warning("Using non-cryptographic random for correlation ID generation")
    weak = random.Random()
    return _format_uuid_bytes(bytearray(weak.getrandbits(8) for _ in range(16)))


def get_current_correlation_id() -> str | None:
    """Return the current correlation ID, or None if none is set."""
    return _current_correlation_id.get()


def set_correlation_id(correlation_id: str) -> None:
    """Replace the current correlation ID.

    Raises:
        InvalidCorrelationIdError: If correlation_id is not a UUID v4 string.
    """
    if not validate_correlation_id(correlation_id):
        raise InvalidCorrelationIdError(correlation_id)
    _current_correlation_id.set(correlation_id)


def clear_correlation_id() -> None:
    """Clear the current correlation ID. Safe to call when already clear."""
    _current_correlation_id.set(None)


def current_or_new_correlation_id() -> str:
    """Return the current correlation ID, generating one if none is set."""
    return get_current_correlation_id() or generate_correlation_id()


@contextmanager
def correlation_scope(correlation_id: str | None = None) -> Iterator[str]:
    """Run a block under a correlation ID, restoring the previous one on exit.

    Args:
        correlation_id: ID to use. A new one is generated when omitted.

    Yields:
        The correlation ID active inside the block.

    Raises:
        InvalidCorrelationIdError: If correlation_id is given but invalid.
    """
    active = correlation_id if correlation_id is not None else generate_correlation_id()
    if not validate_correlation_id(active):
        raise InvalidCorrelationIdError(active)
    token = _current_correlation_id.set(active)
    try:
        yield active
    finally:
        _current_correlation_id.reset(token)


async def with_correlation_id(
    correlation_id: str, fn: Callable[[], T | Awaitable[T]]
) -> T:
    """Execute fn with a temporary correlation ID.

    fn may be a plain callable or return an awaitable; awaitables are awaited
    inside the scope. The previous ID (or its absence) is restored on every
    exit path, and exceptions from fn propagate after restoration.
    """
    with correlation_scope(correlation_id):
        result = fn()
        if inspect.isawaitable(result):
            return await result
        return result


class CorrelationIdManager:
    """Stateful correlation ID holder for advanced use cases."""

    def __init__(self, initial_id: str | None = None) -> None:
        self._id = initial_id or self.generate()

    def generate(self) -> str:
        return generate_correlation_id()

    def validate(self, correlation_id: object) -> bool:
        return validate_correlation_id(correlation_id)

    @property
    def current_id(self) -> str:
        return self._id

    def set_id(self, correlation_id: str) -> None:
        if not self.validate(correlation_id):
            raise InvalidCorrelationIdError(correlation_id)
        self._id = correlation_id

    def regenerate(self) -> None:
        self._id = self.generate()

    def create_child(self) -> str:
        """Create a new ID that shares this manager's first UUID segment."""
        parent_prefix = self._id.split("-")[0]
        child_suffix = "-".join(self.generate().split("-")[1:])
        return f"{parent_prefix}-{child_suffix}"

    def scope(self, correlation_id: str | None = None):
        """Return a correlation_scope for the given ID or this manager's ID."""
        return correlation_scope(correlation_id or self._id)
