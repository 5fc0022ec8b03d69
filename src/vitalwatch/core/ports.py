"""Port interfaces for adapters and external collaborators.

These protocols define the contracts that adapters must implement.
The core domain depends only on these interfaces, not concrete implementations.
"""

from collections.abc import AsyncIterable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from vitalwatch.core.models import LogEntry, PerformanceAlert, RawMetric


@runtime_checkable
class Clock(Protocol):
    """Source of the current time."""

    def now(self) -> float:
        """Return the current Unix timestamp in seconds."""
        ...

    def iso_now(self) -> str:
        """Return the current time as an ISO-8601 string."""
        ...


@runtime_checkable
class LogStoragePort(Protocol):
    """Port for log storage operations.

    Adapters implementing this protocol receive structured log entries when
    a StructuredLogger flushes.
    Examples: InMemoryLogStorage, SQLiteLogStorage.
    """

    async def write(self, entry: LogEntry) -> None:
        """Write a log entry to storage."""
        ...

    def read(
        self, since: float = 0, level: str | None = None
    ) -> AsyncIterable[dict[str, Any]]:
        """Read log entries since the given timestamp.

        Args:
            since: Unix timestamp. Returns entries with timestamp > since.
                   Default 0 returns all entries.
            level: Optional level filter (case-insensitive).

        Returns:
            Async iterable of entry dicts, ordered by timestamp ascending.
        """
        ...


@dataclass(frozen=True)
class HttpResponse:
    """Minimal view of an HTTP response."""

    ok: bool
    status: int
    status_text: str = ""


@runtime_checkable
class HttpClientPort(Protocol):
    """Port for outbound HTTP POST requests carrying JSON bodies."""

    async def post(
        self, url: str, body: Any, headers: Mapping[str, str] | None = None
    ) -> HttpResponse:
        """POST a JSON-serializable body and return the response status."""
        ...


@runtime_checkable
class ErrorReportingClient(Protocol):
    """Port for an external error-reporting SDK (Sentry-style).

    Capture and lifecycle calls are coroutines; context setters are plain
    calls, mirroring how such SDKs are usually exposed.
    """

    async def init(self, options: dict[str, Any]) -> None: ...

    async def capture_exception(self, event: Any) -> None: ...

    async def capture_message(
        self, message: str, level: str, options: dict[str, Any]
    ) -> None: ...

    def set_user(self, user: dict[str, Any]) -> None: ...

    def set_tags(self, tags: dict[str, str]) -> None: ...

    def add_breadcrumb(self, breadcrumb: dict[str, Any]) -> None: ...

    async def flush(self) -> None: ...


@runtime_checkable
class AlertChannel(Protocol):
    """Port for a single alert delivery mechanism (Slack, email, webhook)."""

    name: str

    async def deliver(self, alert: PerformanceAlert) -> None:
        """Deliver an alert, raising on failure."""
        ...


MetricHandler = Callable[[RawMetric], None]


@runtime_checkable
class MetricSourcePort(Protocol):
    """Port for a source of raw Core Web Vitals samples."""

    def subscribe(self, name: str, handler: MetricHandler) -> Callable[[], None]:
        """Register a handler for one metric name.

        Returns:
            A callable that removes the subscription.
        """
        ...
