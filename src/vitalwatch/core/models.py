"""Core domain models for observability data."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Literal

LogLevel = Literal["debug", "info", "warn", "error"]
PerformanceRating = Literal["good", "needs-improvement", "poor"]
AlertSeverity = Literal["warning", "error", "critical"]
ErrorLevel = Literal["error", "warning", "info"]

LOG_LEVELS: dict[str, int] = {"debug": 0, "info": 1, "warn": 2, "error": 3}


# --- Log entries ---


@dataclass(frozen=True)
class ErrorInfo:
    """A sanitized description of an exception.

    Attributes:
        name: Exception class name, or "Unknown" for non-exceptions.
        message: Exception message.
        stack: Formatted traceback, when one was attached.
        component_stack: UI component stack, when the error carries one.
    """

    name: str
    message: str
    stack: str | None = None
    component_stack: str | None = None


@dataclass(frozen=True)
class PerformanceData:
    """Metric block of a performance log entry."""

    name: str
    value: float
    rating: PerformanceRating
    delta: float | None = None


@dataclass(frozen=True)
class PageInfo:
    path: str
    title: str
    referrer: str | None = None


@dataclass(frozen=True)
class SessionInfo:
    id: str
    is_new_session: bool


@dataclass(frozen=True)
class UserInfo:
    id: str | None = None
    segment: str | None = None


@dataclass(frozen=True)
class EventInfo:
    """Event block of a custom log entry."""

    name: str
    category: str
    properties: dict[str, Any] | None = None


@dataclass(frozen=True, kw_only=True)
class BaseLogEntry:
    """Fields shared by every structured log entry.

    Attributes:
        timestamp: ISO-8601 UTC timestamp.
        level: One of debug, info, warn, error.
        message: The log message.
        correlation_id: Identifier of the logical operation that logged it.
    """

    entry_type: ClassVar[str] = "base"

    timestamp: str
    level: LogLevel
    message: str
    correlation_id: str


@dataclass(frozen=True, kw_only=True)
class PerformanceLogEntry(BaseLogEntry):
    entry_type: ClassVar[str] = "performance"

    metrics: PerformanceData
    url: str
    user_agent: str


@dataclass(frozen=True, kw_only=True)
class ErrorLogEntry(BaseLogEntry):
    entry_type: ClassVar[str] = "error"

    error: ErrorInfo
    context: dict[str, Any] | None = None
    url: str = "unknown"
    user_agent: str = "unknown"


@dataclass(frozen=True, kw_only=True)
class PageViewLogEntry(BaseLogEntry):
    entry_type: ClassVar[str] = "pageview"

    page: PageInfo
    session: SessionInfo
    user: UserInfo | None = None


@dataclass(frozen=True, kw_only=True)
class CustomLogEntry(BaseLogEntry):
    entry_type: ClassVar[str] = "custom"

    event: EventInfo
    context: dict[str, Any] | None = None


LogEntry = PerformanceLogEntry | ErrorLogEntry | PageViewLogEntry | CustomLogEntry


# --- Performance metrics ---


@dataclass(frozen=True)
class RawMetric:
    """A performance sample as reported by a web-vitals source."""

    name: str
    value: float
    rating: PerformanceRating | None = None
    delta: float | None = None
    id: str | None = None


@dataclass(frozen=True, kw_only=True)
class EnhancedMetric:
    """A raw sample annotated with time, page context and a rating."""

    name: str
    value: float
    rating: PerformanceRating
    timestamp: str
    url: str
    user_agent: str
    correlation_id: str
    delta: float | None = None
    id: str | None = None
    device_memory: float | None = None
    connection_type: str | None = None


@dataclass(frozen=True)
class BudgetViolation:
    metric: str
    value: float
    threshold: float
    severity: Literal["warning", "error"]
    timestamp: str
    url: str | None = None


# --- Alerts and errors ---


@dataclass(frozen=True, kw_only=True)
class PerformanceAlert:
    id: str
    timestamp: str
    correlation_id: str
    metric: str
    value: float
    threshold: float
    severity: AlertSeverity
    url: str
    user_agent: str
    context: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, kw_only=True)
class ErrorEvent:
    """An exception prepared for an external error-reporting service."""

    id: str
    timestamp: str
    correlation_id: str
    message: str
    level: ErrorLevel
    error: ErrorInfo
    url: str
    user_agent: str
    context: dict[str, Any] | None = None
    user: UserInfo | None = None
    tags: dict[str, str] | None = None
    fingerprint: tuple[str, ...] = ()


# --- Remote transmission ---


@dataclass(frozen=True, kw_only=True)
class RemoteLogEntry:
    id: str
    timestamp: str
    correlation_id: str
    level: LogLevel
    message: str
    type: str
    data: dict[str, Any]
    source: Literal["client", "server"]
    environment: str


@dataclass(frozen=True)
class BatchMetadata:
    source: str
    version: str
    environment: str


@dataclass(frozen=True)
class LogBatch:
    id: str
    timestamp: str
    entries: tuple[RemoteLogEntry, ...]
    metadata: BatchMetadata


@dataclass(frozen=True)
class RemoteLoggingResult:
    """Outcome of transmitting one batch, successful or not."""

    success: bool
    timestamp: str
    batch_id: str
    entries_count: int
    error: str | None = None


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"
