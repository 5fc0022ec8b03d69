"""Structured logger producing sanitized, JSON-serializable log entries."""

import inspect
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from typing import Any

from vitalwatch.core.clock import DEFAULT_CLOCK, DEFAULT_HOST, HostEnvironment
from vitalwatch.core.correlation import current_or_new_correlation_id
from vitalwatch.core.encoding.ndjson import format_log_entry
from vitalwatch.core.models import (
    LOG_LEVELS,
    CustomLogEntry,
    ErrorLogEntry,
    EventInfo,
    LogEntry,
    LogLevel,
    PageInfo,
    PageViewLogEntry,
    PerformanceData,
    PerformanceLogEntry,
    SessionInfo,
    UserInfo,
)
from vitalwatch.core.ports import Clock, LogStoragePort
from vitalwatch.core.ring_buffer import RingBuffer
from vitalwatch.core.sanitize import sanitize_context, sanitize_error
from vitalwatch.core.scheduling import (
    PeriodicTask,
    fire_and_forget,
    schedule_background,
)

logger = logging.getLogger(__name__)

console_logger = logging.getLogger("vitalwatch.console")

_CONSOLE_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

_LEVEL_CATEGORIES: dict[str, str] = {
    "debug": "debugging",
    "info": "information",
    "warn": "warning",
}

RemoteHook = Callable[[LogEntry], Any]


@dataclass(frozen=True)
class LoggerConfig:
    """Structured logger options.

    Attributes:
        min_level: Entries below this level are dropped.
        enable_console: Write every entry as a JSON line to stdlib logging.
        enable_remote: Hand every entry to the remote hook, when installed.
        max_entries: Capacity of the in-memory entry buffer.
        flush_interval: Seconds between automatic flushes.
    """

    min_level: LogLevel = "info"
    enable_console: bool = True
    enable_remote: bool = False
    max_entries: int = 1000
    flush_interval: float = 30.0


DEFAULT_LOGGER_CONFIG = LoggerConfig()


def normalize_logger_config(config: LoggerConfig | None = None) -> LoggerConfig:
    """Replace out-of-range options with their defaults."""
    normalized = config or DEFAULT_LOGGER_CONFIG
    if normalized.min_level not in LOG_LEVELS:
        normalized = replace(normalized, min_level=DEFAULT_LOGGER_CONFIG.min_level)
    if normalized.max_entries < 1:
        normalized = replace(normalized, max_entries=DEFAULT_LOGGER_CONFIG.max_entries)
    if normalized.flush_interval < 0.1:
        normalized = replace(
            normalized, flush_interval=DEFAULT_LOGGER_CONFIG.flush_interval
        )
    return normalized


def should_log(level: str, min_level: str) -> bool:
    return LOG_LEVELS[level] >= LOG_LEVELS[min_level]


class StructuredLogger:
    """Leveled logger that builds immutable, sanitized log entries.

    Entries are buffered (oldest evicted first), echoed to the console sink,
    optionally handed to a remote hook, and written to storage sinks on
    flush().

    Example:
        ```python
        from vitalwatch import StructuredLogger, InMemoryLogStorage

        log = StructuredLogger(sinks=[InMemoryLogStorage()])
        log.info("checkout started", {"cart_items": 3})
        await log.flush()
        ```
    """

    def __init__(
        self,
        config: LoggerConfig | None = None,
        *,
        sinks: Sequence[LogStoragePort] = (),
        clock: Clock | None = None,
        host: HostEnvironment | None = None,
    ) -> None:
        self.config = normalize_logger_config(config)
        self._sinks = list(sinks)
        self._clock = clock or DEFAULT_CLOCK
        self._host = host or DEFAULT_HOST
        self._entries: RingBuffer[LogEntry] = RingBuffer(self.config.max_entries)
        self._remote_hook: RemoteHook | None = None
        self._flush_timer = PeriodicTask(
            self.flush, self.config.flush_interval, "structured-logger-flush"
        )
        self._destroyed = False
        self._warned_no_loop = False
        self._flush_timer.start()

    def set_remote_hook(self, hook: RemoteHook | None) -> None:
        """Install the callable that receives entries when remote is enabled."""
        self._remote_hook = hook

    def _base_fields(self, level: LogLevel, message: object) -> dict[str, Any]:
        return {
            "timestamp": self._clock.iso_now(),
            "level": level,
            "message": message if isinstance(message, str) else str(message),
            "correlation_id": current_or_new_correlation_id(),
        }

    def _log(
        self,
        level: LogLevel,
        message: object,
        build: Callable[[dict[str, Any]], LogEntry],
    ) -> None:
        if not should_log(level, self.config.min_level):
            return
        if not self._destroyed:
            self._flush_timer.start()

        entry = build(self._base_fields(level, message))
        self._entries.append(entry)

        if self.config.enable_console:
            console_logger.log(_CONSOLE_LEVELS[entry.level], format_log_entry(entry))

        if self.config.enable_remote and self._remote_hook is not None:
            self._send_remote(entry)

    def _send_remote(self, entry: LogEntry) -> None:
        try:
            result = self._remote_hook(entry) if self._remote_hook else None
        except Exception as exc:
            logger.warning("Remote log hook failed: %s", exc)
            return
        if not inspect.iscoroutine(result):
            return
        if schedule_background(result, "Remote log delivery") is None:
            if not self._warned_no_loop:
                self._warned_no_loop = True
                logger.warning(
                    "No running event loop - remote log delivery skipped"
                )

    def _custom(
        self, level: LogLevel, message: str, context: dict[str, Any] | None
    ) -> None:
        sanitized = sanitize_context(context) if context is not None else None

        def build(base: dict[str, Any]) -> LogEntry:
            return CustomLogEntry(
                **base,
                event=EventInfo(
                    name=f"{level}_log",
                    category=_LEVEL_CATEGORIES[level],
                    properties=sanitized,
                ),
                context=sanitized,
            )

        self._log(level, message, build)

    def debug(self, message: str, context: dict[str, Any] | None = None) -> None:
        self._custom("debug", message, context)

    def info(self, message: str, context: dict[str, Any] | None = None) -> None:
        self._custom("info", message, context)

    def warn(self, message: str, context: dict[str, Any] | None = None) -> None:
        self._custom("warn", message, context)

    warning = warn

    def error(
        self,
        message: str,
        error: object = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Log an error with a sanitized exception and context."""

        def build(base: dict[str, Any]) -> LogEntry:
            return ErrorLogEntry(
                **base,
                error=sanitize_error(error),
                context=sanitize_context(context) if context is not None else None,
                url=self._host.url,
                user_agent=self._host.user_agent,
            )

        self._log("error", message, build)

    def log_performance(
        self,
        message: str,
        metrics: PerformanceData,
        url: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        self._log(
            "info",
            message,
            lambda base: PerformanceLogEntry(
                **base,
                metrics=metrics,
                url=url or self._host.url,
                user_agent=user_agent or self._host.user_agent,
            ),
        )

    def log_page_view(
        self,
        message: str,
        page: PageInfo,
        session: SessionInfo,
        user: UserInfo | None = None,
    ) -> None:
        self._log(
            "info",
            message,
            lambda base: PageViewLogEntry(
                **base, page=page, session=session, user=user
            ),
        )

    def log_custom_event(self, message: str, event: EventInfo) -> None:
        if event.properties is not None:
            event = replace(event, properties=sanitize_context(event.properties))
        self._log(
            "info",
            message,
            lambda base: CustomLogEntry(**base, event=event),
        )

    def get_entries(self) -> tuple[LogEntry, ...]:
        """Return the buffered entries, oldest first."""
        return self._entries.snapshot()

    async def flush(self) -> None:
        """Write buffered entries to storage sinks, then clear the buffer.

        Entries are taken out of the buffer before writing, so each one
        reaches a sink at most once. Sink failures are logged and never
        raised.
        """
        entries = self._entries.snapshot()
        self._entries.discard(entries)
        for sink in self._sinks:
            try:
                for entry in entries:
                    await sink.write(entry)
            except Exception:
                logger.exception("Log flush to %s failed", type(sink).__name__)

    def destroy(self) -> None:
        """Stop the flush timer and make one last flush attempt."""
        self._destroyed = True
        self._flush_timer.stop()
        fire_and_forget(self.flush(), "Final log flush")


def create_logger(
    config: LoggerConfig | None = None, **kwargs: Any
) -> StructuredLogger:
    """Create a new structured logger instance."""
    return StructuredLogger(config, **kwargs)
