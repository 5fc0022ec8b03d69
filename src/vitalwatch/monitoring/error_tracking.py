"""Error tracking: fingerprinting, rate limiting and forwarding to a reporting client.

Nothing in this module raises into application code once the service is
initialized. Only configuration validation fails loudly.
"""

import logging
import os
import re
import uuid
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

from vitalwatch.core.clock import DEFAULT_CLOCK
from vitalwatch.core.correlation import current_or_new_correlation_id
from vitalwatch.core.errors import ConfigurationError
from vitalwatch.core.models import ErrorEvent, ErrorInfo, ErrorLevel, UserInfo
from vitalwatch.core.ports import Clock, ErrorReportingClient
from vitalwatch.core.sanitize import sanitize_context, sanitize_error
from vitalwatch.core.scheduling import PeriodicTask, fire_and_forget

logger = logging.getLogger(__name__)

ENVIRONMENTS = ("development", "staging", "production")

RATE_LIMITER_SWEEP_INTERVAL = 300.0

BeforeSend = Callable[[ErrorEvent], ErrorEvent | None]

_UUID_PATTERN = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE
)
_QUOTED_PATTERN = re.compile(r"\"[^\"]*\"|'[^']*'")
_DIGITS_PATTERN = re.compile(r"\d+")

# Python traceback frame: File "/app/handlers/orders.py", line 42, in create
_PY_FRAME_PATTERN = re.compile(r'File "(?P<path>[^"]+)", line (?P<line>\d+)')
# JS-style frame: at handler (https://host/static/app.js:42:13)
_JS_FRAME_PATTERN = re.compile(
    r"(?P<file>[^/\\\s(]+\.(?:js|ts|jsx|tsx|mjs)):(?P<line>\d+)"
)


@dataclass(frozen=True)
class ErrorTrackingConfig:
    """Error tracking options, handed to the reporting client on init.

    Attributes:
        dsn: Client DSN; must be https:// and contain "@" when enabled.
        before_send: Called with each event before it is sent; returning
            None drops the event.
    """

    enabled: bool = False
    dsn: str | None = None
    environment: str = "development"
    sample_rate: float = 1.0
    enable_auto_session_tracking: bool = True
    enable_performance_monitoring: bool = True
    max_breadcrumbs: int = 100
    before_send: BeforeSend | None = None


def validate_error_tracking_config(config: ErrorTrackingConfig) -> None:
    """Check an error tracking configuration.

    Raises:
        ConfigurationError: On a malformed DSN, an out-of-range sample rate,
            an unknown environment or a negative breadcrumb limit.
    """
    if config.enabled and config.dsn:
        if not config.dsn.startswith("https://") or "@" not in config.dsn:
            raise ConfigurationError("Invalid DSN format")
    if not 0 <= config.sample_rate <= 1:
        raise ConfigurationError("Sample rate must be between 0 and 1")
    if config.environment not in ENVIRONMENTS:
        raise ConfigurationError(
            "Environment must be development, staging, or production"
        )
    if config.max_breadcrumbs < 0:
        raise ConfigurationError("Max breadcrumbs must be positive")


def normalize_error_message(message: str) -> str:
    """Replace the variable parts of an error message with placeholders."""
    normalized = _UUID_PATTERN.sub("UUID", message)
    normalized = _QUOTED_PATTERN.sub("STRING", normalized)
    return _DIGITS_PATTERN.sub("N", normalized)


def _stack_location(stack: str) -> str | None:
    # Python lists the raising frame last, JS-style stacks list it first.
    python_frames = _PY_FRAME_PATTERN.findall(stack)
    if python_frames:
        path, line = python_frames[-1]
        return f"{os.path.basename(path)}:{line}"
    match = _JS_FRAME_PATTERN.search(stack)
    if match:
        return f"{match.group('file')}:{match.group('line')}"
    return None


def create_error_fingerprint(error: ErrorInfo) -> tuple[str, ...]:
    """Build a grouping key for similar errors.

    Returns:
        The error name, the normalized message and the "file:line" of the
        raising stack frame, each included only when available.
    """
    fingerprint: list[str] = []
    if error.name:
        fingerprint.append(error.name)
    if error.message:
        fingerprint.append(normalize_error_message(error.message))
    if error.stack:
        location = _stack_location(error.stack)
        if location:
            fingerprint.append(location)
    return tuple(fingerprint)


def create_error_event(
    error: object,
    *,
    url: str,
    user_agent: str,
    level: ErrorLevel = "error",
    context: dict[str, Any] | None = None,
    user: UserInfo | None = None,
    tags: dict[str, str] | None = None,
    clock: Clock | None = None,
) -> ErrorEvent:
    """Build a fingerprinted error event from an exception (or any object)."""
    info = sanitize_error(error)
    return ErrorEvent(
        id=str(uuid.uuid4()),
        timestamp=(clock or DEFAULT_CLOCK).iso_now(),
        correlation_id=current_or_new_correlation_id(),
        message=info.message,
        level=level,
        error=info,
        url=url,
        user_agent=user_agent,
        context=context,
        user=user,
        tags=tags,
        fingerprint=create_error_fingerprint(info),
    )


def sanitize_error_for_remote(event: ErrorEvent) -> ErrorEvent:
    """Return a copy of the event with its context sanitized."""
    if event.context is None:
        return event
    return replace(event, context=sanitize_context(event.context))


class ErrorRateLimiter:
    """Per-key limit of events within a rolling time window.

    Args:
        max_events: Events allowed per key within the window.
        window: Window length in seconds.
        clock: Time source.
    """

    def __init__(
        self,
        max_events: int = 5,
        window: float = 60.0,
        clock: Clock | None = None,
    ) -> None:
        self.max_events = max_events
        self.window = window
        self._clock = clock or DEFAULT_CLOCK
        self._events: dict[str, deque[float]] = {}

    def _prune(self, times: deque[float], now: float) -> None:
        while times and times[0] <= now - self.window:
            times.popleft()

    def should_allow(self, key: str) -> bool:
        """Record an event for key and return False if it is over the limit."""
        now = self._clock.now()
        times = self._events.setdefault(key, deque())
        self._prune(times, now)
        if len(times) >= self.max_events:
            return False
        times.append(now)
        return True

    def cleanup(self) -> None:
        """Forget keys with no events inside the window."""
        now = self._clock.now()
        for key in list(self._events):
            times = self._events[key]
            self._prune(times, now)
            if not times:
                del self._events[key]

    def __len__(self) -> int:
        return len(self._events)


class ErrorTrackingService:
    """Forwards error events to an external reporting client.

    Args:
        client: The reporting SDK adapter. Without one the service logs a
            warning on initialize() and stays inactive.
        clock: Time source for rate limiting and breadcrumbs.
    """

    def __init__(
        self,
        client: ErrorReportingClient | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._client = client
        self._clock = clock or DEFAULT_CLOCK
        self.config: ErrorTrackingConfig | None = None
        self._initialized = False
        self.rate_limiter = ErrorRateLimiter(clock=self._clock)
        self._sweep = PeriodicTask(
            self._sweep_rate_limiter,
            RATE_LIMITER_SWEEP_INTERVAL,
            "error-rate-limiter-sweep",
        )

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def _active_client(self) -> ErrorReportingClient | None:
        if self.config is None or not self.config.enabled or not self._initialized:
            return None
        return self._client

    async def _sweep_rate_limiter(self) -> None:
        self.rate_limiter.cleanup()

    async def initialize(self, config: ErrorTrackingConfig) -> None:
        """Validate config and initialize the reporting client.

        Raises:
            ConfigurationError: If config is invalid. Client failures are
                logged instead.
        """
        validate_error_tracking_config(config)
        self.config = config
        if not config.enabled:
            return

        if self._client is None:
            logger.warning(
                "Error tracking client not available - error tracking inactive"
            )
            return

        try:
            await self._client.init(
                {
                    "dsn": config.dsn,
                    "environment": config.environment,
                    "sample_rate": config.sample_rate,
                    "auto_session_tracking": config.enable_auto_session_tracking,
                    "integrations": (
                        ["performance"] if config.enable_performance_monitoring else []
                    ),
                    "max_breadcrumbs": config.max_breadcrumbs,
                }
            )
        except Exception:
            logger.exception("Failed to initialize error tracking service")
            return

        self._initialized = True
        self._sweep.start()

    async def capture_error(self, event: ErrorEvent) -> None:
        """Send an event unless it is rate limited or dropped by before_send."""
        client = self._active_client()
        if client is None:
            return
        try:
            key = "|".join(event.fingerprint) or event.message
            if not self.rate_limiter.should_allow(key):
                logger.debug("Error event rate limited: %s", key)
                return

            sanitized = sanitize_error_for_remote(event)
            before_send = self.config.before_send if self.config else None
            if before_send is not None:
                sanitized = before_send(sanitized)
                if sanitized is None:
                    return
            await client.capture_exception(sanitized)
        except Exception as exc:
            logger.warning("Failed to capture error: %s", exc)

    async def capture_message(
        self,
        message: str,
        level: ErrorLevel = "info",
        context: dict[str, Any] | None = None,
    ) -> None:
        client = self._active_client()
        if client is None:
            return
        try:
            await client.capture_message(
                message,
                level,
                {"extra": sanitize_context(context) if context is not None else None},
            )
        except Exception as exc:
            logger.warning("Failed to capture message: %s", exc)

    def set_user(self, user: UserInfo) -> None:
        client = self._active_client()
        if client is None:
            return
        try:
            client.set_user({"id": user.id, "segment": user.segment})
        except Exception as exc:
            logger.warning("Failed to set user context: %s", exc)

    def set_tags(self, tags: dict[str, str]) -> None:
        client = self._active_client()
        if client is None:
            return
        try:
            client.set_tags(dict(tags))
        except Exception as exc:
            logger.warning("Failed to set tags: %s", exc)

    def add_breadcrumb(
        self, message: str, category: str, data: dict[str, Any] | None = None
    ) -> None:
        client = self._active_client()
        if client is None:
            return
        try:
            client.add_breadcrumb(
                {
                    "message": message,
                    "category": category,
                    "data": sanitize_context(data) if data is not None else None,
                    "timestamp": self._clock.now(),
                }
            )
        except Exception as exc:
            logger.warning("Failed to add breadcrumb: %s", exc)

    async def flush(self) -> None:
        client = self._active_client()
        if client is None:
            return
        try:
            await client.flush()
        except Exception as exc:
            logger.warning("Failed to flush error tracking service: %s", exc)

    def destroy(self) -> None:
        """Stop the rate limiter sweep and make one last flush attempt."""
        self._sweep.stop()
        fire_and_forget(self.flush(), "Final error tracking flush")


def create_error_tracking_service(
    client: ErrorReportingClient | None = None, clock: Clock | None = None
) -> ErrorTrackingService:
    """Create a new error tracking service instance."""
    return ErrorTrackingService(client=client, clock=clock)
