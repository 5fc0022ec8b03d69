"""Remote log shipping: batching, retries with backoff and a circuit breaker.

Batches are cut from the buffer at flush time and the buffer is emptied
before transmission starts, so a batch is never sent twice by concurrent
flushes. A batch that still fails after every retry is dropped.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Literal
from urllib.parse import urlsplit

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from vitalwatch.core.clock import DEFAULT_CLOCK
from vitalwatch.core.encoding.ndjson import record_to_dict
from vitalwatch.core.errors import (
    CircuitOpenError,
    ConfigurationError,
    TransmissionError,
)
from vitalwatch.core.models import (
    BatchMetadata,
    CircuitState,
    CustomLogEntry,
    ErrorLogEntry,
    LogBatch,
    LogEntry,
    PageViewLogEntry,
    PerformanceLogEntry,
    RemoteLogEntry,
    RemoteLoggingResult,
)
from vitalwatch.core.ports import Clock, HttpClientPort
from vitalwatch.core.ring_buffer import RingBuffer
from vitalwatch.core.sanitize import sanitize_context
from vitalwatch.core.scheduling import PeriodicTask, fire_and_forget
from vitalwatch.monitoring.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerMetrics,
)

logger = logging.getLogger(__name__)

# Entries kept while the endpoint is unreachable; oldest are evicted first.
MAX_BUFFERED_ENTRIES = 1000

Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RemoteLoggingConfig:
    """Remote logging options.

    Attributes:
        endpoint: URL batches are POSTed to.
        api_key: Sent as a bearer token.
        batch_size: Buffered entries that trigger an immediate flush.
        flush_interval: Seconds between automatic flushes.
        max_retries: Retries after the first failed attempt.
        retry_backoff: Seconds before the first retry, doubled per retry.
        environment: Reported environment; derived from the endpoint if None.
        source: Whether entries originate on the client or the server.
        service_name: Reported as the batch source.
        service_version: Reported as the batch version.
    """

    enabled: bool = False
    endpoint: str | None = None
    api_key: str | None = None
    batch_size: int = 50
    flush_interval: float = 30.0
    max_retries: int = 3
    retry_backoff: float = 1.0
    environment: str | None = None
    source: Literal["client", "server"] = "client"
    service_name: str = "vitalwatch"
    service_version: str = "1.0.0"

    def resolved_environment(self) -> str:
        if self.environment:
            return self.environment
        if self.endpoint and "localhost" in self.endpoint:
            return "development"
        return "production"


def validate_remote_logging_config(config: RemoteLoggingConfig) -> None:
    """Check a remote logging configuration.

    Raises:
        ConfigurationError: If an enabled config lacks an endpoint or API key,
            the endpoint is not an absolute URL, or a numeric knob is out of
            range.
    """
    if config.enabled:
        if not config.endpoint:
            raise ConfigurationError(
                "Endpoint is required when remote logging is enabled"
            )
        if not config.api_key:
            raise ConfigurationError(
                "API key is required when remote logging is enabled"
            )
        parts = urlsplit(config.endpoint)
        if not parts.scheme or not parts.netloc:
            raise ConfigurationError("Invalid endpoint URL format")

    if config.batch_size <= 0:
        raise ConfigurationError("Batch size must be positive")
    if config.flush_interval < 0.1:
        raise ConfigurationError("Flush interval must be at least 0.1 seconds")
    if config.max_retries < 0:
        raise ConfigurationError("Max retries must be non-negative")
    if config.retry_backoff <= 0:
        raise ConfigurationError("Retry backoff must be positive")


def _entry_data(entry: LogEntry) -> dict[str, Any]:
    if isinstance(entry, PerformanceLogEntry):
        return {
            "metrics": record_to_dict(entry.metrics),
            "url": entry.url,
            "user_agent": entry.user_agent,
        }
    if isinstance(entry, ErrorLogEntry):
        return {
            "error": record_to_dict(entry.error),
            "context": entry.context,
            "url": entry.url,
            "user_agent": entry.user_agent,
        }
    if isinstance(entry, PageViewLogEntry):
        return {
            "page": record_to_dict(entry.page),
            "session": record_to_dict(entry.session),
            "user": record_to_dict(entry.user) if entry.user else None,
        }
    if isinstance(entry, CustomLogEntry):
        return {"event": record_to_dict(entry.event), "context": entry.context}
    return {}


def create_remote_log_entry(
    entry: LogEntry, source: Literal["client", "server"], environment: str
) -> RemoteLogEntry:
    """Reshape a structured log entry for transmission, sanitizing its payload."""
    return RemoteLogEntry(
        id=str(uuid.uuid4()),
        timestamp=entry.timestamp,
        correlation_id=entry.correlation_id,
        level=entry.level,
        message=entry.message,
        type=entry.entry_type,
        data=sanitize_context(_entry_data(entry)),
        source=source,
        environment=environment,
    )


def create_log_batch(
    entries: Sequence[RemoteLogEntry],
    metadata: BatchMetadata,
    clock: Clock | None = None,
) -> LogBatch:
    return LogBatch(
        id=str(uuid.uuid4()),
        timestamp=(clock or DEFAULT_CLOCK).iso_now(),
        entries=tuple(entries),
        metadata=metadata,
    )


@dataclass
class TransmissionMetrics:
    total_batches: int = 0
    total_entries: int = 0
    successful_transmissions: int = 0
    failed_transmissions: int = 0
    last_transmission_time: float | None = None
    average_batch_size: float = 0.0


class RemoteLogger:
    """Batches log entries and ships them to a remote endpoint.

    Args:
        http_client: Outbound HTTP client. Without one the logger warns on
            initialize() and stays inactive.
        clock: Time source for batch timestamps and the circuit breaker.
        circuit_breaker_config: Breaker thresholds and timeouts.
        sleep: Awaited between retries.
    """

    def __init__(
        self,
        http_client: HttpClientPort | None = None,
        clock: Clock | None = None,
        circuit_breaker_config: CircuitBreakerConfig | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._http = http_client
        self._clock = clock or DEFAULT_CLOCK
        self._sleep = sleep
        self.circuit_breaker = CircuitBreaker(circuit_breaker_config, clock=self._clock)
        self.config: RemoteLoggingConfig | None = None
        self._initialized = False
        self._buffer: RingBuffer[RemoteLogEntry] = RingBuffer(MAX_BUFFERED_ENTRIES)
        self._metrics = TransmissionMetrics()
        self._flush_timer: PeriodicTask | None = None

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def circuit_state(self) -> CircuitState:
        return self.circuit_breaker.state

    @property
    def buffered_count(self) -> int:
        return len(self._buffer)

    async def initialize(self, config: RemoteLoggingConfig) -> None:
        """Validate config and start the auto-flush timer.

        Raises:
            ConfigurationError: If config is invalid.
        """
        validate_remote_logging_config(config)
        self.config = config
        if not config.enabled:
            return

        if self._http is None:
            logger.warning("HTTP client not available - remote logging inactive")
            return

        self._buffer = RingBuffer(max(config.batch_size, MAX_BUFFERED_ENTRIES))
        self._initialized = True
        self._flush_timer = PeriodicTask(
            self.flush, config.flush_interval, "remote-logger-flush"
        )
        self._flush_timer.start()

    def _active_config(self) -> RemoteLoggingConfig | None:
        if self.config is None or not self.config.enabled or not self._initialized:
            return None
        return self.config

    async def send_log_entry(self, entry: LogEntry) -> None:
        """Buffer an entry, flushing once a full batch is buffered."""
        config = self._active_config()
        if config is None:
            return
        try:
            remote = create_remote_log_entry(
                entry, config.source, config.resolved_environment()
            )
            self._buffer.append(remote)
            if self._flush_timer is not None:
                self._flush_timer.start()
            if len(self._buffer) >= config.batch_size:
                await self.flush()
        except Exception as exc:
            logger.warning("Failed to send log entry: %s", exc)

    async def flush(self) -> RemoteLoggingResult | None:
        """Transmit everything buffered as one batch.

        Returns:
            The transmission result, or None when there was nothing to send.
        """
        config = self._active_config()
        if config is None or not len(self._buffer):
            return None

        entries = self._buffer.drain()
        batch = create_log_batch(
            entries,
            BatchMetadata(
                source=config.service_name,
                version=config.service_version,
                environment=config.resolved_environment(),
            ),
            self._clock,
        )

        result = await self._send_with_retry(batch, config)
        if result.success:
            self._metrics.total_batches += 1
            self._metrics.total_entries += result.entries_count
            self._metrics.successful_transmissions += 1
            self._metrics.last_transmission_time = self._clock.now()
            self._metrics.average_batch_size = (
                self._metrics.total_entries / self._metrics.total_batches
            )
        else:
            self._metrics.failed_transmissions += 1
            logger.warning(
                "Failed to transmit log batch %s (%d entries dropped): %s",
                batch.id,
                result.entries_count,
                result.error,
            )
        return result

    async def _post(self, batch: LogBatch, config: RemoteLoggingConfig) -> None:
        if self._http is None or config.endpoint is None:
            raise RuntimeError("Remote logger not properly initialized")
        response = await self._http.post(
            config.endpoint,
            record_to_dict(batch),
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {config.api_key}",
            },
        )
        if not response.ok:
            raise TransmissionError(response.status, response.status_text)

    async def _send_with_retry(
        self, batch: LogBatch, config: RemoteLoggingConfig
    ) -> RemoteLoggingResult:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(config.max_retries + 1),
            wait=wait_exponential(multiplier=config.retry_backoff),
            retry=retry_if_not_exception_type(CircuitOpenError),
            sleep=self._sleep,
            before_sleep=before_sleep_log(logger, logging.DEBUG),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    await self.circuit_breaker.call(lambda: self._post(batch, config))
        except Exception as exc:
            return RemoteLoggingResult(
                success=False,
                timestamp=self._clock.iso_now(),
                batch_id=batch.id,
                entries_count=len(batch.entries),
                error=str(exc) or type(exc).__name__,
            )

        return RemoteLoggingResult(
            success=True,
            timestamp=self._clock.iso_now(),
            batch_id=batch.id,
            entries_count=len(batch.entries),
        )

    def get_transmission_metrics(self) -> TransmissionMetrics:
        return TransmissionMetrics(**record_to_dict(self._metrics))

    def get_circuit_metrics(self) -> CircuitBreakerMetrics:
        return self.circuit_breaker.get_metrics()

    def destroy(self) -> None:
        """Stop the flush timer and make one last flush attempt."""
        if self._flush_timer is not None:
            self._flush_timer.stop()
        fire_and_forget(self.flush(), "Final remote log flush")


def create_remote_logger(
    http_client: HttpClientPort | None = None,
    clock: Clock | None = None,
    circuit_breaker_config: CircuitBreakerConfig | None = None,
) -> RemoteLogger:
    """Create a new remote logger instance."""
    return RemoteLogger(
        http_client=http_client,
        clock=clock,
        circuit_breaker_config=circuit_breaker_config,
    )
