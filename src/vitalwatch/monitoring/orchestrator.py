"""Process-wide wiring of error tracking, performance alerting and remote logging.

Example:
    ```python
    from vitalwatch import HttpxClient, Monitoring, PerformanceAlerter, RemoteLogger

    http = HttpxClient()
    monitoring = Monitoring(
        alerter=PerformanceAlerter(http_client=http),
        remote_logger=RemoteLogger(http_client=http),
    )
    await monitoring.initialize()
    monitoring.attach_logger(structured_logger)
    monitoring.attach_performance_monitor(performance_monitor)
    ```
"""

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from vitalwatch.core.clock import DEFAULT_CLOCK, DEFAULT_HOST, HostEnvironment
from vitalwatch.core.errors import ConfigurationError
from vitalwatch.core.logger import StructuredLogger
from vitalwatch.core.models import EnhancedMetric, ErrorLevel, LogEntry, UserInfo
from vitalwatch.core.ports import Clock
from vitalwatch.core.scheduling import fire_and_forget
from vitalwatch.monitoring.alerts import PerformanceAlerter
from vitalwatch.monitoring.config import (
    MonitoringConfig,
    apply_overrides,
    deployment_mode,
    log_monitoring_config,
    validate_environment_config,
)
from vitalwatch.monitoring.error_tracking import (
    ErrorTrackingService,
    create_error_event,
)
from vitalwatch.monitoring.remote_logging import RemoteLogger
from vitalwatch.performance.monitor import PerformanceMonitor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubsystemStatus:
    initialized: bool = False
    enabled: bool = False


@dataclass(frozen=True)
class MonitoringStatus:
    error_tracking: SubsystemStatus = field(default_factory=SubsystemStatus)
    performance_alerts: SubsystemStatus = field(default_factory=SubsystemStatus)
    remote_logging: SubsystemStatus = field(default_factory=SubsystemStatus)
    configuration_valid: bool = False
    last_initialized: str | None = None


class Monitoring:
    """Owns the monitoring subsystems and their shared lifecycle.

    Args:
        error_tracking: Error tracking service; a client-less one if omitted.
        alerter: Performance alerter; a channel-less one if omitted.
        remote_logger: Remote logger; a client-less one if omitted.
        environ: Environment variables; os.environ if omitted.
        clock: Time source for status timestamps.
        host: Default URL and user agent for captured errors.
    """

    def __init__(
        self,
        error_tracking: ErrorTrackingService | None = None,
        alerter: PerformanceAlerter | None = None,
        remote_logger: RemoteLogger | None = None,
        environ: Mapping[str, str] | None = None,
        clock: Clock | None = None,
        host: HostEnvironment | None = None,
    ) -> None:
        self._clock = clock or DEFAULT_CLOCK
        self._host = host or DEFAULT_HOST
        self.error_tracking = error_tracking or ErrorTrackingService(clock=self._clock)
        self.alerter = alerter or PerformanceAlerter(clock=self._clock)
        self.remote_logger = remote_logger or RemoteLogger(clock=self._clock)
        self._environ = environ
        self._status = MonitoringStatus()
        self.config: MonitoringConfig | None = None
        self._detachers: list[Callable[[], None]] = []

    @property
    def environ(self) -> Mapping[str, str]:
        return os.environ if self._environ is None else self._environ

    async def initialize(
        self, overrides: Mapping[str, Mapping[str, Any]] | None = None
    ) -> MonitoringStatus:
        """Resolve configuration and start every enabled subsystem in parallel.

        Args:
            overrides: Per-section field overrides, see apply_overrides().

        Returns:
            The resulting status.

        Raises:
            ConfigurationError: In production, when the environment
                configuration is invalid. Subsystem failures are logged and
                reflected in the status instead.
        """
        environ = self.environ
        mode = deployment_mode(environ)
        config = apply_overrides(MonitoringConfig.from_env(environ), overrides)
        validation = validate_environment_config(environ)

        if mode == "development":
            log_monitoring_config(config, validation)

        if not validation.is_valid and mode == "production":
            logger.error(
                "Monitoring configuration validation failed: %s",
                "; ".join(validation.errors),
            )
            raise ConfigurationError("Invalid monitoring configuration")

        self.config = config
        subsystems: list[tuple[str, Awaitable[None], Callable[[], bool]]] = []
        if config.error_tracking.enabled:
            subsystems.append(
                (
                    "error_tracking",
                    self.error_tracking.initialize(config.error_tracking),
                    lambda: self.error_tracking.is_initialized,
                )
            )
        if config.performance_alerts.enabled:
            subsystems.append(
                (
                    "performance_alerts",
                    self.alerter.initialize(config.performance_alerts),
                    lambda: self.alerter.is_initialized,
                )
            )
        if config.remote_logging.enabled:
            subsystems.append(
                (
                    "remote_logging",
                    self.remote_logger.initialize(config.remote_logging),
                    lambda: self.remote_logger.is_initialized,
                )
            )

        results = await asyncio.gather(
            *(start for _, start, _ in subsystems), return_exceptions=True
        )

        statuses: dict[str, SubsystemStatus] = {}
        for (name, _, is_initialized), result in zip(subsystems, results):
            if isinstance(result, BaseException):
                logger.error("Failed to initialize %s: %s", name, result)
                statuses[name] = SubsystemStatus()
                continue
            initialized = is_initialized()
            statuses[name] = SubsystemStatus(
                initialized=initialized, enabled=initialized
            )

        self._status = MonitoringStatus(
            error_tracking=statuses.get("error_tracking", SubsystemStatus()),
            performance_alerts=statuses.get("performance_alerts", SubsystemStatus()),
            remote_logging=statuses.get("remote_logging", SubsystemStatus()),
            configuration_valid=validation.is_valid,
            last_initialized=self._clock.iso_now(),
        )
        logger.info(
            "Monitoring services initialized: error_tracking=%s "
            "performance_alerts=%s remote_logging=%s",
            self._status.error_tracking.enabled,
            self._status.performance_alerts.enabled,
            self._status.remote_logging.enabled,
        )
        return self._status

    def get_status(self) -> MonitoringStatus:
        return self._status

    def is_initialized(self) -> bool:
        """True if at least one subsystem is running."""
        return (
            self._status.error_tracking.initialized
            or self._status.performance_alerts.initialized
            or self._status.remote_logging.initialized
        )

    async def flush(self) -> None:
        """Flush every initialized subsystem, logging any failure."""
        flushes: list[tuple[str, Awaitable[Any]]] = []
        if self._status.error_tracking.initialized:
            flushes.append(("error_tracking", self.error_tracking.flush()))
        if self._status.performance_alerts.initialized:
            flushes.append(("performance_alerts", self.alerter.flush()))
        if self._status.remote_logging.initialized:
            flushes.append(("remote_logging", self.remote_logger.flush()))

        results = await asyncio.gather(
            *(flush for _, flush in flushes), return_exceptions=True
        )
        for (name, _), result in zip(flushes, results):
            if isinstance(result, BaseException):
                logger.warning("Failed to flush %s: %s", name, result)

    async def capture_error(
        self,
        error: object,
        *,
        level: ErrorLevel = "error",
        url: str | None = None,
        user_agent: str | None = None,
        user: UserInfo | None = None,
        tags: dict[str, str] | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        """Build an error event and forward it to error tracking."""
        if not self._status.error_tracking.initialized:
            return
        try:
            event = create_error_event(
                error,
                url=url or self._host.url,
                user_agent=user_agent or self._host.user_agent,
                level=level,
                context=extra,
                user=user,
                tags=tags,
                clock=self._clock,
            )
            await self.error_tracking.capture_error(event)
        except Exception as exc:
            logger.warning("Failed to capture error: %s", exc)

    async def process_performance_metric(self, metric: EnhancedMetric) -> None:
        if not self._status.performance_alerts.initialized:
            return
        try:
            await self.alerter.process_metric(metric)
        except Exception as exc:
            logger.warning("Failed to process performance metric: %s", exc)

    async def send_log_entry(self, entry: LogEntry) -> None:
        if not self._status.remote_logging.initialized:
            return
        try:
            await self.remote_logger.send_log_entry(entry)
        except Exception as exc:
            logger.warning("Failed to send log entry: %s", exc)

    def attach_logger(self, structured_logger: StructuredLogger) -> Callable[[], None]:
        """Route a structured logger's entries to remote logging.

        Entries are only forwarded when the logger's config enables remote
        delivery.

        Returns:
            A callable that removes the routing.
        """
        structured_logger.set_remote_hook(self.send_log_entry)

        def detach() -> None:
            structured_logger.set_remote_hook(None)

        self._detachers.append(detach)
        return detach

    def attach_performance_monitor(
        self, monitor: PerformanceMonitor
    ) -> Callable[[], None]:
        """Evaluate every metric the monitor collects for alerting.

        Returns:
            A callable that removes the routing.
        """

        def evaluate(metric: EnhancedMetric) -> None:
            fire_and_forget(
                self.process_performance_metric(metric), "Performance alert evaluation"
            )

        detach = monitor.on_metric(evaluate)
        self._detachers.append(detach)
        return detach

    def destroy(self) -> None:
        """Detach integrations and destroy every subsystem."""
        for detach in self._detachers:
            detach()
        self._detachers.clear()
        self.error_tracking.destroy()
        self.alerter.destroy()
        self.remote_logger.destroy()
        self._status = MonitoringStatus(
            configuration_valid=self._status.configuration_valid,
            last_initialized=self._status.last_initialized,
        )
