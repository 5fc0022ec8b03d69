"""Performance alerting: thresholds, cooldowns, hourly caps and delivery channels."""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from vitalwatch.core.clock import DEFAULT_CLOCK
from vitalwatch.core.correlation import current_or_new_correlation_id
from vitalwatch.core.encoding.ndjson import record_to_dict
from vitalwatch.core.errors import (
    AlertCreationError,
    ConfigurationError,
    TransmissionError,
)
from vitalwatch.core.models import AlertSeverity, EnhancedMetric, PerformanceAlert
from vitalwatch.core.ports import AlertChannel, Clock, HttpClientPort
from vitalwatch.core.scheduling import PeriodicTask, fire_and_forget

logger = logging.getLogger(__name__)

HOUR = 3600.0
DAY = 24 * HOUR
STATE_SWEEP_INTERVAL = 300.0


@dataclass(frozen=True)
class AlertThreshold:
    warning: float
    error: float


DEFAULT_ALERT_THRESHOLDS: Mapping[str, AlertThreshold] = MappingProxyType(
    {
        "LCP": AlertThreshold(warning=2500, error=4000),
        "FID": AlertThreshold(warning=100, error=300),
        "CLS": AlertThreshold(warning=0.1, error=0.25),
        "FCP": AlertThreshold(warning=1800, error=3000),
        "INP": AlertThreshold(warning=200, error=500),
        "TTFB": AlertThreshold(warning=800, error=1800),
    }
)


@dataclass(frozen=True)
class PerformanceAlertConfig:
    """Alerting options.

    Attributes:
        thresholds: Per-metric warning/error levels, keyed by metric name.
        cooldown_minutes: Minimum minutes between two alerts for one metric.
        max_alerts_per_hour: Cap on alerts within any rolling hour.
    """

    enabled: bool = False
    thresholds: Mapping[str, AlertThreshold] = field(
        default_factory=lambda: DEFAULT_ALERT_THRESHOLDS
    )
    cooldown_minutes: float = 15
    max_alerts_per_hour: int = 10
    enable_slack: bool = False
    enable_email: bool = False
    enable_webhook: bool = False
    slack_webhook_url: str | None = None
    email_endpoint: str | None = None
    webhook_url: str | None = None


def validate_performance_alert_config(config: PerformanceAlertConfig) -> None:
    """Check an alerting configuration.

    Raises:
        ConfigurationError: If alerting is enabled without a delivery method,
            a threshold pair is invalid, or a rate knob is out of range.
    """
    if config.enabled and not (
        config.enable_slack or config.enable_email or config.enable_webhook
    ):
        raise ConfigurationError(
            "At least one delivery method must be enabled when alerting is enabled"
        )

    for metric, threshold in config.thresholds.items():
        if threshold.warning >= threshold.error:
            raise ConfigurationError(
                f"Warning threshold must be less than error threshold for {metric}"
            )
        if threshold.warning < 0 or threshold.error < 0:
            raise ConfigurationError(f"Thresholds must be positive for {metric}")

    if config.cooldown_minutes <= 0:
        raise ConfigurationError("Cooldown period must be positive")
    if config.max_alerts_per_hour < 1:
        raise ConfigurationError("Max alerts per hour must be at least 1")


def calculate_alert_severity(
    name: str, value: float, thresholds: Mapping[str, AlertThreshold]
) -> AlertSeverity | None:
    """Severity of a metric value, or None when no alert is warranted.

    Values at or above twice the error threshold are critical.
    """
    threshold = thresholds.get(name)
    if threshold is None or value < threshold.warning:
        return None
    if value >= threshold.error * 2:
        return "critical"
    if value >= threshold.error:
        return "error"
    return "warning"


def should_trigger_alert(
    metric: EnhancedMetric,
    config: PerformanceAlertConfig,
    cooldown_state: Mapping[str, float],
    hourly_count: int,
    now: float,
) -> bool:
    """Decide whether a metric should produce an alert.

    Args:
        metric: The incoming metric.
        config: Alerting options.
        cooldown_state: Time of the last alert per metric name.
        hourly_count: Alerts created within the last hour.
        now: Current Unix timestamp in seconds.
    """
    if not config.enabled:
        return False
    if calculate_alert_severity(metric.name, metric.value, config.thresholds) is None:
        return False

    last_alert = cooldown_state.get(metric.name)
    if last_alert is not None and now - last_alert < config.cooldown_minutes * 60:
        return False

    return hourly_count < config.max_alerts_per_hour


def create_performance_alert(
    metric: EnhancedMetric,
    thresholds: Mapping[str, AlertThreshold],
    clock: Clock | None = None,
) -> PerformanceAlert:
    """Build an alert for a metric.

    Raises:
        AlertCreationError: If the metric has no threshold or is below it.
    """
    severity = calculate_alert_severity(metric.name, metric.value, thresholds)
    threshold = thresholds.get(metric.name)
    if severity is None or threshold is None:
        raise AlertCreationError(f"Cannot create alert for metric {metric.name}")

    return PerformanceAlert(
        id=str(uuid.uuid4()),
        timestamp=(clock or DEFAULT_CLOCK).iso_now(),
        correlation_id=metric.correlation_id or current_or_new_correlation_id(),
        metric=metric.name,
        value=metric.value,
        threshold=threshold.warning if severity == "warning" else threshold.error,
        severity=severity,
        url=metric.url,
        user_agent=metric.user_agent,
        context={
            "rating": metric.rating,
            "delta": metric.delta,
            "metric_id": metric.id,
            "metric_timestamp": metric.timestamp,
        },
    )


def _alert_summary(alert: PerformanceAlert) -> str:
    return (
        f"[{alert.severity.upper()}] {alert.metric} is {alert.value:g} "
        f"(threshold {alert.threshold:g}) on {alert.url}"
    )


_SLACK_COLORS: dict[str, str] = {
    "warning": "#f2c744",
    "error": "#e8833a",
    "critical": "#d92b2b",
}


class _HttpAlertChannel(ABC):
    """Base for channels that POST a JSON payload to a URL."""

    name = "http"

    def __init__(self, url: str, http_client: HttpClientPort) -> None:
        self.url = url
        self._http = http_client

    @abstractmethod
    def payload(self, alert: PerformanceAlert) -> dict[str, Any]:
        """Build the request body for one alert."""

    async def deliver(self, alert: PerformanceAlert) -> None:
        response = await self._http.post(self.url, self.payload(alert))
        if not response.ok:
            raise TransmissionError(response.status, response.status_text)


class SlackAlertChannel(_HttpAlertChannel):
    """Posts alerts to a Slack incoming webhook."""

    name = "slack"

    def payload(self, alert: PerformanceAlert) -> dict[str, Any]:
        return {
            "text": _alert_summary(alert),
            "attachments": [
                {
                    "color": _SLACK_COLORS[alert.severity],
                    "fields": [
                        {"title": "Metric", "value": alert.metric, "short": True},
                        {"title": "Value", "value": f"{alert.value:g}", "short": True},
                        {"title": "Severity", "value": alert.severity, "short": True},
                        {
                            "title": "Correlation ID",
                            "value": alert.correlation_id,
                            "short": False,
                        },
                    ],
                    "ts": alert.timestamp,
                }
            ],
        }


class EmailAlertChannel(_HttpAlertChannel):
    """Posts alerts to an HTTP email relay endpoint."""

    name = "email"

    def payload(self, alert: PerformanceAlert) -> dict[str, Any]:
        return {
            "subject": f"Performance alert: {alert.metric} ({alert.severity})",
            "body": _alert_summary(alert),
            "alert": record_to_dict(alert),
        }


class WebhookAlertChannel(_HttpAlertChannel):
    """Posts the raw alert record to a generic webhook."""

    name = "webhook"

    def payload(self, alert: PerformanceAlert) -> dict[str, Any]:
        return {"type": "performance_alert", "alert": record_to_dict(alert)}


def build_alert_channels(
    config: PerformanceAlertConfig, http_client: HttpClientPort
) -> list[AlertChannel]:
    """Create the channels that are both enabled and have a target URL."""
    channels: list[AlertChannel] = []
    if config.enable_slack and config.slack_webhook_url:
        channels.append(SlackAlertChannel(config.slack_webhook_url, http_client))
    if config.enable_email and config.email_endpoint:
        channels.append(EmailAlertChannel(config.email_endpoint, http_client))
    if config.enable_webhook and config.webhook_url:
        channels.append(WebhookAlertChannel(config.webhook_url, http_client))
    return channels


@dataclass
class AlerterMetrics:
    total_alerts: int = 0
    alerts_by_metric: dict[str, int] = field(default_factory=dict)
    alerts_by_severity: dict[str, int] = field(
        default_factory=lambda: {"warning": 0, "error": 0, "critical": 0}
    )
    delivery_failures: int = 0
    last_alert_time: float | None = None


class PerformanceAlerter:
    """Evaluates metrics and delivers alerts through every configured channel.

    Args:
        channels: Delivery channels. When omitted, channels are built from
            the config at initialize() time using http_client.
        clock: Time source for cooldowns and the hourly cap.
        http_client: Used to build channels from the config.
    """

    def __init__(
        self,
        channels: Sequence[AlertChannel] | None = None,
        clock: Clock | None = None,
        http_client: HttpClientPort | None = None,
    ) -> None:
        self._injected_channels = list(channels) if channels is not None else None
        self._channels: list[AlertChannel] = []
        self._clock = clock or DEFAULT_CLOCK
        self._http = http_client
        self.config: PerformanceAlertConfig | None = None
        self._initialized = False
        self._cooldowns: MutableMapping[str, float] = {}
        self._alert_times: deque[float] = deque()
        self._metrics = AlerterMetrics()
        self._sweep = PeriodicTask(
            self._sweep_state, STATE_SWEEP_INTERVAL, "alert-state-sweep"
        )

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def channels(self) -> tuple[AlertChannel, ...]:
        return tuple(self._channels)

    async def initialize(self, config: PerformanceAlertConfig) -> None:
        """Validate config and prepare delivery channels.

        Raises:
            ConfigurationError: If config is invalid.
        """
        validate_performance_alert_config(config)
        self.config = config
        if not config.enabled:
            return

        if self._injected_channels is not None:
            self._channels = self._injected_channels
        elif self._http is not None:
            self._channels = build_alert_channels(config, self._http)

        if not self._channels:
            logger.warning("Alert delivery channels not available - alerting inactive")
            return

        self._initialized = True
        self._sweep.start()

    def _hourly_count(self, now: float) -> int:
        while self._alert_times and self._alert_times[0] <= now - HOUR:
            self._alert_times.popleft()
        return len(self._alert_times)

    async def process_metric(self, metric: EnhancedMetric) -> PerformanceAlert | None:
        """Create and deliver an alert for metric if policy allows.

        Returns:
            The alert that was created, or None.
        """
        config = self.config
        if config is None or not config.enabled or not self._initialized:
            return None

        try:
            now = self._clock.now()
            if not should_trigger_alert(
                metric, config, self._cooldowns, self._hourly_count(now), now
            ):
                return None

            alert = create_performance_alert(metric, config.thresholds, self._clock)
            self._cooldowns[metric.name] = now
            self._alert_times.append(now)

            await self._deliver(alert)
            self._record(alert, now)
            return alert
        except Exception as exc:
            logger.warning("Failed to process performance metric for alerting: %s", exc)
            self._metrics.delivery_failures += 1
            return None

    async def _deliver(self, alert: PerformanceAlert) -> None:
        results = await asyncio.gather(
            *(channel.deliver(alert) for channel in self._channels),
            return_exceptions=True,
        )
        for channel, result in zip(self._channels, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "Failed to deliver alert via %s: %s", channel.name, result
                )
                self._metrics.delivery_failures += 1

    def _record(self, alert: PerformanceAlert, now: float) -> None:
        self._metrics.total_alerts += 1
        by_metric = self._metrics.alerts_by_metric
        by_metric[alert.metric] = by_metric.get(alert.metric, 0) + 1
        self._metrics.alerts_by_severity[alert.severity] += 1
        self._metrics.last_alert_time = now

    def cleanup_state(self) -> None:
        """Drop alert times older than an hour and cooldowns older than a day."""
        now = self._clock.now()
        self._hourly_count(now)
        for name, last_alert in list(self._cooldowns.items()):
            if last_alert < now - DAY:
                del self._cooldowns[name]

    async def _sweep_state(self) -> None:
        self.cleanup_state()

    def get_alert_metrics(self) -> AlerterMetrics:
        """Return a copy of the alerting counters."""
        return AlerterMetrics(
            total_alerts=self._metrics.total_alerts,
            alerts_by_metric=dict(self._metrics.alerts_by_metric),
            alerts_by_severity=dict(self._metrics.alerts_by_severity),
            delivery_failures=self._metrics.delivery_failures,
            last_alert_time=self._metrics.last_alert_time,
        )

    async def flush(self) -> None:
        # Alerts are delivered as they are created; nothing is queued.
        return None

    def destroy(self) -> None:
        self._sweep.stop()
        fire_and_forget(self.flush(), "Final alert flush")


def create_performance_alerter(
    channels: Sequence[AlertChannel] | None = None,
    clock: Clock | None = None,
    http_client: HttpClientPort | None = None,
) -> PerformanceAlerter:
    """Create a new performance alerter instance."""
    return PerformanceAlerter(channels=channels, clock=clock, http_client=http_client)
