"""Performance monitor orchestration and budget checks."""

import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType

from vitalwatch.core.errors import ConfigurationError
from vitalwatch.core.models import BudgetViolation, EnhancedMetric
from vitalwatch.core.ports import MetricSourcePort
from vitalwatch.core.ring_buffer import RingBuffer
from vitalwatch.core.scheduling import PeriodicTask, fire_and_forget
from vitalwatch.performance.web_vitals import (
    WEB_VITAL_THRESHOLDS,
    EnhancedMetricCallback,
    MetricEnhancer,
    MetricThresholds,
    setup_web_vitals,
)

logger = logging.getLogger(__name__)

MetricReporter = Callable[[tuple[EnhancedMetric, ...]], Awaitable[None]]

DEFAULT_PERFORMANCE_THRESHOLDS: Mapping[str, MetricThresholds] = MappingProxyType(
    {
        "LCP": WEB_VITAL_THRESHOLDS["LCP"],
        "FID": MetricThresholds(good=100, poor=300),
        "CLS": WEB_VITAL_THRESHOLDS["CLS"],
        "FCP": WEB_VITAL_THRESHOLDS["FCP"],
        "INP": WEB_VITAL_THRESHOLDS["INP"],
        "TTFB": WEB_VITAL_THRESHOLDS["TTFB"],
    }
)

MIN_FLUSH_INTERVAL = 0.1


@dataclass(frozen=True)
class PerformanceConfig:
    """Performance monitoring options.

    Attributes:
        sample_rate: Fraction of samples to keep, in [0, 1].
        buffer_size: Capacity of the metric buffer.
        flush_interval: Seconds between automatic flushes (at least 0.1).
        thresholds: Per-metric budgets used for ratings and violations.
    """

    enable_lcp: bool = True
    enable_fid: bool = True
    enable_cls: bool = True
    enable_fcp: bool = True
    enable_inp: bool = True
    enable_ttfb: bool = True
    sample_rate: float = 1.0
    buffer_size: int = 1000
    flush_interval: float = 30.0
    thresholds: Mapping[str, MetricThresholds] = field(
        default_factory=lambda: DEFAULT_PERFORMANCE_THRESHOLDS
    )

    def enabled_metrics(self) -> tuple[str, ...]:
        toggles = {
            "LCP": self.enable_lcp,
            "FID": self.enable_fid,
            "CLS": self.enable_cls,
            "FCP": self.enable_fcp,
            "INP": self.enable_inp,
            "TTFB": self.enable_ttfb,
        }
        return tuple(name for name, enabled in toggles.items() if enabled)


def validate_performance_config(config: PerformanceConfig) -> None:
    """Check a performance configuration.

    Raises:
        ConfigurationError: If a numeric option is out of range or a
            threshold pair is negative or not strictly increasing.
    """
    if not 0 <= config.sample_rate <= 1:
        raise ConfigurationError("Sample rate must be between 0 and 1")
    if config.buffer_size < 1:
        raise ConfigurationError("Buffer size must be at least 1")
    if config.flush_interval < MIN_FLUSH_INTERVAL:
        raise ConfigurationError("Flush interval must be at least 0.1 seconds")

    for metric, bounds in config.thresholds.items():
        if bounds.good < 0 or bounds.poor < 0:
            raise ConfigurationError(
                f"Invalid thresholds for {metric}: values must be positive"
            )
        if bounds.good >= bounds.poor:
            raise ConfigurationError(
                f"Invalid thresholds for {metric}: good must be less than poor"
            )


def normalize_performance_config(
    config: PerformanceConfig | None = None,
) -> PerformanceConfig:
    """Clamp numeric options into their valid ranges."""
    normalized = config or PerformanceConfig()
    return replace(
        normalized,
        sample_rate=max(0.0, min(1.0, normalized.sample_rate)),
        buffer_size=max(1, normalized.buffer_size),
        flush_interval=max(MIN_FLUSH_INTERVAL, normalized.flush_interval),
    )


def calculate_budget_violations(
    metrics: Iterable[EnhancedMetric],
    thresholds: Mapping[str, MetricThresholds],
) -> list[BudgetViolation]:
    """Compare metrics against their budgets.

    A value above `poor` is an error reported at the poor threshold; a value
    above `good` (but not `poor`) is a warning reported at the good threshold.
    Metrics within budget, or without a budget, produce nothing.
    """
    violations: list[BudgetViolation] = []
    for metric in metrics:
        bounds = thresholds.get(metric.name)
        if bounds is None:
            continue
        if metric.value > bounds.poor:
            threshold, severity = bounds.poor, "error"
        elif metric.value > bounds.good:
            threshold, severity = bounds.good, "warning"
        else:
            continue
        violations.append(
            BudgetViolation(
                metric=metric.name,
                value=metric.value,
                threshold=threshold,
                severity=severity,
                timestamp=metric.timestamp,
                url=metric.url,
            )
        )
    return violations


class PerformanceMonitor:
    """Collects enhanced metrics, fans them out and delivers them in batches.

    Invalid configurations never prevent construction: they are logged and
    replaced by the defaults.

    Args:
        config: Monitoring options.
        source: Where raw samples come from.
        enhancer: Builds enhanced metrics; the default enhancer if omitted.
        reporter: Async callable receiving each flushed batch of metrics.
    """

    def __init__(
        self,
        config: PerformanceConfig | None = None,
        *,
        source: MetricSourcePort,
        enhancer: MetricEnhancer | None = None,
        reporter: MetricReporter | None = None,
    ) -> None:
        normalized = normalize_performance_config(config)
        try:
            validate_performance_config(normalized)
        except ConfigurationError as exc:
            logger.warning("Invalid performance config, using defaults: %s", exc)
            normalized = PerformanceConfig()
        self.config = normalized
        self._source = source
        self._enhancer = enhancer or MetricEnhancer(thresholds=self.config.thresholds)
        self._reporter = reporter
        self._metrics: RingBuffer[EnhancedMetric] = RingBuffer(self.config.buffer_size)
        self._callbacks: list[EnhancedMetricCallback] = []
        self._unsubscribe: Callable[[], None] | None = None
        self._flush_timer = PeriodicTask(
            self.flush, self.config.flush_interval, "performance-monitor-flush"
        )

    @property
    def is_started(self) -> bool:
        return self._unsubscribe is not None

    def start(self) -> None:
        if self.is_started:
            return
        self._unsubscribe = setup_web_vitals(
            self._handle_metric,
            self.config,
            source=self._source,
            enhancer=self._enhancer,
        )
        self._flush_timer.start()
        logger.debug("Performance monitoring started")

    def stop(self) -> None:
        """Stop collecting and hand remaining metrics to a final delivery."""
        if self._unsubscribe is None:
            return
        self._flush_timer.stop()
        self._unsubscribe()
        self._unsubscribe = None

        remaining = self._metrics.drain()
        if remaining and self._reporter is not None:
            fire_and_forget(self._reporter(remaining), "Final metric delivery")
        logger.debug("Performance monitoring stopped")

    def _handle_metric(self, metric: EnhancedMetric) -> None:
        if not self.is_started:
            return
        self._flush_timer.start()
        self._metrics.append(metric)
        for callback in list(self._callbacks):
            try:
                callback(metric)
            except Exception:
                logger.exception("Error in performance metric callback")

    def on_metric(self, callback: EnhancedMetricCallback) -> Callable[[], None]:
        """Register a callback; returns a function that unregisters it."""
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def get_metrics(self) -> tuple[EnhancedMetric, ...]:
        return self._metrics.snapshot()

    def clear_metrics(self) -> None:
        self._metrics.clear()

    def get_budget_violations(self) -> list[BudgetViolation]:
        """Budget violations among the buffered metrics."""
        return calculate_budget_violations(
            self._metrics.snapshot(), self.config.thresholds
        )

    async def flush(self) -> None:
        """Deliver buffered metrics through the reporter, then drop them.

        Unlike the structured logger, delivery failures are raised to the
        caller, and the metrics stay buffered so the caller can retry.
        """
        metrics = self._metrics.snapshot()
        if not metrics:
            return
        if self._reporter is not None:
            try:
                await self._reporter(metrics)
            except Exception:
                logger.error("Failed to flush %d performance metrics", len(metrics))
                raise
        self._metrics.discard(metrics)
        logger.debug("Performance metrics flushed")


def create_performance_monitor(
    config: PerformanceConfig | None = None,
    *,
    source: MetricSourcePort,
    enhancer: MetricEnhancer | None = None,
    reporter: MetricReporter | None = None,
) -> PerformanceMonitor:
    """Create a new performance monitor instance."""
    return PerformanceMonitor(
        config, source=source, enhancer=enhancer, reporter=reporter
    )
