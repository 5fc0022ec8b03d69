"""Core Web Vitals enhancement, rating and collection.

Raw samples arrive from a MetricSourcePort (a browser beacon endpoint, a
synthetic check, or a test double). They are rated against fixed thresholds,
annotated with time, page and correlation context, and handed to callbacks.
"""

import logging
import random
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Protocol

from vitalwatch.core.clock import DEFAULT_CLOCK, DEFAULT_HOST, HostEnvironment
from vitalwatch.core.correlation import current_or_new_correlation_id
from vitalwatch.core.models import EnhancedMetric, PerformanceRating, RawMetric
from vitalwatch.core.ports import Clock, MetricHandler, MetricSourcePort
from vitalwatch.core.ring_buffer import RingBuffer

logger = logging.getLogger(__name__)

EnhancedMetricCallback = Callable[[EnhancedMetric], None]


@dataclass(frozen=True)
class MetricThresholds:
    """Upper bounds of the "good" and "needs-improvement" bands of a metric."""

    good: float
    poor: float


WEB_VITAL_THRESHOLDS: Mapping[str, MetricThresholds] = MappingProxyType(
    {
        "LCP": MetricThresholds(good=2500, poor=4000),
        "CLS": MetricThresholds(good=0.1, poor=0.25),
        "FCP": MetricThresholds(good=1800, poor=3000),
        "INP": MetricThresholds(good=200, poor=500),
        "TTFB": MetricThresholds(good=800, poor=1800),
    }
)

WEB_VITAL_NAMES: tuple[str, ...] = ("LCP", "CLS", "FCP", "INP", "TTFB")


def calculate_rating(
    name: str,
    value: float,
    thresholds: Mapping[str, MetricThresholds] = WEB_VITAL_THRESHOLDS,
) -> PerformanceRating:
    """Classify a metric value against its thresholds.

    Args:
        name: Metric name, e.g. "LCP".
        value: Measured value (milliseconds, or unitless for CLS).
        thresholds: Per-metric thresholds to classify against.

    Returns:
        "good" when value <= good, "needs-improvement" when value <= poor,
        otherwise "poor". Unknown metric names are "needs-improvement".
    """
    bounds = thresholds.get(name)
    if bounds is None:
        return "needs-improvement"
    if value <= bounds.good:
        return "good"
    if value <= bounds.poor:
        return "needs-improvement"
    return "poor"


class MetricEnhancer:
    """Turns raw samples into enhanced metrics using injected capabilities.

    Args:
        clock: Source of the sample timestamp.
        host: Page URL, user agent and optional device/connection context.
        thresholds: Used to rate samples that arrive without a rating.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        host: HostEnvironment | None = None,
        thresholds: Mapping[str, MetricThresholds] = WEB_VITAL_THRESHOLDS,
    ) -> None:
        self._clock = clock or DEFAULT_CLOCK
        self._host = host or DEFAULT_HOST
        self._thresholds = thresholds

    @property
    def host(self) -> HostEnvironment:
        return self._host

    def enhance(self, raw: RawMetric) -> EnhancedMetric:
        return EnhancedMetric(
            name=raw.name,
            value=raw.value,
            rating=raw.rating
            or calculate_rating(raw.name, raw.value, self._thresholds),
            timestamp=self._clock.iso_now(),
            url=self._host.url,
            user_agent=self._host.user_agent,
            correlation_id=current_or_new_correlation_id(),
            delta=raw.delta,
            id=raw.id,
            device_memory=self._host.device_memory,
            connection_type=self._host.connection_type,
        )


_DEFAULT_ENHANCER = MetricEnhancer()


def create_enhanced_metric(
    raw: RawMetric, enhancer: MetricEnhancer | None = None
) -> EnhancedMetric:
    """Enhance a raw sample with the default (system clock, unknown host) enhancer."""
    return (enhancer or _DEFAULT_ENHANCER).enhance(raw)


class InMemoryMetricSource:
    """MetricSourcePort that dispatches reported samples to subscribers.

    Used behind the vitals beacon endpoint and as a test double.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[MetricHandler]] = {}

    def subscribe(self, name: str, handler: MetricHandler) -> Callable[[], None]:
        self._handlers.setdefault(name, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(name, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def subscriber_count(self, name: str | None = None) -> int:
        if name is not None:
            return len(self._handlers.get(name, []))
        return sum(len(handlers) for handlers in self._handlers.values())

    def report(self, raw: RawMetric) -> int:
        """Deliver a sample to every subscriber of its metric name.

        Returns:
            Number of subscribers the sample was delivered to.
        """
        handlers = list(self._handlers.get(raw.name, []))
        for handler in handlers:
            try:
                handler(raw)
            except Exception:
                logger.exception("Metric subscriber failed for %s", raw.name)
        return len(handlers)


class MetricToggles(Protocol):
    """Anything that can say which metrics are enabled."""

    def enabled_metrics(self) -> tuple[str, ...]: ...


@dataclass(frozen=True)
class WebVitalsConfig:
    """Which Core Web Vitals to collect, and how.

    Attributes:
        sample_rate: Fraction of samples kept by a collector, in [0, 1].
        buffer_size: Capacity of a collector's metric buffer.
    """

    enable_lcp: bool = True
    enable_cls: bool = True
    enable_fcp: bool = True
    enable_inp: bool = True
    enable_ttfb: bool = True
    sample_rate: float = 1.0
    buffer_size: int = 1000

    def enabled_metrics(self) -> tuple[str, ...]:
        toggles = {
            "LCP": self.enable_lcp,
            "CLS": self.enable_cls,
            "FCP": self.enable_fcp,
            "INP": self.enable_inp,
            "TTFB": self.enable_ttfb,
        }
        return tuple(name for name, enabled in toggles.items() if enabled)


def _subscribe_all(
    source: MetricSourcePort, names: tuple[str, ...], handler: MetricHandler
) -> Callable[[], None]:
    unsubscribers = [source.subscribe(name, handler) for name in names]

    def unsubscribe() -> None:
        for remove in unsubscribers:
            remove()
        unsubscribers.clear()

    return unsubscribe


def setup_web_vitals(
    callback: EnhancedMetricCallback,
    config: MetricToggles | None = None,
    *,
    source: MetricSourcePort,
    enhancer: MetricEnhancer | None = None,
) -> Callable[[], None]:
    """Forward every enhanced sample of the enabled metrics to callback.

    Failures while enhancing a sample or inside callback are logged and do
    not reach the source.

    Returns:
        A callable that removes every subscription made here.
    """
    toggles = config or WebVitalsConfig()
    active_enhancer = enhancer or _DEFAULT_ENHANCER

    def handle(raw: RawMetric) -> None:
        try:
            callback(active_enhancer.enhance(raw))
        except Exception:
            logger.exception("Error processing web vital metric %s", raw.name)

    return _subscribe_all(source, toggles.enabled_metrics(), handle)


class WebVitalsCollector:
    """Sampling, buffering collector with independent subscriber callbacks.

    Args:
        config: Enabled metrics, sample rate and buffer size.
        source: Where raw samples come from.
        enhancer: Builds enhanced metrics; the default enhancer if omitted.
        rng: Returns a uniform float in [0, 1) per sample.
    """

    def __init__(
        self,
        config: WebVitalsConfig | None = None,
        *,
        source: MetricSourcePort,
        enhancer: MetricEnhancer | None = None,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.config = config or WebVitalsConfig()
        self._source = source
        self._enhancer = enhancer or _DEFAULT_ENHANCER
        self._rng = rng
        self._metrics: RingBuffer[EnhancedMetric] = RingBuffer(
            max(1, self.config.buffer_size)
        )
        self._callbacks: list[EnhancedMetricCallback] = []
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def is_collecting(self) -> bool:
        return self._unsubscribe is not None

    def start(self) -> None:
        if self.is_collecting:
            return
        self._unsubscribe = _subscribe_all(
            self._source, self.config.enabled_metrics(), self._handle
        )

    def stop(self) -> None:
        if self._unsubscribe is None:
            return
        self._unsubscribe()
        self._unsubscribe = None
        self.clear_metrics()

    def _handle(self, raw: RawMetric) -> None:
        if not self.is_collecting:
            return
        if self._rng() >= self.config.sample_rate:
            return
        try:
            enhanced = self._enhancer.enhance(raw)
        except Exception:
            logger.exception("Error processing metric in collector")
            return
        self._metrics.append(enhanced)
        self._notify(enhanced)

    def _notify(self, metric: EnhancedMetric) -> None:
        for callback in list(self._callbacks):
            try:
                callback(metric)
            except Exception:
                logger.exception("Error in metric callback")

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

    async def flush(self) -> tuple[EnhancedMetric, ...]:
        """Remove and return the buffered metrics."""
        return self._metrics.drain()
