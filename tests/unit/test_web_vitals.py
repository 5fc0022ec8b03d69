"""Tests for metric rating, enhancement and the web vitals collector."""

import pytest
from tests.fakes import FakeClock

from vitalwatch.core.clock import HostEnvironment
from vitalwatch.core.correlation import correlation_scope, validate_correlation_id
from vitalwatch.core.models import RawMetric
from vitalwatch.core.ports import MetricSourcePort
from vitalwatch.performance.web_vitals import (
    WEB_VITAL_NAMES,
    InMemoryMetricSource,
    MetricEnhancer,
    WebVitalsCollector,
    WebVitalsConfig,
    calculate_rating,
    create_enhanced_metric,
    setup_web_vitals,
)

pytestmark = [
    pytest.mark.unit,
    pytest.mark.core,
    pytest.mark.tier(1),
    pytest.mark.tra("Performance.WebVitals"),
]

CORRELATION_ID = "8f14e45f-ceea-467f-a9d2-3b2c1a0e9b7d"


@pytest.fixture
def enhancer(clock: FakeClock, host: HostEnvironment) -> MetricEnhancer:
    return MetricEnhancer(clock=clock, host=host)


class TestCalculateRating:
    """Tests for calculate_rating."""

    @pytest.mark.parametrize(
        ("name", "value", "expected"),
        [
            ("LCP", 2500, "good"),
            ("LCP", 2501, "needs-improvement"),
            ("LCP", 4000, "needs-improvement"),
            ("LCP", 4001, "poor"),
            ("CLS", 0.05, "good"),
            ("CLS", 0.3, "poor"),
            ("INP", 350, "needs-improvement"),
            ("TTFB", 2000, "poor"),
            ("FCP", 1000, "good"),
        ],
    )
    def test_threshold_boundaries(self, name: str, value: float, expected: str) -> None:
        """Values at a threshold belong to the better band."""
        assert calculate_rating(name, value) == expected

    def test_unknown_metric_needs_improvement(self) -> None:
        """Metrics without thresholds are rated needs-improvement."""
        assert calculate_rating("CUSTOM", 1) == "needs-improvement"


class TestMetricEnhancer:
    """Tests for MetricEnhancer and create_enhanced_metric."""

    def test_enhances_with_host_clock_and_correlation(
        self, enhancer: MetricEnhancer, host: HostEnvironment
    ) -> None:
        """Enhanced metrics carry time, page, device and correlation context."""
        raw = RawMetric(name="LCP", value=3000, delta=3000, id="v3-1")

        with correlation_scope(CORRELATION_ID):
            metric = enhancer.enhance(raw)

        assert metric.name == "LCP"
        assert metric.value == 3000
        assert metric.rating == "needs-improvement"
        assert metric.timestamp == "2024-01-01T00:00:00.000Z"
        assert metric.url == host.url
        assert metric.user_agent == host.user_agent
        assert metric.correlation_id == CORRELATION_ID
        assert metric.delta == 3000
        assert metric.id == "v3-1"
        assert metric.device_memory == 8
        assert metric.connection_type == "4g"

    def test_keeps_rating_from_source(self, enhancer: MetricEnhancer) -> None:
        """A rating reported by the source wins over the computed one."""
        metric = enhancer.enhance(RawMetric(name="LCP", value=100, rating="poor"))
        assert metric.rating == "poor"

    def test_default_enhancer_uses_unknown_host(self) -> None:
        """Without a host the URL and user agent are 'unknown'."""
        metric = create_enhanced_metric(RawMetric(name="CLS", value=0.01))

        assert metric.url == "unknown"
        assert metric.user_agent == "unknown"
        assert metric.device_memory is None
        assert validate_correlation_id(metric.correlation_id)


class TestInMemoryMetricSource:
    """Tests for InMemoryMetricSource."""

    def test_implements_metric_source_port(self) -> None:
        """InMemoryMetricSource must satisfy MetricSourcePort protocol."""
        assert isinstance(InMemoryMetricSource(), MetricSourcePort)

    def test_reports_only_to_matching_subscribers(self, metric_source) -> None:
        """Samples go to subscribers of their metric name."""
        lcp, cls = [], []
        metric_source.subscribe("LCP", lcp.append)
        metric_source.subscribe("CLS", cls.append)

        delivered = metric_source.report(RawMetric(name="LCP", value=1))

        assert delivered == 1
        assert len(lcp) == 1
        assert cls == []

    def test_unsubscribe(self, metric_source) -> None:
        """Unsubscribed handlers stop receiving samples."""
        seen = []
        unsubscribe = metric_source.subscribe("LCP", seen.append)
        unsubscribe()
        unsubscribe()

        metric_source.report(RawMetric(name="LCP", value=1))

        assert seen == []
        assert metric_source.subscriber_count() == 0

    def test_failing_subscriber_does_not_block_others(self, metric_source) -> None:
        """One raising handler does not prevent delivery to the rest."""
        seen = []

        def broken(raw) -> None:
            raise RuntimeError("boom")

        metric_source.subscribe("LCP", broken)
        metric_source.subscribe("LCP", seen.append)

        metric_source.report(RawMetric(name="LCP", value=1))

        assert len(seen) == 1


class TestSetupWebVitals:
    """Tests for setup_web_vitals."""

    def test_subscribes_enabled_metrics(self, metric_source, enhancer) -> None:
        """One subscription per enabled metric; disabled ones are skipped."""
        setup_web_vitals(
            lambda m: None,
            WebVitalsConfig(enable_cls=False),
            source=metric_source,
            enhancer=enhancer,
        )

        assert metric_source.subscriber_count("CLS") == 0
        assert metric_source.subscriber_count() == len(WEB_VITAL_NAMES) - 1

    def test_callback_receives_enhanced_metric(self, metric_source, enhancer) -> None:
        """Raw samples reach the callback enhanced."""
        received = []
        setup_web_vitals(received.append, source=metric_source, enhancer=enhancer)

        metric_source.report(RawMetric(name="TTFB", value=900))

        assert received[0].rating == "needs-improvement"
        assert received[0].url == enhancer.host.url

    def test_callback_errors_are_contained(self, metric_source, caplog) -> None:
        """A raising callback is logged, not raised into the source."""

        def broken(metric) -> None:
            raise ValueError("bad callback")

        setup_web_vitals(broken, source=metric_source)

        metric_source.report(RawMetric(name="LCP", value=1))

        assert "Error processing web vital metric LCP" in caplog.text

    def test_unsubscribe_removes_all(self, metric_source) -> None:
        """The returned function removes every subscription."""
        unsubscribe = setup_web_vitals(lambda m: None, source=metric_source)

        unsubscribe()

        assert metric_source.subscriber_count() == 0


class TestWebVitalsCollector:
    """Tests for WebVitalsCollector."""

    def test_collects_after_start(self, metric_source, enhancer) -> None:
        """Samples are buffered only while collecting."""
        collector = WebVitalsCollector(source=metric_source, enhancer=enhancer)
        metric_source.report(RawMetric(name="LCP", value=1))

        collector.start()
        collector.start()
        metric_source.report(RawMetric(name="LCP", value=2))

        assert [m.value for m in collector.get_metrics()] == [2]
        assert collector.is_collecting

    def test_stop_unsubscribes_and_clears(self, metric_source) -> None:
        """Stopping removes subscriptions and empties the buffer."""
        collector = WebVitalsCollector(source=metric_source)
        collector.start()
        metric_source.report(RawMetric(name="LCP", value=1))

        collector.stop()

        assert collector.get_metrics() == ()
        assert metric_source.subscriber_count() == 0
        assert not collector.is_collecting

    def test_sample_rate_drops_samples(self, metric_source) -> None:
        """Samples whose random draw is at or above the rate are dropped."""
        draws = iter([0.1, 0.5, 0.9])
        collector = WebVitalsCollector(
            WebVitalsConfig(sample_rate=0.5),
            source=metric_source,
            rng=lambda: next(draws),
        )
        collector.start()

        for value in (1, 2, 3):
            metric_source.report(RawMetric(name="LCP", value=value))

        assert [m.value for m in collector.get_metrics()] == [1]

    def test_zero_sample_rate_keeps_nothing(self, metric_source) -> None:
        """A rate of 0 drops every sample."""
        collector = WebVitalsCollector(
            WebVitalsConfig(sample_rate=0), source=metric_source, rng=lambda: 0.0
        )
        collector.start()

        metric_source.report(RawMetric(name="LCP", value=1))

        assert collector.get_metrics() == ()

    def test_buffer_size_bounds_metrics(self, metric_source) -> None:
        """The oldest metrics are evicted beyond buffer_size."""
        collector = WebVitalsCollector(
            WebVitalsConfig(buffer_size=2), source=metric_source
        )
        collector.start()

        for value in (1, 2, 3):
            metric_source.report(RawMetric(name="LCP", value=value))

        assert [m.value for m in collector.get_metrics()] == [2, 3]

    def test_callbacks_are_independent(self, metric_source) -> None:
        """A failing callback does not stop the others; unsubscribing works."""
        seen, other = [], []

        def broken(metric) -> None:
            raise RuntimeError("boom")

        collector = WebVitalsCollector(source=metric_source)
        collector.on_metric(broken)
        collector.on_metric(seen.append)
        remove = collector.on_metric(other.append)
        remove()
        collector.start()

        metric_source.report(RawMetric(name="FCP", value=100))

        assert len(seen) == 1
        assert other == []

    @pytest.mark.asyncio
    async def test_flush_drains(self, metric_source) -> None:
        """flush returns buffered metrics and empties the buffer."""
        collector = WebVitalsCollector(source=metric_source)
        collector.start()
        metric_source.report(RawMetric(name="CLS", value=0.2))

        flushed = await collector.flush()

        assert [m.name for m in flushed] == ["CLS"]
        assert collector.get_metrics() == ()
