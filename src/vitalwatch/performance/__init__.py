"""Core Web Vitals enhancement, collection and performance monitoring."""

from vitalwatch.performance.monitor import (
    DEFAULT_PERFORMANCE_THRESHOLDS,
    PerformanceConfig,
    PerformanceMonitor,
    calculate_budget_violations,
    create_performance_monitor,
    normalize_performance_config,
    validate_performance_config,
)
from vitalwatch.performance.web_vitals import (
    WEB_VITAL_NAMES,
    WEB_VITAL_THRESHOLDS,
    InMemoryMetricSource,
    MetricEnhancer,
    MetricThresholds,
    WebVitalsCollector,
    WebVitalsConfig,
    calculate_rating,
    create_enhanced_metric,
    setup_web_vitals,
)

__all__ = [
    "DEFAULT_PERFORMANCE_THRESHOLDS",
    "WEB_VITAL_NAMES",
    "WEB_VITAL_THRESHOLDS",
    "InMemoryMetricSource",
    "MetricEnhancer",
    "MetricThresholds",
    "PerformanceConfig",
    "PerformanceMonitor",
    "WebVitalsCollector",
    "WebVitalsConfig",
    "calculate_budget_violations",
    "calculate_rating",
    "create_enhanced_metric",
    "create_performance_monitor",
    "normalize_performance_config",
    "setup_web_vitals",
    "validate_performance_config",
]
