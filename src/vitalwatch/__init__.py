"""Correlated structured logging, Core Web Vitals and resilient monitoring delivery."""

from vitalwatch.adapters.frameworks.asgi import CorrelationIdMiddleware, create_asgi_app
from vitalwatch.adapters.http import HttpxClient
from vitalwatch.adapters.logging import VitalwatchHandler
from vitalwatch.adapters.storage import InMemoryLogStorage, SQLiteLogStorage
from vitalwatch.core import (
    CorrelationIdManager,
    HostEnvironment,
    LoggerConfig,
    StructuredLogger,
    clear_correlation_id,
    correlation_scope,
    create_logger,
    generate_correlation_id,
    get_current_correlation_id,
    set_correlation_id,
    validate_correlation_id,
    with_correlation_id,
)
from vitalwatch.monitoring import (
    ErrorTrackingConfig,
    ErrorTrackingService,
    Monitoring,
    MonitoringConfig,
    PerformanceAlertConfig,
    PerformanceAlerter,
    RemoteLogger,
    RemoteLoggingConfig,
)
from vitalwatch.performance import (
    InMemoryMetricSource,
    MetricEnhancer,
    PerformanceConfig,
    PerformanceMonitor,
    WebVitalsCollector,
    WebVitalsConfig,
    create_enhanced_metric,
    setup_web_vitals,
)

__version__ = "1.0.0"

__all__ = [
    "CorrelationIdManager",
    "CorrelationIdMiddleware",
    "ErrorTrackingConfig",
    "ErrorTrackingService",
    "HostEnvironment",
    "HttpxClient",
    "InMemoryLogStorage",
    "InMemoryMetricSource",
    "LoggerConfig",
    "MetricEnhancer",
    "Monitoring",
    "MonitoringConfig",
    "PerformanceAlertConfig",
    "PerformanceAlerter",
    "PerformanceConfig",
    "PerformanceMonitor",
    "RemoteLogger",
    "RemoteLoggingConfig",
    "SQLiteLogStorage",
    "StructuredLogger",
    "VitalwatchHandler",
    "WebVitalsCollector",
    "WebVitalsConfig",
    "clear_correlation_id",
    "correlation_scope",
    "create_asgi_app",
    "create_enhanced_metric",
    "create_logger",
    "generate_correlation_id",
    "get_current_correlation_id",
    "set_correlation_id",
    "setup_web_vitals",
    "validate_correlation_id",
    "with_correlation_id",
    "__version__",
]
