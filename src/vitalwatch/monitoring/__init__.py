"""Error tracking, performance alerting, remote logging and their orchestration."""

from vitalwatch.monitoring.alerts import (
    AlerterMetrics,
    AlertThreshold,
    EmailAlertChannel,
    PerformanceAlertConfig,
    PerformanceAlerter,
    SlackAlertChannel,
    WebhookAlertChannel,
    build_alert_channels,
    calculate_alert_severity,
    create_performance_alert,
    create_performance_alerter,
    should_trigger_alert,
    validate_performance_alert_config,
)
from vitalwatch.monitoring.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerMetrics,
)
from vitalwatch.monitoring.config import (
    ConfigValidation,
    MonitoringConfig,
    apply_overrides,
    log_monitoring_config,
    validate_environment_config,
)
from vitalwatch.monitoring.error_tracking import (
    ErrorRateLimiter,
    ErrorTrackingConfig,
    ErrorTrackingService,
    create_error_event,
    create_error_fingerprint,
    create_error_tracking_service,
    sanitize_error_for_remote,
    validate_error_tracking_config,
)
from vitalwatch.monitoring.orchestrator import (
    Monitoring,
    MonitoringStatus,
    SubsystemStatus,
)
from vitalwatch.monitoring.remote_logging import (
    RemoteLogger,
    RemoteLoggingConfig,
    TransmissionMetrics,
    create_log_batch,
    create_remote_log_entry,
    create_remote_logger,
    validate_remote_logging_config,
)

__all__ = [
    "AlertThreshold",
    "AlerterMetrics",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerMetrics",
    "ConfigValidation",
    "EmailAlertChannel",
    "ErrorRateLimiter",
    "ErrorTrackingConfig",
    "ErrorTrackingService",
    "Monitoring",
    "MonitoringConfig",
    "MonitoringStatus",
    "PerformanceAlertConfig",
    "PerformanceAlerter",
    "RemoteLogger",
    "RemoteLoggingConfig",
    "SlackAlertChannel",
    "SubsystemStatus",
    "TransmissionMetrics",
    "WebhookAlertChannel",
    "apply_overrides",
    "build_alert_channels",
    "calculate_alert_severity",
    "create_error_event",
    "create_error_fingerprint",
    "create_error_tracking_service",
    "create_log_batch",
    "create_performance_alert",
    "create_performance_alerter",
    "create_remote_log_entry",
    "create_remote_logger",
    "log_monitoring_config",
    "sanitize_error_for_remote",
    "should_trigger_alert",
    "validate_environment_config",
    "validate_error_tracking_config",
    "validate_performance_alert_config",
    "validate_remote_logging_config",
]
