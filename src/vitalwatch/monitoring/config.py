"""Monitoring configuration derived from environment variables.

Environment Variables:
    APP_ENV: Deployment mode (development, staging, production).
    SENTRY_DSN: Error reporting DSN.
    SENTRY_ENVIRONMENT: Environment reported with errors (default: APP_ENV).
    SENTRY_SAMPLE_RATE: Fraction of errors reported (default: 1.0).
    SLACK_WEBHOOK_URL: Slack incoming webhook for alerts.
    ALERT_EMAIL_ENDPOINT: HTTP email relay for alerts.
    MONITORING_WEBHOOK_URL: Generic alert webhook.
    ALERT_COOLDOWN_MINUTES: Minutes between alerts for one metric (default: 15).
    LOGGING_ENDPOINT: Remote log collector URL.
    LOGGING_API_KEY: Bearer token for the log collector.
    LOGGING_BATCH_SIZE: Entries per batch (default: 50).
    LOGGING_FLUSH_INTERVAL: Milliseconds between flushes (default: 30000).

Each subsystem is enabled only in production, and only when its endpoint is
configured.
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from typing import Any

from vitalwatch.core.errors import ConfigurationError
from vitalwatch.monitoring.alerts import PerformanceAlertConfig
from vitalwatch.monitoring.error_tracking import ErrorTrackingConfig
from vitalwatch.monitoring.remote_logging import RemoteLoggingConfig

logger = logging.getLogger(__name__)

ENV_MODE = "APP_ENV"
ENV_SENTRY_DSN = "SENTRY_DSN"
ENV_SENTRY_ENVIRONMENT = "SENTRY_ENVIRONMENT"
ENV_SENTRY_SAMPLE_RATE = "SENTRY_SAMPLE_RATE"
ENV_SLACK_WEBHOOK_URL = "SLACK_WEBHOOK_URL"
ENV_ALERT_EMAIL_ENDPOINT = "ALERT_EMAIL_ENDPOINT"
ENV_ALERT_WEBHOOK_URL = "MONITORING_WEBHOOK_URL"
ENV_ALERT_COOLDOWN_MINUTES = "ALERT_COOLDOWN_MINUTES"
ENV_LOGGING_ENDPOINT = "LOGGING_ENDPOINT"
ENV_LOGGING_API_KEY = "LOGGING_API_KEY"
ENV_LOGGING_BATCH_SIZE = "LOGGING_BATCH_SIZE"
ENV_LOGGING_FLUSH_INTERVAL = "LOGGING_FLUSH_INTERVAL"

DEFAULT_MODE = "development"


def deployment_mode(environ: Mapping[str, str]) -> str:
    return environ.get(ENV_MODE) or DEFAULT_MODE


def _float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r", name, raw)
        return default


def _int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", name, raw)
        return default


def error_tracking_config_from_env(environ: Mapping[str, str]) -> ErrorTrackingConfig:
    mode = deployment_mode(environ)
    dsn = environ.get(ENV_SENTRY_DSN) or None
    return ErrorTrackingConfig(
        enabled=mode == "production" and dsn is not None,
        dsn=dsn,
        environment=environ.get(ENV_SENTRY_ENVIRONMENT) or mode,
        sample_rate=_float(environ, ENV_SENTRY_SAMPLE_RATE, 1.0),
    )


def performance_alert_config_from_env(
    environ: Mapping[str, str],
) -> PerformanceAlertConfig:
    slack = environ.get(ENV_SLACK_WEBHOOK_URL) or None
    email = environ.get(ENV_ALERT_EMAIL_ENDPOINT) or None
    webhook = environ.get(ENV_ALERT_WEBHOOK_URL) or None
    production = deployment_mode(environ) == "production"
    return PerformanceAlertConfig(
        enabled=production and bool(slack or email or webhook),
        cooldown_minutes=_int(environ, ENV_ALERT_COOLDOWN_MINUTES, 15),
        enable_slack=slack is not None,
        enable_email=email is not None,
        enable_webhook=webhook is not None,
        slack_webhook_url=slack,
        email_endpoint=email,
        webhook_url=webhook,
    )


def remote_logging_config_from_env(environ: Mapping[str, str]) -> RemoteLoggingConfig:
    endpoint = environ.get(ENV_LOGGING_ENDPOINT) or None
    return RemoteLoggingConfig(
        enabled=deployment_mode(environ) == "production" and endpoint is not None,
        endpoint=endpoint,
        api_key=environ.get(ENV_LOGGING_API_KEY) or None,
        batch_size=_int(environ, ENV_LOGGING_BATCH_SIZE, 50),
        flush_interval=_int(environ, ENV_LOGGING_FLUSH_INTERVAL, 30000) / 1000,
    )


@dataclass(frozen=True)
class MonitoringConfig:
    """Configuration of every monitoring subsystem."""

    error_tracking: ErrorTrackingConfig = field(default_factory=ErrorTrackingConfig)
    performance_alerts: PerformanceAlertConfig = field(
        default_factory=PerformanceAlertConfig
    )
    remote_logging: RemoteLoggingConfig = field(default_factory=RemoteLoggingConfig)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "MonitoringConfig":
        """Build the configuration from environment variables.

        Args:
            environ: Variables to read; os.environ when omitted.
        """
        env = os.environ if environ is None else environ
        return cls(
            error_tracking=error_tracking_config_from_env(env),
            performance_alerts=performance_alert_config_from_env(env),
            remote_logging=remote_logging_config_from_env(env),
        )


def apply_overrides(
    config: MonitoringConfig, overrides: Mapping[str, Mapping[str, Any]] | None
) -> MonitoringConfig:
    """Merge per-section overrides into a configuration.

    Args:
        config: Base configuration.
        overrides: Maps a section name ("error_tracking", "performance_alerts",
            "remote_logging") to the fields to replace in that section.

    Raises:
        ConfigurationError: On an unknown section or field name.
    """
    if not overrides:
        return config
    sections = {f.name for f in fields(config)}
    merged = config
    for section, values in overrides.items():
        if section not in sections:
            raise ConfigurationError(f"Unknown monitoring config section: {section}")
        try:
            updated = replace(getattr(merged, section), **values)
        except TypeError as exc:
            raise ConfigurationError(f"Invalid override for {section}: {exc}") from exc
        merged = replace(merged, **{section: updated})
    return merged


@dataclass(frozen=True)
class ConfigValidation:
    is_valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


def _is_int_at_least(raw: str, minimum: int) -> bool:
    try:
        return int(raw) >= minimum
    except ValueError:
        return False


def validate_environment_config(
    environ: Mapping[str, str] | None = None,
) -> ConfigValidation:
    """Check monitoring environment variables.

    Only production deployments are validated; elsewhere the result is always
    valid and empty. Missing optional integrations are warnings. Malformed or
    insecure values are errors.
    """
    env = os.environ if environ is None else environ
    errors: list[str] = []
    warnings: list[str] = []

    if deployment_mode(env) != "production":
        return ConfigValidation(is_valid=True)

    dsn = env.get(ENV_SENTRY_DSN)
    if dsn:
        if "@" not in dsn or not dsn.startswith("https://"):
            errors.append("Invalid Sentry DSN format")
    else:
        warnings.append("Sentry DSN not configured - error tracking disabled")

    sample_rate = env.get(ENV_SENTRY_SAMPLE_RATE)
    if sample_rate:
        try:
            valid_rate = 0 <= float(sample_rate) <= 1
        except ValueError:
            valid_rate = False
        if not valid_rate:
            errors.append("Sentry sample rate must be between 0 and 1")

    slack = env.get(ENV_SLACK_WEBHOOK_URL)
    webhook = env.get(ENV_ALERT_WEBHOOK_URL)
    if not (slack or env.get(ENV_ALERT_EMAIL_ENDPOINT) or webhook):
        warnings.append(
            "No alert delivery methods configured - performance alerts disabled"
        )
    if slack and not slack.startswith("https://"):
        errors.append("Slack webhook URL must use HTTPS")
    if webhook and not webhook.startswith("https://"):
        errors.append("Alert webhook URL must use HTTPS")

    endpoint = env.get(ENV_LOGGING_ENDPOINT)
    if endpoint:
        if not endpoint.startswith("https://"):
            errors.append("Logging endpoint must use HTTPS")
        if not env.get(ENV_LOGGING_API_KEY):
            errors.append("Logging API key is required when endpoint is configured")
    else:
        warnings.append(
            "Remote logging endpoint not configured - logs will only be local"
        )

    cooldown = env.get(ENV_ALERT_COOLDOWN_MINUTES)
    if cooldown and not _is_int_at_least(cooldown, 1):
        errors.append("Alert cooldown minutes must be a positive number")

    batch_size = env.get(ENV_LOGGING_BATCH_SIZE)
    if batch_size and not _is_int_at_least(batch_size, 1):
        errors.append("Logging batch size must be a positive number")

    flush_interval = env.get(ENV_LOGGING_FLUSH_INTERVAL)
    if flush_interval and not _is_int_at_least(flush_interval, 100):
        errors.append("Logging flush interval must be at least 100ms")

    return ConfigValidation(
        is_valid=not errors, errors=tuple(errors), warnings=tuple(warnings)
    )


def log_monitoring_config(
    config: MonitoringConfig, validation: ConfigValidation
) -> None:
    """Log which subsystems are enabled plus any validation findings."""

    def status(enabled: bool) -> str:
        return "ENABLED" if enabled else "DISABLED"

    logger.info(
        "Monitoring configuration: error tracking %s, performance alerts %s, "
        "remote logging %s",
        status(config.error_tracking.enabled),
        status(config.performance_alerts.enabled),
        status(config.remote_logging.enabled),
    )
    for warning in validation.warnings:
        logger.warning("Configuration warning: %s", warning)
    for error in validation.errors:
        logger.error("Configuration error: %s", error)
