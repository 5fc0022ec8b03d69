"""Domain models, ports and framework-free building blocks."""

from vitalwatch.core.clock import HostEnvironment, SystemClock
from vitalwatch.core.correlation import (
    CorrelationIdManager,
    clear_correlation_id,
    correlation_scope,
    generate_correlation_id,
    get_current_correlation_id,
    set_correlation_id,
    validate_correlation_id,
    with_correlation_id,
)
from vitalwatch.core.errors import (
    AlertCreationError,
    CircuitOpenError,
    ConfigurationError,
    InvalidCorrelationIdError,
    TransmissionError,
    VitalwatchError,
)
from vitalwatch.core.logger import LoggerConfig, StructuredLogger, create_logger
from vitalwatch.core.ring_buffer import RingBuffer

__all__ = [
    "AlertCreationError",
    "CircuitOpenError",
    "ConfigurationError",
    "CorrelationIdManager",
    "HostEnvironment",
    "InvalidCorrelationIdError",
    "LoggerConfig",
    "RingBuffer",
    "StructuredLogger",
    "SystemClock",
    "TransmissionError",
    "VitalwatchError",
    "clear_correlation_id",
    "correlation_scope",
    "create_logger",
    "generate_correlation_id",
    "get_current_correlation_id",
    "set_correlation_id",
    "validate_correlation_id",
    "with_correlation_id",
]
