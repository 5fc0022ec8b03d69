"""Exception hierarchy for vitalwatch."""


class VitalwatchError(Exception):
    """Base class for all vitalwatch errors."""


class InvalidCorrelationIdError(VitalwatchError, ValueError):
    """Raised when a correlation ID is not a UUID-v4 string."""

    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__("Invalid correlation ID format")


class ConfigurationError(VitalwatchError, ValueError):
    """Raised when a monitoring, alerting or logging configuration is invalid."""


class AlertCreationError(VitalwatchError):
    """Raised when an alert cannot be built for a metric."""


class CircuitOpenError(VitalwatchError):
    """Raised when a circuit breaker rejects a call without attempting it."""

    def __init__(self, message: str = "Circuit breaker is open") -> None:
        super().__init__(message)


class TransmissionError(VitalwatchError):
    """Raised when a remote endpoint answers with a non-2xx status."""

    def __init__(self, status: int, status_text: str) -> None:
        self.status = status
        self.status_text = status_text
        super().__init__(f"HTTP {status}: {status_text}")
