"""Python logging handler adapter for vitalwatch.

This adapter bridges Python's standard library logging module to a
StructuredLogger, so records from application loggers become structured,
correlated, sanitized log entries.
"""

import logging
from typing import Any

from vitalwatch.core.logger import StructuredLogger

# Standard LogRecord attributes that should not be treated as extra fields
_STANDARD_LOGRECORD_ATTRS = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    }
)

# Records from these loggers are never forwarded, to avoid feedback loops.
_OWN_LOGGER_PREFIX = "vitalwatch"


class VitalwatchHandler(logging.Handler):
    """Logging handler that forwards log records to a StructuredLogger.

    DEBUG records become debug entries, INFO info, WARNING warn, and ERROR
    and above become error entries carrying the record's exception.

    Example:
        ```python
        from vitalwatch import StructuredLogger, VitalwatchHandler

        structured = StructuredLogger()
        logging.getLogger().addHandler(VitalwatchHandler(structured))
        ```
    """

    def __init__(
        self, structured_logger: StructuredLogger, level: int = logging.NOTSET
    ) -> None:
        """Initialize the handler.

        Args:
            structured_logger: Logger that receives the converted records.
            level: Minimum stdlib level handled.
        """
        super().__init__(level)
        self._structured = structured_logger

    def _context(self, record: logging.LogRecord) -> dict[str, Any]:
        context: dict[str, Any] = {
            "logger": record.name,
            "module": record.module,
            "function": record.funcName or "",
            "line": record.lineno,
        }
        # Add any extra attributes passed via logging call
        for key, value in record.__dict__.items():
            if key not in _STANDARD_LOGRECORD_ATTRS and isinstance(
                value, (str, int, float, bool)
            ):
                context[key] = value
        return context

    def emit(self, record: logging.LogRecord) -> None:
        """Emit a log record to the structured logger.

        Args:
            record: The log record to emit.
        """
        if record.name == _OWN_LOGGER_PREFIX or record.name.startswith(
            f"{_OWN_LOGGER_PREFIX}."
        ):
            return
        try:
            message = record.getMessage()
            context = self._context(record)
            if record.levelno >= logging.ERROR:
                error = record.exc_info[1] if record.exc_info else None
                self._structured.error(message, error, context)
            elif record.levelno >= logging.WARNING:
                self._structured.warn(message, context)
            elif record.levelno >= logging.INFO:
                self._structured.info(message, context)
            else:
                self._structured.debug(message, context)
        except Exception:
            self.handleError(record)
