"""Sanitization of errors and context data before they are logged or sent."""

import dataclasses
import enum
import re
import traceback
import types
from collections.abc import Mapping
from typing import Any

from vitalwatch.core.models import ErrorInfo

REDACTED = "[REDACTED]"
FUNCTION_MARKER = "[Function]"
CIRCULAR_MARKER = "[Circular Reference]"

SENSITIVE_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        "password",
        "token",
        "secret",
        "key",
        "auth",
        "credential",
        "bearer",
    )
)


def is_sensitive_key(key: object) -> bool:
    """Return True if a mapping key names a sensitive field."""
    text = str(key)
    return any(pattern.search(text) for pattern in SENSITIVE_PATTERNS)


def sanitize_error(error: object) -> ErrorInfo:
    """Normalize anything raised or passed as an error into an ErrorInfo.

    Args:
        error: An exception, None, or any other object.

    Returns:
        ErrorInfo with name/message, plus the formatted traceback and a
        component stack when available.
    """
    if error is None:
        return ErrorInfo(name="Unknown", message="null")

    if isinstance(error, BaseException):
        stack = None
        if error.__traceback__ is not None:
            stack = "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            )
        component_stack = getattr(error, "component_stack", None)
        return ErrorInfo(
            name=type(error).__name__,
            message=str(error),
            stack=stack,
            component_stack=(
                component_stack if isinstance(component_stack, str) else None
            ),
        )

    return ErrorInfo(name="Unknown", message=str(error))


def _object_fields(value: object) -> dict[str, Any] | None:
    """Return the fields of a dataclass instance or plain object, else None."""
    if isinstance(value, (type, types.ModuleType, BaseException, enum.Enum)):
        return None
    if dataclasses.is_dataclass(value):
        return {
            field.name: getattr(value, field.name)
            for field in dataclasses.fields(value)
        }
    if hasattr(value, "__dict__"):
        return dict(vars(value))
    return None


def sanitize_context(value: Any, _path: set[int] | None = None) -> Any:
    """Deep-copy value with sensitive keys redacted.

    Mappings, lists, tuples and sets are walked recursively. Dataclass
    instances and plain objects are walked as mappings of their fields and
    come back as dicts. Values under keys matching SENSITIVE_PATTERNS become
    REDACTED at any depth, callables become FUNCTION_MARKER, and a container
    already on the current walk path becomes CIRCULAR_MARKER. Everything else
    is returned unchanged.
    """
    if value is None or isinstance(value, (str, bytes, int, float, bool)):
        return value

    if callable(value) and not isinstance(value, type):
        return FUNCTION_MARKER

    fields = None
    if not isinstance(value, (Mapping, list, tuple, set, frozenset)):
        fields = _object_fields(value)
        if fields is None:
            return value

    path = _path if _path is not None else set()
    marker = id(value)
    if marker in path:
        return CIRCULAR_MARKER

    path.add(marker)
    try:
        if fields is not None or isinstance(value, Mapping):
            mapping = fields if fields is not None else value
            return {
                key: REDACTED if is_sensitive_key(key) else sanitize_context(item, path)
                for key, item in mapping.items()
            }
        items = [sanitize_context(item, path) for item in value]
        if isinstance(value, list):
            return items
        if hasattr(value, "_fields"):
            return type(value)(*items)
        # Members of a set are hashable, so their sanitized forms are too.
        return type(value)(items)
    finally:
        path.discard(marker)
