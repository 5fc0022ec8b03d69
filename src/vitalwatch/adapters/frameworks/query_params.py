"""Query parameter parsing for the framework adapters."""

import math

# Structured log levels accepted by the level filter
VALID_LEVELS = {"debug", "info", "warn", "error"}

_LEVEL_ALIASES = {"warning": "warn", "critical": "error"}


def _parse_since_param(params: dict[str, list[str]]) -> float:
    """Parse and validate the 'since' query parameter.

    Args:
        params: Parsed query string parameters (as returned by urllib.parse.parse_qs).

    Returns:
        Unix timestamp as float, defaulting to 0.0 if invalid or missing.
        Negative, NaN and infinite values also yield 0.0.
    """
    try:
        value = float(params.get("since", ["0"])[0])
    except ValueError:
        return 0.0
    if value < 0 or not math.isfinite(value):
        return 0.0
    return value


def _parse_level_param(params: dict[str, list[str]]) -> str | None:
    """Parse and validate the 'level' query parameter.

    Args:
        params: Parsed query string parameters (as returned by urllib.parse.parse_qs).

    Returns:
        Lowercase structured level, or None if invalid/missing. Standard
        library names WARNING and CRITICAL map to warn and error.
    """
    level_list = params.get("level", [None])
    level_raw = level_list[0] if level_list else None
    if not level_raw:
        return None
    level = level_raw.lower()
    level = _LEVEL_ALIASES.get(level, level)
    return level if level in VALID_LEVELS else None
