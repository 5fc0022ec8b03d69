"""JSON and NDJSON encoding for structured records."""

import dataclasses
import json
from collections.abc import Iterable
from typing import Any

from vitalwatch.core.models import BaseLogEntry


def record_to_dict(record: Any) -> dict[str, Any]:
    """Convert a dataclass record (entry, alert, event, batch) to a plain dict."""
    return dataclasses.asdict(record)


def entry_to_dict(entry: BaseLogEntry) -> dict[str, Any]:
    """Convert a log entry to a JSON-ready dict carrying its "type" tag."""
    return {"type": entry.entry_type, **record_to_dict(entry)}


def format_log_entry(entry: BaseLogEntry) -> str:
    """Serialize a log entry to a JSON string.

    Entries holding values that JSON cannot represent degrade to a fallback
    document describing the failure instead of raising.
    """
    try:
        return json.dumps(entry_to_dict(entry))
    except (TypeError, ValueError, RecursionError) as exc:
        return json.dumps(
            {
                "type": entry.entry_type,
                "timestamp": entry.timestamp,
                "level": entry.level,
                "message": str(entry.message),
                "correlation_id": entry.correlation_id,
                "error": "[Serialization Error]",
                "original_error": str(exc),
            }
        )


def encode_logs(entries: Iterable[dict[str, Any]]) -> str:
    """Encode log entry dicts to newline-delimited JSON.

    Args:
        entries: An iterable of entry dicts (as produced by entry_to_dict).

    Returns:
        NDJSON string with one JSON object per line.
        Empty string if no entries.
    """
    lines = [json.dumps(entry, default=str) for entry in entries]

    if not lines:
        return ""

    return "\n".join(lines) + "\n"
