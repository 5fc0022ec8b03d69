"""Encoders for structured records."""

from vitalwatch.core.encoding.ndjson import (
    encode_logs,
    entry_to_dict,
    format_log_entry,
    record_to_dict,
)

__all__ = ["encode_logs", "entry_to_dict", "format_log_entry", "record_to_dict"]
