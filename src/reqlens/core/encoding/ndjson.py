"""NDJSON encoding for log entries."""

import json
from collections.abc import AsyncIterable

from reqlens.core.logs import format_timestamp
from reqlens.core.models import LogEntry


def entry_to_dict(entry: LogEntry) -> dict[str, object]:
    return {
        "timestamp": entry.timestamp,
        "time": format_timestamp(entry.timestamp),
        "level": entry.level,
        "message": entry.message,
        "metrics": entry.attributes,
    }


def encode_entry(entry: LogEntry) -> str:
    """Encode a single entry as one JSON line (no trailing newline)."""
    return json.dumps(entry_to_dict(entry))


def decode_entry(line: str) -> LogEntry:
    """Decode a line produced by ``encode_entry``.

    Raises:
        ValueError: If the line is not a JSON object with the expected keys.
    """
    data = json.loads(line)
    if not isinstance(data, dict):
        raise ValueError("Log line is not a JSON object")
    try:
        return LogEntry(
            timestamp=float(data["timestamp"]),
            level=str(data["level"]),
            message=str(data["message"]),
            attributes=dict(data.get("metrics") or {}),
        )
    except KeyError as exc:
        raise ValueError(f"Log line missing field {exc.args[0]!r}") from exc


async def encode_logs(entries: AsyncIterable[LogEntry]) -> str:
    """Encode log entries to newline-delimited JSON.

    Args:
        entries: An async iterable of LogEntry objects.

    Returns:
        NDJSON string with one JSON object per line.
        Empty string if no entries.
    """
    lines = [encode_entry(entry) async for entry in entries]
    if not lines:
        return ""
    return "\n".join(lines) + "\n"
