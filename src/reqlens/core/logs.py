"""Log helper functions for creating and rendering LogEntry objects."""

import time
from datetime import UTC, datetime

from reqlens.core.models import LogEntry, Scalar

# Severity ordering used for console mirroring thresholds
LEVELS: dict[str, int] = {"DEBUG": 10, "INFO": 20, "WARN": 30, "ERROR": 40}

_LEVEL_ALIASES = {"WARNING": "WARN", "CRITICAL": "ERROR", "FATAL": "ERROR"}


def normalize_level(level: str) -> str:
    """Return the canonical upper-case level name.

    Args:
        level: Level name in any case; stdlib names such as "warning" and
            "critical" map onto WARN and ERROR.

    Raises:
        ValueError: If the level is not one of DEBUG, INFO, WARN, ERROR.
    """
    upper = level.upper()
    upper = _LEVEL_ALIASES.get(upper, upper)
    if upper not in LEVELS:
        raise ValueError(f"Unknown log level: {level!r}")
    return upper


def log(level: str, message: str, /, **attributes: Scalar) -> LogEntry:
    """Create a log entry with automatic timestamp.

    Args:
        level: Log level (e.g., "INFO", "warning"), normalized
        message: The log message
        **attributes: Metrics map fields; may use any key, including
            "level" and "message"

    Raises:
        ValueError: If the level is unknown.

    Returns:
        LogEntry with current timestamp
    """
    return LogEntry(
        timestamp=time.time(),
        level=normalize_level(level),
        message=message,
        attributes=dict(attributes),
    )


def format_timestamp(timestamp: float) -> str:
    """Render a Unix timestamp as ISO-8601 UTC with millisecond precision."""
    moment = datetime.fromtimestamp(timestamp, tz=UTC)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def format_entry(entry: LogEntry) -> str:
    """Render an entry as a single human-readable line.

    Format: ``<timestamp> <level>: <message> [k=v, k=v]``. The bracketed
    metrics suffix is omitted when the entry has no attributes.
    """
    line = f"{format_timestamp(entry.timestamp)} {entry.level.lower()}: {entry.message}"
    if entry.attributes:
        pairs = ", ".join(f"{key}={value}" for key, value in entry.attributes.items())
        line = f"{line} [{pairs}]"
    return line
