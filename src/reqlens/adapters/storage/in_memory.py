"""In-memory log sink backend."""

from collections.abc import AsyncIterable

from reqlens.core.models import LogEntry


class InMemoryLogStorage:
    """In-memory implementation of LogStoragePort.

    Stores log entries in a list. Suitable for testing and
    low-volume deployments where persistence is not required.
    """

    def __init__(self) -> None:
        self._entries: list[LogEntry] = []

    async def write(self, entry: LogEntry) -> None:
        """Append a log entry."""
        self._entries.append(entry)

    def write_sync(self, entry: LogEntry) -> None:
        self._entries.append(entry)

    async def read(
        self, since: float = 0, level: str | None = None
    ) -> AsyncIterable[LogEntry]:
        """Read log entries since the given timestamp.

        Returns entries with timestamp > since, ordered by timestamp ascending.
        Entries with equal timestamps keep their write order.
        """
        filtered = [e for e in self._entries if e.timestamp > since]
        if level is not None:
            filtered = [e for e in filtered if e.level.upper() == level.upper()]
        for entry in sorted(filtered, key=lambda e: e.timestamp):
            yield entry

    @property
    def entries(self) -> list[LogEntry]:
        """Snapshot of every entry in write order."""
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()
