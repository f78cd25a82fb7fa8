"""Append-only NDJSON file backend for log sinks."""

import asyncio
import logging
import threading
from collections.abc import AsyncIterable
from pathlib import Path

from reqlens.core.encoding.ndjson import decode_entry, encode_entry
from reqlens.core.models import LogEntry

logger = logging.getLogger(__name__)


class FileLogStorage:
    """LogStoragePort writing one JSON object per line to a file.

    The file is opened in append mode for every write, so entries are never
    rewritten and external tools can tail it. Parent directories are created
    on first write.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    async def write(self, entry: LogEntry) -> None:
        """Append a log entry from a worker thread."""
        await asyncio.to_thread(self.write_sync, entry)

    def write_sync(self, entry: LogEntry) -> None:
        line = encode_entry(entry) + "\n"
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(line)

    def _load(self) -> list[LogEntry]:
        if not self.path.exists():
            return []
        with self._lock, self.path.open(encoding="utf-8") as fh:
            lines = fh.readlines()
        entries: list[LogEntry] = []
        for lineno, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                entries.append(decode_entry(line))
            except ValueError:
                logger.debug("Skipping malformed line %d in %s", lineno, self.path)
        return entries

    async def read(
        self, since: float = 0, level: str | None = None
    ) -> AsyncIterable[LogEntry]:
        """Read log entries since the given timestamp.

        Malformed lines are skipped. Returns entries with timestamp > since,
        ordered by timestamp ascending.
        """
        loaded = await asyncio.to_thread(self._load)
        filtered = [e for e in loaded if e.timestamp > since]
        if level is not None:
            filtered = [e for e in filtered if e.level.upper() == level.upper()]
        for entry in sorted(filtered, key=lambda e: e.timestamp):
            yield entry
