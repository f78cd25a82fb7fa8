"""Port interfaces for storage adapters.

These protocols define the contracts that storage adapters must implement.
The core domain depends only on these interfaces, not concrete implementations.
"""

from collections.abc import AsyncIterable, Sequence
from typing import Protocol, runtime_checkable

from reqlens.core.models import LogEntry, QueryResult, Scalar


@runtime_checkable
class LogStoragePort(Protocol):
    """Port for an append-only log sink backend.

    Adapters implementing this protocol can store and retrieve log entries.
    Examples: InMemoryLogStorage, FileLogStorage.
    """

    async def write(self, entry: LogEntry) -> None:
        """Append a log entry."""
        ...

    def write_sync(self, entry: LogEntry) -> None:
        """Append a log entry from synchronous code (logging handlers)."""
        ...

    def read(
        self, since: float = 0, level: str | None = None
    ) -> AsyncIterable[LogEntry]:
        """Read log entries since the given timestamp.

        Args:
            since: Unix timestamp. Returns entries with timestamp > since.
                   Default 0 returns all entries.
            level: Optional level filter (case-insensitive).

        Returns:
            Async iterable of LogEntry objects, ordered by timestamp ascending.
        """
        ...


@runtime_checkable
class LogEmitterPort(Protocol):
    """Port for dispatching structured entries to named sinks."""

    async def emit(
        self,
        sink: str,
        level: str,
        message: str,
        metrics: dict[str, Scalar] | None = None,
    ) -> LogEntry:
        """Append one entry to the named sink and return it."""
        ...


@runtime_checkable
class BackingStorePort(Protocol):
    """Port for the relational store the route handlers query."""

    async def initialize(self) -> None:
        """Create the schema if it does not exist."""
        ...

    async def execute(
        self, text: str, params: Sequence[Scalar] | None = None
    ) -> QueryResult:
        """Run one statement and return its rows and row count."""
        ...

    async def close(self) -> None:
        """Release any held connection."""
        ...
