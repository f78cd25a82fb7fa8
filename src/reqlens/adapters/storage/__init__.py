"""Storage adapters implementing core ports."""

from reqlens.adapters.storage.file import FileLogStorage
from reqlens.adapters.storage.in_memory import InMemoryLogStorage
from reqlens.adapters.storage.sqlite_store import SQLiteBackingStore

__all__ = [
    "FileLogStorage",
    "InMemoryLogStorage",
    "SQLiteBackingStore",
]
