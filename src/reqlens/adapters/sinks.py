"""Dispatch of structured log entries to named, independent sinks.

Each sink (``access``, ``error``, ``db``, ``app``) is its own append-only
``LogStoragePort``. A failing backend is isolated: the failure is counted
and reported on the console, and the remaining sinks still receive the
entry. Callers never see sink write errors.
"""

import logging
from collections.abc import Callable, Mapping
from pathlib import Path

from reqlens.adapters.storage.file import FileLogStorage
from reqlens.adapters.storage.in_memory import InMemoryLogStorage
from reqlens.core.logs import LEVELS, format_entry, log, normalize_level
from reqlens.core.metrics import MetricsRegistry
from reqlens.core.models import LogEntry, Scalar
from reqlens.core.ports import LogStoragePort

SINK_NAMES = ("access", "error", "db", "app")
CONSOLE_LOGGER_NAME = "reqlens.console"

_PY_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}

console = logging.getLogger(CONSOLE_LOGGER_NAME)
console.propagate = False


class LogSinkRouter:
    """Routes entries to named sinks and mirrors them to the console.

    An ERROR entry emitted to any sink other than ``error`` is also
    appended to ``error``.

    Args:
        sinks: Mapping of sink name to storage backend.
        registry: Registry receiving ``reqlens_sink_write_errors_total``.
        console_level: Minimum level mirrored to the console logger.
    """

    def __init__(
        self,
        sinks: Mapping[str, LogStoragePort],
        registry: MetricsRegistry,
        console_level: str = "INFO",
    ) -> None:
        self._sinks = dict(sinks)
        self.console_level = normalize_level(console_level)
        self._write_errors = registry.counter(
            "reqlens_sink_write_errors_total",
            "Log entries a sink failed to persist",
        )

    @property
    def names(self) -> list[str]:
        return list(self._sinks)

    def get(self, name: str) -> LogStoragePort:
        """Return the backend of a sink.

        Raises:
            ValueError: If no sink has that name.
        """
        try:
            return self._sinks[name]
        except KeyError:
            raise ValueError(f"Unknown log sink: {name!r}") from None

    def _targets(self, sink: str, level: str) -> list[str]:
        self.get(sink)
        targets = [sink]
        if level == "ERROR" and sink != "error" and "error" in self._sinks:
            targets.append("error")
        return targets

    def _build(
        self, sink: str, level: str, message: str, metrics: Mapping[str, Scalar] | None
    ) -> tuple[LogEntry, list[str]]:
        entry = log(level, message, **(metrics or {}))
        return entry, self._targets(sink, entry.level)

    def _mirror(self, entry: LogEntry) -> None:
        if LEVELS[entry.level] >= LEVELS[self.console_level]:
            console.log(_PY_LEVELS[entry.level], format_entry(entry))

    def _record_failure(self, name: str, exc: Exception) -> None:
        self._write_errors.inc(labels={"sink": name})
        console.error("Log sink %r failed to write entry: %s", name, exc)

    async def emit(
        self,
        sink: str,
        level: str,
        message: str,
        metrics: Mapping[str, Scalar] | None = None,
    ) -> LogEntry:
        """Append one entry to ``sink`` (and ``error`` for ERROR entries).

        Returns:
            The immutable entry that was dispatched.

        Raises:
            ValueError: If the sink name or level is unknown.
        """
        entry, targets = self._build(sink, level, message, metrics)
        for name in targets:
            try:
                await self._sinks[name].write(entry)
            except Exception as exc:
                self._record_failure(name, exc)
        self._mirror(entry)
        return entry

    def emit_sync(
        self,
        sink: str,
        level: str,
        message: str,
        metrics: Mapping[str, Scalar] | None = None,
    ) -> LogEntry:
        """Synchronous variant of ``emit`` for logging handlers and threads."""
        entry, targets = self._build(sink, level, message, metrics)
        for name in targets:
            try:
                self._sinks[name].write_sync(entry)
            except Exception as exc:
                self._record_failure(name, exc)
        self._mirror(entry)
        return entry


def build_sinks(
    backend: str,
    log_dir: str | Path = "logs",
    names: tuple[str, ...] = SINK_NAMES,
) -> dict[str, LogStoragePort]:
    """Create one backend per sink name.

    Args:
        backend: "file" for ``<log_dir>/<name>.log`` NDJSON files, or
            "memory" for in-process lists.
        log_dir: Directory for file sinks.

    Raises:
        ValueError: For an unknown backend.
    """
    factories: dict[str, Callable[[str], LogStoragePort]] = {
        "file": lambda name: FileLogStorage(Path(log_dir) / f"{name}.log"),
        "memory": lambda name: InMemoryLogStorage(),
    }
    if backend not in factories:
        raise ValueError(f"Unknown log backend: {backend!r}")
    return {name: factories[backend](name) for name in names}
