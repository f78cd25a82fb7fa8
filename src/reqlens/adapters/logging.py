"""Python logging handler adapter for reqlens.

This adapter bridges Python's standard library logging module to the sink
router, so module-level ``logging`` calls inside the package end up in the
``app`` sink next to the entries the pipeline emits itself.
"""

import logging
import sys
import traceback

from reqlens.adapters.sinks import CONSOLE_LOGGER_NAME, LogSinkRouter
from reqlens.core.models import Scalar

# Standard LogRecord attributes that should not be treated as extra fields
_STANDARD_LOGRECORD_ATTRS = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    }
)


class SinkHandler(logging.Handler):
    """Logging handler that writes log records to one sink of a router.

    Example:
        ```python
        handler = SinkHandler(router, sink="app")
        logging.getLogger("reqlens").addHandler(handler)
        ```
    """

    def __init__(self, router: LogSinkRouter, sink: str = "app") -> None:
        """Initialize the handler.

        Args:
            router: Router owning the destination sink.
            sink: Name of the sink receiving records (default "app").
        """
        super().__init__()
        self._router = router
        self._sink = sink

    def emit(self, record: logging.LogRecord) -> None:
        """Emit a log record to the sink.

        Args:
            record: The log record to emit.
        """
        attributes: dict[str, Scalar] = {"logger": record.name}

        # Add any extra attributes passed via logging call
        for key, value in record.__dict__.items():
            if key not in _STANDARD_LOGRECORD_ATTRS and isinstance(
                value, (str, int, float, bool)
            ):
                attributes[key] = value

        if record.exc_info:
            exc_type, exc_value, exc_tb = record.exc_info
            if exc_type is not None:
                attributes["exc_type"] = exc_type.__name__
            if exc_value is not None:
                attributes["exc_message"] = str(exc_value)
            if exc_tb is not None:
                attributes["exc_traceback"] = "".join(
                    traceback.format_exception(exc_type, exc_value, exc_tb)
                )

        try:
            self._router.emit_sync(
                self._sink, record.levelname, record.getMessage(), attributes
            )
        except Exception:
            self.handleError(record)


def configure_logging(router: LogSinkRouter, level: str = "INFO") -> logging.Logger:
    """Wire the package logger to the ``app`` sink and the console.

    Idempotent: handlers installed by an earlier call are replaced.

    Args:
        router: Router whose ``app`` sink receives module log records.
        level: Minimum level for package loggers.

    Returns:
        The configured ``reqlens`` logger.
    """
    package_logger = logging.getLogger("reqlens")
    package_logger.setLevel(level.upper())
    for handler in list(package_logger.handlers):
        if isinstance(handler, SinkHandler):
            package_logger.removeHandler(handler)
    package_logger.addHandler(SinkHandler(router, sink="app"))

    console = logging.getLogger(CONSOLE_LOGGER_NAME)
    console.setLevel(logging.DEBUG)
    if not any(getattr(h, "_reqlens_console", False) for h in console.handlers):
        stream = logging.StreamHandler(sys.stdout)
        stream.setFormatter(logging.Formatter("%(message)s"))
        stream._reqlens_console = True  # type: ignore[attr-defined]
        console.addHandler(stream)
    return package_logger
