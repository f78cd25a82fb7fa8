"""Core domain models for request instrumentation data."""

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

Scalar = str | int | float | bool


@dataclass(frozen=True)
class LogEntry:
    """A structured log entry.

    Attributes:
        timestamp: Unix timestamp in seconds.
        level: Log level (e.g., INFO, ERROR, WARN).
        message: The log message.
        attributes: Metrics map attached to the entry.
    """

    timestamp: float
    level: str
    message: str
    attributes: dict[str, Scalar] = field(default_factory=dict)


@dataclass(frozen=True)
class MetricSample:
    """A single metric measurement.

    Attributes:
        name: Sample name (e.g., http_request_duration_ms_bucket).
        kind: Metric family type: counter, gauge or histogram.
        value: The metric value.
        labels: Key-value pairs for metric dimensions.
    """

    name: str
    kind: str
    value: float
    labels: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class QueryResult:
    """Rows produced by one query call.

    Attributes:
        rows: Result rows as column-name mappings.
        row_count: Rows returned (SELECT) or affected (DML).
    """

    rows: list[dict[str, Any]] = field(default_factory=list)
    row_count: int = 0


@dataclass(frozen=True)
class QueryExecution:
    """Measurements of one instrumented query call."""

    text: str
    params: tuple[Scalar, ...]
    estimated_cost: float
    row_count: int
    duration_ms: int

    def as_metrics(self) -> dict[str, Scalar]:
        return {
            "query_time_ms": self.duration_ms,
            "query_cost": self.estimated_cost,
            "rows_returned": self.row_count,
            "params_count": len(self.params),
        }


QueryCallable = Callable[[str, Sequence[Scalar] | None], Awaitable[QueryResult]]


@dataclass
class RequestContext:
    """Per-request state, owned by a single request's handling lifetime.

    Attributes:
        request_id: Correlation id from X-Request-ID or a generated UUID.
        start_timestamp: Unix timestamp when the request arrived.
        injected_latency_ms: Synthetic delay applied before dispatch.
        size_bytes: Request body bytes received so far.
        query_complexity: Query text -> {"cost", "time"}, last write wins.
        query: The query capability handlers must use for this request.
    """

    request_id: str
    start_timestamp: float
    injected_latency_ms: int = 0
    size_bytes: int = 0
    query_complexity: dict[str, dict[str, float]] = field(default_factory=dict)
    query: QueryCallable | None = None

    def record_query(self, text: str, cost: float, time_ms: int) -> None:
        self.query_complexity[text] = {"cost": cost, "time": time_ms}

    @property
    def total_query_cost(self) -> float:
        return sum(item["cost"] for item in self.query_complexity.values())
