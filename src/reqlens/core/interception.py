"""Request-scoped interception of the query capability.

A ``QueryInterceptor`` wraps the store's ``execute`` callable for the
duration of one request. Each instrumented call first asks the store for a
query plan, then runs the real statement, then logs cost, rows and timing to
the ``db`` sink and records them on the owning ``RequestContext``.

The wrapped callable itself is never modified. The interceptor is a separate
object held by the request's context, so concurrent requests each see their
own instrumentation state and restoring one cannot affect another.

Cost comes from the ``cost=<startup>..<total>`` figures of a Postgres-style
plan. SQLite's ``EXPLAIN QUERY PLAN`` prints none, so against the bundled
SQLite store every measured query reports a cost of 0.0 and
``query_cost_total`` stays 0.0. Set ``REQLENS_EXPLAIN_PREFIX`` for a store
whose plans carry costs.
"""

import logging
import time
from collections.abc import Sequence
from enum import Enum

from reqlens.core.cost import parse_plan_cost, plan_text_from_rows
from reqlens.core.metrics import MetricsRegistry, elapsed_ms
from reqlens.core.models import (
    QueryCallable,
    QueryExecution,
    QueryResult,
    RequestContext,
    Scalar,
)
from reqlens.core.ports import LogEmitterPort

logger = logging.getLogger(__name__)

DEFAULT_EXPLAIN_PREFIX = "EXPLAIN QUERY PLAN "
QUERY_ERROR = "QUERY_ERROR"


class InterceptionMode(str, Enum):
    """Which queries of a request get instrumented.

    FIRST_QUERY: only the first query; the interceptor disarms itself after
        that call completes, whatever its outcome.
    ALL_QUERIES: every query until the request finishes.
    """

    FIRST_QUERY = "first"
    ALL_QUERIES = "all"


class QueryInterceptor:
    """Callable standing in for the query capability during one request.

    Args:
        execute: The original, non-instrumented query capability.
        context: The request that owns every execution measured here.
        sinks: Emitter used for ``db`` and ``error`` entries.
        registry: Registry receiving query duration and count metrics.
        mode: Instrument the first query only, or all of them.
        explain_prefix: Prepended to the query text to obtain a plan.
    """

    def __init__(
        self,
        execute: QueryCallable,
        context: RequestContext,
        sinks: LogEmitterPort,
        registry: MetricsRegistry,
        mode: InterceptionMode = InterceptionMode.FIRST_QUERY,
        explain_prefix: str = DEFAULT_EXPLAIN_PREFIX,
    ) -> None:
        self.original = execute
        self.context = context
        self.sinks = sinks
        self.mode = mode
        self.explain_prefix = explain_prefix
        self._armed = True
        self._query_histogram = registry.histogram(
            "db_query_duration_ms", "Duration of instrumented queries in ms"
        )
        self._query_counter = registry.counter(
            "db_queries_total", "Total number of instrumented queries"
        )

    @property
    def armed(self) -> bool:
        return self._armed

    def restore(self) -> None:
        """Disarm; later calls go straight to the original capability."""
        self._armed = False

    async def __call__(
        self, text: str, params: Sequence[Scalar] | None = None
    ) -> QueryResult:
        if not self._armed:
            return await self.original(text, params)
        try:
            return await self._instrumented(text, params)
        finally:
            if self.mode is InterceptionMode.FIRST_QUERY:
                self.restore()

    async def estimate_cost(self, text: str, params: Sequence[Scalar] | None) -> float:
        plan = await self.original(f"{self.explain_prefix}{text}", params)
        return parse_plan_cost(plan_text_from_rows(plan.rows))

    async def _instrumented(
        self, text: str, params: Sequence[Scalar] | None
    ) -> QueryResult:
        bound = tuple(params or ())
        try:
            estimate_start = time.perf_counter()
            cost = await self.estimate_cost(text, params)
            estimate_time = elapsed_ms(estimate_start)

            start = time.perf_counter()
            result = await self.original(text, params)
            duration = elapsed_ms(start)
        except Exception as exc:
            await self.sinks.emit(
                "error",
                "ERROR",
                f"Query error: {exc}",
                {"query_text": text, "error_code": QUERY_ERROR},
            )
            raise

        execution = QueryExecution(
            text=text,
            params=bound,
            estimated_cost=cost,
            row_count=result.row_count,
            duration_ms=duration,
        )
        await self.sinks.emit(
            "db",
            "INFO",
            f"Executed query: {text}",
            {**execution.as_metrics(), "estimate_time_ms": estimate_time},
        )
        self.context.record_query(text, cost, duration)
        self._query_histogram.observe(duration)
        self._query_counter.inc()
        return result


def intercept(
    execute: QueryCallable,
    context: RequestContext,
    sinks: LogEmitterPort,
    registry: MetricsRegistry,
    mode: InterceptionMode = InterceptionMode.FIRST_QUERY,
    explain_prefix: str = DEFAULT_EXPLAIN_PREFIX,
) -> QueryInterceptor:
    """Wrap ``execute`` for one request and attach it to the context.

    Returns:
        The interceptor, also stored as ``context.query``.
    """
    interceptor = QueryInterceptor(
        execute, context, sinks, registry, mode=mode, explain_prefix=explain_prefix
    )
    context.query = interceptor
    logger.debug("Query interception armed for request %s", context.request_id)
    return interceptor
