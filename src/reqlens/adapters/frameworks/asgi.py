"""ASGI instrumentation middleware.

Wraps any ASGI application. For every HTTP request it injects synthetic
latency, builds a ``RequestContext`` carrying a request-scoped instrumented
query capability, runs the application, then writes one access-log entry and
updates the request metrics.
"""

import fnmatch
import time
import uuid
from collections.abc import Callable, Coroutine
from datetime import UTC, datetime
from typing import Any
from urllib.parse import parse_qs

from reqlens.core.interception import (
    DEFAULT_EXPLAIN_PREFIX,
    InterceptionMode,
    intercept,
)
from reqlens.core.latency import LatencyInjector
from reqlens.core.metrics import MetricsRegistry, app_errors_counter
from reqlens.core.models import QueryCallable, RequestContext
from reqlens.core.ports import LogEmitterPort
from reqlens.resources import memory_usage_mb

# ASGI type aliases
Scope = dict[str, Any]
Receive = Callable[[], Coroutine[Any, Any, dict[str, Any]]]
Send = Callable[[dict[str, Any]], Coroutine[Any, Any, None]]
ASGIApp = Callable[[Scope, Receive, Send], Coroutine[Any, Any, None]]

CONTEXT_SCOPE_KEY = "reqlens.request_context"


def _parse_query_params(scope: Scope) -> dict[str, list[str]]:
    """Parse query string from ASGI scope into parameter dictionary.

    Args:
        scope: ASGI scope dictionary containing request metadata.

    Returns:
        Dictionary mapping parameter names to lists of values.
        Returns empty dict if query_string is missing or empty.
    """
    query_string = scope.get("query_string", b"").decode(errors="replace")
    return parse_qs(query_string)


def _header(scope: Scope, name: str) -> str | None:
    wanted = name.lower().encode()
    headers: list[tuple[bytes, bytes]] = scope.get("headers", [])
    for key, value in headers:
        if key.lower() == wanted:
            return value.decode("utf-8", errors="replace")
    return None


def _extract_request_id(scope: Scope, header_name: str = "X-Request-ID") -> str:
    """Extract or generate a request ID from ASGI scope headers.

    Searches for the specified header (case-insensitive). If not found,
    generates a new UUID.
    """
    return _header(scope, header_name) or str(uuid.uuid4())


def _request_target(scope: Scope) -> str:
    path = scope.get("path", "/")
    query_string = scope.get("query_string", b"")
    if query_string:
        return f"{path}?{query_string.decode(errors='replace')}"
    return path


def format_access_line(scope: Scope, status: int, duration_ms: int) -> str:
    """Render a combined-log-format style access line."""
    client = scope.get("client")
    ip = client[0] if client else "127.0.0.1"
    date = datetime.now(UTC).strftime("%d/%b/%Y:%H:%M:%S +0000")
    version = scope.get("http_version", "1.1")
    agent = _header(scope, "user-agent") or "-"
    referer = _header(scope, "referer") or "-"
    return (
        f'{ip} - - [{date}] "{scope["method"]} {_request_target(scope)} '
        f'HTTP/{version}" {status} {duration_ms} "{referer}" "{agent}" "-"'
    )


def get_request_context(scope: Scope) -> RequestContext:
    """Return the context the middleware attached to this request.

    Raises:
        RuntimeError: If the request did not pass through the middleware.
    """
    context = scope.get(CONTEXT_SCOPE_KEY)
    if context is None:
        raise RuntimeError("RequestInstrumentationMiddleware is not installed")
    return context


class RequestInstrumentationMiddleware:
    """ASGI middleware instrumenting every HTTP request.

    Per request, in order: start the duration timer, inject latency, install
    a request-scoped query interceptor, run the app, restore the query
    capability, write the access log and update the request metrics.
    Unhandled exceptions are counted, logged to the error sink and re-raised.
    """

    def __init__(
        self,
        app: ASGIApp,
        execute: QueryCallable,
        sinks: LogEmitterPort,
        registry: MetricsRegistry,
        injector: LatencyInjector,
        mode: InterceptionMode = InterceptionMode.FIRST_QUERY,
        explain_prefix: str = DEFAULT_EXPLAIN_PREFIX,
        exclude_paths: list[str] | None = None,
        request_id_header: str = "X-Request-ID",
    ) -> None:
        """Initialize the middleware.

        Args:
            app: The ASGI application to wrap.
            execute: The shared, non-instrumented query capability.
            sinks: Emitter for access and error entries.
            registry: Registry for request metrics.
            injector: Synthetic latency source.
            mode: Interception mode applied to every request.
            explain_prefix: Statement prefix used for cost estimation.
            exclude_paths: Paths skipped entirely by instrumentation.
                          Supports exact matches and wildcard patterns
                          (e.g., "/internal/*").
            request_id_header: Header carrying the correlation id.
        """
        self.app = app
        self.execute = execute
        self.sinks = sinks
        self.registry = registry
        self.injector = injector
        self.mode = mode
        self.explain_prefix = explain_prefix
        self.exclude_paths = exclude_paths or []
        self.request_id_header = request_id_header
        self._duration = registry.histogram(
            "http_request_duration_ms", "Duration of HTTP requests in ms"
        )
        self._errors = app_errors_counter(registry)
        self._requests = registry.counter(
            "http_requests_total", "Total number of HTTP requests"
        )

    def _path_excluded(self, path: str) -> bool:
        """Check if path matches any pattern in exclude_paths."""
        return any(fnmatch.fnmatch(path, pattern) for pattern in self.exclude_paths)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI callable interface that processes requests through the wrapped app."""
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = _extract_request_id(scope, self.request_id_header)
        if self._path_excluded(scope["path"]):
            scope[CONTEXT_SCOPE_KEY] = RequestContext(
                request_id=request_id, start_timestamp=time.time(), query=self.execute
            )
            await self.app(scope, receive, send)
            return

        stop_timer = self._duration.start_timer()
        start_timestamp = time.time()
        latency_ms = await self.injector.inject()

        context = RequestContext(
            request_id=request_id,
            start_timestamp=start_timestamp,
            injected_latency_ms=latency_ms,
        )
        interceptor = intercept(
            self.execute,
            context,
            self.sinks,
            self.registry,
            mode=self.mode,
            explain_prefix=self.explain_prefix,
        )
        scope[CONTEXT_SCOPE_KEY] = context
        captured: dict[str, Any] = {"status": None, "exception": None}

        async def wrapped_receive() -> dict[str, Any]:
            message = await receive()
            if message["type"] == "http.request":
                context.size_bytes += len(message.get("body", b""))
            return message

        async def wrapped_send(message: dict[str, Any]) -> None:
            if message["type"] == "http.response.start":
                captured["status"] = message["status"]
            await send(message)

        try:
            await self.app(scope, wrapped_receive, wrapped_send)
        except Exception as e:
            captured["exception"] = e
            # A status already sent to the client stands
            if captured["status"] is None:
                captured["status"] = 500
        finally:
            interceptor.restore()
            context.query = self.execute

        duration_ms = stop_timer()
        await self._record_observability(scope, context, captured, duration_ms)
        if captured["exception"] is not None:
            raise captured["exception"]

    async def _record_observability(
        self,
        scope: Scope,
        context: RequestContext,
        captured: dict[str, Any],
        duration_ms: int,
    ) -> None:
        """Write the access entry and request metrics."""
        status = captured["status"] or 0
        exc = captured["exception"]
        if exc is not None:
            self._errors.inc()
            await self.sinks.emit(
                "error",
                "ERROR",
                f"Unhandled error in {scope['method']} {scope['path']}: {exc}",
                {
                    "error_code": "UNHANDLED_ERROR",
                    "exception": type(exc).__name__,
                    "response_time_ms": duration_ms,
                    "request_id": context.request_id,
                },
            )

        await self.sinks.emit(
            "access",
            "INFO",
            format_access_line(scope, status, duration_ms),
            {
                "response_time_ms": duration_ms,
                "request_size_bytes": context.size_bytes,
                "memory_usage_mb": memory_usage_mb(),
                "network_latency_ms": context.injected_latency_ms,
                "queries_measured": len(context.query_complexity),
                "query_cost_total": context.total_query_cost,
                "request_id": context.request_id,
            },
        )
        self._requests.inc(
            labels={
                "method": scope["method"],
                "path": scope["path"],
                "status": str(status),
            }
        )
