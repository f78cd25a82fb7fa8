"""reqlens - request instrumentation for a demo web API.

Every request gets synthetic latency, a request-scoped instrumented query
capability, an access-log entry and request metrics. Structured entries go
to four named sinks (access, error, db, app); metrics are exported in the
Prometheus text format.
"""

from reqlens.adapters.frameworks.asgi import (
    RequestInstrumentationMiddleware,
    get_request_context,
)
from reqlens.adapters.frameworks.fastapi import create_app
from reqlens.adapters.sinks import LogSinkRouter, build_sinks
from reqlens.config import Settings, get_settings
from reqlens.core.interception import InterceptionMode, QueryInterceptor, intercept
from reqlens.core.metrics import REGISTRY, MetricsRegistry
from reqlens.core.models import LogEntry, MetricSample, QueryResult, RequestContext

__version__ = "0.1.0"

__all__ = [
    "REGISTRY",
    "InterceptionMode",
    "LogEntry",
    "LogSinkRouter",
    "MetricSample",
    "MetricsRegistry",
    "QueryInterceptor",
    "QueryResult",
    "RequestContext",
    "RequestInstrumentationMiddleware",
    "Settings",
    "__version__",
    "build_sinks",
    "create_app",
    "get_request_context",
    "get_settings",
    "intercept",
]
