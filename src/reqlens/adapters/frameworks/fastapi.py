"""FastAPI application: demo API routes plus metrics and log endpoints.

Run with:
    uvicorn reqlens.adapters.frameworks.fastapi:create_app --factory

Endpoints:
    /api/users              - all users
    /api/orders/generate    - insert and return a batch of dummy orders
    /api/users/filter?age=N - users older than N (fails ~30% of the time)
    /api/compute            - CPU-bound loop (fails ~80% of the time)
    /metrics                - Prometheus text format
    /logs?sink=<name>       - NDJSON entries of one sink (since/level filters)
"""

import asyncio
import contextlib
import logging
import random
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Annotated, Any

from faker import Faker
from fastapi import APIRouter, Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse

from reqlens.adapters.frameworks.asgi import (
    RequestInstrumentationMiddleware,
    _parse_query_params,
    get_request_context,
)
from reqlens.adapters.frameworks.query_params import (
    _parse_age_param,
    _parse_level_param,
    _parse_since_param,
)
from reqlens.adapters.logging import configure_logging
from reqlens.adapters.sinks import LogSinkRouter, build_sinks
from reqlens.adapters.storage.sqlite_store import SQLiteBackingStore
from reqlens.bootstrap import bootstrap
from reqlens.config import Settings, get_settings
from reqlens.core.encoding.ndjson import encode_logs
from reqlens.core.encoding.prometheus import CONTENT_TYPE, encode_metrics
from reqlens.core.errors import ComputeError, SyntheticFailure
from reqlens.core.interception import InterceptionMode
from reqlens.core.latency import LatencyInjector, Sleep
from reqlens.core.metrics import (
    REGISTRY,
    MetricsRegistry,
    app_errors_counter,
    elapsed_ms,
)
from reqlens.core.models import RequestContext, Scalar
from reqlens.core.ports import BackingStorePort, LogStoragePort
from reqlens.demo_data import generate_orders, make_faker
from reqlens.resources import (
    cpu_user_seconds,
    memory_usage_mb,
    register_process_metrics,
)

SELECT_USERS = "SELECT * FROM users"
FILTER_USERS = "SELECT * FROM users WHERE age > ?"
INSERT_ORDER = "INSERT INTO orders (user_id, product, price) VALUES (?, ?, ?)"

logger = logging.getLogger(__name__)


@dataclass
class AppServices:
    """Collaborators shared by the route handlers of one application."""

    settings: Settings
    store: BackingStorePort
    sinks: LogSinkRouter
    registry: MetricsRegistry
    rng: random.Random
    faker: Faker
    sleep: Sleep


def request_context(request: Request) -> RequestContext:
    """FastAPI dependency returning the current request's context."""
    return get_request_context(request.scope)


Context = Annotated[RequestContext, Depends(request_context)]


def burn_cpu(iterations: int, rng: random.Random) -> float:
    """Sum ``iterations`` random floats."""
    result = 0.0
    for _ in range(iterations):
        result += rng.random()
    return result


def create_api_router(services: AppServices) -> APIRouter:
    """Create the router holding the demo business endpoints.

    Every handler catches failures at its boundary: the error counter is
    incremented, an entry with timing-to-failure and memory usage goes to
    the error sink, and a JSON 500 response is returned.
    """
    router = APIRouter()
    settings = services.settings
    sinks = services.sinks
    errors = app_errors_counter(services.registry)

    async def fail(
        start: float,
        message: str,
        error_code: str,
        body: dict[str, Any],
        **extra: Scalar,
    ) -> JSONResponse:
        errors.inc()
        await sinks.emit(
            "error",
            "ERROR",
            message,
            {
                "error_code": error_code,
                "failure_time_ms": elapsed_ms(start),
                "memory_usage_mb": memory_usage_mb(),
                **extra,
            },
        )
        return JSONResponse(status_code=500, content=body)

    @router.get("/api/users")
    async def list_users(context: Context) -> Response:
        """Return every user row."""
        start = time.perf_counter()
        try:
            result = await context.query(SELECT_USERS, None)
            duration = elapsed_ms(start)
            await sinks.emit(
                "db",
                "INFO",
                "Fetched users from database",
                {"rows_returned": result.row_count, "query_time_ms": duration},
            )
            return JSONResponse(content=result.rows)
        except Exception as exc:
            return await fail(
                start,
                f"Database error in /api/users: {exc}",
                "DB_ERROR",
                {"error": "Internal server error"},
            )

    @router.get("/api/orders/generate")
    async def generate_order_batch(context: Context) -> Response:
        """Generate a batch of dummy orders, insert them one by one, return them."""
        start = time.perf_counter()
        try:
            orders = generate_orders(
                settings.order_batch_size, services.rng, services.faker
            )
            inserted = 0
            for order in orders:
                await context.query(
                    INSERT_ORDER, [order["userId"], order["product"], order["price"]]
                )
                inserted += 1
            await sinks.emit(
                "app",
                "INFO",
                f"Generated and saved {inserted} dummy orders",
                {"orders_inserted": inserted, "operation_time_ms": elapsed_ms(start)},
            )
            return JSONResponse(content=orders)
        except Exception as exc:
            return await fail(
                start,
                f"Error generating orders: {exc}",
                "INSERT_ERROR",
                {"error": "Failed to generate orders"},
            )

    @router.get("/api/users/filter")
    async def filter_users(request: Request, context: Context) -> Response:
        """Users older than ``age``; randomly fails after a successful query."""
        start = time.perf_counter()
        try:
            age = _parse_age_param(_parse_query_params(request.scope))
            result = await context.query(FILTER_USERS, [age])
            duration = elapsed_ms(start)
            if services.rng.random() < settings.filter_failure_rate:
                raise SyntheticFailure("Random server failure")
            await sinks.emit(
                "db",
                "INFO",
                f"Filtered users with age > {age}",
                {"rows_returned": result.row_count, "query_time_ms": duration},
            )
            return JSONResponse(content=result.rows)
        except Exception as exc:
            return await fail(
                start,
                f"Filter error: {exc}",
                "FILTER_ERROR",
                {"error": str(exc)},
            )

    @router.get("/api/compute")
    async def compute(request: Request, context: Context) -> Response:
        """Run a CPU-bound loop in a worker thread, then usually fail."""
        start = time.perf_counter()
        await sinks.emit("app", "INFO", "Starting heavy computation")
        try:
            # Worker thread gets its own generator, seeded from the shared one
            worker_rng = random.Random(services.rng.getrandbits(64))
            result = await asyncio.to_thread(
                burn_cpu, settings.compute_iterations, worker_rng
            )
            duration = elapsed_ms(start)
            if services.rng.random() < settings.compute_failure_rate:
                raise ComputeError(
                    "Computation overload due to excessive resource demand"
                )
            await sinks.emit(
                "app",
                "INFO",
                f"Computation completed: {result}",
                {
                    "compute_time_ms": duration,
                    "cpu_usage_s": round(cpu_user_seconds(), 2),
                    "result_size": len(f"{result:.2f}"),
                },
            )
            return JSONResponse(content={"result": result})
        except Exception as exc:
            return await fail(
                start,
                f"Compute error: {exc}",
                "COMPUTE_ERROR",
                {"error": "Computation failed", "details": str(exc)},
                compute_time_ms=elapsed_ms(start),
                cpu_usage_s=round(cpu_user_seconds(), 2),
                failure_point="loop_execution",
                request_url=str(request.url.path),
                trace_id=context.request_id,
            )

    return router


def create_observability_router(
    sinks: LogSinkRouter, registry: MetricsRegistry
) -> APIRouter:
    """Create a router with /metrics and /logs endpoints.

    Args:
        sinks: Router whose sinks /logs reads from.
        registry: Registry exported by /metrics.

    Returns:
        APIRouter with /metrics and /logs endpoints configured.
    """
    router = APIRouter()

    @router.get("/metrics")
    async def get_metrics() -> Response:
        """Return metrics in Prometheus text format."""
        return Response(content=encode_metrics(registry), media_type=CONTENT_TYPE)

    @router.get("/logs")
    async def get_logs(request: Request) -> Response:
        """Return the entries of one sink in NDJSON format.

        Query parameters: ``sink`` (default "access"), ``since`` (Unix
        timestamp, exclusive) and ``level``.
        """
        params = _parse_query_params(request.scope)
        name = (params.get("sink") or ["access"])[0]
        try:
            storage: LogStoragePort = sinks.get(name)
        except ValueError:
            return JSONResponse(status_code=404, content={"error": f"Unknown sink: {name}"})
        entries = storage.read(
            since=_parse_since_param(params), level=_parse_level_param(params)
        )
        return Response(content=await encode_logs(entries), media_type="application/x-ndjson")

    return router


def _report_bootstrap_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Startup bootstrap failed: %s", exc, exc_info=exc)


def create_app(
    settings: Settings | None = None,
    *,
    store: BackingStorePort | None = None,
    sinks: dict[str, LogStoragePort] | None = None,
    registry: MetricsRegistry | None = None,
    rng: random.Random | None = None,
    sleep: Sleep = asyncio.sleep,
) -> FastAPI:
    """Assemble the instrumented application.

    Every collaborator can be injected; anything omitted is built from
    ``settings`` (or the environment when settings are omitted).

    Args:
        settings: Runtime configuration.
        store: Backing store; defaults to SQLite at ``settings.database_path``.
        sinks: Sink name -> storage; defaults to ``settings.log_backend``.
        registry: Metrics registry; defaults to the process-wide one.
        rng: Random source for latency, failures and dummy data.
        sleep: Async sleep used for latency injection and readiness polling.
    """
    settings = settings or get_settings()
    registry = registry if registry is not None else REGISTRY
    rng = rng or random.Random(settings.random_seed)
    store = store or SQLiteBackingStore(settings.database_path)
    router = LogSinkRouter(
        sinks if sinks is not None else build_sinks(settings.log_backend, settings.log_dir),
        registry,
        console_level=settings.console_log_level,
    )
    register_process_metrics(registry)
    configure_logging(router, level=settings.log_level)

    services = AppServices(
        settings=settings,
        store=store,
        sinks=router,
        registry=registry,
        rng=rng,
        faker=make_faker(rng),
        sleep=sleep,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # Listener accepts connections while the store is awaited and seeded
        task = asyncio.create_task(
            bootstrap(
                store.execute,
                router,
                rng,
                user_count=settings.seed_user_count,
                readiness_attempts=settings.readiness_attempts,
                readiness_delay_ms=settings.readiness_delay_ms,
                sleep=sleep,
            )
        )
        task.add_done_callback(_report_bootstrap_failure)
        app.state.bootstrap_task = task
        try:
            yield
        finally:
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            await store.close()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.services = services
    app.add_middleware(
        RequestInstrumentationMiddleware,
        execute=store.execute,
        sinks=router,
        registry=registry,
        injector=LatencyInjector(
            rng,
            min_ms=settings.latency_min_ms,
            max_ms=settings.latency_max_ms,
            sleep=sleep,
        ),
        mode=InterceptionMode(settings.query_interception),
        explain_prefix=settings.explain_prefix,
        exclude_paths=settings.exclude_paths,
    )
    app.include_router(create_api_router(services))
    app.include_router(create_observability_router(router, registry))
    return app
