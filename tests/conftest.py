"""Shared test fixtures for all test modules."""

import asyncio
import random
from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx
import pytest
from fastapi import FastAPI

from reqlens.adapters.frameworks.asgi import Receive, Scope, Send
from reqlens.adapters.frameworks.fastapi import create_app
from reqlens.adapters.sinks import LogSinkRouter, build_sinks
from reqlens.adapters.storage.in_memory import InMemoryLogStorage
from reqlens.adapters.storage.sqlite_store import SQLiteBackingStore
from reqlens.bootstrap import seed_users
from reqlens.config import Settings
from reqlens.core.errors import QueryError
from reqlens.core.metrics import MetricsRegistry
from reqlens.core.models import QueryResult, Scalar
from reqlens.core.ports import LogStoragePort

POSTGRES_PLAN = "Seq Scan on users  (cost=0.00..35.50 rows=2550 width=4)"


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    """Provide a temporary database path for backing store tests."""
    return str(tmp_path / "reqlens.db")


@pytest.fixture
def registry() -> MetricsRegistry:
    """Fresh registry so metric values never leak between tests."""
    return MetricsRegistry()


@pytest.fixture
def memory_sinks() -> dict[str, LogStoragePort]:
    return build_sinks("memory")


@pytest.fixture
def sink_router(
    memory_sinks: dict[str, LogStoragePort], registry: MetricsRegistry
) -> LogSinkRouter:
    return LogSinkRouter(memory_sinks, registry, console_level="ERROR")


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def sleep_calls() -> list[float]:
    return []


@pytest.fixture
def recording_sleep(sleep_calls: list[float]):
    """Async sleep that records the requested seconds and only yields once."""

    async def _sleep(seconds: float) -> None:
        sleep_calls.append(seconds)
        await asyncio.sleep(0)

    return _sleep


@pytest.fixture
async def sqlite_store(db_path: str) -> AsyncGenerator[SQLiteBackingStore, None]:
    store = SQLiteBackingStore(db_path)
    await store.initialize()
    yield store
    await store.close()


# === Fake backing store ===


@dataclass
class FakeStore:
    """Query capability answering EXPLAIN with a fixed plan and recording calls.

    Attributes:
        plan: Text returned for statements starting with the explain prefix.
        rows: Rows returned for every other statement.
        fail_on: Substring that makes a non-explain statement raise QueryError.
        fail_explain: Make plan requests raise QueryError as well.
    """

    plan: str = POSTGRES_PLAN
    rows: list[dict[str, Any]] = field(default_factory=lambda: [{"id": 1}, {"id": 2}])
    fail_on: str | None = None
    fail_explain: bool = False
    calls: list[tuple[str, tuple[Scalar, ...]]] = field(default_factory=list)
    closed: bool = False

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        self.closed = True

    async def execute(
        self, text: str, params: Sequence[Scalar] | None = None
    ) -> QueryResult:
        self.calls.append((text, tuple(params or ())))
        if text.startswith("EXPLAIN"):
            if self.fail_explain:
                raise QueryError("plan unavailable", text)
            return QueryResult(rows=[{"QUERY PLAN": self.plan}], row_count=1)
        if self.fail_on is not None and self.fail_on in text:
            raise QueryError(f"relation does not exist: {text}", text)
        return QueryResult(rows=list(self.rows), row_count=len(self.rows))

    @property
    def statements(self) -> list[str]:
        return [text for text, _ in self.calls]


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def make_fake_store():
    """Factory for FakeStore instances with custom behavior."""
    return FakeStore


# === ASGI Test Fixtures ===


@pytest.fixture
def asgi_scope():
    """Factory fixture for creating ASGI scope dicts."""

    def _scope(
        method: str = "GET",
        path: str = "/test",
        query_string: bytes = b"",
        headers: list[tuple[bytes, bytes]] | None = None,
    ) -> Scope:
        return {
            "type": "http",
            "method": method,
            "path": path,
            "query_string": query_string,
            "headers": headers or [],
            "http_version": "1.1",
            "client": ("10.0.0.7", 52000),
        }

    return _scope


@pytest.fixture
def asgi_send_capture():
    """Fixture that returns a send callable and a responses list for capture."""
    responses: list[dict[str, Any]] = []

    async def send(message: dict[str, Any]) -> None:
        responses.append(message)

    return send, responses


@pytest.fixture
def asgi_receive():
    """Factory for a receive callable delivering one request body."""

    def _receive(body: bytes = b"") -> Receive:
        async def receive() -> dict[str, Any]:
            return {"type": "http.request", "body": body, "more_body": False}

        return receive

    return _receive


@pytest.fixture
def asgi_test_client():
    """Factory fixture that creates an httpx.AsyncClient for ASGI testing.

    Usage:
        async def test_something(asgi_test_client):
            async with asgi_test_client(app) as client:
                response = await client.get("/endpoint")
    """

    def _get_client(app: Any, raise_app_exceptions: bool = True) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(
                app=app, raise_app_exceptions=raise_app_exceptions
            ),
            base_url="http://test",
        )

    return _get_client


async def ok_app(scope: Scope, receive: Receive, send: Send) -> None:
    """Simple ASGI app that returns 200 OK."""
    await send({"type": "http.response.start", "status": 200, "headers": []})
    await send({"type": "http.response.body", "body": b"OK"})


@pytest.fixture
def basic_asgi_app():
    return ok_app


# === Application fixtures ===


@pytest.fixture
def app_settings(tmp_path: Path) -> Settings:
    """Settings for an isolated application: temp database, memory sinks."""
    return Settings(
        database_path=str(tmp_path / "app.db"),
        log_dir=str(tmp_path / "logs"),
        log_backend="memory",
        console_log_level="ERROR",
        compute_iterations=1000,
        readiness_attempts=1,
        readiness_delay_ms=0,
        random_seed=1234,
    )


@dataclass
class ApiHarness:
    """A running application plus handles on its collaborators."""

    client: httpx.AsyncClient
    app: FastAPI
    store: SQLiteBackingStore
    sinks: dict[str, InMemoryLogStorage]
    registry: MetricsRegistry
    sleep_calls: list[float]

    def entries(self, sink: str) -> list[Any]:
        return self.sinks[sink].entries


@pytest.fixture
def build_api(
    app_settings: Settings,
    registry: MetricsRegistry,
    recording_sleep,
    sleep_calls: list[float],
):
    """Factory creating a seeded application; use as an async context manager.

    httpx's ASGITransport does not run the lifespan, so the store is
    initialized and seeded here instead of by the background bootstrap.
    """

    @asynccontextmanager
    async def _build(
        settings: Settings | None = None,
        rng: random.Random | None = None,
        raise_app_exceptions: bool = True,
    ):
        settings = settings or app_settings
        sinks = build_sinks("memory")
        store = SQLiteBackingStore(settings.database_path)
        app = create_app(
            settings,
            store=store,
            sinks=sinks,
            registry=registry,
            rng=rng or random.Random(settings.random_seed),
            sleep=recording_sleep,
        )
        await store.initialize()
        await seed_users(
            store.execute,
            app.state.services.sinks,
            settings.seed_user_count,
            random.Random(99),
        )
        transport = httpx.ASGITransport(
            app=app, raise_app_exceptions=raise_app_exceptions
        )
        try:
            async with httpx.AsyncClient(
                transport=transport, base_url="http://test"
            ) as client:
                yield ApiHarness(
                    client=client,
                    app=app,
                    store=store,
                    sinks=sinks,  # type: ignore[arg-type]
                    registry=registry,
                    sleep_calls=sleep_calls,
                )
        finally:
            await store.close()

    return _build


@pytest.fixture
async def api(build_api) -> AsyncGenerator[ApiHarness, None]:
    async with build_api() as harness:
        yield harness
