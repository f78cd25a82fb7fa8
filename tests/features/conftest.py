"""BDD step definitions for request lifecycle features."""

import asyncio
import random
from dataclasses import dataclass, field
from typing import Any

import httpx
import pytest
from pytest_bdd import given, parsers, then, when

from reqlens.adapters.frameworks.fastapi import create_app
from reqlens.adapters.sinks import build_sinks
from reqlens.config import Settings
from reqlens.core.interception import DEFAULT_EXPLAIN_PREFIX
from reqlens.core.metrics import MetricsRegistry
from reqlens.core.ports import LogStoragePort


@dataclass
class LifecycleScenarioContext:
    """Shared state between steps in a lifecycle scenario."""

    settings: Settings | None = None
    store: Any = None
    sinks: dict[str, LogStoragePort] = field(default_factory=dict)
    registry: MetricsRegistry = field(default_factory=MetricsRegistry)
    responses: list[httpx.Response] = field(default_factory=list)

    def app(self) -> Any:
        async def no_sleep(seconds: float) -> None:
            return None

        return create_app(
            self.settings,
            store=self.store,
            sinks=self.sinks,
            registry=self.registry,
            rng=random.Random(17),
            sleep=no_sleep,
        )


def run_async(coro: Any) -> Any:
    """Run a coroutine synchronously."""
    return asyncio.run(coro)


async def send_requests(ctx: LifecycleScenarioContext, path: str, count: int) -> None:
    transport = httpx.ASGITransport(app=ctx.app())
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        for _ in range(count):
            ctx.responses.append(await client.get(path))


@pytest.fixture
def ctx() -> LifecycleScenarioContext:
    """Fresh scenario context for each test."""
    return LifecycleScenarioContext()


# === Background Steps ===
@given("an instrumented application backed by a fake store")
def step_app(ctx: LifecycleScenarioContext, app_settings: Settings, make_fake_store) -> None:
    ctx.settings = app_settings.model_copy(update={"filter_failure_rate": 0.0})
    ctx.store = make_fake_store()
    ctx.sinks = build_sinks("memory")


@given(parsers.parse('the store fails queries containing "{fragment}"'))
def step_store_fails(ctx: LifecycleScenarioContext, fragment: str) -> None:
    ctx.store.fail_on = fragment


@given(parsers.parse('query interception is set to "{mode}"'))
def step_interception_mode(ctx: LifecycleScenarioContext, mode: str) -> None:
    ctx.settings = ctx.settings.model_copy(update={"query_interception": mode})


# === Request Steps ===
@when(parsers.parse('a GET request is made to "{path}"'))
def step_get_request(ctx: LifecycleScenarioContext, path: str) -> None:
    run_async(send_requests(ctx, path, 1))


@when(parsers.parse('{n:d} GET requests are made to "{path}"'))
def step_get_requests(ctx: LifecycleScenarioContext, n: int, path: str) -> None:
    run_async(send_requests(ctx, path, n))


# === Assertion Steps ===
@then(parsers.parse("the response status should be {code:d}"))
def step_status(ctx: LifecycleScenarioContext, code: int) -> None:
    assert ctx.responses[-1].status_code == code


@then(parsers.re(r'the "(?P<sink>\w+)" sink should contain (?P<n>\d+) entr(y|ies)'))
def step_sink_count(ctx: LifecycleScenarioContext, sink: str, n: str) -> None:
    assert len(ctx.sinks[sink].entries) == int(n)


@then(parsers.parse('the "{sink}" sink should contain an entry "{message}"'))
def step_sink_message(ctx: LifecycleScenarioContext, sink: str, message: str) -> None:
    assert message in [e.message for e in ctx.sinks[sink].entries]


@then(
    parsers.parse(
        'the "{sink}" sink should contain an entry with error code "{code}"'
    )
)
def step_sink_error_code(ctx: LifecycleScenarioContext, sink: str, code: str) -> None:
    codes = [e.attributes.get("error_code") for e in ctx.sinks[sink].entries]
    assert code in codes


@then(
    parsers.parse(
        "the access entry should report network latency between {low:d} and {high:d} ms"
    )
)
def step_access_latency(ctx: LifecycleScenarioContext, low: int, high: int) -> None:
    entry = ctx.sinks["access"].entries[-1]
    assert low <= entry.attributes["network_latency_ms"] <= high


@then(parsers.parse("the measured query should report a cost of {cost:f}"))
def step_query_cost(ctx: LifecycleScenarioContext, cost: float) -> None:
    measured = [
        e for e in ctx.sinks["db"].entries if e.message.startswith("Executed query")
    ]
    assert measured[-1].attributes["query_cost"] == pytest.approx(cost)


@then(parsers.parse("the store should have received {n:d} plan requests"))
def step_plan_requests(ctx: LifecycleScenarioContext, n: int) -> None:
    plans = [s for s in ctx.store.statements if s.startswith(DEFAULT_EXPLAIN_PREFIX)]
    assert len(plans) == n


@then("the store should have received no queries")
def step_no_queries(ctx: LifecycleScenarioContext) -> None:
    assert ctx.store.calls == []


@then(parsers.parse('the metric "{name}" should be {value:d}'))
def step_metric_value(ctx: LifecycleScenarioContext, name: str, value: int) -> None:
    assert ctx.registry.counter(name).value() == value
