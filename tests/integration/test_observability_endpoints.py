"""Tests for the /metrics and /logs endpoints."""

import json
import re

import pytest

pytestmark = [pytest.mark.integration, pytest.mark.tier(2)]

SAMPLE = re.compile(r"^([a-zA-Z_:][a-zA-Z0-9_:]*)(\{[^}]*\})? (\S+)$")


def counter_values(text: str) -> dict[str, float]:
    """Every ``*_total`` sample keyed by name plus labels."""
    values: dict[str, float] = {}
    for line in text.splitlines():
        match = SAMPLE.match(line)
        if match and match.group(1).endswith("_total"):
            values[match.group(1) + (match.group(2) or "")] = float(match.group(3))
    return values


class TestMetricsEndpoint:
    async def test_prometheus_content_type(self, api) -> None:
        response = await api.client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"] == (
            "text/plain; version=0.0.4; charset=utf-8"
        )

    async def test_exposes_request_and_process_metrics(self, api) -> None:
        await api.client.get("/api/users")
        response = await api.client.get("/metrics")
        text = response.text

        assert "# TYPE http_request_duration_ms histogram" in text
        assert 'http_request_duration_ms_bucket{le="+Inf"}' in text
        assert "# TYPE app_errors_total counter" in text
        assert (
            'http_requests_total{method="GET",path="/api/users",status="200"} 1.0'
            in text
        )
        assert "db_queries_total 1.0" in text
        assert "# TYPE process_resident_memory_bytes gauge" in text
        assert "# TYPE process_cpu_user_seconds_total gauge" in text

    async def test_every_line_is_well_formed(self, api) -> None:
        await api.client.get("/api/users/filter")
        text = (await api.client.get("/metrics")).text

        for line in text.splitlines():
            assert line.startswith("# ") or SAMPLE.match(line), line

    async def test_counters_never_decrease_across_scrapes(self, api) -> None:
        previous = counter_values((await api.client.get("/metrics")).text)
        for path in ("/api/users", "/api/users/filter", "/api/compute", "/api/users"):
            await api.client.get(path)
            current = counter_values((await api.client.get("/metrics")).text)
            for key, value in previous.items():
                assert current.get(key, 0.0) >= value, key
            previous = current
        assert previous["app_errors_total"] >= 1.0


class TestLogsEndpoint:
    async def test_defaults_to_access_sink(self, api) -> None:
        await api.client.get("/api/users")

        response = await api.client.get("/logs")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/x-ndjson")
        lines = [json.loads(line) for line in response.text.splitlines()]
        assert len(lines) == 1
        assert "/api/users" in lines[0]["message"]
        assert lines[0]["metrics"]["response_time_ms"] >= 0

    async def test_reads_named_sink(self, api) -> None:
        await api.client.get("/api/users")

        response = await api.client.get("/logs", params={"sink": "db"})

        messages = [json.loads(line)["message"] for line in response.text.splitlines()]
        assert "Executed query: SELECT * FROM users" in messages

    async def test_level_filter(self, api) -> None:
        await api.client.get("/api/users/filter")

        response = await api.client.get(
            "/logs", params={"sink": "error", "level": "error"}
        )

        lines = [json.loads(line) for line in response.text.splitlines()]
        assert lines
        assert all(line["level"] == "ERROR" for line in lines)

    async def test_since_filter(self, api) -> None:
        await api.client.get("/api/users")
        first = json.loads((await api.client.get("/logs")).text.splitlines()[0])

        response = await api.client.get("/logs", params={"since": first["timestamp"]})

        timestamps = [json.loads(line)["timestamp"] for line in response.text.splitlines()]
        assert all(ts > first["timestamp"] for ts in timestamps)

    async def test_invalid_filters_are_ignored(self, api) -> None:
        await api.client.get("/api/users")

        response = await api.client.get(
            "/logs", params={"since": "yesterday", "level": "loud"}
        )

        assert response.status_code == 200
        assert len(response.text.splitlines()) >= 1

    async def test_unknown_sink_is_404(self, api) -> None:
        response = await api.client.get("/logs", params={"sink": "audit"})

        assert response.status_code == 404
        assert response.json() == {"error": "Unknown sink: audit"}
