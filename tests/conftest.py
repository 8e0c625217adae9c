from __future__ import annotations

import json
from collections.abc import AsyncIterator, Iterator
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from telemetry_demo.config import Settings, get_settings
from telemetry_demo.main import create_app
from telemetry_demo.observability.logging import CallbackSink, StructuredLogger
from telemetry_demo.services.container import Services, build_services


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class LogCapture:
    """Collects the JSON lines a CallbackSink hands over."""

    def __init__(self) -> None:
        self.lines: list[str] = []

    def __call__(self, line: str) -> None:
        self.lines.append(line)

    @property
    def records(self) -> list[dict[str, Any]]:
        return [json.loads(line) for line in self.lines]

    def find(self, message: str) -> list[dict[str, Any]]:
        return [r for r in self.records if r["message"] == message]


@pytest.fixture(autouse=True)
def test_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> Iterator[None]:
    monkeypatch.setenv("LOG_PATH", str(tmp_path / "logs"))
    monkeypatch.setenv("LOG_TO_FILE", "false")
    monkeypatch.setenv("SIMULATED_QUERY_MS", "0")
    monkeypatch.setenv("SIMULATED_SLOW_QUERY_MS", "0")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def log_capture() -> LogCapture:
    return LogCapture()


@pytest.fixture
def logger(log_capture: LogCapture, request: pytest.FixtureRequest) -> Iterator[StructuredLogger]:
    structured = StructuredLogger(
        service="test-service",
        environment="test",
        sinks=[CallbackSink(log_capture)],
        level="debug",
        name=f"tests.{request.node.name}",
        host="test-host",
    )
    yield structured
    structured.close()


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def services(settings: Settings, logger: StructuredLogger) -> Services:
    return build_services(settings, logger=logger)


@pytest.fixture
def app(settings: Settings, services: Services):
    return create_app(settings, services)


@pytest.fixture
async def api_client(app) -> AsyncIterator[AsyncClient]:
    # Unhandled route errors still produce a 500 response instead of surfacing here.
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
