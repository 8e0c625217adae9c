from __future__ import annotations

from collections.abc import Iterable
from time import perf_counter
from typing import Any, Callable

import structlog
from starlette.datastructures import Headers, MutableHeaders

from telemetry_demo.observability.context import RequestContext
from telemetry_demo.observability.logging import StructuredLogger
from telemetry_demo.observability.metrics import MetricsCollector


def client_ip(scope: dict[str, Any]) -> str:
    forwarded = Headers(scope=scope).get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    client = scope.get("client")
    return client[0] if client else "unknown"


class RequestContextMiddleware:
    """Assigns trace context, writes access logs, and records per-endpoint metrics."""

    def __init__(
        self,
        app: Callable[..., Any],
        logger: StructuredLogger,
        metrics: MetricsCollector,
        excluded_metric_paths: Iterable[str] = ("/api/metrics", "/metrics"),
    ) -> None:
        self.app = app
        self.logger = logger
        self.metrics = metrics
        # Avoid self-observing the observability endpoints.
        self._excluded_metric_paths = set(excluded_metric_paths)

    async def __call__(self, scope: dict[str, Any], receive: Callable[..., Any], send: Callable[..., Any]) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        context = RequestContext.new(trace_id=headers.get("x-trace-id"))
        scope.setdefault("state", {})["context"] = context
        structlog.contextvars.bind_contextvars(**context.as_dict())

        path = scope.get("path", "")
        method = scope.get("method", "")
        http: dict[str, Any] = {
            "method": method,
            "path": path,
            "client_ip": client_ip(scope),
            "user_agent": headers.get("user-agent"),
        }
        self.logger.log("info", "HTTP request started", http=http)

        start = perf_counter()
        status_code: int = 500

        async def send_wrapper(message: dict[str, Any]) -> None:
            nonlocal status_code

            if message.get("type") == "http.response.start":
                status_code = int(message.get("status", 500))
                response_headers = MutableHeaders(scope=message)
                response_headers["X-Request-ID"] = context.request_id
                response_headers["X-Trace-ID"] = context.trace_id

            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            duration_ms = round((perf_counter() - start) * 1000.0, 2)

            # Update metrics first so they update even if logging misbehaves.
            if path not in self._excluded_metric_paths:
                self.metrics.record_request(method, path, status_code, duration_ms)

            completed = {**http, "status_code": status_code, "duration_ms": duration_ms}
            self.logger.log("info", "HTTP request completed", http=completed)
            if status_code >= 400:
                self.logger.log("error", "HTTP request failed", http=completed)

            structlog.contextvars.clear_contextvars()
