"""Per-client fixed-window rate limiting."""

from __future__ import annotations

import math
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from threading import Lock
from typing import Any

from starlette.datastructures import MutableHeaders
from starlette.responses import JSONResponse

from telemetry_demo.observability.context import RequestContext
from telemetry_demo.observability.logging import StructuredLogger, metadata_fields
from telemetry_demo.observability.middleware import client_ip


@dataclass
class RateLimitWindow:
    window_start: float
    count: int = 0


@dataclass(frozen=True)
class Admission:
    allowed: bool
    count: int
    limit: int
    retry_after_seconds: int | None = None

    @property
    def remaining(self) -> int:
        return max(self.limit - self.count, 0)


class RateLimiter:
    """Admits at most ``max_requests`` per client within each ``window_ms`` window.

    Every check first drops windows that have been idle longer than
    ``window_ms``, so memory tracks the set of recently active clients.
    Rejections are reported as values, never raised.
    """

    def __init__(
        self,
        logger: StructuredLogger,
        window_ms: int = 60_000,
        max_requests: int = 100,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.logger = logger
        self.window_ms = window_ms
        self.max_requests = max_requests
        self._clock = clock
        self._lock = Lock()
        self._windows: dict[str, RateLimitWindow] = {}

    def _now_ms(self) -> float:
        return self._clock() * 1000.0

    def _sweep(self, now: float) -> None:
        stale = [cid for cid, w in self._windows.items() if now - w.window_start > self.window_ms]
        for cid in stale:
            del self._windows[cid]

    def admit(self, client_id: str, metadata: Mapping[str, Any] | RequestContext | None = None) -> Admission:
        with self._lock:
            now = self._now_ms()
            self._sweep(now)

            window = self._windows.get(client_id)
            if window is None:
                window = self._windows[client_id] = RateLimitWindow(window_start=now)
            if now - window.window_start > self.window_ms:
                window.window_start = now
                window.count = 0

            window.count += 1
            count = window.count
            if count <= self.max_requests:
                return Admission(allowed=True, count=count, limit=self.max_requests)
            retry_after = math.ceil((window.window_start + self.window_ms - now) / 1000)

        fields = metadata_fields(metadata)
        fields["context"] = {
            "client_ip": client_id,
            "request_count": count,
            "limit": self.max_requests,
            "window_ms": self.window_ms,
        }
        self.logger.log("warning", "Rate limit exceeded", **fields)
        return Admission(allowed=False, count=count, limit=self.max_requests, retry_after_seconds=retry_after)

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "tracked_clients": len(self._windows),
                "window_ms": self.window_ms,
                "max_requests": self.max_requests,
            }


class RateLimitMiddleware:
    """Consults the limiter before the route runs; answers 429 on rejection."""

    def __init__(
        self,
        app: Callable[..., Any],
        limiter: RateLimiter,
        exempt_paths: Iterable[str] = ("/health", "/health/detailed"),
    ) -> None:
        self.app = app
        self.limiter = limiter
        self._exempt_paths = set(exempt_paths)

    async def __call__(self, scope: dict[str, Any], receive: Callable[..., Any], send: Callable[..., Any]) -> None:
        if scope.get("type") != "http" or scope.get("path") in self._exempt_paths:
            await self.app(scope, receive, send)
            return

        admission = self.limiter.admit(client_ip(scope))
        if not admission.allowed:
            response = JSONResponse(
                status_code=429,
                content={"error": "Too many requests", "retry_after": admission.retry_after_seconds},
                headers={
                    "Retry-After": str(admission.retry_after_seconds),
                    "X-RateLimit-Limit": str(admission.limit),
                    "X-RateLimit-Remaining": "0",
                },
            )
            await response(scope, receive, send)
            return

        async def send_wrapper(message: dict[str, Any]) -> None:
            if message.get("type") == "http.response.start":
                headers = MutableHeaders(scope=message)
                headers["X-RateLimit-Limit"] = str(admission.limit)
                headers["X-RateLimit-Remaining"] = str(admission.remaining)
            await send(message)

        await self.app(scope, receive, send_wrapper)
