from __future__ import annotations

import math
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, NamedTuple

MAX_LATENCY_SAMPLES = 100


class EndpointKey(NamedTuple):
    method: str
    path: str

    def __str__(self) -> str:
        return f"{self.method}:{self.path}"

    @classmethod
    def parse(cls, key: str | EndpointKey) -> EndpointKey:
        if isinstance(key, EndpointKey):
            return key
        method, _, path = key.partition(":")
        return cls(method, path)


@dataclass
class _EndpointStats:
    requests: int = 0
    errors: int = 0
    latencies_ms: deque[float] = field(default_factory=lambda: deque(maxlen=MAX_LATENCY_SAMPLES))


def percentile(values: list[float], pct: float) -> float:
    """Nearest-rank percentile of a non-empty sample."""

    ordered = sorted(values)
    index = max(math.ceil(pct / 100 * len(ordered)) - 1, 0)
    return ordered[index]


def _rate(part: int, whole: int) -> float:
    return round(part / whole * 100, 2) if whole > 0 else 0


class MetricsCollector:
    """Thread-safe, process-local request metrics per ``METHOD:path`` (resets on restart)."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._lock = Lock()
        self._clock = clock
        self._endpoints: dict[EndpointKey, _EndpointStats] = {}
        self._started_at = clock()

    def record_request(self, method: str, path: str, status_code: int, duration_ms: float) -> None:
        key = EndpointKey(method, path)
        with self._lock:
            stats = self._endpoints.get(key)
            if stats is None:
                stats = self._endpoints[key] = _EndpointStats()
            stats.requests += 1
            if status_code >= 400:
                stats.errors += 1
            # deque(maxlen) drops the oldest sample on overflow.
            stats.latencies_ms.append(float(duration_ms))

    def _endpoint_metrics(self, key: EndpointKey, stats: _EndpointStats | None) -> dict[str, Any]:
        requests = stats.requests if stats else 0
        errors = stats.errors if stats else 0
        samples = list(stats.latencies_ms) if stats else []

        metrics: dict[str, Any] = {
            "method": key.method,
            "path": key.path,
            "total_requests": requests,
            "total_errors": errors,
            "error_rate": _rate(errors, requests),
        }
        if samples:
            metrics["avg_response_time_ms"] = round(sum(samples) / len(samples), 2)
            metrics["max_response_time_ms"] = round(max(samples), 2)
            metrics["min_response_time_ms"] = round(min(samples), 2)
            metrics["p95_response_time_ms"] = round(percentile(samples, 95), 2)
        return metrics

    def get_endpoint_metrics(self, key: str | EndpointKey) -> dict[str, Any]:
        endpoint = EndpointKey.parse(key)
        with self._lock:
            return self._endpoint_metrics(endpoint, self._endpoints.get(endpoint))

    def latency_samples(self, key: str | EndpointKey) -> list[float]:
        endpoint = EndpointKey.parse(key)
        with self._lock:
            stats = self._endpoints.get(endpoint)
            return list(stats.latencies_ms) if stats else []

    def get_metrics(self) -> dict[str, Any]:
        with self._lock:
            total_requests = sum(s.requests for s in self._endpoints.values())
            total_errors = sum(s.errors for s in self._endpoints.values())
            # Keyed by "METHOD:path" so two methods on one path stay separate.
            endpoints = {str(key): self._endpoint_metrics(key, stats) for key, stats in self._endpoints.items()}
            return {
                "uptime_seconds": int(self._clock() - self._started_at),
                "total_requests": total_requests,
                "total_errors": total_errors,
                "overall_error_rate": _rate(total_errors, total_requests),
                "endpoints": endpoints,
            }

    def reset(self) -> None:
        with self._lock:
            self._endpoints.clear()
            self._started_at = self._clock()
