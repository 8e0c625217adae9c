from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime, timezone
from time import perf_counter
from typing import Any

from telemetry_demo.observability.logging import StructuredLogger

Probe = Callable[[], Awaitable[dict[str, Any]]]

# An unhealthy critical component makes the whole service unhealthy;
# anything else short of healthy only degrades it.
CRITICAL_COMPONENTS = frozenset({"database", "redis"})


async def _simulated_probe(delay_ms: float, **details: Any) -> dict[str, Any]:
    start = perf_counter()
    await asyncio.sleep(delay_ms / 1000)
    return {"status": "healthy", "latency_ms": round((perf_counter() - start) * 1000, 2), **details}


async def check_database() -> dict[str, Any]:
    return await _simulated_probe(10, connection_pool={"active": 2, "idle": 8, "max": 10})


async def check_redis() -> dict[str, Any]:
    return await _simulated_probe(5, memory_used_mb=42.5, memory_peak_mb=50.2)


async def check_external_api() -> dict[str, Any]:
    return await _simulated_probe(20, endpoint="https://api.example.com")


def overall_status(components: Mapping[str, Mapping[str, Any]]) -> str:
    if any(components.get(name, {}).get("status") == "unhealthy" for name in CRITICAL_COMPONENTS):
        return "unhealthy"
    if any(c.get("status") != "healthy" for c in components.values()):
        return "degraded"
    return "healthy"


class HealthChecker:
    def __init__(
        self,
        logger: StructuredLogger,
        service_name: str,
        probes: Mapping[str, Probe] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.logger = logger
        self.service_name = service_name
        self.probes: dict[str, Probe] = dict(
            probes
            or {
                "database": check_database,
                "redis": check_redis,
                "external_api": check_external_api,
            }
        )
        self._clock = clock
        self._started_at = clock()

    def uptime_seconds(self) -> int:
        return int(self._clock() - self._started_at)

    async def _run_probe(self, name: str, probe: Probe) -> dict[str, Any]:
        try:
            return await probe()
        except Exception as exc:  # noqa: BLE001
            self.logger.log_error(f"Health check failed: {name}", exc, {"component": name})
            status = "unhealthy" if name in CRITICAL_COMPONENTS else "degraded"
            return {"status": status, "error": str(exc)}

    async def get_full_health_status(self) -> dict[str, Any]:
        results = await asyncio.gather(*(self._run_probe(name, probe) for name, probe in self.probes.items()))
        components = dict(zip(self.probes, results))
        return {
            "status": overall_status(components),
            "uptime_seconds": self.uptime_seconds(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service_name": self.service_name,
            "components": components,
        }
