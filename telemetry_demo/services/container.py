from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from telemetry_demo.config import Settings
from telemetry_demo.observability.logging import StructuredLogger
from telemetry_demo.observability.metrics import MetricsCollector
from telemetry_demo.services.cache import CacheSweeper, TTLCache
from telemetry_demo.services.health import HealthChecker
from telemetry_demo.services.rate_limit import RateLimiter
from telemetry_demo.services.users import UserStore


@dataclass
class Services:
    """Application-lifetime components, built once and injected everywhere."""

    settings: Settings
    logger: StructuredLogger
    metrics: MetricsCollector
    rate_limiter: RateLimiter
    cache: TTLCache[str, Any]
    sweeper: CacheSweeper
    health: HealthChecker
    users: UserStore


def build_services(settings: Settings, logger: StructuredLogger | None = None) -> Services:
    logger = logger or StructuredLogger.from_settings(settings)
    logger.capture("uvicorn", "uvicorn.error", "uvicorn.access")

    cache: TTLCache[str, Any] = TTLCache(default_ttl=settings.cache_default_ttl, logger=logger)
    return Services(
        settings=settings,
        logger=logger,
        metrics=MetricsCollector(),
        rate_limiter=RateLimiter(
            logger,
            window_ms=settings.rate_limit_window_ms,
            max_requests=settings.rate_limit_max_requests,
        ),
        cache=cache,
        sweeper=CacheSweeper(cache, settings.cache_cleanup_interval, logger),
        health=HealthChecker(logger, settings.service_name),
        users=UserStore(),
    )
