from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from telemetry_demo.services.container import Services
from telemetry_demo.services.dependencies import get_services

router = APIRouter(prefix="/api", tags=["metrics"])


def _require_metrics_endpoint(services: Services = Depends(get_services)) -> Services:
    if not services.settings.enable_metrics_endpoint:
        raise HTTPException(status_code=404, detail="Not found")
    return services


@router.get("/metrics")
async def metrics(services: Services = Depends(_require_metrics_endpoint)) -> dict:
    return services.metrics.get_metrics()


@router.get("/metrics/endpoint")
async def endpoint_metrics(
    key: str = Query(..., min_length=3, description="METHOD:path, e.g. GET:/api/users/1"),
    services: Services = Depends(_require_metrics_endpoint),
) -> dict:
    return services.metrics.get_endpoint_metrics(key)


@router.get("/cache/stats")
async def cache_stats(services: Services = Depends(get_services)) -> dict:
    return services.cache.get_stats()


@router.delete("/cache")
async def clear_cache(services: Services = Depends(get_services)) -> dict[str, int]:
    cleared = len(services.cache)
    services.cache.clear()
    services.logger.log("info", "Cache cleared", context={"cleared_entries": cleared})
    return {"cleared_entries": cleared}


@router.get("/rate-limit/stats")
async def rate_limit_stats(services: Services = Depends(get_services)) -> dict:
    return services.rate_limiter.get_stats()
