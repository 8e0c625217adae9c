from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from telemetry_demo.services.container import Services
from telemetry_demo.services.dependencies import get_services

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/health/detailed")
async def detailed_health(services: Services = Depends(get_services)) -> JSONResponse:
    report = await services.health.get_full_health_status()
    services.logger.log(
        "info",
        "Health check performed",
        context={"status": report["status"], "uptime_seconds": report["uptime_seconds"]},
    )
    status_code = 503 if report["status"] == "unhealthy" else 200
    return JSONResponse(status_code=status_code, content=report)
