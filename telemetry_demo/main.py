from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from telemetry_demo.api.error_scenarios import router as error_scenarios_router
from telemetry_demo.api.errors import register_error_handlers
from telemetry_demo.api.health import router as health_router
from telemetry_demo.api.metrics import router as metrics_router
from telemetry_demo.api.users import router as users_router
from telemetry_demo.config import Settings, get_settings
from telemetry_demo.observability.middleware import RequestContextMiddleware
from telemetry_demo.services.container import Services, build_services
from telemetry_demo.services.rate_limit import RateLimitMiddleware


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    settings = settings or get_settings()
    services = services or build_services(settings)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        services.sweeper.start()
        services.logger.log(
            "info",
            "Application started",
            context={"environment": settings.environment, "port": settings.port},
        )
        try:
            yield
        finally:
            await services.sweeper.stop()
            services.logger.log("info", "Application shutdown")
            services.logger.close()

    app = FastAPI(title="Telemetry Demo", version="0.1.0", lifespan=lifespan)
    app.state.services = services

    app.include_router(health_router)
    app.include_router(metrics_router)
    app.include_router(users_router)
    app.include_router(error_scenarios_router)
    register_error_handlers(app)

    # Added last runs first: context is assigned before admission control.
    if settings.rate_limit_enabled:
        app.add_middleware(RateLimitMiddleware, limiter=services.rate_limiter)
    app.add_middleware(RequestContextMiddleware, logger=services.logger, metrics=services.metrics)
    return app


def run() -> None:
    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
