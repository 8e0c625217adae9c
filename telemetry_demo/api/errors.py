from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from telemetry_demo.errors import AppError
from telemetry_demo.observability.stack import format_stack_trace
from telemetry_demo.services.container import Services


def _services(request: Request) -> Services:
    return request.app.state.services


def _context(request: Request) -> Any:
    return getattr(request.state, "context", None)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    services = _services(request)
    services.logger.log_error(
        exc.message,
        exc,
        {
            "error_name": exc.kind.value,
            "status_code": exc.status_code,
            "error_code": exc.error_code,
            "is_operational": exc.is_operational,
            "path": request.url.path,
            "method": request.method,
        },
        _context(request),
    )

    body: dict[str, Any] = {"error": exc.message, "status_code": exc.status_code}
    if exc.error_code:
        body["error_code"] = exc.error_code
    if services.settings.is_development:
        body["stack"] = format_stack_trace(exc)
        body["details"] = {"name": exc.kind.value, "is_operational": exc.is_operational}
    return JSONResponse(status_code=exc.status_code, content=body)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code != 404:
        return await http_exception_handler(request, exc)

    context = _context(request)
    _services(request).logger.log(
        "warning",
        "Route not found",
        **(context.as_dict() if context else {}),
        http={"method": request.method, "path": request.url.path},
    )
    return JSONResponse(status_code=404, content={"error": "Not found"})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    _services(request).logger.log_error("Unhandled error", exc, {"endpoint": request.url.path}, _context(request))
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
