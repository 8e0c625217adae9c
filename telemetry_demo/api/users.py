from __future__ import annotations

import asyncio
import json
import re
from time import perf_counter
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from telemetry_demo.errors import BusinessError, NotFoundError
from telemetry_demo.models.schemas import ErrorResponse, User, UserCreate
from telemetry_demo.observability.context import RequestContext
from telemetry_demo.services.container import Services
from telemetry_demo.services.dependencies import get_request_context, get_services

router = APIRouter(prefix="/api/users", tags=["users"])

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _elapsed_ms(start: float) -> float:
    return (perf_counter() - start) * 1000.0


def _parse_payload(raw: str) -> Any:
    return json.loads(raw)


@router.get("/test/error")
async def json_parse_error(
    services: Services = Depends(get_services),
    context: RequestContext = Depends(get_request_context),
) -> JSONResponse:
    try:
        result = _parse_payload("invalid json")
    except json.JSONDecodeError as exc:
        services.logger.log_error(
            "JSON parsing error occurred",
            exc,
            {"operation": "parse_json", "endpoint": "/api/users/test/error"},
            context,
        )
        return JSONResponse(status_code=500, content={"error": "Internal server error"})
    return JSONResponse(content={"result": result})


@router.get("/test/slow-query")
async def slow_query(
    services: Services = Depends(get_services),
    context: RequestContext = Depends(get_request_context),
) -> dict[str, Any]:
    settings = services.settings
    start = perf_counter()
    await asyncio.sleep(settings.simulated_slow_query_ms / 1000)
    duration_ms = _elapsed_ms(start)

    statement = "SELECT * FROM large_table WHERE complex_condition = ?"
    slow = duration_ms >= settings.slow_query_threshold_ms
    if slow:
        services.logger.log_slow_query(
            "SELECT", statement, duration_ms, 1000, "analytics_db", settings.slow_query_threshold_ms, context
        )
    else:
        services.logger.log_query("SELECT", statement, duration_ms, 1000, "analytics_db", context)
    return {"status": "completed", "slow": slow, "duration_ms": round(duration_ms, 2)}


@router.get(
    "/{user_id}",
    response_model=User,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_user(
    user_id: str,
    services: Services = Depends(get_services),
    context: RequestContext = Depends(get_request_context),
) -> dict[str, Any]:
    try:
        uid = int(user_id)
    except ValueError:
        uid = 0
    if uid <= 0:
        raise BusinessError("Invalid user ID, must be positive integer", error_code="INVALID_USER_ID")

    cache_key = f"user:{uid}"
    cached = services.cache.get(cache_key)
    if cached is not None:
        return cached

    start = perf_counter()
    await asyncio.sleep(services.settings.simulated_query_ms / 1000)
    user = services.users.get(uid)
    services.logger.log_query(
        "SELECT",
        "SELECT * FROM users WHERE id = ?",
        _elapsed_ms(start),
        1 if user else 0,
        "user_db",
        {**context.as_dict(), "context": {"user_id": uid}},
    )
    if user is None:
        raise NotFoundError("User", error_code="USER_NOT_FOUND")

    services.cache.set(cache_key, user)
    return user


@router.post("", response_model=User, status_code=201, responses={400: {"model": ErrorResponse}})
async def create_user(
    payload: UserCreate,
    services: Services = Depends(get_services),
    context: RequestContext = Depends(get_request_context),
) -> dict[str, Any]:
    if not _EMAIL_RE.match(payload.email):
        raise BusinessError("Invalid email format", error_code="INVALID_EMAIL")

    start = perf_counter()
    await asyncio.sleep(services.settings.simulated_query_ms / 1000)
    user = services.users.create(payload.name, payload.email)
    services.logger.log_query(
        "INSERT",
        "INSERT INTO users (name, email) VALUES (?, ?)",
        _elapsed_ms(start),
        1,
        "user_db",
        context,
    )
    return user
