"""Canned failure scenarios that exist only to produce sample error logs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from telemetry_demo.errors import AuthError, BusinessError, ForbiddenError, NotFoundError
from telemetry_demo.observability.context import RequestContext
from telemetry_demo.services.container import Services
from telemetry_demo.services.dependencies import get_request_context, get_services

router = APIRouter(prefix="/api/test-errors", tags=["test-errors"])


@dataclass(frozen=True)
class Scenario:
    status_code: int
    message: str
    make_error: Callable[[], Exception]
    response: str
    context: dict[str, Any] = field(default_factory=dict)


SCENARIOS: dict[str, Scenario] = {
    "database-connection": Scenario(
        503,
        "Database connection failed",
        lambda: ConnectionRefusedError("Could not connect to PostgreSQL database at localhost:5432"),
        "Database connection failed",
        {"database": "postgres", "host": "localhost", "port": 5432, "retry_count": 3, "operation": "db_connect"},
    ),
    "timeout": Scenario(
        504,
        "Request timeout exceeded",
        lambda: TimeoutError("External API request timed out after 30 seconds"),
        "Gateway timeout",
        {"api_endpoint": "https://payment-api.example.com/charge", "timeout_seconds": 30, "operation": "external_api_call"},
    ),
    "authentication": Scenario(
        401,
        "Authentication failed - invalid credentials",
        lambda: AuthError("JWT token validation failed", error_code="TOKEN_INVALID"),
        "Unauthorized - invalid token",
        {"user_id": "unknown", "token_type": "Bearer", "operation": "authenticate"},
    ),
    "permission-denied": Scenario(
        403,
        "Permission denied for user action",
        lambda: ForbiddenError("User does not have required permissions"),
        "Forbidden - insufficient permissions",
        {"user_id": "user123", "user_role": "USER", "required_role": "ADMIN", "operation": "permission_check"},
    ),
    "validation": Scenario(
        422,
        "Data validation failed",
        lambda: BusinessError("Invalid input data format", error_code="VALIDATION_FAILED"),
        "Validation error",
        {"field_errors": {"email": "Invalid email format", "age": "Must be between 0 and 150"}, "operation": "validate_input"},
    ),
    "resource-not-found": Scenario(
        404,
        "Resource not found in database",
        lambda: NotFoundError("Product prod_12345"),
        "Product prod_12345 not found",
        {"resource_type": "Product", "resource_id": "prod_12345", "operation": "find_resource"},
    ),
    "external-api-failure": Scenario(
        502,
        "External API call failed",
        lambda: ConnectionError("Third-party weather API returned error"),
        "Bad gateway - external service unavailable",
        {"api_name": "WeatherAPI", "status_code": 500, "retry_count": 3, "operation": "external_api_call"},
    ),
    "memory-overflow": Scenario(
        507,
        "Memory allocation failed",
        lambda: MemoryError("Insufficient memory to complete operation"),
        "Insufficient storage",
        {"requested_memory_mb": 2048, "operation": "large_dataset_processing"},
    ),
}


@router.get("")
async def list_scenarios() -> dict[str, list[str]]:
    return {"scenarios": [*SCENARIOS, "null-pointer"]}


@router.get("/null-pointer")
async def null_pointer() -> dict[str, Any]:
    data: Any = None
    return {"value": data.property}


@router.get("/{name}")
async def trigger(
    name: str,
    services: Services = Depends(get_services),
    context: RequestContext = Depends(get_request_context),
) -> JSONResponse:
    scenario = SCENARIOS.get(name)
    if scenario is None:
        raise NotFoundError(f"Scenario {name}")

    services.logger.log_error(scenario.message, scenario.make_error(), scenario.context, context)
    return JSONResponse(status_code=scenario.status_code, content={"error": scenario.response})
