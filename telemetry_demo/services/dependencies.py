from __future__ import annotations

from fastapi import Request

from telemetry_demo.observability.context import RequestContext
from telemetry_demo.services.container import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_request_context(request: Request) -> RequestContext:
    context = getattr(request.state, "context", None)
    if context is None:
        context = RequestContext.new(trace_id=request.headers.get("x-trace-id"))
        request.state.context = context
    return context
