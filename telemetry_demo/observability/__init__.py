"""Observability helpers: structured logging, stack locations, request metrics.

Request context travels through structlog contextvars; metrics and logs are
process-local and reset on restart.
"""
