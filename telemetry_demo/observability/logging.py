"""Structured JSON logging.

structlog builds every record and stdlib handlers ("sinks") deliver it. Each
record is enriched with service identity and the request trace context bound
through ``structlog.contextvars``. Nothing here raises into the caller: a
failing sink is reported on stderr and the record is dropped for that sink.
"""

from __future__ import annotations

import json
import logging
import socket
import sys
from collections.abc import Callable, Iterable, Mapping
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog

from telemetry_demo.config import Settings
from telemetry_demo.errors import error_kind
from telemetry_demo.observability.context import RequestContext
from telemetry_demo.observability.stack import (
    DEFAULT_APP_ROOT,
    ErrorDetail,
    ErrorLocationResolver,
    format_stack_trace,
)

_LEVEL_METHODS = {
    "debug": "debug",
    "info": "info",
    "warn": "warning",
    "warning": "warning",
    "error": "error",
    "critical": "critical",
    "fatal": "critical",
}

_TRACE_FIELDS = ("trace_id", "span_id", "request_id")


def report_sink_failure(sink: str, error: BaseException | None, message: str | None = None) -> None:
    line = {
        "level": "ERROR",
        "message": "Log sink failure",
        "sink": sink,
        "error": repr(error),
        "original_message": message,
    }
    try:
        sys.stderr.write(json.dumps(line, default=str) + "\n")
    except Exception:  # noqa: BLE001
        # stderr is the last resort; there is nowhere left to report to.
        pass


def _record_message(record: logging.LogRecord) -> str:
    if isinstance(record.msg, dict):
        return str(record.msg.get("message", record.msg.get("event", "")))
    return str(record.msg)


class _FallbackOnError:
    def handleError(self, record: logging.LogRecord) -> None:  # noqa: N802
        report_sink_failure(type(self).__name__, sys.exc_info()[1], _record_message(record))


class ConsoleSink(_FallbackOnError, logging.StreamHandler):
    def __init__(self, stream: Any | None = None, level: int = logging.NOTSET) -> None:
        super().__init__(stream if stream is not None else sys.stdout)
        self.setLevel(level)


class RotatingFileSink(_FallbackOnError, RotatingFileHandler):
    def __init__(
        self,
        filename: str | Path,
        max_bytes: int = 10 * 1024 * 1024,
        backup_count: int = 5,
        level: int = logging.NOTSET,
    ) -> None:
        Path(filename).parent.mkdir(parents=True, exist_ok=True)
        super().__init__(filename, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8", delay=True)
        self.setLevel(level)


class CallbackSink(_FallbackOnError, logging.Handler):
    """Hands each rendered JSON line to an arbitrary transport callable."""

    def __init__(self, send: Callable[[str], None], level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self._send = send

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self._send(self.format(record))
        except Exception:  # noqa: BLE001
            self.handleError(record)


def default_sinks(settings: Settings) -> list[logging.Handler]:
    """Console plus, when enabled, rotating ``app.log`` and error-only ``error.log``."""

    sinks: list[logging.Handler] = [ConsoleSink()]
    if not settings.log_to_file:
        return sinks

    try:
        sinks.append(
            RotatingFileSink(settings.log_path / "app.log", settings.log_max_bytes, settings.log_backup_count)
        )
        sinks.append(
            RotatingFileSink(
                settings.log_path / "error.log",
                settings.log_max_bytes,
                settings.log_backup_count,
                level=logging.ERROR,
            )
        )
    except OSError as exc:
        report_sink_failure("RotatingFileSink", exc, "file logging disabled")
    return sinks


class ServiceFields:
    """structlog processor adding service identity and an upper-case level."""

    def __init__(self, service: str, environment: str, host: str | None = None) -> None:
        self.service = service
        self.environment = environment
        self.host = host or socket.gethostname()

    def __call__(self, logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict["service"] = self.service
        event_dict["environment"] = self.environment
        event_dict["host"] = self.host
        event_dict["level"] = str(event_dict.get("level") or method_name).upper()
        for key in _TRACE_FIELDS:
            event_dict.setdefault(key, None)
        return event_dict


def shared_processors(enricher: ServiceFields) -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        enricher,
        structlog.processors.EventRenamer("message"),
    ]


def metadata_fields(metadata: Mapping[str, Any] | RequestContext | None) -> dict[str, Any]:
    if metadata is None:
        return {}
    if isinstance(metadata, RequestContext):
        return metadata.as_dict()
    return dict(metadata)


def _query_block(query_type: str, statement: str, duration_ms: float, rows_affected: int, database: str) -> dict[str, Any]:
    return {
        "type": query_type,
        "statement": statement,
        "duration_ms": round(float(duration_ms), 2),
        "rows_affected": rows_affected,
        "database": database,
    }


class StructuredLogger:
    def __init__(
        self,
        service: str,
        environment: str,
        sinks: Iterable[logging.Handler],
        level: str = "info",
        name: str = "telemetry_demo",
        resolver: ErrorLocationResolver | None = None,
        host: str | None = None,
    ) -> None:
        self.resolver = resolver or ErrorLocationResolver()
        self.sinks = list(sinks)

        pre_chain = shared_processors(ServiceFields(service, environment, host))
        formatter = structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=pre_chain,
        )
        for sink in self.sinks:
            sink.setFormatter(formatter)

        self._stdlib = logging.getLogger(name)
        self._stdlib.handlers = list(self.sinks)
        self._stdlib.propagate = False
        self._stdlib.setLevel(getattr(logging, _LEVEL_METHODS.get(level.lower(), "info").upper()))

        self._logger = structlog.wrap_logger(
            self._stdlib,
            processors=[
                structlog.stdlib.filter_by_level,
                *pre_chain,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        sinks: Iterable[logging.Handler] | None = None,
        name: str = "telemetry_demo",
    ) -> StructuredLogger:
        return cls(
            service=settings.service_name,
            environment=settings.environment,
            sinks=default_sinks(settings) if sinks is None else sinks,
            level=settings.log_level,
            name=name,
            resolver=ErrorLocationResolver(
                root_marker=settings.app_root_marker,
                root_path=settings.app_root or DEFAULT_APP_ROOT,
            ),
        )

    def capture(self, *names: str) -> None:
        """Route other stdlib loggers (e.g. uvicorn) through the same sinks."""

        for name in names:
            other = logging.getLogger(name)
            other.handlers = list(self.sinks)
            other.propagate = False
            other.setLevel(self._stdlib.level)

    def close(self) -> None:
        for sink in self.sinks:
            sink.close()

    def _emit(self, level: str, message: str, fields: dict[str, Any]) -> None:
        method = _LEVEL_METHODS.get(str(level).lower(), "info")
        # structlog passes the message as "event"; a caller field of that name moves aside.
        if "event" in fields:
            fields = dict(fields)
            fields["event_field"] = fields.pop("event")
        try:
            getattr(self._logger, method)(message, **fields)
        except Exception as exc:  # noqa: BLE001
            report_sink_failure("StructuredLogger", exc, message)

    def log(self, level: str, message: str, **fields: Any) -> None:
        self._emit(level, message, fields)

    def log_query(
        self,
        query_type: str,
        statement: str,
        duration_ms: float,
        rows_affected: int,
        database: str,
        metadata: Mapping[str, Any] | RequestContext | None = None,
    ) -> None:
        fields = metadata_fields(metadata)
        fields["query"] = _query_block(query_type, statement, duration_ms, rows_affected, database)
        self._emit("info", "Database query executed", fields)

    def log_slow_query(
        self,
        query_type: str,
        statement: str,
        duration_ms: float,
        rows_affected: int,
        database: str,
        threshold_ms: float,
        metadata: Mapping[str, Any] | RequestContext | None = None,
    ) -> None:
        """Format a slow-query warning; whether the query was slow is the caller's call."""

        fields = metadata_fields(metadata)
        fields["query"] = _query_block(query_type, statement, duration_ms, rows_affected, database)
        fields["context"] = {
            **(fields.get("context") or {}),
            "threshold_ms": threshold_ms,
            "warning": "Query exceeded performance threshold",
        }
        self._emit("warning", "Slow database query detected", fields)

    def describe_error(self, error: BaseException) -> ErrorDetail:
        stack_trace = format_stack_trace(error, skip_files=(__file__,))
        return ErrorDetail(
            type=error_kind(error),
            message=str(error),
            stack_trace=stack_trace,
            location=self.resolver.resolve(stack_trace),
        )

    def log_error(
        self,
        message: str,
        error: BaseException,
        context: Mapping[str, Any] | None = None,
        metadata: Mapping[str, Any] | RequestContext | None = None,
    ) -> None:
        try:
            error_block = self.describe_error(error).as_dict()
        except Exception as exc:  # noqa: BLE001
            # Still emit the record, just without the stack and location.
            report_sink_failure("ErrorLocationResolver", exc, message)
            error_block = {"type": error_kind(error), "message": str(error)}

        fields = metadata_fields(metadata)
        fields["error"] = error_block
        fields["context"] = dict(context or {})
        self._emit("error", message, fields)
