"""
Structured Logging

JSON log lines plus an access-log middleware. Each request gets an id
(taken from X-Request-ID or generated) that is echoed in the response and
stamped on every record logged while the request is served, so a move or
a reconcile can be traced back to the call that made it.
"""

import json
import logging
import time
import uuid
from collections.abc import Callable
from contextvars import ContextVar
from datetime import datetime, timezone

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

REQUEST_ID_HEADER = "X-Request-ID"
ACTOR_ID_HEADER = "X-Actor-ID"

# Paths that would only add noise to the access log
QUIET_PATHS = frozenset({"/health"})

# Record attributes copied into the JSON line when present
EXTRA_FIELDS = ("actor_id", "tenant_id", "method", "path", "status_code", "duration_ms", "error_code")

request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def get_request_id() -> str:
    return request_id_var.get("")


class RequestIdFilter(logging.Filter):
    """Attach the current request id to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True


class StructuredFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", ""),
        }
        payload.update({key: getattr(record, key) for key in EXTRA_FIELDS if hasattr(record, key)})
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _status_level(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """One access-log line per request, with timing and caller context."""

    def __init__(self, app: ASGIApp, logger_name: str = "orgtree.access"):
        super().__init__(app)
        self.logger = logging.getLogger(logger_name)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = request_id_var.set(request_id)
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            self._access_log(request, 500, started, error=exc)
            raise
        else:
            response.headers[REQUEST_ID_HEADER] = request_id
            self._access_log(request, response.status_code, started)
            return response
        finally:
            request_id_var.reset(token)

    def _access_log(self, request: Request, status_code: int, started: float, error: Exception | None = None):
        if request.url.path in QUIET_PATHS:
            return
        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        extra = {
            "method": request.method,
            "path": request.url.path,
            "status_code": status_code,
            "duration_ms": duration_ms,
            "actor_id": request.headers.get(ACTOR_ID_HEADER),
            "tenant_id": request.path_params.get("tenant_id"),
        }
        message = "%s %s - %d (%.2fms)"
        args = [request.method, request.url.path, status_code, duration_ms]
        if error is not None:
            message += " - %r"
            args.append(error)
        self.logger.log(
            _status_level(status_code),
            message,
            *args,
            extra={key: value for key, value in extra.items() if value is not None},
        )


def setup_structured_logging(log_level: str = "INFO", json_format: bool = True, log_file: str | None = None) -> None:
    """
    Install a single root handler.

    Args:
        log_level: Level for the service's own loggers
        json_format: JSON lines (production) or plain text (local runs)
        log_file: Write to this file instead of stderr
    """
    handler = logging.FileHandler(log_file) if log_file else logging.StreamHandler()
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(
        StructuredFormatter()
        if json_format
        else logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s")
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level.upper())

    for name in ("orgtree", "orgtree.access"):
        logging.getLogger(name).setLevel(log_level.upper())
    for name in ("uvicorn", "uvicorn.access", "sqlalchemy.engine"):
        logging.getLogger(name).setLevel(logging.WARNING)
