"""Structured JSON logging.

Every record is one JSON object. ``log_event`` takes a dotted event name
(``approval.decision.recorded``) plus keyword fields; the request id and the
authenticated user and organization of the current request are attached
automatically.
"""

from __future__ import annotations

import contextvars
import json
import logging
import time
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from claimflow.core.config import settings

ROOT_LOGGER = "claimflow"


@dataclass(frozen=True)
class LogContext:
    request_id: str | None = None
    user_id: str | None = None
    org_id: str | None = None

    def as_fields(self) -> dict[str, str]:
        fields = {"request_id": self.request_id, "user_id": self.user_id, "org_id": self.org_id}
        return {k: v for k, v in fields.items() if v}


_context: contextvars.ContextVar[LogContext] = contextvars.ContextVar(
    "claimflow_log_context", default=LogContext()
)
_configured = False


def _utc_timestamp(created: float) -> str:
    return datetime.fromtimestamp(created, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": _utc_timestamp(record.created),
            "level": record.levelname,
            "logger": record.name,
            "event": getattr(record, "event", None) or record.getMessage(),
        }
        payload.update(getattr(record, "fields", None) or {})
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=True)


def configure_logging() -> None:
    global _configured  # noqa: PLW0603
    if _configured:
        return
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(level)
    root.handlers = [handler]
    root.propagate = False
    _configured = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)


def set_user_context(user_id: str | None, org_id: str | None = None) -> None:
    _context.set(replace(_context.get(), user_id=user_id, org_id=org_id))


def _fields(fields: dict[str, Any]) -> dict[str, Any]:
    payload: dict[str, Any] = _context.get().as_fields()
    payload.update({k: v for k, v in fields.items() if v is not None})
    return payload


def log_event(
    logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: Any
) -> None:
    logger.log(level, event, extra={"event": event, "fields": _fields(fields)})


def log_exception(logger: logging.Logger, event: str, **fields: Any) -> None:
    logger.exception(event, extra={"event": event, "fields": _fields(fields)})


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a request id for the duration of a request and log its outcome."""

    async def dispatch(self, request: Request, call_next) -> Response:
        logger = get_logger(__name__)
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        token = _context.set(LogContext(request_id=request_id))
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            log_exception(
                logger, "http.request.error", method=request.method, path=request.url.path
            )
            raise
        else:
            response.headers["x-request-id"] = request_id
            log_event(
                logger,
                "http.request.done",
                level=logging.DEBUG,
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 1),
            )
            return response
        finally:
            _context.reset(token)
