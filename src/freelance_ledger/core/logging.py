from __future__ import annotations

import contextvars
import json
import logging
import os
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

_ROOT_LOGGER = "freelance_ledger"

# Fields merged into every event emitted while they are bound.
_CONTEXT: dict[str, contextvars.ContextVar[str | None]] = {
    name: contextvars.ContextVar(name, default=None)
    for name in ("request_id", "user_id", "celery_task_id")
}

_configured = False


class JsonFormatter(logging.Formatter):
    """One JSON object per line; `event` and bound context become top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created, tz=UTC)
        payload: dict[str, Any] = {
            "ts": stamp.strftime("%Y-%m-%dT%H:%M:%S.") + f"{stamp.microsecond // 1000:03d}Z",
            "level": record.levelname,
            "logger": record.name,
        }
        event = getattr(record, "event", None)
        payload["event"] = event or record.getMessage()
        if event and record.getMessage() != event:
            payload["message"] = record.getMessage()
        fields = getattr(record, "fields", None)
        if isinstance(fields, dict):
            payload.update({k: v for k, v in fields.items() if v is not None})
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=True)


def configure_logging() -> None:
    global _configured  # noqa: PLW0603
    if _configured:
        return
    level = logging.getLevelNamesMapping().get(os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger(_ROOT_LOGGER)
    root.setLevel(level)
    root.handlers = [handler]
    root.propagate = False
    _configured = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)


def _bind(**values: str | None) -> dict[str, contextvars.Token]:
    return {name: _CONTEXT[name].set(value) for name, value in values.items()}


def _unbind(tokens: dict[str, contextvars.Token]) -> None:
    for name, token in tokens.items():
        _CONTEXT[name].reset(token)


def set_request_context(*, request_id: str | None) -> dict[str, contextvars.Token]:
    return _bind(request_id=request_id, user_id=None)


def reset_request_context(tokens: dict[str, contextvars.Token]) -> None:
    _unbind(tokens)


def set_user_context(user_id: str | None) -> None:
    _CONTEXT["user_id"].set(user_id)


def set_task_context(task_id: str | None) -> dict[str, contextvars.Token]:
    return _bind(celery_task_id=task_id)


def reset_task_context(tokens: dict[str, contextvars.Token]) -> None:
    _unbind(tokens)


def _merge_fields(fields: dict[str, Any]) -> dict[str, Any]:
    merged = {name: var.get() for name, var in _CONTEXT.items()}
    merged.update(fields)
    return {k: v for k, v in merged.items() if v is not None}


def log_event(
    logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: Any
) -> None:
    logger.log(level, event, extra={"event": event, "fields": _merge_fields(fields)})


def log_exception(logger: logging.Logger, event: str, **fields: Any) -> None:
    logger.exception(event, extra={"event": event, "fields": _merge_fields(fields)})


def monotonic_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


@contextmanager
def task_logging(
    logger: logging.Logger, *, task_name: str, task_id: str | None, **fields: Any
) -> Iterator[None]:
    """Bind the Celery task id and emit start/finish/error events around a task body."""
    tokens = set_task_context(task_id)
    start = time.monotonic()
    log_event(logger, "celery.task.start", task_name=task_name, **fields)
    try:
        yield
    except Exception:
        log_exception(
            logger,
            "celery.task.error",
            task_name=task_name,
            duration_ms=monotonic_ms(start),
            **fields,
        )
        raise
    else:
        log_event(
            logger,
            "celery.task.finish",
            task_name=task_name,
            duration_ms=monotonic_ms(start),
            **fields,
        )
    finally:
        reset_task_context(tokens)


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        tokens = set_request_context(request_id=request_id)
        logger = get_logger(__name__)
        start = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            log_exception(
                logger,
                "http.request.error",
                method=request.method,
                path=request.url.path,
                duration_ms=monotonic_ms(start),
            )
            raise
        else:
            response.headers["x-request-id"] = request_id
            log_event(
                logger,
                "http.request.finish",
                level=logging.WARNING if response.status_code >= 500 else logging.DEBUG,
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=monotonic_ms(start),
            )
            return response
        finally:
            reset_request_context(tokens)
