"""Request ids, JSON log lines and the shared error envelope.

Every error leaving the API has the shape
``{"error": {code, message, request_id, path, details}}`` whether it came
from a ledger service, FastAPI validation, an ``HTTPException`` or a bug.
"""
import json
import logging
import time
import traceback
from contextvars import ContextVar
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from stockroom.core.errors import LedgerError

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")
actor_id_ctx: ContextVar[str | None] = ContextVar("actor_id", default=None)
logger = logging.getLogger("stockroom.api")

LOGGER_NAMES = ("stockroom.api", "stockroom.ledger", "stockroom.imports")

_HTTP_ERROR_CODES = {
    400: "bad_request",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    413: "payload_too_large",
    422: "validation_error",
}


class JsonLineFormatter(logging.Formatter):
    """Emit one JSON object per record.

    Messages are already ``json.dumps`` payloads; the formatter stamps them
    with the logger, level and the current request and actor so that ledger
    and import events can be joined to the request that caused them.
    """

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        try:
            payload = json.loads(message)
        except ValueError:
            payload = None
        if not isinstance(payload, dict):
            payload = {"event": "message", "message": message}

        payload.setdefault("request_id", request_id_ctx.get())
        actor_id = actor_id_ctx.get()
        if actor_id:
            payload.setdefault("actor_id", actor_id)
        payload["logger"] = record.name
        payload["level"] = record.levelname
        return json.dumps(payload, default=str)


def setup_observability() -> None:
    root = logging.getLogger(LOGGER_NAMES[0])
    if root.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(JsonLineFormatter())
    for name in LOGGER_NAMES:
        target = logging.getLogger(name)
        target.addHandler(handler)
        target.setLevel(logging.INFO)
        target.propagate = False


def get_request_id() -> str:
    return request_id_ctx.get()


def _log(level: int, event: str, **fields: Any) -> None:
    logger.log(level, json.dumps({"event": event, **fields}, default=str))


def _envelope(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: list[dict] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None) or get_request_id()
    body = {
        "code": code,
        "message": message,
        "request_id": request_id,
        "path": request.url.path,
        "details": details,
    }
    return JSONResponse(status_code=status_code, content={"error": body}, headers=headers)


async def request_logging_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid4())
    request.state.request_id = request_id
    tokens = (
        request_id_ctx.set(request_id),
        actor_id_ctx.set(request.headers.get("x-actor-id") or None),
    )
    started = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
    finally:
        _log(
            logging.INFO,
            "request",
            method=request.method,
            path=request.url.path,
            status_code=status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        actor_id_ctx.reset(tokens[1])
        request_id_ctx.reset(tokens[0])

    response.headers["X-Request-ID"] = request_id
    return response


async def ledger_exception_handler(request: Request, exc: LedgerError):
    # Shortages are expected outcomes but worth seeing in the log.
    level = logging.WARNING if exc.code == "insufficient_stock" else logging.INFO
    _log(level, "ledger_error", path=request.url.path, code=exc.code, message=exc.message)
    return _envelope(request, exc.status_code, exc.code, exc.message, exc.details)


def _field_path(location: tuple | list) -> str:
    parts = [str(part) for part in location if part != "body"]
    return ".".join(parts) or "body"


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = [
        {
            "field": _field_path(err.get("loc", ())),
            "message": err.get("msg", "Invalid value"),
            "type": err.get("type"),
        }
        for err in exc.errors()
    ]
    return _envelope(request, 422, "validation_error", "Validation failed", details)


async def http_exception_handler(request: Request, exc: HTTPException):
    code = _HTTP_ERROR_CODES.get(exc.status_code, "http_error")
    if isinstance(exc.detail, str):
        return _envelope(request, exc.status_code, code, exc.detail, headers=exc.headers)
    return _envelope(request, exc.status_code, code, "HTTP error", exc.detail, headers=exc.headers)


async def unhandled_exception_handler(request: Request, exc: Exception):
    _log(
        logging.ERROR,
        "unhandled_exception",
        request_id=getattr(request.state, "request_id", None),
        path=request.url.path,
        error=str(exc),
        traceback=traceback.format_exc(limit=10),
    )
    return _envelope(request, 500, "internal_error", "Internal server error")


def install_observability(app: FastAPI) -> None:
    """Attach logging, the request-id middleware and every error handler to ``app``."""
    setup_observability()
    app.middleware("http")(request_logging_middleware)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(LedgerError, ledger_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
