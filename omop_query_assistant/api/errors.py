from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from omop_query_assistant.core.config import get_settings
from omop_query_assistant.utils.logging import log_event


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def error_body(error: str, details: Any = None, **extra: Any) -> dict[str, Any]:
    body: dict[str, Any] = {
        "success": False,
        "error": error,
        "details": details,
        "timestamp": utc_now(),
    }
    body.update(extra)
    return body


def _first_validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = str(first.get("msg") or "Invalid value")
    return f"{location}: {message}" if location else message


def classify_unhandled(exc: Exception) -> tuple[int, str]:
    message = str(exc)
    if "API key" in message:
        return 401, "Invalid API credentials"
    if isinstance(exc, ConnectionRefusedError) or "connection refused" in message.lower():
        return 503, "Database connection failed"
    return 500, "Internal Server Error"


async def _validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = _first_validation_message(exc)
    log_event("http.validation_error", {"path": request.url.path, "details": details}, level="warning")
    return JSONResponse(status_code=400, content=error_body("Invalid request data", details))


async def _http_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code >= 500:
        log_event("http.error", {"path": request.url.path, "status": exc.status_code, "detail": exc.detail}, level="error")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def _unhandled_handler(request: Request, exc: Exception) -> JSONResponse:
    status, message = classify_unhandled(exc)
    log_event(
        "http.unhandled",
        {"path": request.url.path, "status": status, "error": str(exc), "type": type(exc).__name__},
        level="error",
    )
    details = str(exc) if get_settings().is_development else None
    return JSONResponse(status_code=status, content=error_body(message, details))


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, _validation_handler)
    app.add_exception_handler(StarletteHTTPException, _http_handler)
    app.add_exception_handler(Exception, _unhandled_handler)
