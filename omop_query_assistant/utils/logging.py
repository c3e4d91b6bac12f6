"""Structured logging helpers.

Every event is one JSON object on the shared ``omop_query_assistant`` logger.
Events emitted while an HTTP request is being served carry its request id.
Credential-looking payload keys are masked before they are serialized.
"""
from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Iterator
from uuid import uuid4


_LOGGER_NAME = "omop_query_assistant"
_REQUEST_ID: ContextVar[str] = ContextVar("request_id", default="")
_SECRET_MARKERS = ("api_key", "apikey", "token", "password", "secret")


def get_logger() -> logging.Logger:
    """Return the shared logger, attaching a stream handler on first use."""
    logger = logging.getLogger(_LOGGER_NAME)
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
    )
    logger.addHandler(handler)
    return logger


def new_request_id() -> str:
    return f"oqa-{uuid4().hex[:12]}"


def current_request_id() -> str:
    return _REQUEST_ID.get("")


@contextmanager
def request_scope(request_id: str | None = None) -> Iterator[str]:
    """Bind a request id to every event logged inside the block."""
    token: Token[str] = _REQUEST_ID.set(request_id or new_request_id())
    try:
        yield _REQUEST_ID.get()
    finally:
        _REQUEST_ID.reset(token)


def _is_secret_key(key: str) -> bool:
    lowered = key.lower().replace("-", "_")
    return any(marker in lowered for marker in _SECRET_MARKERS)


def redact(payload: Any) -> Any:
    if isinstance(payload, dict):
        return {
            key: ("****" if _is_secret_key(str(key)) and value else redact(value))
            for key, value in payload.items()
        }
    if isinstance(payload, list):
        return [redact(item) for item in payload]
    return payload


def log_event(
    event: str,
    payload: Dict[str, Any] | None = None,
    *,
    level: str = "info",
) -> None:
    """Write one structured log event in JSON format."""
    data: Dict[str, Any] = {
        "event": event,
        "ts": datetime.now(timezone.utc).isoformat(),
    }
    request_id = current_request_id()
    if request_id:
        data["request_id"] = request_id
    if payload:
        data.update(redact(payload))

    logger = get_logger()
    writer = getattr(logger, level.lower(), logger.info)
    writer("%s", json.dumps(data, ensure_ascii=False, default=str))
