from __future__ import annotations

import time

from fastapi import APIRouter

from omop_query_assistant.api.errors import utc_now
from omop_query_assistant.core.config import get_settings
from omop_query_assistant.services.database.executor import test_database_connection
from omop_query_assistant.services.llm.clients import available_providers

router = APIRouter()

_STARTED = time.monotonic()


def _base_status() -> dict:
    return {
        "status": "healthy",
        "timestamp": utc_now(),
        "uptime": round(time.monotonic() - _STARTED, 3),
        "environment": get_settings().app_env,
    }


@router.get("")
def health() -> dict:
    return _base_status()


@router.get("/detailed")
def health_detailed() -> dict:
    payload = _base_status()
    database = test_database_connection()
    if not database["success"]:
        payload["status"] = "degraded"
    providers = available_providers()
    payload["services"] = {
        "database": "connected" if database["success"] else "disconnected",
        "ai_providers": "available" if providers else "unavailable",
    }
    payload["database_message"] = database["message"]
    payload["available_ai_providers"] = providers
    return payload
