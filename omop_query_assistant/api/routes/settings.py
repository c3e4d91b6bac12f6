from __future__ import annotations

from fastapi import APIRouter

from omop_query_assistant.models.credentials import DatabaseConfig, StoredCredentials
from omop_query_assistant.services.database.executor import (
    close_connections,
    resolve_database_config,
    test_database_connection,
)
from omop_query_assistant.services.runtime.settings_store import (
    load_credentials,
    mask_credentials,
    mask_database_config,
    save_credentials,
    save_database_config,
)
from omop_query_assistant.utils.logging import log_event

router = APIRouter()


@router.get("/credentials")
def get_credentials() -> dict:
    return mask_credentials(load_credentials())


@router.put("/credentials")
def put_credentials(req: StoredCredentials) -> dict:
    saved = save_credentials(req.to_payload())
    log_event("settings.credentials.saved", {"sections": sorted(k for k in saved if k != "selectedProvider")})
    return mask_credentials(saved)


@router.get("/database")
def get_database() -> dict:
    return mask_database_config(resolve_database_config().to_payload())


@router.put("/database")
def put_database(req: DatabaseConfig) -> dict:
    saved = save_database_config(req.to_payload())
    # Cached engines may point at the previous database.
    close_connections()
    log_event("settings.database.saved", {"type": saved.get("type")})
    return mask_database_config(saved)


@router.post("/database/test")
def test_database(req: DatabaseConfig | None = None) -> dict:
    return test_database_connection(req)
