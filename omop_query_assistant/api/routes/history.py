from __future__ import annotations

from fastapi import APIRouter, Query, Response

from omop_query_assistant.api.routes.query import csv_response
from omop_query_assistant.services import history

router = APIRouter()


@router.get("")
def list_history(
    search: str | None = None,
    limit: int | None = Query(default=None, ge=0, le=1000),
) -> dict:
    entries = history.list_entries(search=search, limit=limit)
    return {"items": entries, "count": len(entries)}


@router.get("/{entry_id}")
def get_history(entry_id: str) -> dict:
    return history.get_entry(entry_id)


@router.get("/{entry_id}/export")
def export_history(entry_id: str) -> Response:
    entry = history.get_entry(entry_id)
    return csv_response(entry.get("data") or [], entry.get("columns") or None)


@router.delete("/{entry_id}")
def delete_history(entry_id: str) -> dict:
    history.delete_entry(entry_id)
    return {"success": True, "id": entry_id}


@router.delete("")
def clear_history() -> dict:
    removed = history.clear_history()
    return {"success": True, "removed": removed}
