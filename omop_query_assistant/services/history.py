from __future__ import annotations

import threading
import uuid
from typing import Any

from fastapi import HTTPException

from omop_query_assistant.core.config import get_settings
from omop_query_assistant.services.logging_store.store import (
    append_event,
    read_events,
    trim_events,
    write_events,
)
from omop_query_assistant.utils.logging import log_event


_LOCK = threading.Lock()


def _path() -> str:
    return get_settings().history_path


def add_entry(
    *,
    query: str,
    sql: str,
    explanation: str | None = None,
    provider: str | None = None,
    columns: list[str] | None = None,
    rows: list[dict[str, Any]] | None = None,
    execution_time_ms: float | None = None,
    database_type: str | None = None,
    cached: bool = False,
) -> dict[str, Any]:
    settings = get_settings()
    rows = rows or []
    columns = columns or (list(rows[0].keys()) if rows else [])
    entry = {
        "id": uuid.uuid4().hex,
        "query": query,
        "sql": sql,
        "explanation": explanation,
        "provider": provider,
        "columns": columns,
        "data": rows[: settings.history_max_rows],
        "metrics": {
            "rows": len(rows),
            "columns": len(columns),
            "execution_time_ms": execution_time_ms,
            "database_type": database_type,
            "ai_provider": provider,
            "cached": cached,
        },
    }
    with _LOCK:
        record = append_event(_path(), entry)
        removed = trim_events(_path(), settings.history_max_entries)
    log_event("history.added", {"id": record["id"], "rows": len(rows), "trimmed": removed})
    return record


def _matches(entry: dict[str, Any], needle: str) -> bool:
    haystack = f"{entry.get('query') or ''}\n{entry.get('sql') or ''}".lower()
    return needle in haystack


def list_entries(search: str | None = None, limit: int | None = None) -> list[dict[str, Any]]:
    """Newest first, optionally filtered by a case-insensitive substring."""
    entries = list(reversed(read_events(_path())))
    needle = (search or "").strip().lower()
    if needle:
        entries = [entry for entry in entries if _matches(entry, needle)]
    if limit is not None and limit >= 0:
        entries = entries[:limit]
    return entries


def get_entry(entry_id: str) -> dict[str, Any]:
    for entry in read_events(_path()):
        if entry.get("id") == entry_id:
            return entry
    raise HTTPException(status_code=404, detail="History entry not found")


def delete_entry(entry_id: str) -> None:
    with _LOCK:
        entries = read_events(_path())
        remaining = [entry for entry in entries if entry.get("id") != entry_id]
        if len(remaining) == len(entries):
            raise HTTPException(status_code=404, detail="History entry not found")
        write_events(_path(), remaining)
    log_event("history.deleted", {"id": entry_id})


def clear_history() -> int:
    with _LOCK:
        count = len(read_events(_path()))
        write_events(_path(), [])
    log_event("history.cleared", {"count": count})
    return count
