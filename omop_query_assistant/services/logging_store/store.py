from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
import json
from typing import Any

from omop_query_assistant.core.paths import project_path


def _resolve(path: str | Path) -> Path:
    return project_path(path)


def _dumps(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, default=str)


def append_event(path: str | Path, payload: dict[str, Any]) -> dict[str, Any]:
    file_path = _resolve(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    record = dict(payload)
    record.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
    with file_path.open("a", encoding="utf-8") as f:
        f.write(_dumps(record) + "\n")
    return record


def read_events(path: str | Path, limit: int | None = None) -> list[dict[str, Any]]:
    """Return stored records oldest first; corrupt lines are skipped."""
    file_path = _resolve(path)
    if not file_path.exists():
        return []
    lines = file_path.read_text(encoding="utf-8").splitlines()
    if limit is not None:
        lines = lines[-limit:] if limit > 0 else []
    items: list[dict[str, Any]] = []
    for line in lines:
        if not line.strip():
            continue
        try:
            item = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(item, dict):
            items.append(item)
    return items


def write_events(path: str | Path, events: list[dict[str, Any]]) -> None:
    file_path = _resolve(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    with file_path.open("w", encoding="utf-8") as f:
        for item in events:
            if not isinstance(item, dict):
                continue
            f.write(_dumps(item) + "\n")


def trim_events(path: str | Path, keep: int) -> int:
    """Drop the oldest records beyond ``keep``; returns how many were removed."""
    events = read_events(path)
    overflow = len(events) - max(keep, 0)
    if overflow <= 0:
        return 0
    write_events(path, events[overflow:])
    return overflow
