from __future__ import annotations

from pathlib import Path
from typing import Any
import json

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from omop_query_assistant.core.config import get_settings
from omop_query_assistant.core.paths import project_path


SECRET_FIELDS = ("apiKey", "token", "password")
MASK_PREFIX = "****"


def _base_path() -> Path:
    return project_path(get_settings().settings_dir)


def credentials_path() -> Path:
    return _base_path() / "credentials.json"


def database_path() -> Path:
    return _base_path() / "database.json"


def _load_json(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        return {}
    if isinstance(data, dict):
        return data
    return {}


def _save_json(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, ensure_ascii=True, indent=2), encoding="utf-8")


def _mask_value(value: Any) -> Any:
    if not isinstance(value, str) or not value:
        return value
    return f"{MASK_PREFIX}{value[-4:]}" if len(value) > 4 else MASK_PREFIX


def is_masked(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(MASK_PREFIX)


def mask_url(url: Any) -> Any:
    """Hide the password embedded in a SQLAlchemy URL."""
    if not isinstance(url, str) or not url:
        return url
    try:
        parsed = make_url(url)
    except ArgumentError:
        return MASK_PREFIX
    if parsed.password is None:
        return url
    return parsed.render_as_string(hide_password=True)


def is_masked_url(value: Any, stored: Any) -> bool:
    return isinstance(value, str) and isinstance(stored, str) and value != stored and value == mask_url(stored)


def _mask_section(section: dict[str, Any]) -> dict[str, Any]:
    masked: dict[str, Any] = {}
    for key, value in section.items():
        if key in SECRET_FIELDS:
            masked[key] = _mask_value(value)
        elif key == "url":
            masked[key] = mask_url(value)
        else:
            masked[key] = value
    return masked


def _merge_section(previous: dict[str, Any], incoming: dict[str, Any]) -> dict[str, Any]:
    merged = dict(previous)
    for key, value in incoming.items():
        if key in SECRET_FIELDS and is_masked(value):
            # The client echoed a masked secret back; keep what is stored.
            continue
        if key == "url" and is_masked_url(value, previous.get("url")):
            continue
        merged[key] = value
    return merged


def mask_credentials(payload: dict[str, Any]) -> dict[str, Any]:
    masked: dict[str, Any] = {}
    for key, value in payload.items():
        masked[key] = _mask_section(value) if isinstance(value, dict) else value
    return masked


def load_credentials() -> dict[str, Any]:
    return _load_json(credentials_path())


def save_credentials(payload: dict[str, Any]) -> dict[str, Any]:
    previous = load_credentials()
    merged = dict(previous)
    for key, value in payload.items():
        if isinstance(value, dict):
            section = previous.get(key) if isinstance(previous.get(key), dict) else {}
            merged[key] = _merge_section(section, value)
        elif value is not None:
            merged[key] = value
    _save_json(credentials_path(), merged)
    return merged


def load_provider_credentials(provider: str) -> dict[str, Any]:
    section = load_credentials().get(provider)
    return dict(section) if isinstance(section, dict) else {}


def load_database_config() -> dict[str, Any]:
    return _load_json(database_path())


def save_database_config(payload: dict[str, Any]) -> dict[str, Any]:
    previous = load_database_config()
    env_url = get_settings().database_url
    if not previous.get("url") and is_masked_url(payload.get("url"), env_url):
        # Masked copy of DATABASE_URL shown by GET; persist the real one.
        payload = {**payload, "url": env_url}
    merged = _merge_section(previous, payload)
    _save_json(database_path(), merged)
    return merged


def mask_database_config(payload: dict[str, Any]) -> dict[str, Any]:
    return _mask_section(payload)
