from __future__ import annotations

import pytest

from omop_query_assistant.core import config
from omop_query_assistant.services.database import executor


_PROVIDER_ENV = (
    "OPENAI_API_KEY",
    "AZURE_OPENAI_API_KEY",
    "AZURE_OPENAI_ENDPOINT",
    "ANTHROPIC_API_KEY",
    "GOOGLE_API_KEY",
    "DEEPSEEK_API_KEY",
    "DATABRICKS_HOST",
    "DATABRICKS_TOKEN",
    "DATABRICKS_WAREHOUSE_ID",
    "DATABASE_URL",
)


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point history/settings at tmp_path and drop any developer credentials."""
    monkeypatch.setenv("PROJECT_ROOT", str(tmp_path))
    monkeypatch.setenv("HISTORY_PATH", str(tmp_path / "history" / "queries.jsonl"))
    monkeypatch.setenv("SETTINGS_DIR", str(tmp_path / "settings"))
    monkeypatch.setenv("DATABASE_TYPE", "mock")
    monkeypatch.setenv("APP_ENV", "development")
    for name in _PROVIDER_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config, "_SETTINGS", None)
    yield tmp_path
    executor.close_connections()
    config._SETTINGS = None
