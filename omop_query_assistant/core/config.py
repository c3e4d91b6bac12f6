from __future__ import annotations

from dataclasses import dataclass
import os

from dotenv import load_dotenv

from omop_query_assistant.core.paths import project_path


def _bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _int(value: str | None, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _float(value: str | None, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _str(value: str | None, default: str = "") -> str:
    if value is None:
        return default
    return value.strip()


def _list(value: str | None, default: str) -> tuple[str, ...]:
    raw = value if value is not None else default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


# Variables already present in the environment win over .env values.
load_dotenv(project_path(".env"), override=False)


@dataclass(frozen=True)
class Settings:
    app_env: str
    cors_allow_origins: tuple[str, ...]

    default_provider: str
    llm_timeout_sec: int
    llm_temperature: float
    llm_max_output_tokens: int
    chat_max_output_tokens: int

    openai_api_key: str
    openai_model: str
    openai_base_url: str

    azure_openai_api_key: str
    azure_openai_endpoint: str
    azure_openai_deployment: str
    azure_openai_api_version: str
    azure_openai_model: str

    anthropic_api_key: str
    anthropic_model: str

    google_api_key: str
    google_model: str

    deepseek_api_key: str
    deepseek_model: str
    deepseek_base_url: str

    databricks_host: str
    databricks_token: str
    databricks_warehouse_id: str
    databricks_catalog: str
    databricks_schema: str

    database_type: str
    database_url: str
    row_cap: int
    db_timeout_sec: int
    max_db_joins: int

    history_path: str
    history_max_entries: int
    history_max_rows: int
    settings_dir: str

    @property
    def is_development(self) -> bool:
        return self.app_env.lower() == "development"


def load_settings() -> Settings:
    return Settings(
        app_env=_str(os.getenv("APP_ENV"), "development"),
        cors_allow_origins=_list(
            os.getenv("CORS_ALLOW_ORIGINS"),
            "http://localhost:5173,http://localhost:3000",
        ),
        default_provider=_str(os.getenv("DEFAULT_PROVIDER"), "azure").lower(),
        llm_timeout_sec=_int(os.getenv("LLM_TIMEOUT_SEC"), 30),
        llm_temperature=_float(os.getenv("LLM_TEMPERATURE"), 0.3),
        llm_max_output_tokens=_int(os.getenv("LLM_MAX_OUTPUT_TOKENS"), 800),
        chat_max_output_tokens=_int(os.getenv("CHAT_MAX_OUTPUT_TOKENS"), 1000),
        openai_api_key=_str(os.getenv("OPENAI_API_KEY"), ""),
        openai_model=_str(os.getenv("OPENAI_MODEL"), "gpt-4o"),
        openai_base_url=_str(os.getenv("OPENAI_BASE_URL"), ""),
        azure_openai_api_key=_str(os.getenv("AZURE_OPENAI_API_KEY"), ""),
        azure_openai_endpoint=_str(os.getenv("AZURE_OPENAI_ENDPOINT"), ""),
        azure_openai_deployment=_str(os.getenv("AZURE_OPENAI_DEPLOYMENT"), "gpt-4o"),
        azure_openai_api_version=_str(os.getenv("AZURE_OPENAI_API_VERSION"), "2024-12-01-preview"),
        azure_openai_model=_str(os.getenv("AZURE_OPENAI_MODEL"), "gpt-4o"),
        anthropic_api_key=_str(os.getenv("ANTHROPIC_API_KEY"), ""),
        anthropic_model=_str(os.getenv("ANTHROPIC_MODEL"), "claude-3-5-sonnet-20241022"),
        google_api_key=_str(os.getenv("GOOGLE_API_KEY"), ""),
        google_model=_str(os.getenv("GOOGLE_MODEL"), "gemini-1.5-pro"),
        deepseek_api_key=_str(os.getenv("DEEPSEEK_API_KEY"), ""),
        deepseek_model=_str(os.getenv("DEEPSEEK_MODEL"), "deepseek-chat"),
        deepseek_base_url=_str(os.getenv("DEEPSEEK_BASE_URL"), "https://api.deepseek.com/v1"),
        databricks_host=_str(os.getenv("DATABRICKS_HOST"), ""),
        databricks_token=_str(os.getenv("DATABRICKS_TOKEN"), ""),
        databricks_warehouse_id=_str(os.getenv("DATABRICKS_WAREHOUSE_ID"), ""),
        databricks_catalog=_str(os.getenv("DATABRICKS_CATALOG"), ""),
        databricks_schema=_str(os.getenv("DATABRICKS_SCHEMA"), ""),
        database_type=_str(os.getenv("DATABASE_TYPE"), "mock").lower(),
        database_url=_str(os.getenv("DATABASE_URL"), ""),
        row_cap=_int(os.getenv("ROW_CAP"), 5000),
        db_timeout_sec=_int(os.getenv("DB_TIMEOUT_SEC"), 15),
        max_db_joins=_int(os.getenv("MAX_DB_JOINS"), 8),
        history_path=_str(os.getenv("HISTORY_PATH"), "var/history/queries.jsonl"),
        history_max_entries=_int(os.getenv("HISTORY_MAX_ENTRIES"), 200),
        history_max_rows=_int(os.getenv("HISTORY_MAX_ROWS"), 500),
        settings_dir=_str(os.getenv("SETTINGS_DIR"), "var/settings"),
    )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = load_settings()
    return _SETTINGS
