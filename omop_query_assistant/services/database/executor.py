from __future__ import annotations

import threading
import time
from typing import Any

import requests
from fastapi import HTTPException
from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.exc import ArgumentError, OperationalError, SQLAlchemyError

from omop_query_assistant.core.config import get_settings
from omop_query_assistant.core.paths import project_path
from omop_query_assistant.models.credentials import DatabaseConfig
from omop_query_assistant.models.query import ExecutionResult
from omop_query_assistant.services.database.mock_data import generate_mock_rows
from omop_query_assistant.services.policy.gate import precheck_sql
from omop_query_assistant.services.runtime.settings_store import (
    is_masked,
    is_masked_url,
    load_database_config,
)
from omop_query_assistant.utils.logging import log_event


SQLALCHEMY_TYPES = ("postgresql", "postgres", "sqlite", "oracle")
SUPPORTED_TYPES = SQLALCHEMY_TYPES + ("databricks", "api", "mock")
_SECRET_KEYS = ("password", "token", "api_key")
_CONNECTION_MARKERS = ("connection refused", "could not connect", "unable to open database", "timeout expired")

_ENGINES: dict[str, Engine] = {}
_ENGINE_LOCK = threading.Lock()


def _sanitize_sql(sql: str) -> str:
    return sql.strip().rstrip(";").strip()


def resolve_database_config(supplied: DatabaseConfig | dict[str, Any] | None = None) -> DatabaseConfig:
    """Request config wins, then the saved config, then DATABASE_TYPE/DATABASE_URL."""
    stored = load_database_config()
    if supplied is not None:
        config = supplied if isinstance(supplied, DatabaseConfig) else DatabaseConfig.model_validate(supplied)
        # A masked secret echoed back from the settings screen means "use the saved one".
        saved = DatabaseConfig.model_validate(stored) if stored else DatabaseConfig()
        updates = {
            key: getattr(saved, key)
            for key in _SECRET_KEYS
            if is_masked(getattr(config, key))
        }
        saved_url = saved.url or get_settings().database_url or None
        if is_masked_url(config.url, saved_url):
            updates["url"] = saved_url
        return config.model_copy(update=updates) if updates else config
    if stored.get("type"):
        return DatabaseConfig.model_validate(stored)
    settings = get_settings()
    return DatabaseConfig(type=settings.database_type or "mock", url=settings.database_url or None)


def _engine_url(config: DatabaseConfig) -> URL:
    if config.url:
        try:
            return make_url(config.url)
        except ArgumentError as exc:
            raise HTTPException(status_code=400, detail=f"Invalid database URL: {exc}") from exc
    kind = config.type
    if kind in ("postgresql", "postgres"):
        if not config.host or not config.database:
            raise HTTPException(status_code=400, detail="PostgreSQL host and database are required")
        return URL.create(
            "postgresql+psycopg2",
            username=config.user,
            password=config.password,
            host=config.host,
            port=config.port or 5432,
            database=config.database,
            query={"sslmode": "require"} if config.ssl else {},
        )
    if kind == "sqlite":
        if not config.file:
            raise HTTPException(status_code=400, detail="SQLite file path is required")
        path = project_path(config.file)
        if not path.exists():
            raise HTTPException(status_code=400, detail=f"SQLite database file not found: {config.file}")
        return URL.create("sqlite", database=str(path))
    if kind == "oracle":
        if not config.host or not config.database:
            raise HTTPException(status_code=400, detail="Oracle host and service name are required")
        return URL.create(
            "oracle+oracledb",
            username=config.user,
            password=config.password,
            host=config.host,
            port=config.port or 1521,
            query={"service_name": config.database},
        )
    raise HTTPException(status_code=400, detail=f"Unsupported database type: {kind}")


def _connect_args(url: URL) -> dict[str, Any]:
    timeout = get_settings().db_timeout_sec
    backend = url.get_backend_name()
    if backend == "postgresql":
        return {"connect_timeout": timeout}
    if backend == "sqlite":
        return {"timeout": timeout, "check_same_thread": False}
    return {}


def get_engine(config: DatabaseConfig) -> Engine:
    url = _engine_url(config)
    key = url.render_as_string(hide_password=False)
    with _ENGINE_LOCK:
        engine = _ENGINES.get(key)
        if engine is None:
            engine = create_engine(url, pool_pre_ping=True, connect_args=_connect_args(url))
            _ENGINES[key] = engine
            log_event("db.engine.created", {"backend": url.get_backend_name(), "host": url.host})
        return engine


def close_connections() -> int:
    with _ENGINE_LOCK:
        engines = list(_ENGINES.values())
        _ENGINES.clear()
    for engine in engines:
        engine.dispose()
    if engines:
        log_event("db.engine.disposed", {"count": len(engines)})
    return len(engines)


def unique_columns(names: list[str]) -> list[str]:
    """Suffix repeated names (`concept_name`, `concept_name_1`) so rows keep every value."""
    seen: dict[str, int] = {}
    taken = set(names)
    unique: list[str] = []
    for name in names:
        if name not in seen:
            seen[name] = 0
            unique.append(name)
            continue
        count = seen[name]
        while True:
            count += 1
            candidate = f"{name}_{count}"
            if candidate not in taken:
                break
        seen[name] = count
        taken.add(candidate)
        unique.append(candidate)
    return unique


def _is_connection_error(exc: Exception) -> bool:
    message = str(exc).lower()
    return any(marker in message for marker in _CONNECTION_MARKERS)


def _driver_message(exc: SQLAlchemyError) -> str:
    orig = getattr(exc, "orig", None)
    return str(orig or exc).strip()


def _run_sqlalchemy(sql: str, config: DatabaseConfig) -> tuple[list[str], list[dict[str, Any]], bool]:
    cap = get_settings().row_cap
    engine = get_engine(config)
    try:
        connection = engine.connect()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=503,
            detail=f"Database connection failed: {_driver_message(exc)}",
        ) from exc
    with connection:
        try:
            result = connection.execute(text(sql))
            columns = unique_columns([str(name) for name in result.keys()])
            fetched = [dict(zip(columns, row)) for row in result.fetchmany(cap + 1)]
        except OperationalError as exc:
            if _is_connection_error(exc):
                raise HTTPException(
                    status_code=503,
                    detail=f"Database connection failed: {_driver_message(exc)}",
                ) from exc
            raise HTTPException(status_code=400, detail=_driver_message(exc)) from exc
        except SQLAlchemyError as exc:
            raise HTTPException(status_code=400, detail=_driver_message(exc)) from exc
    return columns, fetched[:cap], len(fetched) > cap


def _databricks_wait_timeout() -> str:
    # The statements API accepts 5 to 50 seconds.
    seconds = min(max(get_settings().db_timeout_sec, 5), 50)
    return f"{seconds}s"


def _run_databricks(sql: str, config: DatabaseConfig) -> tuple[list[str], list[dict[str, Any]], bool]:
    settings = get_settings()
    host = (config.host or settings.databricks_host or "").rstrip("/")
    token = config.token or settings.databricks_token
    warehouse = config.warehouse or settings.databricks_warehouse_id
    if not host or not token or not warehouse:
        raise HTTPException(
            status_code=400,
            detail="Databricks host, token and warehouse id are required",
        )
    body: dict[str, Any] = {
        "statement": sql,
        "warehouse_id": warehouse,
        "wait_timeout": _databricks_wait_timeout(),
        "on_wait_timeout": "CANCEL",
        "format": "JSON_ARRAY",
        "disposition": "INLINE",
        "row_limit": settings.row_cap + 1,
    }
    catalog = config.catalog or settings.databricks_catalog
    schema = config.schema_name or settings.databricks_schema
    if catalog:
        body["catalog"] = catalog
    if schema:
        body["schema"] = schema

    try:
        response = requests.post(
            f"{host}/api/2.0/sql/statements",
            headers={"Authorization": f"Bearer {token}"},
            json=body,
            timeout=settings.db_timeout_sec + 10,
        )
    except requests.RequestException as exc:
        raise HTTPException(status_code=503, detail=f"Database connection failed: {exc}") from exc
    if not response.ok:
        raise HTTPException(
            status_code=400,
            detail=f"Databricks API error: {response.status_code} {response.text[:500]}",
        )

    payload = response.json()
    status = payload.get("status") or {}
    state = str(status.get("state") or "").upper()
    if state == "FAILED":
        message = (status.get("error") or {}).get("message") or "Statement failed"
        raise HTTPException(status_code=400, detail=message)
    if state != "SUCCEEDED":
        raise HTTPException(
            status_code=504,
            detail=f"Databricks statement did not finish (state: {state or 'UNKNOWN'})",
        )

    manifest = payload.get("manifest") or {}
    columns = unique_columns(
        [str(col.get("name")) for col in (manifest.get("schema") or {}).get("columns") or []]
    )
    data = (payload.get("result") or {}).get("data_array") or []
    rows = [dict(zip(columns, values)) for values in data]
    cap = settings.row_cap
    truncated = len(rows) > cap or bool(manifest.get("truncated"))
    return columns, rows[:cap], truncated


def _mock_result(sql: str, database_type: str, warning: str | None = None) -> ExecutionResult:
    start = time.perf_counter()
    rows = generate_mock_rows(sql)
    return ExecutionResult(
        columns=list(rows[0].keys()) if rows else [],
        rows=rows,
        row_count=len(rows),
        execution_time_ms=round((time.perf_counter() - start) * 1000, 2),
        database_type=database_type,
        mock=True,
        warning=warning,
    )


def _run_api(sql: str, config: DatabaseConfig) -> ExecutionResult:
    if not config.api_endpoint:
        return _mock_result(sql, "api", "No API endpoint configured; showing mock data")
    settings = get_settings()
    headers = {"Content-Type": "application/json"}
    if config.api_key:
        headers["Authorization"] = f"Bearer {config.api_key}"
    start = time.perf_counter()
    try:
        response = requests.post(
            f"{config.api_endpoint.rstrip('/')}/query",
            headers=headers,
            json={"sql": sql, "limit": settings.row_cap, "offset": 0},
            timeout=settings.db_timeout_sec,
        )
        response.raise_for_status()
        data = response.json()
    except (requests.RequestException, ValueError) as exc:
        log_event("db.mock_fallback", {"endpoint": config.api_endpoint, "error": str(exc)}, level="warning")
        return _mock_result(sql, "api", f"API endpoint unavailable, showing mock data: {exc}")

    rows = data.get("results") or []
    metadata = data.get("metadata") or {}
    columns = data.get("columns") or metadata.get("columns") or (list(rows[0].keys()) if rows else [])
    elapsed = data.get("execution_time_ms")
    if elapsed is None:
        elapsed = round((time.perf_counter() - start) * 1000, 2)
    return ExecutionResult(
        columns=[str(col) for col in columns],
        rows=rows,
        row_count=len(rows),
        truncated=bool(metadata.get("truncated", False)),
        execution_time_ms=float(elapsed),
        database_type="api",
    )


def execute_sql(sql: str, config: DatabaseConfig | dict[str, Any] | None = None) -> ExecutionResult:
    resolved = resolve_database_config(config)
    text_sql = _sanitize_sql(sql or "")
    precheck_sql(text_sql)
    kind = resolved.type
    if kind not in SUPPORTED_TYPES:
        raise HTTPException(status_code=400, detail=f"Unsupported database type: {kind}")

    if kind == "mock":
        result = _mock_result(text_sql, "mock")
    elif kind == "api":
        result = _run_api(text_sql, resolved)
    else:
        start = time.perf_counter()
        if kind == "databricks":
            columns, rows, truncated = _run_databricks(text_sql, resolved)
        else:
            columns, rows, truncated = _run_sqlalchemy(text_sql, resolved)
        result = ExecutionResult(
            columns=columns,
            rows=rows,
            row_count=len(rows),
            truncated=truncated,
            execution_time_ms=round((time.perf_counter() - start) * 1000, 2),
            database_type=kind,
        )

    log_event(
        "db.execute",
        {
            "database_type": kind,
            "row_count": result.row_count,
            "truncated": result.truncated,
            "mock": result.mock,
            "elapsed_ms": result.execution_time_ms,
        },
    )
    return result


def test_database_connection(config: DatabaseConfig | dict[str, Any] | None = None) -> dict[str, Any]:
    resolved = resolve_database_config(config)
    try:
        result = execute_sql("SELECT 1 AS test", resolved)
    except HTTPException as exc:
        return {"success": False, "message": f"Connection test failed: {exc.detail}"}
    if result.warning:
        return {"success": False, "message": result.warning}
    if result.mock:
        return {"success": True, "message": "Using mock data; no database is configured"}
    return {"success": True, "message": f"Successfully connected to {resolved.type} database"}
