from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from omop_query_assistant.api.errors import utc_now
from omop_query_assistant.models.credentials import DatabaseConfig, ProviderCredentials
from omop_query_assistant.models.query import ConversionResult, ExecutionResult
from omop_query_assistant.services import history
from omop_query_assistant.services.database.executor import execute_sql
from omop_query_assistant.services.export import export_filename, rows_to_csv
from omop_query_assistant.services.llm.clients import PROVIDERS
from omop_query_assistant.services.llm.converter import (
    convert_natural_language_to_sql,
    test_provider_connection,
)
from omop_query_assistant.services.omop.schema import EXAMPLE_QUERIES
from omop_query_assistant.services.visualization.chart_recommender import recommend_chart
from omop_query_assistant.utils.logging import log_event

router = APIRouter()


class _Request(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NlToSqlRequest(_Request):
    natural_language: str = Field(min_length=1, max_length=1000)
    provider: str = Field(min_length=1)
    credentials: ProviderCredentials | None = None

    @field_validator("natural_language")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("naturalLanguage must not be blank")
        return value.strip()


class ProcessRequest(NlToSqlRequest):
    database_config: DatabaseConfig | None = None


class ExecuteRequest(_Request):
    sql: str = Field(min_length=1)
    database_config: DatabaseConfig | None = None


class ProviderTestRequest(_Request):
    provider: str = Field(min_length=1)
    credentials: ProviderCredentials | None = None


class ExportRequest(_Request):
    data: list[dict[str, Any]] = []
    columns: list[str] | None = None


def csv_response(rows: list[dict[str, Any]], columns: list[str] | None = None) -> Response:
    content = rows_to_csv(rows, columns)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{export_filename()}"'},
    )


def _conversion_failure(result: ConversionResult) -> JSONResponse:
    body = {
        "success": False,
        "error": result.error,
        "debugInfo": result.debug_info,
        "provider": result.provider,
        "timestamp": utc_now(),
    }
    if result.network_details is not None:
        body["networkDetails"] = result.network_details.to_payload()
    if result.explanation:
        body["explanation"] = result.explanation
    return JSONResponse(status_code=400, content=body)


def _execution_payload(result: ExecutionResult) -> dict[str, Any]:
    return {
        "data": result.rows,
        "columns": result.columns,
        "rowCount": result.row_count,
        "truncated": result.truncated,
        "executionTime": result.execution_time_ms,
        "databaseType": result.database_type,
        "mock": result.mock,
        "warning": result.warning,
        "chart": recommend_chart(result.rows, result.columns),
    }


@router.post("/nl-to-sql")
def nl_to_sql(req: NlToSqlRequest):
    log_event("query.convert", {"provider": req.provider, "question": req.natural_language[:100]})
    result = convert_natural_language_to_sql(req.natural_language, req.provider, req.credentials)
    if not result.success:
        return _conversion_failure(result)
    return {
        "success": True,
        "sql": result.sql,
        "explanation": result.explanation,
        "provider": result.provider,
        "timestamp": utc_now(),
    }


@router.post("/execute")
def execute(req: ExecuteRequest) -> dict:
    result = execute_sql(req.sql, req.database_config)
    return {"success": True, **_execution_payload(result), "timestamp": utc_now()}


@router.post("/process")
def process(req: ProcessRequest):
    conversion = convert_natural_language_to_sql(req.natural_language, req.provider, req.credentials)
    if not conversion.success:
        return _conversion_failure(conversion)

    result = execute_sql(conversion.sql or "", req.database_config)
    entry = history.add_entry(
        query=req.natural_language,
        sql=conversion.sql or "",
        explanation=conversion.explanation,
        provider=conversion.provider,
        columns=result.columns,
        rows=result.rows,
        execution_time_ms=result.execution_time_ms,
        database_type=result.database_type,
    )
    return {
        "success": True,
        "naturalLanguage": req.natural_language,
        "sql": conversion.sql,
        "explanation": conversion.explanation,
        "provider": conversion.provider,
        "execution": _execution_payload(result),
        "historyId": entry["id"],
        "timestamp": utc_now(),
    }


@router.get("/providers")
def providers() -> dict:
    return {
        "providers": [
            {
                "id": info.id,
                "name": info.name,
                "description": info.description,
                "generatesSql": info.generates_sql,
            }
            for info in PROVIDERS.values()
        ]
    }


@router.get("/examples")
def examples() -> dict:
    return {"examples": EXAMPLE_QUERIES}


@router.post("/test-connection")
def test_connection(req: ProviderTestRequest) -> dict:
    return test_provider_connection(req.provider, req.credentials)


@router.post("/export")
def export(req: ExportRequest) -> Response:
    return csv_response(req.data, req.columns)
