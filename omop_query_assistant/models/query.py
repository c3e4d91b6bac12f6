"""Result types shared by the conversion, execution and API layers."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class NetworkDetails(_CamelModel):
    # HTTP status of the provider response, if one arrived
    status: Optional[int] = None
    status_text: Optional[str] = None
    url: Optional[str] = None
    network_error: Optional[bool] = None
    timeout_error: Optional[bool] = None


class ConversionResult(_CamelModel):
    success: bool
    sql: Optional[str] = None
    explanation: Optional[str] = None
    error: Optional[str] = None
    debug_info: Optional[str] = None
    # display label, e.g. "Azure OpenAI"
    provider: Optional[str] = None
    network_details: Optional[NetworkDetails] = None


class ExecutionResult(_CamelModel):
    columns: List[str]
    rows: List[Dict[str, Any]]
    row_count: int
    truncated: bool = False
    execution_time_ms: float = 0.0
    database_type: str = "mock"
    # rows were synthesised rather than read from a database
    mock: bool = False
    warning: Optional[str] = None
