"""Provider credential and database configuration payloads."""
from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


ProviderId = Literal["openai", "azure", "anthropic", "google", "deepseek", "databricks"]
DatabaseType = Literal["postgresql", "postgres", "sqlite", "oracle", "databricks", "api", "mock"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        protected_namespaces=(),
    )

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class ProviderCredentials(_CamelModel):
    """Union of the fields any provider may need; unused ones stay empty."""

    api_key: Optional[str] = None
    model: Optional[str] = None
    model_name: Optional[str] = None
    base_url: Optional[str] = None
    # Azure OpenAI
    endpoint: Optional[str] = None
    deployment_name: Optional[str] = None
    api_version: Optional[str] = None
    # Databricks
    host: Optional[str] = None
    token: Optional[str] = None
    catalog: Optional[str] = None
    schema_name: Optional[str] = Field(default=None, alias="schema")
    warehouse: Optional[str] = None


class StoredCredentials(_CamelModel):
    selected_provider: Optional[ProviderId] = None
    openai: Optional[ProviderCredentials] = None
    azure: Optional[ProviderCredentials] = None
    anthropic: Optional[ProviderCredentials] = None
    google: Optional[ProviderCredentials] = None
    deepseek: Optional[ProviderCredentials] = None
    databricks: Optional[ProviderCredentials] = None


class DatabaseConfig(_CamelModel):
    type: DatabaseType = "mock"
    host: Optional[str] = None
    port: Optional[int] = None
    database: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None
    file: Optional[str] = None
    ssl: Optional[bool] = None
    # full SQLAlchemy URL, overrides the discrete fields
    url: Optional[str] = None
    schema_name: Optional[str] = Field(default=None, alias="schema")
    catalog: Optional[str] = None
    warehouse: Optional[str] = None
    token: Optional[str] = None
    api_endpoint: Optional[str] = None
    api_key: Optional[str] = None
