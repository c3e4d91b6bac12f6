from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import anthropic
import google.generativeai as genai
from openai import AzureOpenAI, OpenAI

from omop_query_assistant.core.config import Settings, get_settings
from omop_query_assistant.models.credentials import ProviderCredentials
from omop_query_assistant.services.runtime.settings_store import (
    is_masked,
    load_provider_credentials,
)


@dataclass(frozen=True)
class ProviderInfo:
    id: str
    name: str
    description: str
    generates_sql: bool = True


PROVIDERS: dict[str, ProviderInfo] = {
    "openai": ProviderInfo("openai", "OpenAI GPT", "OpenAI GPT models for natural language processing"),
    "azure": ProviderInfo("azure", "Azure OpenAI", "OpenAI models deployed on an Azure OpenAI resource"),
    "anthropic": ProviderInfo("anthropic", "Anthropic Claude", "Anthropic Claude models for natural language processing"),
    "google": ProviderInfo("google", "Google AI", "Google Gemini models for natural language processing"),
    "deepseek": ProviderInfo("deepseek", "Deepseek", "Deepseek chat models through the OpenAI-compatible API"),
    "databricks": ProviderInfo(
        "databricks",
        "Databricks",
        "Databricks workspace used as the OMOP query backend",
        generates_sql=False,
    ),
}

_REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    "azure": ("api_key", "endpoint", "deployment_name"),
    "databricks": ("host", "token"),
}
_FIELD_LABELS = {
    "api_key": "apiKey",
    "endpoint": "endpoint",
    "deployment_name": "deploymentName",
    "host": "host",
    "token": "token",
}

ANTHROPIC_MESSAGES_URL = "https://api.anthropic.com/v1/messages"
OPENAI_DEFAULT_BASE_URL = "https://api.openai.com/v1"
GOOGLE_GENERATE_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"


def provider_label(provider: str) -> str:
    info = PROVIDERS.get(provider)
    return info.name if info else provider


def _env_defaults(provider: str, settings: Settings) -> dict[str, Any]:
    if provider == "openai":
        return {
            "api_key": settings.openai_api_key,
            "model_name": settings.openai_model,
            "base_url": settings.openai_base_url,
        }
    if provider == "azure":
        return {
            "api_key": settings.azure_openai_api_key,
            "endpoint": settings.azure_openai_endpoint,
            "deployment_name": settings.azure_openai_deployment,
            "api_version": settings.azure_openai_api_version,
            "model_name": settings.azure_openai_model,
        }
    if provider == "anthropic":
        return {"api_key": settings.anthropic_api_key, "model_name": settings.anthropic_model}
    if provider == "google":
        return {"api_key": settings.google_api_key, "model_name": settings.google_model}
    if provider == "deepseek":
        return {
            "api_key": settings.deepseek_api_key,
            "model_name": settings.deepseek_model,
            "base_url": settings.deepseek_base_url,
        }
    if provider == "databricks":
        return {
            "host": settings.databricks_host,
            "token": settings.databricks_token,
            "warehouse": settings.databricks_warehouse_id,
            "catalog": settings.databricks_catalog,
            "schema_name": settings.databricks_schema,
        }
    return {}


def _overlay(base: dict[str, Any], values: dict[str, Any]) -> None:
    values = dict(values)
    # "model" is accepted as a synonym for "model_name".
    if values.get("model"):
        values["model_name"] = values.pop("model")
    for key, value in values.items():
        if value is None or value == "" or is_masked(value):
            continue
        base[key] = value


def resolve_credentials(
    provider: str,
    supplied: ProviderCredentials | dict[str, Any] | None = None,
) -> ProviderCredentials:
    """Merge env defaults, stored settings and request values (last wins)."""
    merged = _env_defaults(provider, get_settings())
    stored = ProviderCredentials.model_validate(load_provider_credentials(provider))
    _overlay(merged, stored.model_dump())
    if supplied is not None:
        if isinstance(supplied, dict):
            supplied = ProviderCredentials.model_validate(supplied)
        _overlay(merged, supplied.model_dump())
    return ProviderCredentials.model_validate(merged)


def missing_fields(provider: str, credentials: ProviderCredentials) -> list[str]:
    required = _REQUIRED_FIELDS.get(provider, ("api_key",))
    return [
        _FIELD_LABELS[name]
        for name in required
        if not str(getattr(credentials, name) or "").strip()
    ]


def available_providers() -> list[str]:
    return [
        provider
        for provider in PROVIDERS
        if not missing_fields(provider, resolve_credentials(provider))
    ]


class OpenAICompatibleClient:
    """OpenAI, Azure OpenAI and Deepseek all speak the chat-completions API."""

    def __init__(self, provider: str, credentials: ProviderCredentials, timeout: int) -> None:
        self.label = provider_label(provider)
        if provider == "azure":
            endpoint = str(credentials.endpoint or "").rstrip("/")
            self.model = str(credentials.deployment_name)
            self.client = AzureOpenAI(
                api_key=credentials.api_key,
                azure_endpoint=endpoint,
                api_version=credentials.api_version,
                timeout=timeout,
            )
            self.url = (
                f"{endpoint}/openai/deployments/{self.model}/chat/completions"
                f"?api-version={credentials.api_version}"
            )
            return
        base_url = str(credentials.base_url or "").rstrip("/") or OPENAI_DEFAULT_BASE_URL
        self.model = str(credentials.model_name or credentials.model or "")
        self.client = OpenAI(api_key=credentials.api_key, base_url=base_url, timeout=timeout)
        self.url = f"{base_url}/chat/completions"

    def chat(self, messages: list[dict[str, str]], *, max_tokens: int, temperature: float) -> dict[str, Any]:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        content = response.choices[0].message.content if response.choices else ""
        usage = {
            "prompt_tokens": getattr(response.usage, "prompt_tokens", 0),
            "completion_tokens": getattr(response.usage, "completion_tokens", 0),
            "total_tokens": getattr(response.usage, "total_tokens", 0),
        }
        return {"content": content or "", "usage": usage}


class AnthropicClient:
    def __init__(self, credentials: ProviderCredentials, timeout: int) -> None:
        self.label = provider_label("anthropic")
        self.model = str(credentials.model_name or credentials.model or "")
        self.url = ANTHROPIC_MESSAGES_URL
        self.client = anthropic.Anthropic(api_key=credentials.api_key, timeout=timeout)

    def chat(self, messages: list[dict[str, str]], *, max_tokens: int, temperature: float) -> dict[str, Any]:
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        turns = [m for m in messages if m["role"] != "system"]
        kwargs: dict[str, Any] = {}
        if system:
            kwargs["system"] = system
        response = self.client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=turns,
            **kwargs,
        )
        content = "".join(
            getattr(block, "text", "")
            for block in (response.content or [])
            if getattr(block, "type", "") == "text"
        )
        usage = {
            "prompt_tokens": getattr(response.usage, "input_tokens", 0),
            "completion_tokens": getattr(response.usage, "output_tokens", 0),
        }
        usage["total_tokens"] = (usage["prompt_tokens"] or 0) + (usage["completion_tokens"] or 0)
        return {"content": content, "usage": usage}


class GoogleAIClient:
    def __init__(self, credentials: ProviderCredentials, timeout: int) -> None:
        self.label = provider_label("google")
        self.model = str(credentials.model_name or credentials.model or "")
        self.url = GOOGLE_GENERATE_URL.format(model=self.model)
        self.timeout = timeout
        # The SDK keeps the key in module state.
        genai.configure(api_key=credentials.api_key)

    def chat(self, messages: list[dict[str, str]], *, max_tokens: int, temperature: float) -> dict[str, Any]:
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        contents = [
            {"role": "model" if m["role"] == "assistant" else "user", "parts": [m["content"]]}
            for m in messages
            if m["role"] != "system"
        ]
        model = genai.GenerativeModel(self.model, system_instruction=system or None)
        response = model.generate_content(
            contents,
            generation_config={"temperature": temperature, "max_output_tokens": max_tokens},
            request_options={"timeout": self.timeout},
        )
        # response.text raises when the candidate was blocked; read the parts instead.
        candidates = getattr(response, "candidates", None) or []
        parts = candidates[0].content.parts if candidates else []
        content = "".join(getattr(part, "text", "") for part in parts)
        meta = getattr(response, "usage_metadata", None)
        usage = {
            "prompt_tokens": getattr(meta, "prompt_token_count", 0),
            "completion_tokens": getattr(meta, "candidates_token_count", 0),
            "total_tokens": getattr(meta, "total_token_count", 0),
        }
        return {"content": content, "usage": usage}


def build_client(provider: str, credentials: ProviderCredentials):
    timeout = get_settings().llm_timeout_sec
    if provider in ("openai", "azure", "deepseek"):
        return OpenAICompatibleClient(provider, credentials, timeout)
    if provider == "anthropic":
        return AnthropicClient(credentials, timeout)
    if provider == "google":
        return GoogleAIClient(credentials, timeout)
    raise ValueError(f"Provider {provider!r} does not support chat completions")


def model_for(provider: str, credentials: ProviderCredentials) -> str:
    if provider == "azure":
        return str(credentials.deployment_name or "")
    return str(credentials.model_name or credentials.model or "")
