from __future__ import annotations

from http import HTTPStatus
import json
import time
from typing import Any

import anthropic
import openai
import requests
from google.api_core import exceptions as google_exceptions

from omop_query_assistant.core.config import get_settings
from omop_query_assistant.models.credentials import ProviderCredentials
from omop_query_assistant.models.query import ConversionResult, NetworkDetails
from omop_query_assistant.services.llm.clients import (
    PROVIDERS,
    build_client,
    missing_fields,
    model_for,
    provider_label,
    resolve_credentials,
)
from omop_query_assistant.services.llm.response_parser import parse_ai_response
from omop_query_assistant.services.omop.schema import (
    CONNECTION_TEST_PROMPT,
    OMOP_SYSTEM_PROMPT,
    build_user_prompt,
)
from omop_query_assistant.utils.logging import log_event


_TIMEOUT_ERRORS = (
    openai.APITimeoutError,
    anthropic.APITimeoutError,
    google_exceptions.DeadlineExceeded,
    requests.Timeout,
)
_CONNECTION_ERRORS = (
    openai.APIConnectionError,
    anthropic.APIConnectionError,
    google_exceptions.ServiceUnavailable,
    requests.ConnectionError,
)

_COMMON_TIPS = (
    "Check if you're behind a corporate firewall or VPN that might block the connection",
)
TROUBLESHOOTING_TIPS: dict[str, tuple[str, ...]] = {
    "openai": (
        "Verify that your OpenAI API key is valid and has not expired",
        "Ensure the model name is available to your account",
        "Verify your network allows outbound connections to api.openai.com",
    ),
    "azure": (
        "Verify that your Azure OpenAI endpoint is correct and accessible",
        "Check if your API key is valid and has appropriate permissions",
        "Ensure your deployment name exists in your Azure OpenAI resource",
        "Verify your network allows outbound connections to Azure OpenAI endpoints",
    ),
    "anthropic": (
        "Verify that your Anthropic API key is valid and has not expired",
        "Ensure your network allows outbound connections to Anthropic API endpoints",
        "Confirm that the Anthropic service is currently operational",
    ),
    "google": (
        "Verify that your Google AI API key is valid and has appropriate permissions",
        "Ensure the model name you've specified exists and is accessible with your API key",
        "Check if your network allows outbound connections to Google API endpoints",
        "Verify you're not exceeding Google AI API rate limits",
    ),
    "deepseek": (
        "Verify that your Deepseek API key is valid and has not expired",
        "Ensure your network allows outbound connections to Deepseek API endpoints",
        "Confirm that the Deepseek service is currently operational",
        "Verify the model name specified is available with your subscription",
    ),
    "databricks": (
        "Verify that your Databricks host URL is correct and includes the protocol (https://)",
        "Ensure your personal access token is valid and has not expired",
        "Check if your network allows outbound connections to Databricks",
    ),
}


def troubleshooting_text(provider: str) -> str:
    tips = TROUBLESHOOTING_TIPS.get(provider, ()) + _COMMON_TIPS
    return "Troubleshooting tips:\n" + "\n".join(f"- {tip}" for tip in tips)


def _status_of(exc: Exception) -> int | None:
    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return status
    if isinstance(exc, google_exceptions.GoogleAPICallError) and isinstance(exc.code, int):
        return exc.code
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def _reason_of(exc: Exception, status: int) -> str:
    response = getattr(exc, "response", None)
    reason = getattr(response, "reason_phrase", None) or getattr(response, "reason", None)
    if isinstance(reason, str) and reason:
        return reason
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return ""


def classify_exception(exc: Exception, label: str, url: str | None) -> tuple[str, NetworkDetails]:
    """Turn an SDK/HTTP exception into a user-facing message and network details."""
    if isinstance(exc, _TIMEOUT_ERRORS):
        timeout = get_settings().llm_timeout_sec
        return (
            f"Request to {label} API timed out after {timeout} seconds",
            NetworkDetails(url=url, timeout_error=True),
        )
    if isinstance(exc, _CONNECTION_ERRORS):
        return (
            f"Network error connecting to {label} API. This could be due to network connectivity "
            "issues, a proxy or firewall, or the API endpoint being unavailable.",
            NetworkDetails(url=url, network_error=True),
        )
    status = _status_of(exc)
    if status is not None:
        reason = _reason_of(exc, status)
        return (
            f"{label} API error: {status} {reason}".rstrip(),
            NetworkDetails(status=status, status_text=reason or None, url=url),
        )
    return str(exc) or f"Error calling {label} API", NetworkDetails(url=url)


def _failure(
    provider: str,
    exc: Exception,
    url: str | None,
) -> ConversionResult:
    label = provider_label(provider)
    message, details = classify_exception(exc, label, url)
    body = getattr(exc, "body", None) or getattr(exc, "message", None)
    debug = [f"Exception details: {type(exc).__name__}: {exc}"]
    if body and str(body) not in str(exc):
        debug.append(f"Response: {body if isinstance(body, str) else json.dumps(body, default=str)}")
    if url:
        debug.append(f"Request URL: {url}")
    debug.append("")
    debug.append(troubleshooting_text(provider))
    return ConversionResult(
        success=False,
        error=message,
        debug_info="\n".join(debug),
        provider=label,
        network_details=details,
    )


def _precheck(provider: str, credentials: ProviderCredentials) -> ConversionResult | None:
    info = PROVIDERS.get(provider)
    if info is None:
        return ConversionResult(
            success=False,
            error="Invalid AI provider selected",
            debug_info=(
                f'Selected provider "{provider}" is not valid. '
                f"Available providers: {', '.join(PROVIDERS)}."
            ),
        )
    if not info.generates_sql:
        return ConversionResult(
            success=False,
            error=f"{info.name} does not generate SQL",
            debug_info=(
                f"{info.name} is configured as a query backend. Select an LLM provider "
                "(openai, azure, anthropic, google, deepseek) to convert questions, "
                "and use the connection test to check the workspace."
            ),
            provider=info.name,
        )
    missing = missing_fields(provider, credentials)
    if missing:
        return ConversionResult(
            success=False,
            error=f"Missing {info.name} credentials",
            debug_info=f"Required credentials missing: {' '.join(missing)}",
            provider=info.name,
        )
    return None


def _complete(provider: str, credentials: ProviderCredentials, prompt: str) -> ConversionResult:
    settings = get_settings()
    label = provider_label(provider)
    url: str | None = None
    start = time.perf_counter()
    try:
        client = build_client(provider, credentials)
        url = client.url
        log_event("llm.request", {"provider": provider, "model": model_for(provider, credentials)})
        response = client.chat(
            [
                {"role": "system", "content": OMOP_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            max_tokens=settings.llm_max_output_tokens,
            temperature=settings.llm_temperature,
        )
    except Exception as exc:
        log_event(
            "llm.error",
            {"provider": provider, "error": str(exc), "type": type(exc).__name__},
            level="error",
        )
        return _failure(provider, exc, url)

    latency_ms = int((time.perf_counter() - start) * 1000)
    log_event(
        "llm.response",
        {"provider": provider, "latency_ms": latency_ms, "usage": response.get("usage", {})},
    )
    content = str(response.get("content") or "").strip()
    if not content:
        return ConversionResult(
            success=False,
            error=f"No content returned from {label}",
            debug_info=f"Full response: {json.dumps(response, default=str)}",
            provider=label,
            network_details=NetworkDetails(url=url),
        )

    parsed = parse_ai_response(content)
    if not parsed.sql_found:
        return ConversionResult(
            success=False,
            sql=parsed.sql,
            explanation=parsed.explanation,
            error="Could not extract valid SQL from AI response",
            debug_info=f"Raw response: {content}",
            provider=label,
        )
    return ConversionResult(
        success=True,
        sql=parsed.sql,
        explanation=parsed.explanation,
        provider=label,
    )


def convert_natural_language_to_sql(
    question: str,
    provider: str,
    credentials: ProviderCredentials | dict[str, Any] | None = None,
) -> ConversionResult:
    provider = (provider or "").strip().lower()
    resolved = resolve_credentials(provider, credentials) if provider in PROVIDERS else ProviderCredentials()
    rejected = _precheck(provider, resolved)
    if rejected is not None:
        log_event("llm.rejected", {"provider": provider, "error": rejected.error}, level="warning")
        return rejected
    return _complete(provider, resolved, build_user_prompt(question))


def _test_databricks(credentials: ProviderCredentials) -> dict[str, Any]:
    if missing_fields("databricks", credentials):
        return {
            "success": False,
            "debugInfo": "Missing required Databricks credentials: host and token are required.",
        }
    url = f"{str(credentials.host).rstrip('/')}/api/2.0/clusters/list"
    try:
        response = requests.get(
            url,
            headers={"Authorization": f"Bearer {credentials.token}"},
            timeout=get_settings().llm_timeout_sec,
        )
    except requests.RequestException as exc:
        message, details = classify_exception(exc, "Databricks", url)
        return {
            "success": False,
            "debugInfo": (
                f"Failed to connect to Databricks: {message}\n\n"
                f"Network details: {details.model_dump_json(by_alias=True, exclude_none=True)}\n\n"
                f"{troubleshooting_text('databricks')}"
            ),
        }
    if response.ok:
        return {"success": True}
    return {
        "success": False,
        "debugInfo": (
            f"Databricks API error: {response.status_code} {response.reason}\n"
            f"Response: {response.text}"
        ),
    }


def test_provider_connection(
    provider: str,
    credentials: ProviderCredentials | dict[str, Any] | None = None,
) -> dict[str, Any]:
    provider = (provider or "").strip().lower()
    if provider not in PROVIDERS:
        return {"success": False, "debugInfo": f"Invalid provider: {provider}"}
    resolved = resolve_credentials(provider, credentials)
    if provider == "databricks":
        result = _test_databricks(resolved)
        log_event("provider.test", {"provider": provider, "success": result["success"]})
        return result

    rejected = _precheck(provider, resolved)
    outcome = rejected or _complete(provider, resolved, CONNECTION_TEST_PROMPT)
    log_event("provider.test", {"provider": provider, "success": outcome.success})
    if outcome.success:
        return {"success": True}

    debug_info = outcome.debug_info or outcome.error or ""
    if outcome.network_details is not None:
        details = outcome.network_details.model_dump(by_alias=True, exclude_none=True)
        debug_info = f"{debug_info}\n\nNetwork details: {json.dumps(details, indent=2)}"
    return {"success": False, "debugInfo": debug_info}
