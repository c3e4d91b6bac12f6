from __future__ import annotations

from typing import Any

from fastapi import HTTPException

from omop_query_assistant.core.config import get_settings
from omop_query_assistant.models.credentials import ProviderCredentials
from omop_query_assistant.services.llm.clients import (
    PROVIDERS,
    build_client,
    missing_fields,
    provider_label,
    resolve_credentials,
)
from omop_query_assistant.services.llm.response_parser import looks_like_sql, parse_ai_response
from omop_query_assistant.services.omop.schema import OMOP_CHAT_SYSTEM_PROMPT
from omop_query_assistant.services.runtime.settings_store import load_credentials
from omop_query_assistant.utils.logging import log_event


_CHAT_ROLES = ("user", "assistant")
_MAX_HISTORY_TURNS = 20


def default_provider() -> str:
    stored = load_credentials().get("selectedProvider")
    if isinstance(stored, str) and stored in PROVIDERS:
        return stored
    return get_settings().default_provider


def _history_messages(history: list[dict[str, Any]] | None) -> list[dict[str, str]]:
    messages: list[dict[str, str]] = []
    for turn in (history or [])[-_MAX_HISTORY_TURNS:]:
        role = str(turn.get("role") or "").strip().lower()
        content = str(turn.get("content") or "").strip()
        if role in _CHAT_ROLES and content:
            messages.append({"role": role, "content": content})
    return messages


def _reply_sql(reply: str) -> str | None:
    """SQL from a fenced block or `SQL:` marker, or a bare statement that reads as SQL."""
    if not reply:
        return None
    parsed = parse_ai_response(reply)
    if parsed.source in ("block", "marker"):
        return parsed.sql
    if parsed.source == "lines" and looks_like_sql(parsed.sql):
        return parsed.sql
    return None


def send_omop_chat_message(
    message: str,
    provider: str | None = None,
    credentials: ProviderCredentials | dict[str, Any] | None = None,
    history: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Answer a free-form OMOP question.

    Raises 400 for an unusable provider or missing credentials and 502 when
    the provider call fails. ``sql`` is populated only when the reply
    contains something that parses as SQL.
    """
    provider = (provider or default_provider()).strip().lower()
    if provider not in PROVIDERS or not PROVIDERS[provider].generates_sql:
        raise HTTPException(status_code=400, detail=f"Provider {provider!r} does not support chat")

    resolved = resolve_credentials(provider, credentials)
    missing = missing_fields(provider, resolved)
    if missing:
        raise HTTPException(
            status_code=400,
            detail=f"Missing {provider_label(provider)} credentials: {', '.join(missing)}",
        )

    settings = get_settings()
    messages = [{"role": "system", "content": OMOP_CHAT_SYSTEM_PROMPT}]
    messages.extend(_history_messages(history))
    messages.append({"role": "user", "content": message})
    try:
        client = build_client(provider, resolved)
        response = client.chat(
            messages,
            max_tokens=settings.chat_max_output_tokens,
            temperature=settings.llm_temperature,
        )
    except Exception as exc:
        log_event("chat.error", {"provider": provider, "error": str(exc)}, level="error")
        raise HTTPException(status_code=502, detail=f"Failed to get response from AI: {exc}") from exc

    reply = str(response.get("content") or "").strip()
    log_event(
        "chat.reply",
        {"provider": provider, "turns": len(messages) - 1, "usage": response.get("usage", {})},
    )
    return {
        "reply": reply,
        "provider": provider_label(provider),
        "sql": _reply_sql(reply),
    }
