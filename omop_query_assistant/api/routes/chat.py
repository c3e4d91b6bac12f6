from __future__ import annotations

from typing import Literal

from fastapi import APIRouter
from pydantic import BaseModel, Field

from omop_query_assistant.api.errors import utc_now
from omop_query_assistant.models.credentials import ProviderCredentials
from omop_query_assistant.services.llm.chat import send_omop_chat_message

router = APIRouter()


class ChatTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    message: str = Field(min_length=1, max_length=4000)
    provider: str | None = None
    credentials: ProviderCredentials | None = None
    history: list[ChatTurn] = []


@router.post("")
def chat(req: ChatRequest) -> dict:
    result = send_omop_chat_message(
        req.message,
        req.provider,
        req.credentials,
        [turn.model_dump() for turn in req.history],
    )
    return {"success": True, **result, "timestamp": utc_now()}
