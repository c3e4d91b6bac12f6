from __future__ import annotations

from types import SimpleNamespace

import pytest

from omop_query_assistant.models.credentials import ProviderCredentials
from omop_query_assistant.services.llm import clients


_MESSAGES = [
    {"role": "system", "content": "You are an OMOP expert."},
    {"role": "user", "content": "How many people?"},
    {"role": "assistant", "content": "Which table?"},
    {"role": "user", "content": "person"},
]


class FakeOpenAI:
    """Stands in for both OpenAI and AzureOpenAI; records constructor and create kwargs."""

    created: list["FakeOpenAI"] = []

    def __init__(self, **kwargs) -> None:
        self.kwargs = kwargs
        self.calls: list[dict] = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))
        FakeOpenAI.created.append(self)

    def _create(self, **kwargs):
        self.calls.append(kwargs)
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="SELECT COUNT(*) FROM person"))],
            usage=SimpleNamespace(prompt_tokens=12, completion_tokens=6, total_tokens=18),
        )


@pytest.fixture
def fake_openai(monkeypatch):
    FakeOpenAI.created = []
    monkeypatch.setattr(clients, "OpenAI", FakeOpenAI)
    monkeypatch.setattr(clients, "AzureOpenAI", FakeOpenAI)
    return FakeOpenAI


def test_azure_uses_deployment_as_model(fake_openai) -> None:
    credentials = ProviderCredentials(
        api_key="az-key",
        endpoint="https://omop.openai.azure.com/",
        deployment_name="gpt4o-prod",
        api_version="2024-12-01-preview",
        model_name="gpt-4o",
    )

    client = clients.build_client("azure", credentials)
    result = client.chat(_MESSAGES, max_tokens=800, temperature=0.3)

    sdk = fake_openai.created[0]
    assert sdk.kwargs["azure_endpoint"] == "https://omop.openai.azure.com"
    assert sdk.kwargs["api_version"] == "2024-12-01-preview"
    assert client.url == (
        "https://omop.openai.azure.com/openai/deployments/gpt4o-prod/chat/completions"
        "?api-version=2024-12-01-preview"
    )
    assert sdk.calls[0]["model"] == "gpt4o-prod"
    assert sdk.calls[0]["messages"] == _MESSAGES
    assert sdk.calls[0]["max_tokens"] == 800
    assert result == {
        "content": "SELECT COUNT(*) FROM person",
        "usage": {"prompt_tokens": 12, "completion_tokens": 6, "total_tokens": 18},
    }


def test_deepseek_uses_its_own_base_url(fake_openai) -> None:
    credentials = clients.resolve_credentials("deepseek", {"apiKey": "ds-key"})

    client = clients.build_client("deepseek", credentials)
    client.chat(_MESSAGES, max_tokens=100, temperature=0.0)

    sdk = fake_openai.created[0]
    assert sdk.kwargs["base_url"] == "https://api.deepseek.com/v1"
    assert client.url == "https://api.deepseek.com/v1/chat/completions"
    assert sdk.calls[0]["model"] == "deepseek-chat"


def test_openai_defaults_to_public_endpoint(fake_openai) -> None:
    client = clients.build_client("openai", ProviderCredentials(api_key="sk-1", model_name="gpt-4o"))

    assert fake_openai.created[0].kwargs["base_url"] == "https://api.openai.com/v1"
    assert client.url == "https://api.openai.com/v1/chat/completions"
    assert client.model == "gpt-4o"


def test_anthropic_gets_system_separately(monkeypatch) -> None:
    calls: list[dict] = []

    class FakeAnthropic:
        def __init__(self, **kwargs) -> None:
            self.kwargs = kwargs
            self.messages = SimpleNamespace(create=self._create)

        def _create(self, **kwargs):
            calls.append(kwargs)
            return SimpleNamespace(
                content=[
                    SimpleNamespace(type="text", text="SELECT 1"),
                    SimpleNamespace(type="tool_use", id="t1"),
                ],
                usage=SimpleNamespace(input_tokens=20, output_tokens=4),
            )

    monkeypatch.setattr(clients.anthropic, "Anthropic", FakeAnthropic)

    client = clients.build_client(
        "anthropic",
        ProviderCredentials(api_key="sk-ant", model_name="claude-3-5-sonnet-20241022"),
    )
    result = client.chat(_MESSAGES, max_tokens=500, temperature=0.2)

    assert calls[0]["system"] == "You are an OMOP expert."
    assert calls[0]["messages"] == _MESSAGES[1:]
    assert calls[0]["model"] == "claude-3-5-sonnet-20241022"
    assert result == {
        "content": "SELECT 1",
        "usage": {"prompt_tokens": 20, "completion_tokens": 4, "total_tokens": 24},
    }


def test_google_maps_roles_and_generation_config(monkeypatch) -> None:
    configured: list[dict] = []
    models: list[dict] = []
    generated: list[dict] = []

    class FakeModel:
        def __init__(self, name, **kwargs) -> None:
            models.append({"name": name, **kwargs})

        def generate_content(self, contents, **kwargs):
            generated.append({"contents": contents, **kwargs})
            part = SimpleNamespace(text="SELECT 2")
            return SimpleNamespace(
                candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))],
                usage_metadata=SimpleNamespace(
                    prompt_token_count=9,
                    candidates_token_count=3,
                    total_token_count=12,
                ),
            )

    monkeypatch.setattr(clients.genai, "configure", lambda **kwargs: configured.append(kwargs))
    monkeypatch.setattr(clients.genai, "GenerativeModel", FakeModel)

    client = clients.build_client("google", ProviderCredentials(api_key="g-key", model_name="gemini-1.5-pro"))
    result = client.chat(_MESSAGES, max_tokens=700, temperature=0.4)

    assert configured == [{"api_key": "g-key"}]
    assert models == [{"name": "gemini-1.5-pro", "system_instruction": "You are an OMOP expert."}]
    assert [c["role"] for c in generated[0]["contents"]] == ["user", "model", "user"]
    assert generated[0]["contents"][1]["parts"] == ["Which table?"]
    assert generated[0]["generation_config"] == {"temperature": 0.4, "max_output_tokens": 700}
    assert client.url.endswith("/models/gemini-1.5-pro:generateContent")
    assert result["content"] == "SELECT 2"
    assert result["usage"]["total_tokens"] == 12


def test_databricks_has_no_chat_client() -> None:
    with pytest.raises(ValueError):
        clients.build_client("databricks", ProviderCredentials(host="https://dbc.cloud", token="t"))
