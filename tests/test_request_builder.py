"""Tests for per-provider request construction."""

import orjson
from pydantic import ValidationError
import pytest

from llm_stream.models.request import CompletionOptions, ConversationMessage, Role
from llm_stream.providers.registry import provider_registry
from llm_stream.utils.exceptions import ConfigError

CONVERSATION = [
    ConversationMessage(role=Role.SYSTEM, content="Be terse."),
    ConversationMessage(role=Role.USER, content="Hi"),
    ConversationMessage(role=Role.ASSISTANT, content="Hello."),
    ConversationMessage(role=Role.USER, content="Bye"),
]


def build(provider, messages=CONVERSATION, **options):
    options.setdefault("api_key", "sk-test")
    return provider_registry.create(provider).build_request(messages, CompletionOptions(**options))


def body(request):
    return orjson.loads(request.body)


def test_openai_request():
    request = build("openai", temperature=0.2, max_tokens=100)

    assert request.provider == "openai"
    assert request.method == "POST"
    assert request.url == "https://api.openai.com/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer sk-test"
    assert request.headers["Content-Type"] == "application/json"
    assert request.headers["Accept"] == "text/event-stream"

    payload = body(request)
    assert payload["model"] == "gpt-4o"
    assert payload["stream"] is True
    assert payload["temperature"] == 0.2
    assert payload["max_tokens"] == 100
    assert "top_p" not in payload
    assert [m["role"] for m in payload["messages"]] == ["system", "user", "assistant", "user"]


def test_openai_explicit_system_goes_first():
    request = build("openai", messages=CONVERSATION[1:2], system="Answer in French.")
    assert body(request)["messages"][0] == {"role": "system", "content": "Answer in French."}


def test_base_url_and_model_override():
    request = build("openai", base_url="http://localhost:8080/v1/", model="local-model")
    assert request.url == "http://localhost:8080/v1/chat/completions"
    assert body(request)["model"] == "local-model"


def test_missing_api_key_is_config_error():
    with pytest.raises(ConfigError):
        build("openai", api_key=None)


def test_anthropic_request():
    request = build("anthropic", top_k=40)

    assert request.url == "https://api.anthropic.com/v1/messages"
    assert request.headers["x-api-key"] == "sk-test"
    assert request.headers["anthropic-version"] == "2023-06-01"
    assert "Authorization" not in request.headers

    payload = body(request)
    assert payload["model"] == "claude-3-5-sonnet-20240620"
    assert payload["max_tokens"] == 4096
    assert payload["system"] == "Be terse."
    assert payload["top_k"] == 40
    assert payload["messages"] == [
        {"role": "user", "content": "Hi"},
        {"role": "assistant", "content": "Hello."},
        {"role": "user", "content": "Bye"},
    ]


def test_anthropic_version_override():
    request = build("anthropic", api_version="2024-01-01", max_tokens=10)
    assert request.headers["anthropic-version"] == "2024-01-01"
    assert body(request)["max_tokens"] == 10


def test_google_request_puts_key_in_query():
    request = build("gemini", api_key="k/ey+1", top_p=0.9)

    assert request.provider == "google"
    assert request.url == (
        "https://generativelanguage.googleapis.com/v1beta/models/gemini-1.5-pro"
        ":streamGenerateContent?alt=sse&key=k%2Fey%2B1"
    )
    payload = body(request)
    assert payload["systemInstruction"] == {"parts": [{"text": "Be terse."}]}
    assert payload["generationConfig"] == {"maxOutputTokens": 4096, "topP": 0.9}
    assert [c["role"] for c in payload["contents"]] == ["user", "model", "user"]


def test_mistral_request_adds_min_tokens():
    request = build("mistral", min_tokens=5)

    assert request.url == "https://api.mistral.ai/v1/chat/completions"
    payload = body(request)
    assert payload["model"] == "mistral-large-latest"
    assert payload["min_tokens"] == 5


def test_mistral_fim_request():
    messages = [ConversationMessage(content="def add(a, b):")]
    request = build("mistral-fim", messages=messages, suffix="return c", max_tokens=64)

    assert request.url == "https://api.mistral.ai/v1/fim/completions"
    payload = body(request)
    assert payload == {
        "model": "codestral-2405",
        "prompt": "def add(a, b):",
        "stream": True,
        "suffix": "return c",
        "max_tokens": 64,
    }


def test_copilot_request_headers():
    request = build("copilot")

    assert request.url == "https://api.githubcopilot.com/chat/completions"
    assert request.headers["Authorization"] == "Bearer sk-test"
    assert request.headers["Copilot-Integration-Id"] == "vscode-chat"
    assert request.headers["Editor-Version"].startswith("llm-stream/")


def test_request_is_immutable():
    request = build("openai")
    with pytest.raises(ValidationError):
        request.url = "https://elsewhere.test"
