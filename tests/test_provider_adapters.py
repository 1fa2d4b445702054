"""
Tests for the provider adapters and their error mapping.

No network: requests-based adapters get a fake session and the OpenAI
adapter gets a fake SDK client.
"""
from types import SimpleNamespace

import httpx
import openai
import pytest
import requests

from llm_gateway.llm.providers.anthropic_provider import AnthropicProvider
from llm_gateway.llm.providers.base import error_from_status
from llm_gateway.llm.providers.gemini_provider import GeminiProvider
from llm_gateway.llm.providers.openai_provider import OpenAIProvider
from llm_gateway.llm.types import CompletionRequest, ErrorCode, LLMError, ResponseFormat


class FakeResponse:
    def __init__(self, status_code, body=None):
        self.status_code = status_code
        self._body = body

    def json(self):
        if self._body is None:
            raise ValueError("no body")
        return self._body


class FakeSession:
    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.calls = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.exc is not None:
            raise self.exc
        return self.response


@pytest.mark.parametrize(
    "status,code,retriable",
    [
        (408, ErrorCode.TIMEOUT, True),
        (429, ErrorCode.RATE_LIMITED, True),
        (500, ErrorCode.PROVIDER_FAULT, True),
        (503, ErrorCode.PROVIDER_FAULT, True),
        (400, ErrorCode.CLIENT_FAULT, False),
        (401, ErrorCode.CLIENT_FAULT, False),
        (404, ErrorCode.CLIENT_FAULT, False),
        (None, ErrorCode.PROVIDER_FAULT, True),
    ],
)
def test_error_from_status(status, code, retriable):
    error = error_from_status("p", status, "boom")

    assert error.code is code
    assert error.retriable is retriable
    assert error.status_code == status


def test_anthropic_success_maps_response():
    session = FakeSession(
        FakeResponse(
            200,
            {
                "model": "claude-test",
                "content": [{"type": "text", "text": "Hello "}, {"type": "text", "text": "world"}],
                "usage": {"input_tokens": 12, "output_tokens": 3},
            },
        )
    )
    provider = AnthropicProvider(api_key="k", session=session)

    result = provider.complete(CompletionRequest(prompt="hi", system_prompt="be brief"), timeout_ms=300_000)

    assert result.content == "Hello world"
    assert result.provider_name == "anthropic"
    assert result.model_id == "claude-test"
    assert result.input_tokens == 12
    assert result.output_tokens == 3
    call = session.calls[0]
    assert call["timeout"] == 300.0
    assert call["headers"]["x-api-key"] == "k"
    assert call["json"]["system"] == "be brief"
    assert call["json"]["max_tokens"] == 1024


@pytest.mark.parametrize(
    "status,body,code",
    [
        (429, {"error": {"type": "rate_limit_error", "message": "slow down"}}, ErrorCode.RATE_LIMITED),
        (400, {"error": {"type": "rate_limit_error", "message": "slow down"}}, ErrorCode.RATE_LIMITED),
        (401, {"error": {"type": "authentication_error", "message": "bad key"}}, ErrorCode.CLIENT_FAULT),
        (529, {"error": {"type": "overloaded_error", "message": "busy"}}, ErrorCode.PROVIDER_FAULT),
        (408, None, ErrorCode.TIMEOUT),
    ],
)
def test_anthropic_http_errors_are_classified(status, body, code):
    provider = AnthropicProvider(api_key="k", session=FakeSession(FakeResponse(status, body)))

    with pytest.raises(LLMError) as exc_info:
        provider.complete(CompletionRequest(prompt="hi"), timeout_ms=300_000)

    assert exc_info.value.code is code
    assert exc_info.value.provider_name == "anthropic"


@pytest.mark.parametrize(
    "exc,code",
    [
        (requests.Timeout("read timed out"), ErrorCode.TIMEOUT),
        (requests.ConnectionError("refused"), ErrorCode.PROVIDER_FAULT),
    ],
)
def test_transport_exceptions_are_classified(exc, code):
    provider = AnthropicProvider(api_key="k", session=FakeSession(exc=exc))

    with pytest.raises(LLMError) as exc_info:
        provider.complete(CompletionRequest(prompt="hi"), timeout_ms=300_000)

    assert exc_info.value.code is code
    assert exc_info.value.cause is exc


def test_anthropic_empty_content_is_invalid_response():
    provider = AnthropicProvider(api_key="k", session=FakeSession(FakeResponse(200, {"content": []})))

    with pytest.raises(LLMError) as exc_info:
        provider.complete(CompletionRequest(prompt="hi"), timeout_ms=300_000)

    assert exc_info.value.code is ErrorCode.INVALID_RESPONSE
    assert exc_info.value.retriable is True


def test_anthropic_null_text_blocks_are_skipped():
    body = {
        "content": [{"type": "text", "text": None}, {"type": "text", "text": "kept"}],
        "usage": {"input_tokens": 1, "output_tokens": 1},
    }
    provider = AnthropicProvider(api_key="k", session=FakeSession(FakeResponse(200, body)))

    result = provider.complete(CompletionRequest(prompt="hi"), timeout_ms=300_000)

    assert result.content == "kept"


def test_anthropic_only_null_text_is_invalid_response():
    body = {"content": [{"type": "text", "text": None}]}
    provider = AnthropicProvider(api_key="k", session=FakeSession(FakeResponse(200, body)))

    with pytest.raises(LLMError) as exc_info:
        provider.complete(CompletionRequest(prompt="hi"), timeout_ms=300_000)

    assert exc_info.value.code is ErrorCode.INVALID_RESPONSE


def test_missing_api_key_is_client_fault(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    session = FakeSession(FakeResponse(200, {}))
    provider = AnthropicProvider(session=session)

    with pytest.raises(LLMError) as exc_info:
        provider.complete(CompletionRequest(prompt="hi"), timeout_ms=300_000)

    assert exc_info.value.code is ErrorCode.CLIENT_FAULT
    assert session.calls == []


def test_gemini_requests_json_mime_type():
    session = FakeSession(
        FakeResponse(
            200,
            {
                "candidates": [{"content": {"parts": [{"text": '{"a": 1}'}]}}],
                "usageMetadata": {"promptTokenCount": 4, "candidatesTokenCount": 6},
            },
        )
    )
    provider = GeminiProvider(api_key="g", model="gemini-test", session=session)

    result = provider.complete(
        CompletionRequest(prompt="hi", response_format=ResponseFormat.JSON, temperature=0.2),
        timeout_ms=450_000,
    )

    assert result.content == '{"a": 1}'
    assert result.model_id == "gemini-test"
    assert result.input_tokens == 4
    assert result.output_tokens == 6
    call = session.calls[0]
    assert call["url"].endswith("/gemini-test:generateContent")
    assert call["headers"]["x-goog-api-key"] == "g"
    assert call["timeout"] == 450.0
    assert call["json"]["generationConfig"]["responseMimeType"] == "application/json"
    assert call["json"]["generationConfig"]["temperature"] == 0.2


class FakeCompletions:
    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.calls = []

    def create(self, **params):
        self.calls.append(params)
        if self.exc is not None:
            raise self.exc
        return self.response


def _openai_client(response=None, exc=None):
    completions = FakeCompletions(response, exc)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


def _chat_response(content):
    return SimpleNamespace(
        model="gpt-4o-2024",
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=7, completion_tokens=9),
    )


def test_openai_success_and_json_mode():
    client, completions = _openai_client(_chat_response('{"a": 1}'))
    provider = OpenAIProvider(api_key="o", model="gpt-4o", client=client)

    result = provider.complete(
        CompletionRequest(prompt="hi", system_prompt="sys", response_format=ResponseFormat.JSON),
        timeout_ms=300_000,
    )

    assert result.content == '{"a": 1}'
    assert result.model_id == "gpt-4o-2024"
    assert result.input_tokens == 7
    assert result.output_tokens == 9
    params = completions.calls[0]
    assert params["response_format"] == {"type": "json_object"}
    assert params["timeout"] == 300.0
    assert params["messages"][0] == {"role": "system", "content": "sys"}


def test_openai_skips_json_mode_for_older_models():
    client, completions = _openai_client(_chat_response("{}"))
    provider = OpenAIProvider(api_key="o", model="gpt-4", client=client)

    provider.complete(CompletionRequest(prompt="hi", response_format=ResponseFormat.JSON), timeout_ms=300_000)

    assert "response_format" not in completions.calls[0]


def test_openai_empty_content_is_invalid_response():
    client, _ = _openai_client(_chat_response(None))
    provider = OpenAIProvider(api_key="o", client=client)

    with pytest.raises(LLMError) as exc_info:
        provider.complete(CompletionRequest(prompt="hi"), timeout_ms=300_000)

    assert exc_info.value.code is ErrorCode.INVALID_RESPONSE


_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


@pytest.mark.parametrize(
    "exc,code",
    [
        (openai.APITimeoutError(request=_REQUEST), ErrorCode.TIMEOUT),
        (
            openai.RateLimitError("slow down", response=httpx.Response(429, request=_REQUEST), body=None),
            ErrorCode.RATE_LIMITED,
        ),
        (
            openai.InternalServerError("boom", response=httpx.Response(500, request=_REQUEST), body=None),
            ErrorCode.PROVIDER_FAULT,
        ),
        (
            openai.BadRequestError("bad", response=httpx.Response(400, request=_REQUEST), body=None),
            ErrorCode.CLIENT_FAULT,
        ),
        (
            openai.APIStatusError("late", response=httpx.Response(408, request=_REQUEST), body=None),
            ErrorCode.TIMEOUT,
        ),
        (openai.APIConnectionError(request=_REQUEST), ErrorCode.PROVIDER_FAULT),
    ],
)
def test_openai_exceptions_are_classified(exc, code):
    client, _ = _openai_client(exc=exc)
    provider = OpenAIProvider(api_key="o", client=client)

    with pytest.raises(LLMError) as exc_info:
        provider.complete(CompletionRequest(prompt="hi"), timeout_ms=300_000)

    assert exc_info.value.code is code
    assert exc_info.value.cause is exc
