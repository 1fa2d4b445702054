"""OpenAI Chat Completions provider."""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List

import openai
from openai import OpenAI

from ...utils import preview
from ..types import CompletionRequest, ErrorCode, LLMError, ProviderResult
from .base import LazyClient, error_from_status, optional_int

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4"
JSON_MODE_MODELS = ("gpt-4o", "gpt-4.1", "gpt-4-turbo")


def supports_json_mode(model: str) -> bool:
    return any(marker in model for marker in JSON_MODE_MODELS)


class OpenAIProvider:
    name = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        default_max_tokens: int = 1024,
        default_temperature: float = 0.7,
        client: Any = None,
    ) -> None:
        self._api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.model = model or DEFAULT_MODEL
        self._default_max_tokens = default_max_tokens
        self._default_temperature = default_temperature
        # SDK retries are off: the router owns the retry budget.
        self._client = LazyClient(lambda: client or OpenAI(api_key=self._api_key, max_retries=0))

    def _messages(self, request: CompletionRequest) -> List[Dict[str, str]]:
        messages = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.prompt})
        return messages

    def _to_error(self, exc: openai.OpenAIError) -> LLMError:
        if isinstance(exc, openai.APITimeoutError):
            return LLMError(ErrorCode.TIMEOUT, "OpenAI request timed out", self.name, cause=exc)
        if isinstance(exc, openai.RateLimitError):
            return LLMError(ErrorCode.RATE_LIMITED, "OpenAI rate limited", self.name, cause=exc, status_code=429)
        if isinstance(exc, openai.APIStatusError):
            return error_from_status(self.name, exc.status_code, str(exc), cause=exc)
        return LLMError(ErrorCode.PROVIDER_FAULT, str(exc) or "OpenAI invocation failed", self.name, cause=exc)

    def complete(self, request: CompletionRequest, timeout_ms: int) -> ProviderResult:
        if not self._api_key:
            raise LLMError(ErrorCode.CLIENT_FAULT, "OPENAI_API_KEY missing", self.name)

        params: Dict[str, Any] = {
            "model": self.model,
            "temperature": (
                request.temperature if request.temperature is not None else self._default_temperature
            ),
            "max_tokens": request.max_tokens or self._default_max_tokens,
            "messages": self._messages(request),
            "timeout": timeout_ms / 1000.0,
        }
        if request.wants_json and supports_json_mode(self.model):
            params["response_format"] = {"type": "json_object"}

        logger.debug("OpenAI call start (model=%s, timeout_ms=%d)", self.model, timeout_ms)
        try:
            response = self._client.get().chat.completions.create(**params)
        except openai.OpenAIError as exc:
            mapped = self._to_error(exc)
            logger.warning("OpenAI call failed (%s): %s", mapped.code.value, mapped.message)
            raise mapped from exc

        choices = getattr(response, "choices", None) or []
        message = getattr(choices[0], "message", None) if choices else None
        text = getattr(message, "content", None) or ""
        if not isinstance(text, str):
            text = str(text)
        text = text.strip()
        if not text:
            raise LLMError(ErrorCode.INVALID_RESPONSE, "OpenAI returned empty content", self.name)

        logger.debug("OpenAI response length=%d preview=%s", len(text), preview(text))
        usage = getattr(response, "usage", None)
        return ProviderResult(
            content=text,
            provider_name=self.name,
            model_id=str(getattr(response, "model", None) or self.model),
            input_tokens=optional_int(getattr(usage, "prompt_tokens", None)),
            output_tokens=optional_int(getattr(usage, "completion_tokens", None)),
        )
