"""Anthropic Messages API provider."""

from __future__ import annotations

import logging
import os
from typing import Any, Dict

import requests

from ...utils import preview
from ..types import CompletionRequest, ErrorCode, LLMError, ProviderResult
from .base import LazyClient, optional_int, post_json

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"
API_URL = "https://api.anthropic.com/v1/messages"


class AnthropicProvider:
    name = "anthropic"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        api_version: str = "2023-06-01",
        default_max_tokens: int = 1024,
        default_temperature: float = 0.7,
        session: requests.Session | None = None,
    ) -> None:
        self._api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        self.model = model or DEFAULT_MODEL
        self._api_version = api_version
        self._default_max_tokens = default_max_tokens
        self._default_temperature = default_temperature
        self._session = LazyClient(lambda: session or requests.Session())

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self._api_key or "",
            "anthropic-version": self._api_version,
            "content-type": "application/json",
        }

    def _payload(self, request: CompletionRequest) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": request.max_tokens or self._default_max_tokens,
            "temperature": (
                request.temperature if request.temperature is not None else self._default_temperature
            ),
            "messages": [{"role": "user", "content": request.prompt}],
        }
        if request.system_prompt:
            payload["system"] = request.system_prompt
        return payload

    def complete(self, request: CompletionRequest, timeout_ms: int) -> ProviderResult:
        if not self._api_key:
            raise LLMError(ErrorCode.CLIENT_FAULT, "ANTHROPIC_API_KEY missing", self.name)

        logger.debug("Anthropic call start (model=%s, timeout_ms=%d)", self.model, timeout_ms)
        try:
            data = post_json(
                self.name,
                self._session.get(),
                API_URL,
                self._payload(request),
                timeout_ms,
                headers=self._headers(),
                rate_limit_types=("rate_limit_error",),
            )
        except LLMError as exc:
            logger.warning("Anthropic call failed (%s): %s", exc.code.value, exc.message)
            raise

        content = data.get("content", [])
        text = ""
        if content and isinstance(content, list):
            text = "".join(
                str(item.get("text") or "")
                for item in content
                if isinstance(item, dict) and item.get("type") == "text"
            )
        text = text.strip()
        if not text:
            raise LLMError(ErrorCode.INVALID_RESPONSE, "Anthropic returned empty content", self.name)

        logger.debug("Anthropic response length=%d preview=%s", len(text), preview(text))
        usage = data.get("usage") or {}
        return ProviderResult(
            content=text,
            provider_name=self.name,
            model_id=str(data.get("model") or self.model),
            input_tokens=optional_int(usage.get("input_tokens")),
            output_tokens=optional_int(usage.get("output_tokens")),
        )
