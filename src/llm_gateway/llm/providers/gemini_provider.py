"""Google Gemini REST provider."""

from __future__ import annotations

import logging
import os
from typing import Any, Dict

import requests

from ...utils import preview
from ..types import CompletionRequest, ErrorCode, LLMError, ProviderResult
from .base import LazyClient, optional_int, post_json

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-1.5-pro"
API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"


class GeminiProvider:
    name = "gemini"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        default_max_tokens: int = 1024,
        default_temperature: float = 0.7,
        session: requests.Session | None = None,
    ) -> None:
        self._api_key = api_key or os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
        self.model = model or DEFAULT_MODEL
        self._default_max_tokens = default_max_tokens
        self._default_temperature = default_temperature
        self._session = LazyClient(lambda: session or requests.Session())

    def _payload(self, request: CompletionRequest) -> Dict[str, Any]:
        generation_config: Dict[str, Any] = {
            "temperature": (
                request.temperature if request.temperature is not None else self._default_temperature
            ),
            "maxOutputTokens": request.max_tokens or self._default_max_tokens,
        }
        if request.wants_json:
            generation_config["responseMimeType"] = "application/json"
        payload: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": request.prompt}]}],
            "generationConfig": generation_config,
        }
        if request.system_prompt:
            payload["system_instruction"] = {"parts": [{"text": request.system_prompt}]}
        return payload

    def complete(self, request: CompletionRequest, timeout_ms: int) -> ProviderResult:
        if not self._api_key:
            raise LLMError(ErrorCode.CLIENT_FAULT, "GEMINI_API_KEY/GOOGLE_API_KEY missing", self.name)

        logger.debug("Gemini call start (model=%s, timeout_ms=%d)", self.model, timeout_ms)
        try:
            data = post_json(
                self.name,
                self._session.get(),
                f"{API_BASE}/{self.model}:generateContent",
                self._payload(request),
                timeout_ms,
                headers={"x-goog-api-key": self._api_key},
            )
        except LLMError as exc:
            logger.warning("Gemini call failed (%s): %s", exc.code.value, exc.message)
            raise

        candidates = data.get("candidates") or []
        text = ""
        if candidates and isinstance(candidates[0], dict):
            parts = (candidates[0].get("content") or {}).get("parts") or []
            text = "".join(str(part.get("text", "")) for part in parts if isinstance(part, dict))
        text = text.strip()
        if not text:
            raise LLMError(ErrorCode.INVALID_RESPONSE, "Gemini returned empty content", self.name)

        logger.debug("Gemini response length=%d preview=%s", len(text), preview(text))
        usage = data.get("usageMetadata") or {}
        return ProviderResult(
            content=text,
            provider_name=self.name,
            model_id=str(data.get("modelVersion") or self.model),
            input_tokens=optional_int(usage.get("promptTokenCount")),
            output_tokens=optional_int(usage.get("candidatesTokenCount")),
        )
