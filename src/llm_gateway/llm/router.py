"""Provider routing with dual retry budgets, JSON repair and fallback."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping

from ..config import effective_timeout_ms, max_retries, provider_order
from ..utils import canonical_json, ms_since
from ..validators import validate_request
from .events import EventListener, LLMEvent, LLMRequestCompleted, LLMRequestFailed
from .json_repair import repair_json
from .providers.anthropic_provider import AnthropicProvider
from .providers.base import LLMProvider
from .providers.gemini_provider import GeminiProvider
from .providers.openai_provider import OpenAIProvider
from .types import (
    CompletionRequest,
    CompletionResult,
    ErrorCode,
    LLMError,
    ProviderResult,
    ResponseFormat,
)

logger = logging.getLogger(__name__)

VALIDATION_RETRY_LIMIT = 2
BASE_BACKOFF_MS = 1000
MAX_BACKOFF_MS = 4000

PROVIDER_CLASSES = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
    "gemini": GeminiProvider,
}


def backoff_delay_ms(attempt: int) -> int:
    return min(MAX_BACKOFF_MS, BASE_BACKOFF_MS * 2 ** (attempt - 1))


def should_retry(error: LLMError, attempts: int, limit: int) -> bool:
    """Retry only retriable errors whose own budget is not yet exceeded."""
    return error.retriable and attempts <= limit


@dataclass
class AttemptOutcome:
    result: CompletionResult | None = None
    error: LLMError | None = None

    @property
    def ok(self) -> bool:
        return self.result is not None


class LLMRouter:
    def __init__(
        self,
        config: Dict[str, Any],
        providers: Mapping[str, LLMProvider] | None = None,
        listeners: Iterable[EventListener] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.providers = dict(providers if providers is not None else self._default_providers())
        self.listeners = list(listeners or [])
        self.max_retries = max_retries(config)
        self.timeout_ms = effective_timeout_ms(config)
        self._sleep = sleep

    def _default_providers(self) -> Dict[str, LLMProvider]:
        llm_cfg = self.config.get("llm", {})
        provider_cfg = self.config.get("providers", {})
        available: Dict[str, LLMProvider] = {}
        for name, provider_cls in PROVIDER_CLASSES.items():
            if name not in provider_cfg:
                continue
            opts = provider_cfg.get(name) or {}
            kwargs: Dict[str, Any] = {
                "api_key": opts.get("api_key"),
                "model": opts.get("model"),
                "default_max_tokens": int(llm_cfg.get("default_max_tokens", 1024)),
                "default_temperature": float(llm_cfg.get("default_temperature", 0.7)),
            }
            if name == "anthropic" and opts.get("api_version"):
                kwargs["api_version"] = str(opts["api_version"])
            available[name] = provider_cls(**kwargs)
        return available

    def provider_order(self) -> List[str]:
        return provider_order(self.config, self.providers.keys())

    def _estimate_cost(self, provider: str, model: str, tokens_in: int | None, tokens_out: int | None) -> float:
        key = f"{provider}:{model}"
        pricing = self.config.get("pricing", {}).get(key)
        if not pricing:
            return 0.0
        in_price = float(pricing.get("input_per_1k", 0.0))
        out_price = float(pricing.get("output_per_1k", 0.0))
        return (((tokens_in or 0) / 1000.0) * in_price) + (((tokens_out or 0) / 1000.0) * out_price)

    def _emit(self, event: LLMEvent) -> None:
        for listener in self.listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("LLM event listener failed for %s", type(event).__name__)

    def complete(self, request: CompletionRequest) -> CompletionResult:
        order = self.provider_order()

        check = validate_request(request)
        if not check["ok"]:
            raise LLMError(
                ErrorCode.CLIENT_FAULT,
                "Invalid completion request: " + "; ".join(check["issues"]),
                order[0] if order else "none",
            )
        if not order:
            raise LLMError(ErrorCode.PROVIDER_FAULT, "No LLM providers configured", "none")

        last_error: LLMError | None = None
        for name in order:
            outcome = self._try_provider(name, self.providers[name], request)
            if outcome.ok:
                return outcome.result
            last_error = outcome.error
            logger.warning(
                "Provider %s failed with %s: %s",
                name,
                outcome.error.code.value,
                outcome.error.message,
            )

        raise last_error

    def _try_provider(self, name: str, provider: LLMProvider, request: CompletionRequest) -> AttemptOutcome:
        transport_attempts = 0
        validation_attempts = 0

        while True:
            started = time.perf_counter()
            from_repair = False
            try:
                raw = provider.complete(request, timeout_ms=self.timeout_ms)
            except LLMError as exc:
                error = exc
            except Exception as exc:
                error = self._normalize_error(exc, name)
            else:
                duration_ms = ms_since(started)
                outcome = self._validate_response(raw, request.response_format)
                if outcome.ok:
                    outcome.result.duration_ms = duration_ms
                    self._emit(
                        LLMRequestCompleted(
                            provider_name=outcome.result.provider_name,
                            model_id=outcome.result.model_id,
                            duration_ms=duration_ms,
                            input_tokens=outcome.result.input_tokens,
                            output_tokens=outcome.result.output_tokens,
                            cost_usd=self._estimate_cost(
                                outcome.result.provider_name,
                                outcome.result.model_id,
                                outcome.result.input_tokens,
                                outcome.result.output_tokens,
                            ),
                            repair_method=outcome.result.repair_method,
                        )
                    )
                    return outcome
                error = outcome.error
                from_repair = True

            if from_repair:
                validation_attempts += 1
                attempt = validation_attempts
                retry = should_retry(error, validation_attempts, VALIDATION_RETRY_LIMIT)
            else:
                transport_attempts += 1
                attempt = transport_attempts
                retry = should_retry(error, transport_attempts, self.max_retries)

            if not retry:
                self._emit(
                    LLMRequestFailed(
                        provider_name=name,
                        code=error.code,
                        message=error.message,
                        transport_attempts=transport_attempts,
                        validation_attempts=validation_attempts,
                    )
                )
                return AttemptOutcome(error=error)

            delay_ms = backoff_delay_ms(attempt)
            logger.warning(
                "Retrying %s after %s (attempt %d, %s budget) in %dms",
                name,
                error.code.value,
                attempt,
                "validation" if from_repair else "transport",
                delay_ms,
            )
            self._sleep(delay_ms / 1000.0)

    def _validate_response(self, raw: ProviderResult, response_format: ResponseFormat) -> AttemptOutcome:
        if response_format is not ResponseFormat.JSON:
            return AttemptOutcome(
                result=CompletionResult(
                    content=raw.content,
                    provider_name=raw.provider_name,
                    model_id=raw.model_id,
                    input_tokens=raw.input_tokens,
                    output_tokens=raw.output_tokens,
                )
            )

        repaired = repair_json(raw.content)
        if not repaired.success:
            return AttemptOutcome(
                error=LLMError(
                    ErrorCode.INVALID_RESPONSE,
                    "LLM response invalid JSON after all repair attempts. "
                    f"Original length: {repaired.original_length}",
                    raw.provider_name,
                )
            )

        if repaired.method != "direct_parse":
            logger.warning(
                "JSON required repair. Method: %s, Original: %d chars, Repaired: %s chars",
                repaired.method,
                repaired.original_length,
                repaired.repaired_length,
            )

        # The repaired value replaces the raw provider text.
        return AttemptOutcome(
            result=CompletionResult(
                content=canonical_json(repaired.value),
                provider_name=raw.provider_name,
                model_id=raw.model_id,
                input_tokens=raw.input_tokens,
                output_tokens=raw.output_tokens,
                repair_method=repaired.method,
            )
        )

    @staticmethod
    def _normalize_error(exc: Exception, provider_name: str) -> LLMError:
        if isinstance(exc, TimeoutError):
            return LLMError(ErrorCode.TIMEOUT, "LLM request timed out", provider_name, cause=exc)
        return LLMError(
            ErrorCode.PROVIDER_FAULT,
            str(exc) or "LLM invocation failed",
            provider_name,
            cause=exc,
        )
