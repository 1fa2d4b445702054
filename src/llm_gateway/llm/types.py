"""Shared LLM data structures and the error taxonomy."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict


class ResponseFormat(str, Enum):
    TEXT = "text"
    JSON = "json"


class ErrorCode(str, Enum):
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    PROVIDER_FAULT = "provider_fault"
    CLIENT_FAULT = "client_fault"
    INVALID_RESPONSE = "invalid_response"


# Retriability belongs to the code, not to the call site.
RETRIABLE_CODES: Dict[ErrorCode, bool] = {
    ErrorCode.TIMEOUT: True,
    ErrorCode.RATE_LIMITED: True,
    ErrorCode.PROVIDER_FAULT: True,
    ErrorCode.CLIENT_FAULT: False,
    ErrorCode.INVALID_RESPONSE: True,
}


@dataclass(frozen=True)
class CompletionRequest:
    prompt: str
    system_prompt: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None
    response_format: ResponseFormat = ResponseFormat.TEXT

    def __post_init__(self) -> None:
        if isinstance(self.response_format, str) and not isinstance(self.response_format, ResponseFormat):
            try:
                fmt = ResponseFormat(self.response_format.strip().lower())
            except ValueError:
                # Left as-is; validate_request reports it as a client fault.
                return
            object.__setattr__(self, "response_format", fmt)

    @property
    def wants_json(self) -> bool:
        return self.response_format is ResponseFormat.JSON


@dataclass
class ProviderResult:
    content: str
    provider_name: str
    model_id: str
    input_tokens: int | None = None
    output_tokens: int | None = None


@dataclass
class CompletionResult:
    content: str
    provider_name: str
    model_id: str
    input_tokens: int | None = None
    output_tokens: int | None = None
    duration_ms: int = 0
    repair_method: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "provider_name": self.provider_name,
            "model_id": self.model_id,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "duration_ms": self.duration_ms,
            "repair_method": self.repair_method,
        }


class LLMError(RuntimeError):
    """Classified failure of an LLM call.

    ``retriable`` is looked up from ``RETRIABLE_CODES`` and cannot be set by
    whoever raises the error.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        provider_name: str,
        cause: BaseException | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = ErrorCode(code)
        self.message = message
        self.provider_name = provider_name
        self.cause = cause
        self.status_code = status_code

    @property
    def retriable(self) -> bool:
        return RETRIABLE_CODES[self.code]

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.provider_name}: {self.message}"

    def __repr__(self) -> str:
        return (
            f"LLMError(code={self.code.value!r}, provider={self.provider_name!r}, "
            f"retriable={self.retriable}, message={self.message!r})"
        )


def suggested_http_status(error: LLMError) -> int:
    """HTTP status class a caller should surface for a final error."""
    if error.code is ErrorCode.CLIENT_FAULT:
        return 400
    if error.code is ErrorCode.INVALID_RESPONSE:
        return 502
    return 503
