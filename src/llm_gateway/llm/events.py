"""Notifications emitted by the router for each provider outcome."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Union

from .types import ErrorCode


@dataclass(frozen=True)
class LLMRequestCompleted:
    provider_name: str
    model_id: str
    duration_ms: int
    input_tokens: int | None = None
    output_tokens: int | None = None
    cost_usd: float = 0.0
    repair_method: str | None = None


@dataclass(frozen=True)
class LLMRequestFailed:
    provider_name: str
    code: ErrorCode
    message: str
    transport_attempts: int = 0
    validation_attempts: int = 0


LLMEvent = Union[LLMRequestCompleted, LLMRequestFailed]
EventListener = Callable[[LLMEvent], None]
