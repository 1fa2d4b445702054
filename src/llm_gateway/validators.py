"""Completion request validation."""

from __future__ import annotations

import math
from typing import Any, Dict

from .llm.types import CompletionRequest, ResponseFormat

MAX_TOKENS_LIMIT = 32768
TEMPERATURE_RANGE = (0.0, 2.0)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_request(request: CompletionRequest) -> Dict[str, Any]:
    issues = []

    if not isinstance(request.prompt, str) or not request.prompt.strip():
        issues.append("prompt is required")

    if request.system_prompt is not None:
        if not isinstance(request.system_prompt, str) or not request.system_prompt.strip():
            issues.append("system_prompt must be a non-empty string when given")

    if request.max_tokens is not None:
        if not isinstance(request.max_tokens, int) or isinstance(request.max_tokens, bool):
            issues.append("max_tokens must be an integer")
        elif not 0 < request.max_tokens <= MAX_TOKENS_LIMIT:
            issues.append(f"max_tokens must be between 1 and {MAX_TOKENS_LIMIT}")

    if request.temperature is not None:
        low, high = TEMPERATURE_RANGE
        if not _is_number(request.temperature) or not math.isfinite(request.temperature):
            issues.append("temperature must be a number")
        elif not low <= request.temperature <= high:
            issues.append(f"temperature must be between {low:g} and {high:g}")

    if not isinstance(request.response_format, ResponseFormat):
        issues.append(f"response_format must be one of: {', '.join(f.value for f in ResponseFormat)}")

    return {
        "ok": not issues,
        "issues": issues,
    }
