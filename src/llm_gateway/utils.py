"""Utility helpers."""

from __future__ import annotations

import json
import time
from typing import Any


def canonical_json(value: Any) -> str:
    """Compact JSON text, key order preserved as parsed."""
    return json.dumps(value, ensure_ascii=False, allow_nan=False, separators=(",", ":"))


def ms_since(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def preview(text: str | None, limit: int = 300) -> str:
    if not text:
        return ""
    if len(text) <= limit:
        return text
    return f"{text[:limit]}..."
