"""Cascading repair of malformed JSON returned by language models.

Strategies run in a fixed order against the trimmed response and the first one
that yields a parsed value wins. A strategy returns ``None`` when it does not
apply (nothing to strip, nothing to fix) so the next one gets its turn; a parse
error is treated the same way.
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Callable, List, Tuple

from ..utils import canonical_json, preview

logger = logging.getLogger(__name__)

METHOD_ALL_FAILED = "all_failed"
METHOD_INVALID_INPUT = "invalid_input"

_FENCED_PATTERNS = (
    re.compile(r"\A```json\s*\n?([\s\S]*?)\n?```\Z", re.IGNORECASE),
    re.compile(r"\A```[A-Za-z][\w+-]*[ \t]*\n([\s\S]*?)\n?```\Z"),
    re.compile(r"\A```\s*\n?([\s\S]*?)\n?```\Z"),
    re.compile(r"\A`([\s\S]*?)`\Z"),
)
_LEADING_JSON_FENCE = re.compile(r"\A```json\s*", re.IGNORECASE)
_LEADING_FENCE = re.compile(r"\A```\s*")
_TRAILING_FENCE = re.compile(r"\s*```\Z")
_COMMA_BEFORE_BRACE = re.compile(r",(\s*})")
_COMMA_BEFORE_BRACKET = re.compile(r",(\s*\])")
_DANGLING_COMMA = re.compile(r",\s*\Z")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

_CLOSERS = {"{": "}", "[": "]"}


@dataclass
class RepairResult:
    success: bool
    value: Any = None
    method: str = METHOD_ALL_FAILED
    original_length: int = 0
    repaired_length: int | None = None


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-standard JSON constant: {name}")


def _finite_float(token: str) -> float:
    value = float(token)
    if not math.isfinite(value):
        raise ValueError(f"Number out of range: {token}")
    return value


def _parse(text: str) -> Any:
    return json.loads(text, parse_constant=_reject_constant, parse_float=_finite_float)


def _strip_fence_markers(text: str) -> str:
    cleaned = _LEADING_JSON_FENCE.sub("", text, count=1)
    cleaned = _LEADING_FENCE.sub("", cleaned, count=1)
    return _TRAILING_FENCE.sub("", cleaned, count=1)


def _extract_brace_span(text: str) -> str | None:
    first = text.find("{")
    last = text.rfind("}")
    if first == -1 or last <= first:
        return None
    return text[first : last + 1]


def _remove_trailing_commas(text: str) -> str:
    fixed = _COMMA_BEFORE_BRACE.sub(r"\1", text)
    return _COMMA_BEFORE_BRACKET.sub(r"\1", fixed)


def _replace_control_chars(text: str) -> str:
    return _CONTROL_CHARS.sub(" ", text)


def _missing_closers(text: str) -> List[str]:
    """Closing characters still owed at the end of ``text``, innermost first.

    Characters inside string literals, and any character right after a
    backslash, never count as delimiters.
    """
    expected: List[str] = []
    in_string = False
    escape_next = False
    for char in text:
        if escape_next:
            escape_next = False
            continue
        if char == "\\":
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char in _CLOSERS:
            expected.append(_CLOSERS[char])
        elif char in ("}", "]") and expected and expected[-1] == char:
            expected.pop()
    return list(reversed(expected))


def _close_brackets(text: str) -> str | None:
    closers = _missing_closers(text)
    if not closers:
        return None
    fixed = _DANGLING_COMMA.sub("", text.strip())
    return fixed + "".join(closers)


def _first_object_span(text: str) -> str | None:
    start = text.find("{")
    if start == -1:
        return None
    depth = 0
    in_string = False
    escape_next = False
    for index in range(start, len(text)):
        char = text[index]
        if escape_next:
            escape_next = False
            continue
        if char == "\\":
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def direct_parse(text: str) -> Any:
    return _parse(text)


def remove_markdown(text: str) -> Any:
    cleaned = text
    for pattern in _FENCED_PATTERNS:
        match = pattern.match(cleaned)
        if match and match.group(1):
            cleaned = match.group(1).strip()
            break
    cleaned = _strip_fence_markers(cleaned)
    if cleaned == text:
        return None
    return _parse(cleaned)


def extract_json_block(text: str) -> Any:
    span = _extract_brace_span(text)
    if span is None:
        return None
    return _parse(span)


def fix_trailing_comma(text: str) -> Any:
    fixed = _remove_trailing_commas(text)
    if fixed == text:
        return None
    return _parse(fixed)


def fix_unclosed_brackets(text: str) -> Any:
    fixed = _close_brackets(text)
    if fixed is None:
        # Balanced already; let the next strategy run.
        return None
    return _parse(fixed)


def fix_escape_chars(text: str) -> Any:
    fixed = _replace_control_chars(text)
    if fixed == text:
        return None
    return _parse(fixed)


def aggressive_extract(text: str) -> Any:
    span = _first_object_span(text)
    if span is None:
        return None
    return _parse(span)


def combined_repair(text: str) -> Any:
    cleaned = _strip_fence_markers(text)
    span = _extract_brace_span(cleaned)
    if span is not None:
        cleaned = span
    cleaned = _remove_trailing_commas(cleaned)
    cleaned = _replace_control_chars(cleaned)
    closed = _close_brackets(cleaned)
    if closed is not None:
        cleaned = closed
    return _parse(cleaned)


STRATEGIES: Tuple[Tuple[str, Callable[[str], Any]], ...] = (
    ("direct_parse", direct_parse),
    ("remove_markdown", remove_markdown),
    ("extract_json_block", extract_json_block),
    ("fix_trailing_comma", fix_trailing_comma),
    ("fix_unclosed_brackets", fix_unclosed_brackets),
    ("fix_escape_chars", fix_escape_chars),
    ("aggressive_extract", aggressive_extract),
    ("combined_repair", combined_repair),
)


def repair_json(raw: str) -> RepairResult:
    """Recover a structured value from a raw model response."""
    if not raw or not isinstance(raw, str):
        return RepairResult(success=False, method=METHOD_INVALID_INPUT, original_length=0)

    original_length = len(raw)
    trimmed = raw.strip()
    logger.debug("Raw response preview: %s", preview(trimmed, 500))

    for name, strategy in STRATEGIES:
        try:
            value = strategy(trimmed)
        except (ValueError, RecursionError) as exc:
            logger.debug("Strategy %s failed: %s", name, exc)
            continue
        if value is None:
            continue
        logger.info("JSON repair succeeded using strategy: %s", name)
        return RepairResult(
            success=True,
            value=value,
            method=name,
            original_length=original_length,
            repaired_length=len(canonical_json(value)),
        )

    logger.error(
        "All JSON repair strategies failed (length=%d): %s",
        original_length,
        preview(raw, 2000),
    )
    return RepairResult(success=False, method=METHOD_ALL_FAILED, original_length=original_length)
