"""Configuration loading and defaults."""

from __future__ import annotations

import logging
import os
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping

import yaml

logger = logging.getLogger(__name__)

# Structured generation requests can be large; no call gets less than 5 minutes.
MIN_TIMEOUT_MS = 300_000

PROVIDER_ALIASES = {
    "claude": "anthropic",
    "gpt4": "openai",
    "gpt-4": "openai",
    "google": "gemini",
}

DEFAULT_SETTINGS: Dict[str, Any] = {
    "llm": {
        "primary_provider": "anthropic",
        "fallback_providers": ["openai", "gemini"],
        "max_retries": 2,
        "timeout_ms": MIN_TIMEOUT_MS,
        "min_timeout_ms": MIN_TIMEOUT_MS,
        "default_max_tokens": 1024,
        "default_temperature": 0.7,
    },
    "providers": {
        "anthropic": {
            "model": "claude-sonnet-4-20250514",
            "api_version": "2023-06-01",
        },
        "openai": {
            "model": "gpt-4",
        },
        "gemini": {
            "model": "gemini-1.5-pro",
        },
    },
    "pricing": {
        "anthropic:claude-sonnet-4-20250514": {"input_per_1k": 0.003, "output_per_1k": 0.015},
        "openai:gpt-4": {"input_per_1k": 0.03, "output_per_1k": 0.06},
        "openai:gpt-4o": {"input_per_1k": 0.0025, "output_per_1k": 0.01},
        "gemini:gemini-1.5-pro": {"input_per_1k": 0.00125, "output_per_1k": 0.005},
    },
}

_ENV_OVERRIDES = (
    ("LLM_PRIMARY_PROVIDER", ("llm", "primary_provider"), str),
    ("LLM_MAX_RETRIES", ("llm", "max_retries"), int),
    ("LLM_TIMEOUT_MS", ("llm", "timeout_ms"), int),
    ("ANTHROPIC_MODEL", ("providers", "anthropic", "model"), str),
    ("OPENAI_MODEL", ("providers", "openai", "model"), str),
    ("GEMINI_MODEL", ("providers", "gemini", "model"), str),
)


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def apply_env_overrides(config: Dict[str, Any], environ: Mapping[str, str] | None = None) -> Dict[str, Any]:
    """Returns a copy of ``config`` with LLM_* / *_MODEL env vars applied."""
    env = os.environ if environ is None else environ
    merged = deepcopy(config)
    for var, path, cast in _ENV_OVERRIDES:
        raw = env.get(var)
        if raw is None or not str(raw).strip():
            continue
        try:
            value = cast(str(raw).strip())
        except ValueError:
            logger.warning("Ignoring malformed %s=%r", var, raw)
            continue
        node = merged
        for key in path[:-1]:
            node = node.setdefault(key, {})
        node[path[-1]] = value
    return merged


def load_settings(
    settings_path: str = "config/settings.yaml",
    environ: Mapping[str, str] | None = None,
) -> Dict[str, Any]:
    """Loads settings.yaml, merges it onto defaults, then applies env overrides."""
    merged = deepcopy(DEFAULT_SETTINGS)
    config_path = Path(settings_path)
    if config_path.exists():
        with config_path.open("r", encoding="utf-8") as f:
            user_cfg = yaml.safe_load(f) or {}
        if not isinstance(user_cfg, dict):
            raise ValueError(f"Settings file must contain a mapping: {settings_path}")
        merged = _deep_merge(merged, user_cfg)
    return apply_env_overrides(merged, environ)


def normalize_provider_name(name: str) -> str:
    key = str(name or "").strip().lower()
    return PROVIDER_ALIASES.get(key, key)


def parse_route(route: str) -> tuple[str, str]:
    """Parses 'provider:model' route strings."""
    if ":" not in route:
        raise ValueError(f"Invalid route format: {route}")
    provider, model = route.split(":", 1)
    return normalize_provider_name(provider), model.strip()


def _as_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def effective_timeout_ms(config: Dict[str, Any]) -> int:
    """Configured timeout, raised to the floor when below it; never lowered."""
    llm_cfg = config.get("llm", {})
    floor = max(_as_int(llm_cfg.get("min_timeout_ms"), MIN_TIMEOUT_MS), MIN_TIMEOUT_MS)
    configured = _as_int(llm_cfg.get("timeout_ms"), floor)
    return max(configured, floor)


def max_retries(config: Dict[str, Any]) -> int:
    return max(0, _as_int(config.get("llm", {}).get("max_retries"), 2))


def provider_order(config: Dict[str, Any], available: Iterable[str]) -> List[str]:
    """Primary first, then configured fallbacks, then anything else available.

    Each provider appears once; names without an available adapter are dropped.
    """
    available = list(available)
    llm_cfg = config.get("llm", {})
    wanted = [normalize_provider_name(llm_cfg.get("primary_provider", ""))]
    wanted.extend(normalize_provider_name(name) for name in llm_cfg.get("fallback_providers") or [])
    wanted.extend(available)

    order: List[str] = []
    for name in wanted:
        if not name or name in order:
            continue
        if name not in available:
            logger.warning("Provider '%s' is configured but not available", name)
            continue
        order.append(name)
    return order
