"""LLM provider interface and helpers shared by the adapters."""

from __future__ import annotations

import threading
from typing import Any, Callable, Dict, Generic, Mapping, Protocol, TypeVar

import requests

from ..types import CompletionRequest, ErrorCode, LLMError, ProviderResult

T = TypeVar("T")


class LLMProvider(Protocol):
    name: str

    def complete(self, request: CompletionRequest, timeout_ms: int) -> ProviderResult:
        ...


class LazyClient(Generic[T]):
    """Network client built on first use, at most once per instance."""

    def __init__(self, factory: Callable[[], T]) -> None:
        self._factory = factory
        self._client: T | None = None
        self._lock = threading.Lock()

    @property
    def initialized(self) -> bool:
        return self._client is not None

    def get(self) -> T:
        client = self._client
        if client is not None:
            return client
        with self._lock:
            if self._client is None:
                self._client = self._factory()
            return self._client


def error_from_status(
    provider_name: str,
    status: int | None,
    message: str,
    cause: BaseException | None = None,
) -> LLMError:
    """Map an HTTP status (or its absence) onto the error taxonomy."""
    if status == 408:
        code = ErrorCode.TIMEOUT
    elif status == 429:
        code = ErrorCode.RATE_LIMITED
    elif status is not None and status >= 500:
        code = ErrorCode.PROVIDER_FAULT
    elif status is not None and status >= 400:
        code = ErrorCode.CLIENT_FAULT
    else:
        code = ErrorCode.PROVIDER_FAULT
    return LLMError(code, message, provider_name, cause=cause, status_code=status)


def _error_detail(response: requests.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    if isinstance(data, dict) and isinstance(data.get("error"), dict):
        return data["error"]
    return {}


def post_json(
    provider_name: str,
    session: requests.Session,
    url: str,
    payload: Dict[str, Any],
    timeout_ms: int,
    headers: Mapping[str, str] | None = None,
    rate_limit_types: tuple[str, ...] = (),
) -> Dict[str, Any]:
    """POST a JSON payload and return the decoded body, raising ``LLMError``."""
    try:
        res = session.post(url, json=payload, headers=dict(headers or {}), timeout=timeout_ms / 1000.0)
    except requests.Timeout as exc:
        raise LLMError(ErrorCode.TIMEOUT, f"{provider_name} request timed out", provider_name, cause=exc) from exc
    except requests.RequestException as exc:
        raise LLMError(ErrorCode.PROVIDER_FAULT, str(exc), provider_name, cause=exc) from exc

    if res.status_code >= 400:
        detail = _error_detail(res)
        message = str(detail.get("message") or f"HTTP {res.status_code}")
        if rate_limit_types and detail.get("type") in rate_limit_types:
            raise LLMError(
                ErrorCode.RATE_LIMITED,
                f"{provider_name} rate limited: {message}",
                provider_name,
                status_code=res.status_code,
            )
        raise error_from_status(provider_name, res.status_code, message)

    try:
        data = res.json()
    except ValueError as exc:
        raise LLMError(
            ErrorCode.INVALID_RESPONSE,
            f"{provider_name} returned a non-JSON body",
            provider_name,
            cause=exc,
            status_code=res.status_code,
        ) from exc
    if not isinstance(data, dict):
        raise LLMError(
            ErrorCode.INVALID_RESPONSE,
            f"{provider_name} returned an unexpected body",
            provider_name,
            status_code=res.status_code,
        )
    return data


def optional_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
