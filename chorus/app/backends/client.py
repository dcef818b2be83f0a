from __future__ import annotations

import json
import math
import time
from uuid import uuid4

import httpx

from chorus.app.backends.contracts import (
    BackendFailure,
    BackendSpec,
    BackendSuccess,
    CallOptions,
    FailureKind,
)


def _elapsed_ms(started_at: float) -> int:
    return max(int((time.perf_counter() - started_at) * 1000), 0)


def _parse_retry_after_ms(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    if not math.isfinite(seconds) or seconds < 0:
        return None
    return int(seconds * 1000)


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except (json.JSONDecodeError, ValueError):
        return response.reason_phrase or f"HTTP {response.status_code}"
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        if isinstance(error, str):
            return error
    return response.reason_phrase or f"HTTP {response.status_code}"


def _extract_content(payload: object) -> str | None:
    if not isinstance(payload, dict):
        return None
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    message = first.get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    return content if isinstance(content, str) else None


def _extract_usage_tokens(payload: dict[str, object]) -> int:
    usage = payload.get("usage")
    if not isinstance(usage, dict):
        return 0
    total = usage.get("total_tokens")
    if isinstance(total, int) and total >= 0:
        return total
    prompt_tokens = usage.get("prompt_tokens")
    completion_tokens = usage.get("completion_tokens")
    return sum(
        value
        for value in (prompt_tokens, completion_tokens)
        if isinstance(value, int) and value >= 0
    )


def classify_status(status_code: int) -> FailureKind:
    if status_code == 401:
        return FailureKind.AUTH_ERROR
    if status_code == 429:
        return FailureKind.RATE_LIMITED
    if status_code >= 500:
        return FailureKind.SERVER_ERROR
    return FailureKind.CLIENT_ERROR


def _is_retryable(kind: FailureKind) -> bool:
    return kind in {
        FailureKind.RATE_LIMITED,
        FailureKind.SERVER_ERROR,
        FailureKind.NETWORK_ERROR,
    }


class ChatCompletionsBackend:
    """Single backend reached through an OpenAI-compatible chat completions API."""

    def __init__(
        self,
        spec: BackendSpec,
        *,
        base_url: str,
        api_key: str | None,
        http_referer: str,
        http_title: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._spec = spec
        self._base_url = base_url
        self._api_key = api_key
        self._http_referer = http_referer
        self._http_title = http_title
        self._transport = transport

    @property
    def backend_id(self) -> str:
        return self._spec.backend_id

    @property
    def _endpoint(self) -> str:
        return f"{self._base_url.rstrip('/')}/chat/completions"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key or ''}",
            "Content-Type": "application/json",
            "HTTP-Referer": self._http_referer,
            "X-Title": self._http_title,
        }

    def _payload(self, prompt: str, options: CallOptions) -> dict[str, object]:
        max_tokens = options.max_tokens or self._spec.max_tokens
        temperature = (
            options.temperature
            if options.temperature is not None
            else self._spec.temperature
        )
        return {
            "model": self._spec.backend_id,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": max_tokens,
            "temperature": temperature,
            "stream": False,
        }

    async def generate(
        self, prompt: str, options: CallOptions
    ) -> BackendSuccess | BackendFailure:
        request_id = uuid4().hex
        started_at = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                timeout=self._spec.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    self._endpoint,
                    headers=self._headers(),
                    content=json.dumps(self._payload(prompt, options)),
                )
        except httpx.TimeoutException as exc:
            return self._failure(
                FailureKind.NETWORK_ERROR,
                message=f"Request timed out ({exc.__class__.__name__})",
                started_at=started_at,
                request_id=request_id,
            )
        except httpx.TransportError as exc:
            return self._failure(
                FailureKind.NETWORK_ERROR,
                message=str(exc) or exc.__class__.__name__,
                started_at=started_at,
                request_id=request_id,
            )

        if response.is_success:
            return self._parse_success(response, started_at, request_id)

        kind = classify_status(response.status_code)
        retry_after_ms = None
        if kind in {FailureKind.RATE_LIMITED, FailureKind.SERVER_ERROR}:
            retry_after_ms = _parse_retry_after_ms(response.headers.get("retry-after"))
        return self._failure(
            kind,
            message=_error_message(response),
            started_at=started_at,
            request_id=request_id,
            retry_after_ms=retry_after_ms,
        )

    def _parse_success(
        self,
        response: httpx.Response,
        started_at: float,
        request_id: str,
    ) -> BackendSuccess | BackendFailure:
        try:
            payload = response.json()
        except (json.JSONDecodeError, ValueError):
            payload = None
        content = _extract_content(payload)
        if content is None or not isinstance(payload, dict):
            return self._failure(
                FailureKind.SERVER_ERROR,
                message="Invalid response format from API",
                started_at=started_at,
                request_id=request_id,
            )
        return BackendSuccess(
            backend_id=self.backend_id,
            content=content,
            response_time_ms=_elapsed_ms(started_at),
            usage_tokens=_extract_usage_tokens(payload),
            request_id=request_id,
        )

    def _failure(
        self,
        kind: FailureKind,
        *,
        message: str,
        started_at: float,
        request_id: str,
        retry_after_ms: int | None = None,
    ) -> BackendFailure:
        return BackendFailure(
            backend_id=self.backend_id,
            kind=kind,
            retryable=_is_retryable(kind),
            retry_after_ms=retry_after_ms,
            message=message,
            response_time_ms=_elapsed_ms(started_at),
            request_id=request_id,
        )


def build_backends(
    specs: list[BackendSpec] | tuple[BackendSpec, ...],
    *,
    base_url: str,
    api_key: str | None,
    http_referer: str,
    http_title: str,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, ChatCompletionsBackend]:
    return {
        spec.backend_id: ChatCompletionsBackend(
            spec,
            base_url=base_url,
            api_key=api_key,
            http_referer=http_referer,
            http_title=http_title,
            transport=transport,
        )
        for spec in specs
    }
