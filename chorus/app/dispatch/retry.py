from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from chorus.app.backends.contracts import (
    BackendFailure,
    BackendSuccess,
    CallOptions,
    FailureKind,
    TextBackend,
)
from chorus.app.backends.fallback import build_fallback_outcome
from chorus.app.observability.telemetry import emit_backend_call, emit_event

LOGGER = logging.getLogger(__name__)

DEFAULT_RATE_LIMIT_DELAY_MS = 60_000

Sleep = Callable[[float], Awaitable[None]]
AttemptHook = Callable[[BackendSuccess | BackendFailure], Awaitable[None]]


def backoff_delay_ms(
    attempt: int, retry_delay_ms: int, server_hint_ms: int | None = None
) -> int:
    return max(server_hint_ms or 0, retry_delay_ms * 2 ** (attempt - 1))


def _retry_delay_ms(failure: BackendFailure, attempt: int, retry_delay_ms: int) -> int:
    if failure.kind == FailureKind.RATE_LIMITED:
        if failure.retry_after_ms is not None:
            return failure.retry_after_ms
        return DEFAULT_RATE_LIMIT_DELAY_MS
    return backoff_delay_ms(attempt, retry_delay_ms, failure.retry_after_ms)


async def call_with_retry(
    backend: TextBackend,
    prompt: str,
    options: CallOptions,
    max_attempts: int,
    *,
    retry_delay_ms: int,
    sleep: Sleep = asyncio.sleep,
    on_attempt: AttemptHook | None = None,
) -> BackendSuccess | BackendFailure:
    """Call one backend until it succeeds, fails terminally or runs out of attempts.

    Authentication failures are answered with a templated fallback response
    marked ``fallback=True``. Client errors stop immediately. Rate limits,
    server and network errors are retried with a suspension between attempts.

    ``on_attempt`` receives the outcome of every backend call, including each
    retried failure. An authentication failure is reported once, as its
    fallback success.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(1, max_attempts + 1):
        outcome = await backend.generate(prompt, options)
        outcome = outcome.model_copy(update={"attempts": attempt})
        emit_backend_call(outcome, prompt_length=len(prompt))

        if (
            isinstance(outcome, BackendFailure)
            and outcome.kind == FailureKind.AUTH_ERROR
        ):
            LOGGER.warning(
                "Backend authentication failed, using fallback response",
                extra={"backend_id": outcome.backend_id, "error": outcome.message},
            )
            outcome = build_fallback_outcome(outcome, prompt)
            emit_backend_call(outcome, prompt_length=len(prompt))

        if on_attempt is not None:
            await on_attempt(outcome)

        if isinstance(outcome, BackendSuccess):
            return outcome
        if outcome.kind == FailureKind.CLIENT_ERROR:
            return outcome
        if outcome.kind not in {
            FailureKind.RATE_LIMITED,
            FailureKind.SERVER_ERROR,
            FailureKind.NETWORK_ERROR,
        }:
            raise ValueError(f"Unhandled failure kind: {outcome.kind}")
        if attempt >= max_attempts:
            return outcome

        delay_ms = _retry_delay_ms(outcome, attempt, retry_delay_ms)
        emit_event(
            "backend_retry",
            {
                "backend_id": outcome.backend_id,
                "kind": outcome.kind.value,
                "attempt": attempt,
                "max_attempts": max_attempts,
                "delay_ms": delay_ms,
            },
        )
        await sleep(delay_ms / 1000)

    raise RuntimeError(f"No attempt was made for backend {backend.backend_id}")
