from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from datetime import datetime, timezone
from uuid import uuid4

from chorus.app.backends.contracts import (
    BackendFailure,
    BackendSuccess,
    CallOptions,
    FailureKind,
    TextBackend,
)
from chorus.app.backends.registry import BackendRegistry
from chorus.app.cache.service import QueryCache
from chorus.app.dispatch.contracts import (
    AllBackendsFailedError,
    QueryOptions,
    QueryResult,
)
from chorus.app.dispatch.retry import Sleep, call_with_retry
from chorus.app.merge.service import merge_responses
from chorus.app.merge.weights import compute_weights
from chorus.app.observability.telemetry import emit_dispatch_completed, emit_event
from chorus.app.performance.tracker import PerformanceTracker

LOGGER = logging.getLogger(__name__)


class Dispatcher:
    def __init__(
        self,
        *,
        registry: BackendRegistry,
        backends: Mapping[str, TextBackend],
        tracker: PerformanceTracker,
        cache: QueryCache,
        max_attempts: int,
        retry_delay_ms: int,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        missing = [
            backend_id
            for backend_id in registry.backend_ids
            if backend_id not in backends
        ]
        if missing:
            raise ValueError(f"No backend client for: {', '.join(missing)}")
        self._registry = registry
        self._backends = dict(backends)
        self._tracker = tracker
        self._cache = cache
        self._max_attempts = max_attempts
        self._retry_delay_ms = retry_delay_ms
        self._sleep = sleep

    async def dispatch_all(
        self, prompt: str, options: QueryOptions | None = None
    ) -> QueryResult:
        resolved_options = options or QueryOptions()
        started_at = time.perf_counter()
        query_id = uuid4().hex
        cache_key = QueryCache.fingerprint(prompt)

        if not resolved_options.skip_cache:
            cached = await self._cache.get(cache_key)
            if cached is not None:
                emit_event(
                    "cache_hit",
                    {"query_id": cached.query_id, "cache_key": cache_key},
                )
                return cached.model_copy(update={"from_cache": True})

        await self._tracker.initialize()
        weights = compute_weights(self._tracker.get_stats())
        call_options = CallOptions(
            max_tokens=resolved_options.max_tokens,
            temperature=resolved_options.temperature,
        )

        backend_ids = self._registry.backend_ids
        results = await asyncio.gather(
            *(
                self._call_and_track(backend_id, prompt, call_options)
                for backend_id in backend_ids
            ),
            return_exceptions=True,
        )
        outcomes = [
            _outcome_from_result(backend_id, result)
            for backend_id, result in zip(backend_ids, results)
        ]
        total_time_ms = max(int((time.perf_counter() - started_at) * 1000), 0)
        emit_dispatch_completed(
            query_id=query_id, total_time_ms=total_time_ms, outcomes=outcomes
        )

        successes = [
            outcome for outcome in outcomes if isinstance(outcome, BackendSuccess)
        ]
        if not successes:
            raise AllBackendsFailedError(query_id, outcomes)

        merged = merge_responses(successes, weights)
        result = QueryResult(
            query_id=query_id,
            merged_content=merged.content,
            primary_backend=merged.primary_backend,
            confidence=merged.confidence,
            individual_outcomes=tuple(outcomes),
            weights=weights,
            weighted_responses=merged.weighted_responses,
            merge_strategy=merged.merge_strategy,
            total_time_ms=total_time_ms,
            success_rate=len(successes) / len(outcomes),
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        await self._cache.set(cache_key, result)
        return result

    async def _call_and_track(
        self,
        backend_id: str,
        prompt: str,
        options: CallOptions,
    ) -> BackendSuccess | BackendFailure:
        async def record(outcome: BackendSuccess | BackendFailure) -> None:
            if isinstance(outcome, BackendSuccess):
                await self._tracker.update(
                    backend_id,
                    True,
                    outcome.response_time_ms,
                    outcome.content,
                    fallback=outcome.fallback,
                )
            else:
                await self._tracker.update(backend_id, False, outcome.response_time_ms)

        try:
            return await call_with_retry(
                self._backends[backend_id],
                prompt,
                options,
                self._max_attempts,
                retry_delay_ms=self._retry_delay_ms,
                sleep=self._sleep,
                on_attempt=record,
            )
        except Exception as exc:  # noqa: BLE001
            outcome = _unexpected_failure(backend_id, exc)
            await record(outcome)
            return outcome


def _outcome_from_result(
    backend_id: str,
    result: BackendSuccess | BackendFailure | BaseException,
) -> BackendSuccess | BackendFailure:
    if isinstance(result, (BackendSuccess, BackendFailure)):
        return result
    if not isinstance(result, Exception):
        raise result
    return _unexpected_failure(backend_id, result)


def _unexpected_failure(backend_id: str, exc: Exception) -> BackendFailure:
    LOGGER.error(
        "Backend task raised unexpectedly",
        extra={"backend_id": backend_id},
        exc_info=exc,
    )
    return BackendFailure(
        backend_id=backend_id,
        kind=FailureKind.CLIENT_ERROR,
        retryable=False,
        message=f"Unexpected {exc.__class__.__name__}: {exc}",
    )
