from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import replace
from datetime import datetime, timezone
from types import MappingProxyType

from chorus.app.backends.registry import BackendRegistry
from chorus.app.cache.store import CacheStore
from chorus.app.performance.contracts import (
    BackendProfile,
    default_profile,
    deserialize_profile,
    serialize_profile,
)
from chorus.app.performance.quality import assess_quality

LOGGER = logging.getLogger(__name__)

PERFORMANCE_CACHE_KEY = "model_performance"
DEFAULT_ALPHA = 0.1
DEFAULT_PERSIST_EVERY = 10
DEFAULT_PERFORMANCE_TTL_SECONDS = 86400


def ema(prior: float, observation: float, alpha: float = DEFAULT_ALPHA) -> float:
    return alpha * observation + (1 - alpha) * prior


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PerformanceTracker:
    """Per-backend reliability, latency and quality state.

    Updates for one backend id are serialized by a dedicated lock; different
    backends update independently. Profiles are frozen and replaced on every
    update, so snapshots handed out by get_stats never change underneath the
    caller.
    """

    def __init__(
        self,
        registry: BackendRegistry,
        store: CacheStore,
        *,
        alpha: float = DEFAULT_ALPHA,
        persist_every: int = DEFAULT_PERSIST_EVERY,
        ttl_seconds: int = DEFAULT_PERFORMANCE_TTL_SECONDS,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        if not 0 < alpha <= 1:
            raise ValueError("alpha must be in (0, 1]")
        self._registry = registry
        self._store = store
        self._alpha = alpha
        self._persist_every = max(persist_every, 1)
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._profiles: dict[str, BackendProfile] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._init_lock = asyncio.Lock()
        self._initialized = False
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            loaded = await self._load_persisted()
            now = self._clock()
            for backend_id in self._registry.backend_ids:
                self._profiles[backend_id] = loaded.get(
                    backend_id
                ) or default_profile(backend_id, now)
            self._initialized = True
            if loaded:
                LOGGER.info(
                    "Backend performance loaded from cache",
                    extra={"backends": sorted(loaded)},
                )
            else:
                await self._persist(self._snapshot_payload())

    async def update(
        self,
        backend_id: str,
        success: bool,
        response_time_ms: float,
        content: str | None = None,
        *,
        fallback: bool = False,
    ) -> BackendProfile:
        lock = self._locks.setdefault(backend_id, asyncio.Lock())
        async with lock:
            current = self._profiles.get(backend_id) or default_profile(
                backend_id, self._clock()
            )
            quality_score = current.quality_score
            if success and content:
                quality_score = ema(
                    current.quality_score, assess_quality(content), self._alpha
                )
            updated = replace(
                current,
                total_calls=current.total_calls + 1,
                successful_calls=current.successful_calls + (1 if success else 0),
                fallback_calls=current.fallback_calls
                + (1 if success and fallback else 0),
                success_rate=ema(
                    current.success_rate, 1.0 if success else 0.0, self._alpha
                ),
                avg_response_time_ms=ema(
                    current.avg_response_time_ms,
                    max(float(response_time_ms), 0.0),
                    self._alpha,
                ),
                quality_score=quality_score,
                last_updated=self._clock(),
            )
            self._profiles[backend_id] = updated
            if updated.total_calls % self._persist_every == 0:
                self._schedule_persist()
            return updated

    def get_stats(self) -> Mapping[str, BackendProfile]:
        return MappingProxyType(dict(self._profiles))

    async def reset(self) -> None:
        async with self._init_lock:
            now = self._clock()
            self._profiles.clear()
            for backend_id in self._registry.backend_ids:
                self._profiles[backend_id] = default_profile(backend_id, now)
            self._initialized = True
        await self._persist(self._snapshot_payload())
        LOGGER.info("Backend performance data reset")

    async def drain(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _snapshot_payload(self) -> dict[str, object]:
        return {
            backend_id: serialize_profile(profile)
            for backend_id, profile in self._profiles.items()
        }

    def _schedule_persist(self) -> None:
        task = asyncio.create_task(
            self._persist(self._snapshot_payload()), name="performance-persist"
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _persist(self, payload: dict[str, object]) -> None:
        try:
            await self._store.set(PERFORMANCE_CACHE_KEY, payload, self._ttl_seconds)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Failed to persist backend performance", exc_info=exc)

    async def _load_persisted(self) -> dict[str, BackendProfile]:
        try:
            payload = await self._store.get(PERFORMANCE_CACHE_KEY)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning(
                "Failed to load backend performance; using defaults", exc_info=exc
            )
            return {}
        if not isinstance(payload, dict):
            return {}
        loaded: dict[str, BackendProfile] = {}
        for backend_id in self._registry.backend_ids:
            profile = deserialize_profile(backend_id, payload.get(backend_id))
            if profile is not None:
                loaded[backend_id] = profile
        return loaded
