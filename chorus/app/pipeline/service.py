from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone

import httpx

from chorus.app.backends.client import build_backends
from chorus.app.backends.contracts import TextBackend
from chorus.app.backends.registry import BackendRegistry, build_backend_registry
from chorus.app.cache.service import QueryCache
from chorus.app.cache.store import CacheStore, InMemoryCacheStore
from chorus.app.dispatch.contracts import QueryOptions, QueryResult
from chorus.app.dispatch.retry import Sleep
from chorus.app.dispatch.service import Dispatcher
from chorus.app.merge.weights import compute_weights
from chorus.app.performance.contracts import BackendProfile
from chorus.app.performance.tracker import PerformanceTracker
from chorus.core.config import AppConfig

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class PerformanceSummary:
    total_backends: int
    average_success_rate: float
    average_response_time_ms: float
    average_quality_score: float


def summarize_profiles(profiles: Mapping[str, BackendProfile]) -> PerformanceSummary:
    count = len(profiles)
    if count == 0:
        return PerformanceSummary(
            total_backends=0,
            average_success_rate=0.0,
            average_response_time_ms=0.0,
            average_quality_score=0.0,
        )
    values = list(profiles.values())
    return PerformanceSummary(
        total_backends=count,
        average_success_rate=sum(item.success_rate for item in values) / count,
        average_response_time_ms=sum(item.avg_response_time_ms for item in values)
        / count,
        average_quality_score=sum(item.quality_score for item in values) / count,
    )


class PipelineService:
    """Upstream entry point: submit queries and inspect backend performance."""

    def __init__(
        self,
        *,
        config: AppConfig,
        registry: BackendRegistry,
        backends: Mapping[str, TextBackend],
        store: CacheStore,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._config = config
        self._registry = registry
        self._store = store
        self._cache = QueryCache(store, ttl_seconds=config.query_cache_ttl_seconds)
        self._tracker = PerformanceTracker(
            registry,
            store,
            ttl_seconds=config.performance_ttl_seconds,
        )
        self._dispatcher = Dispatcher(
            registry=registry,
            backends=backends,
            tracker=self._tracker,
            cache=self._cache,
            max_attempts=config.max_retries,
            retry_delay_ms=config.retry_delay_ms,
            sleep=sleep,
        )

    @property
    def tracker(self) -> PerformanceTracker:
        return self._tracker

    async def submit_query(
        self, prompt: str, options: QueryOptions | None = None
    ) -> QueryResult:
        return await self._dispatcher.dispatch_all(prompt, options)

    async def get_performance_stats(self) -> Mapping[str, BackendProfile]:
        await self._tracker.initialize()
        return self._tracker.get_stats()

    async def get_performance_summary(self) -> PerformanceSummary:
        return summarize_profiles(await self.get_performance_stats())

    async def get_current_weights(self) -> dict[str, float]:
        return compute_weights(await self.get_performance_stats())

    async def reset_performance(self) -> None:
        await self._tracker.reset()

    async def clear_query_cache(self) -> None:
        await self._cache.clear()

    def get_model_config(self) -> dict[str, object]:
        return {
            "backends": [
                {
                    "backend_id": spec.backend_id,
                    "max_tokens": spec.max_tokens,
                    "temperature": spec.temperature,
                    "timeout_seconds": spec.timeout_seconds,
                }
                for spec in self._registry
            ],
            "settings": {
                "base_url": self._config.api_base_url,
                "max_retries": self._config.max_retries,
                "retry_delay_ms": self._config.retry_delay_ms,
                "query_cache_ttl_seconds": self._config.query_cache_ttl_seconds,
            },
        }

    async def health_check(self) -> dict[str, object]:
        try:
            cache_ok = await self._store.ping()
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Cache health check failed", exc_info=exc)
            cache_ok = False
        return {
            "cache": bool(cache_ok),
            "backends": len(self._registry),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def shutdown(self) -> None:
        await self._tracker.drain()


def build_pipeline_service(
    config: AppConfig,
    *,
    store: CacheStore | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> PipelineService:
    registry = build_backend_registry(config)
    backends = build_backends(
        tuple(registry),
        base_url=config.api_base_url,
        api_key=config.api_key,
        http_referer=config.http_referer,
        http_title=config.http_title,
        transport=transport,
    )
    return PipelineService(
        config=config,
        registry=registry,
        backends=backends,
        store=store or InMemoryCacheStore(),
    )
