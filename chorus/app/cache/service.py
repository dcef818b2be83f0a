from __future__ import annotations

import hashlib
import logging

from pydantic import ValidationError

from chorus.app.cache.store import CacheStore
from chorus.app.dispatch.contracts import QueryResult

LOGGER = logging.getLogger(__name__)

QUERY_KEY_PREFIX = "query:"


class QueryCache:
    """Memoizes merged query results in an external cache store."""

    def __init__(self, store: CacheStore, ttl_seconds: int) -> None:
        self._store = store
        self._ttl_seconds = ttl_seconds

    @staticmethod
    def fingerprint(prompt: str) -> str:
        digest = hashlib.sha256(prompt.encode("utf-8")).hexdigest()[:32]
        return f"{QUERY_KEY_PREFIX}{digest}"

    async def get(self, key: str) -> QueryResult | None:
        try:
            payload = await self._store.get(key)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Cache read failed", extra={"key": key}, exc_info=exc)
            return None
        if payload is None:
            return None
        try:
            return QueryResult.model_validate(payload)
        except ValidationError as exc:
            LOGGER.warning(
                "Discarding malformed cached result", extra={"key": key}, exc_info=exc
            )
            return None

    async def set(self, key: str, result: QueryResult) -> None:
        try:
            await self._store.set(
                key, result.model_dump(mode="json"), self._ttl_seconds
            )
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Cache write failed", extra={"key": key}, exc_info=exc)

    async def invalidate(self, key: str) -> None:
        try:
            await self._store.delete(key)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Cache delete failed", extra={"key": key}, exc_info=exc)

    async def clear(self) -> None:
        try:
            await self._store.flush_all()
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Cache flush failed", exc_info=exc)
