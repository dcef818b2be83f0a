from __future__ import annotations

import copy
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol


class CacheStore(Protocol):
    async def get(self, key: str) -> object | None: ...

    async def set(self, key: str, value: object, ttl_seconds: int) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def flush_all(self) -> None: ...

    async def ping(self) -> bool: ...


@dataclass(frozen=True)
class _CacheEntry:
    value: object
    expires_at: float


class InMemoryCacheStore:
    """Process-local key/value store with per-entry expiry.

    Values are deep-copied on the way in and out so stored entries behave like
    serialized payloads from a remote store.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, _CacheEntry] = {}

    async def get(self, key: str) -> object | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            self._entries.pop(key, None)
            return None
        return copy.deepcopy(entry.value)

    async def set(self, key: str, value: object, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        now = self._clock()
        self._prune_expired(now)
        self._entries[key] = _CacheEntry(
            value=copy.deepcopy(value),
            expires_at=now + ttl_seconds,
        )

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def flush_all(self) -> None:
        self._entries.clear()

    async def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        now = self._clock()
        return sum(1 for entry in self._entries.values() if entry.expires_at > now)

    def _prune_expired(self, now: float) -> None:
        expired = [
            key for key, entry in self._entries.items() if entry.expires_at <= now
        ]
        for key in expired:
            del self._entries[key]
