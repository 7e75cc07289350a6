"""
TTL cache for synthesized system prompts.

Entries are stored as ``{value, timestamp}`` and treated as stale once older
than the TTL. Two backends:
- In-memory dict guarded by a lock (default, one process)
- Redis (shared across workers; Redis expires keys on its own)
"""

from __future__ import annotations

import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 180.0


@dataclass
class CacheEntry:
    value: str
    timestamp: float


class PromptCache(ABC):
    """Key -> {value, timestamp} store with explicit TTL eviction."""

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS) -> None:
        self.ttl_seconds = ttl_seconds

    @abstractmethod
    async def get(self, key: str) -> CacheEntry | None:
        """Return a fresh entry, or None if missing or expired."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    async def sweep(self) -> int:
        """Drop expired entries. Returns how many were removed."""

    def _is_fresh(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.timestamp < self.ttl_seconds


class InMemoryPromptCache(PromptCache):

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock=time.monotonic,
    ) -> None:
        super().__init__(ttl_seconds)
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, CacheEntry] = {}

    async def get(self, key: str) -> CacheEntry | None:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None or not self._is_fresh(entry, self._clock()):
            return None
        return entry

    async def set(self, key: str, value: str) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(value=value, timestamp=self._clock())

    async def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            stale = [k for k, e in self._entries.items() if not self._is_fresh(e, now)]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.debug("Prompt cache sweep removed %d entries", len(stale))
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RedisPromptCache(PromptCache):

    def __init__(self, redis_url: str, ttl_seconds: float = DEFAULT_TTL_SECONDS) -> None:
        super().__init__(ttl_seconds)
        import redis.asyncio as aioredis

        self._redis = aioredis.from_url(redis_url, decode_responses=True)

    async def get(self, key: str) -> CacheEntry | None:
        raw = await self._redis.get(key)
        if not raw:
            return None
        data = json.loads(raw)
        entry = CacheEntry(value=data["value"], timestamp=data["timestamp"])
        if not self._is_fresh(entry, time.time()):
            return None
        return entry

    async def set(self, key: str, value: str) -> None:
        payload = json.dumps({"value": value, "timestamp": time.time()})
        await self._redis.set(key, payload, ex=max(int(self.ttl_seconds), 1))

    async def sweep(self) -> int:
        return 0

    async def close(self) -> None:
        await self._redis.aclose()


def build_prompt_cache(
    redis_url: str | None = None, ttl_seconds: float = DEFAULT_TTL_SECONDS
) -> PromptCache:
    if redis_url:
        logger.info("Using Redis prompt cache (ttl=%ss)", ttl_seconds)
        return RedisPromptCache(redis_url, ttl_seconds)
    return InMemoryPromptCache(ttl_seconds)
