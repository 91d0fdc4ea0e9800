"""
Content-addressed embedding cache.

Keys are SHA-256 digests of the raw image bytes, so identical images share one
vector no matter how they were encoded on the wire. Entries are write-once and
only a whole-cache clear() evicts them.
"""

import asyncio
import hashlib
import math
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional, Protocol

import structlog

from core.errors import CacheCorruptionError

logger = structlog.get_logger(__name__)


class EmbeddingCache(Protocol):
    def get(self, key: str) -> Optional[list[float]]: ...

    def put(self, key: str, vector: list[float]) -> None: ...

    def clear(self) -> None: ...

    def __len__(self) -> int: ...


def content_key(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _validate(key: str, vector) -> list[float]:
    if not isinstance(vector, list) or not vector:
        raise CacheCorruptionError(f"cache entry {key[:12]} is not a non-empty vector")
    for x in vector:
        if not isinstance(x, (int, float)) or isinstance(x, bool) or not math.isfinite(x):
            raise CacheCorruptionError(f"cache entry {key[:12]} holds a non-numeric value")
    return vector


class InMemoryEmbeddingCache:
    def __init__(self):
        self._store: dict[str, list[float]] = {}
        # key -> [lock, holders and waiters]; dropped when the count reaches zero
        self._locks: dict[str, list] = {}

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: str) -> bool:
        return key in self._store

    def get(self, key: str) -> Optional[list[float]]:
        vector = self._store.get(key)
        if vector is None:
            return None
        return _validate(key, vector)

    def put(self, key: str, vector: list[float]) -> None:
        # Write-once: identical bytes always embed to the same vector
        if key in self._store:
            return
        self._store[key] = list(vector)

    def clear(self) -> None:
        self._store.clear()
        self._locks.clear()

    @asynccontextmanager
    async def key_lock(self, key: str):
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = [asyncio.Lock(), 0]
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0 and self._locks.get(key) is entry:
                del self._locks[key]


async def get_or_compute(
    cache: EmbeddingCache,
    key: str,
    compute: Callable[[], Awaitable[list[float]]],
) -> list[float]:
    """
    Fetch a vector from the cache or compute and store it.
    Concurrent callers for the same key wait on a per-key lock when the cache
    provides one; other caches accept the occasional duplicate computation.
    """
    cached = cache.get(key)
    if cached is not None:
        return cached

    key_lock = getattr(cache, "key_lock", None)
    if key_lock is None:
        vector = await compute()
        cache.put(key, vector)
        return vector

    async with key_lock(key):
        cached = cache.get(key)
        if cached is not None:
            return cached
        vector = await compute()
        cache.put(key, vector)
        logger.debug("embedding_cached", key=key[:12], dim=len(vector))
        return vector
