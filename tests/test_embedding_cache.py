"""Tests for services/embedding_cache.py."""
import asyncio

import pytest

from core.errors import CacheCorruptionError
from services.embedding_cache import InMemoryEmbeddingCache, content_key, get_or_compute


def test_content_key_is_sha256_of_bytes():
    assert content_key(b"") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
    assert content_key(b"abc") == content_key(b"abc")
    assert content_key(b"abc") != content_key(b"abd")


def test_put_is_write_once():
    cache = InMemoryEmbeddingCache()
    cache.put("k", [1.0, 2.0])
    cache.put("k", [9.0, 9.0])
    assert cache.get("k") == [1.0, 2.0]
    assert len(cache) == 1


def test_miss_returns_none():
    assert InMemoryEmbeddingCache().get("nope") is None


def test_clear_evicts_everything():
    cache = InMemoryEmbeddingCache()
    cache.put("a", [1.0])
    cache.put("b", [2.0])
    cache.clear()
    assert len(cache) == 0
    assert cache.get("a") is None


@pytest.mark.parametrize("bad", [[], ["x", 1.0], [float("nan")], [True]])
def test_corrupt_entry_raises(bad):
    cache = InMemoryEmbeddingCache()
    cache._store["k"] = bad
    with pytest.raises(CacheCorruptionError):
        cache.get("k")


def test_get_or_compute_computes_once_for_concurrent_callers():
    cache = InMemoryEmbeddingCache()
    calls = 0

    async def compute():
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return [0.5, 0.5]

    async def run():
        return await asyncio.gather(*(get_or_compute(cache, "img", compute) for _ in range(5)))

    results = asyncio.run(run())
    assert calls == 1
    assert all(r == [0.5, 0.5] for r in results)
    assert len(cache) == 1


def test_get_or_compute_does_not_cache_failures():
    cache = InMemoryEmbeddingCache()

    async def boom():
        raise RuntimeError("provider down")

    async def ok():
        return [1.0]

    async def run():
        with pytest.raises(RuntimeError):
            await get_or_compute(cache, "img", boom)
        assert cache.get("img") is None
        return await get_or_compute(cache, "img", ok)

    assert asyncio.run(run()) == [1.0]


def test_get_or_compute_with_lockless_cache():
    class DictCache:
        def __init__(self):
            self.data = {}

        def get(self, key):
            return self.data.get(key)

        def put(self, key, vector):
            self.data.setdefault(key, vector)

        def clear(self):
            self.data.clear()

        def __len__(self):
            return len(self.data)

    cache = DictCache()

    async def compute():
        return [3.0]

    assert asyncio.run(get_or_compute(cache, "k", compute)) == [3.0]
    assert cache.get("k") == [3.0]


def test_key_locks_released_after_failed_computations():
    cache = InMemoryEmbeddingCache()

    async def boom():
        raise RuntimeError("unsupported image")

    async def run():
        for i in range(50):
            with pytest.raises(RuntimeError):
                await get_or_compute(cache, content_key(str(i).encode()), boom)

    asyncio.run(run())
    assert len(cache) == 0
    assert len(cache._locks) == 0


def test_key_lock_kept_while_callers_wait():
    cache = InMemoryEmbeddingCache()
    seen = []

    async def compute():
        seen.append(len(cache._locks))
        await asyncio.sleep(0.01)
        return [1.0]

    async def run():
        await asyncio.gather(*(get_or_compute(cache, "img", compute) for _ in range(3)))

    asyncio.run(run())
    assert seen == [1]
    assert len(cache._locks) == 0
