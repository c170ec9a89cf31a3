from unittest.mock import AsyncMock

import pytest
from redis.asyncio import RedisError

from taskboard.cache.backends import CacheBackendError, MemoryBackend, RedisBackend
from taskboard.cache.decorators import async_cached, async_cached_expire
from taskboard.cache.layer import MISSING, CacheLayer, cache_layer
from taskboard.core.config import Settings
from taskboard.core.exceptions import CacheUnavailableError
from taskboard.routers.deps import get_cache


@pytest.mark.asyncio
async def test_memory_backend_ttl(clock):
    backend = MemoryBackend(timer=clock)
    await backend.set("a", "1", ttl=10)
    await backend.set("b", "2")

    clock.advance(4)
    assert await backend.ttl("a") == 6
    assert await backend.ttl("b") is None
    assert await backend.ttl("missing") is None

    clock.advance(7)
    assert await backend.get("a") is None
    assert await backend.get("b") == "2"
    assert await backend.keys() == ["b"]


@pytest.mark.asyncio
async def test_memory_backend_keys_glob():
    backend = MemoryBackend()
    for key in ("users:all", "users:1", "tasks:1"):
        await backend.set(key, "x")
    assert await backend.keys("users:*") == ["users:1", "users:all"]
    assert await backend.delete("users:1") is True
    assert await backend.delete("users:1") is False
    await backend.flush()
    assert await backend.keys() == []


@pytest.mark.asyncio
async def test_redis_backend_maps_results():
    redis = AsyncMock()
    redis.ttl.side_effect = [42, -1, -2]
    redis.scan.side_effect = [(7, ["b", "a"]), (0, ["a", "c"])]
    redis.delete.return_value = 1
    backend = RedisBackend(redis)

    assert await backend.ttl("k") == 42
    assert await backend.ttl("k") is None
    assert await backend.ttl("k") is None
    assert await backend.keys("*") == ["a", "b", "c"]
    assert await backend.delete("k") is True

    await backend.set("k", "v", ttl=5)
    redis.set.assert_awaited_with("k", "v", ex=5)


@pytest.mark.asyncio
async def test_redis_errors_become_backend_errors():
    redis = AsyncMock()
    redis.get.side_effect = RedisError("connection reset")
    with pytest.raises(CacheBackendError):
        await RedisBackend(redis).get("k")


@pytest.mark.asyncio
async def test_layer_serializes_values():
    layer = CacheLayer()
    backend = MemoryBackend()
    layer.use_backend(backend)

    await layer.set("obj", {"a": [1, 2]})
    await layer.set("text", "plain")
    assert await backend.get("obj") == '{"a": [1, 2]}'
    assert await backend.get("text") == "plain"
    assert await layer.get("obj") == {"a": [1, 2]}
    assert await layer.get("text") == "plain"
    assert await layer.get("missing") is None
    assert layer.stats["hits"] == 2
    assert layer.stats["misses"] == 1

    await layer.set("nothing", None)
    assert await layer.get("nothing", default=MISSING) is None
    assert await layer.get("gone", default=MISSING) is MISSING


@pytest.mark.asyncio
async def test_layer_without_backend():
    layer = CacheLayer()
    layer.use_backend(None)

    with pytest.raises(CacheUnavailableError):
        await layer.get("k")

    loader = AsyncMock(return_value=[1])
    result = await layer.fetch("k", loader, ttl=10)
    assert (result.value, result.source) == ([1], "database")
    await layer.invalidate("k")


@pytest.mark.asyncio
async def test_backend_failure_surfaces_as_unavailable():
    class Broken(MemoryBackend):
        async def keys(self, pattern="*"):
            raise CacheBackendError("boom")

    layer = CacheLayer()
    layer.use_backend(Broken())
    with pytest.raises(CacheUnavailableError):
        await layer.keys()
    assert layer.stats["errors"] == 1


@pytest.mark.asyncio
async def test_fetch_rejects_unaccepted_values():
    layer = CacheLayer()
    backend = MemoryBackend()
    layer.use_backend(backend)
    await backend.set("users:all", '{"not": "a list"}')

    loader = AsyncMock(return_value=[{"id": "1"}])
    result = await layer.fetch("users:all", loader, ttl=30, accept=lambda v: isinstance(v, list))
    assert result.source == "database"
    loader.assert_awaited_once()

    result = await layer.fetch("users:all", loader, ttl=30, accept=lambda v: isinstance(v, list))
    assert result.source == "cache"
    assert result.value == [{"id": "1"}]
    loader.assert_awaited_once()


@pytest.mark.asyncio
async def test_decorators_cache_and_expire(wired_cache):
    calls = []

    @async_cached(lambda *_: "numbers", ttl=lambda: 60)
    async def numbers():
        calls.append(1)
        return [1, 2, 3]

    @async_cached_expire(lambda *_: "numbers")
    async def add_number():
        return "added"

    assert (await numbers()).source == "database"
    assert (await numbers()).source == "cache"
    assert await wired_cache.ttl("numbers") == 60

    assert await add_number() == "added"
    assert await wired_cache.get("numbers") is None
    assert (await numbers()).value == [1, 2, 3]
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_health_states():
    layer = CacheLayer()
    layer.use_backend(MemoryBackend())
    assert (await layer.health())["status"] == "Connected"

    layer.use_backend(None)
    assert (await layer.health())["status"] == "Disconnected"

    layer._settings = Settings(cache_backend="none")
    assert (await layer.health())["status"] == "Disabled"


def test_singleton_is_shared():
    assert get_cache() is cache_layer
