import math
import time
from abc import ABC, abstractmethod
from fnmatch import fnmatchcase
from typing import Callable

from cachetools import TLRUCache
from redis.asyncio import Redis, RedisError


class CacheBackendError(Exception):
    """The key-value backend could not serve the request."""


class CacheBackend(ABC):
    """Raw string key-value operations the cache layer is built on."""

    name: str = "unknown"

    @abstractmethod
    async def ping(self) -> bool: ...

    @abstractmethod
    async def get(self, key: str) -> str | None: ...

    @abstractmethod
    async def set(self, key: str, raw: str, ttl: int | None = None) -> None: ...

    @abstractmethod
    async def delete(self, key: str) -> bool: ...

    @abstractmethod
    async def ttl(self, key: str) -> int | None:
        """Remaining seconds, None when the key has no expiry or is missing."""

    @abstractmethod
    async def keys(self, pattern: str = "*") -> list[str]: ...

    @abstractmethod
    async def flush(self) -> None: ...

    async def close(self) -> None:
        return None


class RedisBackend(CacheBackend):
    name = "redis"

    def __init__(self, redis: Redis):
        self.redis = redis

    @classmethod
    def from_url(cls, dsn: str, pool_size: int = 5) -> "RedisBackend":
        return cls(
            Redis.from_url(
                dsn,
                encoding="utf-8",
                decode_responses=True,
                max_connections=pool_size,
                socket_connect_timeout=5,
                socket_keepalive=True,
                health_check_interval=30,
            )
        )

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except RedisError as e:
            raise CacheBackendError(str(e)) from e

    async def get(self, key: str) -> str | None:
        try:
            return await self.redis.get(key)
        except RedisError as e:
            raise CacheBackendError(str(e)) from e

    async def set(self, key: str, raw: str, ttl: int | None = None) -> None:
        try:
            await self.redis.set(key, raw, ex=ttl)
        except RedisError as e:
            raise CacheBackendError(str(e)) from e

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self.redis.delete(key))
        except RedisError as e:
            raise CacheBackendError(str(e)) from e

    async def ttl(self, key: str) -> int | None:
        try:
            remaining = await self.redis.ttl(key)
        except RedisError as e:
            raise CacheBackendError(str(e)) from e
        # -1: no expiry, -2: missing
        return remaining if remaining >= 0 else None

    async def keys(self, pattern: str = "*") -> list[str]:
        try:
            cursor = 0
            found: list[str] = []
            while True:
                cursor, batch = await self.redis.scan(cursor, match=pattern, count=100)
                found.extend(batch)
                if cursor == 0:
                    break
            return sorted(set(found))
        except RedisError as e:
            raise CacheBackendError(str(e)) from e

    async def flush(self) -> None:
        try:
            await self.redis.flushdb()
        except RedisError as e:
            raise CacheBackendError(str(e)) from e

    async def close(self) -> None:
        await self.redis.aclose()


class _Entry:
    __slots__ = ("raw", "ttl", "stored_at")

    def __init__(self, raw: str, ttl: int | None, stored_at: float):
        self.raw = raw
        self.ttl = ttl
        self.stored_at = stored_at


def _expires_at(_key, entry: _Entry, now: float) -> float:
    return now + entry.ttl if entry.ttl else math.inf


class MemoryBackend(CacheBackend):
    """Process-local backend on a cachetools TLRU cache with per-entry TTL.

    Entries are not shared between workers; meant for development and tests.
    """

    name = "memory"

    def __init__(self, maxsize: int = 2048, timer: Callable[[], float] = time.monotonic):
        self._timer = timer
        self._store: TLRUCache = TLRUCache(maxsize=maxsize, ttu=_expires_at, timer=timer)

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> str | None:
        entry = self._store.get(key)
        return entry.raw if entry is not None else None

    async def set(self, key: str, raw: str, ttl: int | None = None) -> None:
        self._store[key] = _Entry(raw, ttl, self._timer())

    async def delete(self, key: str) -> bool:
        return self._store.pop(key, None) is not None

    async def ttl(self, key: str) -> int | None:
        entry = self._store.get(key)
        if entry is None or not entry.ttl:
            return None
        remaining = entry.ttl - (self._timer() - entry.stored_at)
        return max(math.ceil(remaining), 0)

    async def keys(self, pattern: str = "*") -> list[str]:
        self._store.expire()
        return sorted(k for k in list(self._store) if k in self._store and fnmatchcase(k, pattern))

    async def flush(self) -> None:
        self._store.clear()
