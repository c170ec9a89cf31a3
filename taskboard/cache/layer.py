import json
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Literal, Optional

import structlog

from taskboard.cache.backends import (
    CacheBackend,
    CacheBackendError,
    MemoryBackend,
    RedisBackend,
)
from taskboard.core.config import get_settings
from taskboard.core.exceptions import CacheUnavailableError

logger = structlog.get_logger(__name__)

# returned by CacheLayer.get for a miss when a stored null must be told apart
MISSING = object()


@dataclass(frozen=True)
class CachedResult:
    value: Any
    source: Literal["cache", "database"]


class CacheLayer:
    """
    Best-effort key-value cache in front of the database.

    - Redis (shared) or an in-process TTL cache, chosen by settings
    - Graceful degradation: with no backend, cache-aside reads go straight
      to the loader and the generic operations raise CacheUnavailableError
    - Values are JSON on the wire; strings are stored verbatim
    - No key namespacing, callers own their keys
    """

    def __init__(self):
        self._settings = None
        self._backend: CacheBackend | None = None
        self._initialized = False

        # Stats tracking
        self.stats = {"hits": 0, "misses": 0, "errors": 0}

    async def init_cache(self):
        """Initialize settings and the configured backend."""
        if self._initialized:
            return

        if self._settings is None:
            self._settings = get_settings()
        settings = self._settings
        self._initialized = True

        if settings.cache_backend == "none":
            logger.info("Cache disabled by configuration")
            return

        if settings.cache_backend == "memory":
            self._backend = MemoryBackend(maxsize=settings.memory_cache_maxsize)
            logger.info("Cache layer initialized", backend="memory")
            return

        backend = RedisBackend.from_url(settings.redis_dsn, settings.redis_pool_size)
        try:
            # Verify connection
            await backend.ping()
        except CacheBackendError as e:
            logger.error("Redis initialization failed, running without cache", error=str(e))
            await backend.close()
            return

        self._backend = backend
        logger.info("Cache layer initialized", backend="redis")

    def use_backend(self, backend: CacheBackend | None):
        """Wire a backend explicitly, bypassing settings."""
        self._backend = backend
        self._initialized = True

    @property
    def configured(self) -> bool:
        settings = self._settings or get_settings()
        return self._backend is not None or settings.cache_backend != "none"

    @property
    def available(self) -> bool:
        return self._backend is not None

    @property
    def backend_name(self) -> str:
        return self._backend.name if self._backend else "none"

    def _serialize(self, value: Any) -> str:
        """Serialize value for storage."""
        if isinstance(value, str):
            return value
        try:
            return json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            logger.error("Serialization failed", error=str(e))
            raise

    def _deserialize(self, raw: str) -> Any:
        """Deserialize value from storage."""
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            # Return raw string if not valid JSON
            return raw

    def _require_backend(self) -> CacheBackend:
        if self._backend is None:
            raise CacheUnavailableError()
        return self._backend

    async def _call(self, operation: str, fn: Callable[[], Awaitable[Any]]):
        try:
            return await fn()
        except CacheBackendError as e:
            self.stats["errors"] += 1
            logger.error("Cache operation failed", operation=operation, error=str(e))
            raise CacheUnavailableError() from e

    # --- generic operations, raise CacheUnavailableError -----------------

    async def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value, or ``default`` when the key is missing."""
        backend = self._require_backend()
        raw = await self._call("get", lambda: backend.get(key))
        if raw is None:
            self.stats["misses"] += 1
            return default
        self.stats["hits"] += 1
        return self._deserialize(raw)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None):
        backend = self._require_backend()
        data = self._serialize(value)
        await self._call("set", lambda: backend.set(key, data, ttl))
        logger.debug("Cache set", key=key, ttl=ttl)

    async def delete(self, key: str) -> bool:
        backend = self._require_backend()
        return await self._call("delete", lambda: backend.delete(key))

    async def ttl(self, key: str) -> int | None:
        backend = self._require_backend()
        return await self._call("ttl", lambda: backend.ttl(key))

    async def keys(self, pattern: str = "*") -> list[str]:
        backend = self._require_backend()
        return await self._call("keys", lambda: backend.keys(pattern))

    async def flush(self):
        backend = self._require_backend()
        await self._call("flush", backend.flush)
        logger.info("Cache flushed")

    async def ping(self) -> float:
        """Round-trip latency in milliseconds."""
        backend = self._require_backend()
        started = time.perf_counter()
        await self._call("ping", backend.ping)
        return (time.perf_counter() - started) * 1000

    # --- best-effort operations, never raise on cache failure ------------

    async def fetch(
        self,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        ttl: Optional[int] = None,
        accept: Optional[Callable[[Any], bool]] = None,
    ) -> CachedResult:
        """
        Cache-aside read.

        Args:
            key: Cache key
            loader: Async function producing a JSON-ready value on a miss
            ttl: Expiry for the populated entry in seconds
            accept: Predicate a parsed cached value must satisfy to count as a hit

        Returns:
            CachedResult with the value and where it came from
        """
        if self._backend is not None:
            try:
                raw = await self._backend.get(key)
            except CacheBackendError as e:
                self.stats["errors"] += 1
                logger.warning("Cache read failed, using database", key=key, error=str(e))
            else:
                if raw is not None:
                    try:
                        value = json.loads(raw)
                    except json.JSONDecodeError:
                        logger.warning("Discarding unparseable cache entry", key=key)
                    else:
                        if accept is None or accept(value):
                            self.stats["hits"] += 1
                            logger.debug("Cache hit", key=key)
                            return CachedResult(value, "cache")

        self.stats["misses"] += 1
        value = await loader()

        if self._backend is not None and value is not None:
            try:
                await self._backend.set(key, self._serialize(value), ttl)
                logger.debug("Cache populated", key=key, ttl=ttl)
            except (CacheBackendError, TypeError, ValueError) as e:
                self.stats["errors"] += 1
                logger.warning("Cache population failed", key=key, error=str(e))

        return CachedResult(value, "database")

    async def invalidate(self, key: str):
        if self._backend is None:
            return
        try:
            await self._backend.delete(key)
            logger.debug("Cache invalidated", key=key)
        except CacheBackendError as e:
            self.stats["errors"] += 1
            logger.warning("Cache invalidation failed", key=key, error=str(e))

    async def health(self) -> dict:
        if self._backend is None:
            status = "Disconnected" if self.configured else "Disabled"
            return {"status": status, "connected": False, "backend": self.backend_name}
        try:
            await self._backend.ping()
        except CacheBackendError as e:
            logger.warning("Cache health check failed", error=str(e))
            return {"status": "Disconnected", "connected": False, "backend": self.backend_name}
        return {"status": "Connected", "connected": True, "backend": self.backend_name}

    async def close(self):
        """Graceful shutdown of cache connections."""
        if self._backend:
            try:
                await self._backend.close()
                logger.info("Cache connection closed")
            except Exception as e:
                logger.error("Error closing cache", error=str(e))
        self._backend = None
        self._initialized = False


# Cache layer instance (singleton per worker)
cache_layer = CacheLayer()
