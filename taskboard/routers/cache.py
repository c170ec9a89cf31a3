from fastapi import APIRouter, Depends, Query, status

from taskboard.cache.layer import MISSING, CacheLayer
from taskboard.core.config import SettingsDep
from taskboard.core.exceptions import CacheUnavailableError, NotFoundError
from taskboard.core.responses import Envelope, ok
from taskboard.core.routing import EnvelopeRoute
from taskboard.routers.deps import get_cache
from taskboard.schemas import (
    CacheDeleteResult,
    CacheEntry,
    CacheSetRequest,
    CacheStats,
    PingResult,
)

router = APIRouter(prefix="/cache", tags=["cache"], route_class=EnvelopeRoute)
redis_router = APIRouter(prefix="/redis", tags=["cache"], route_class=EnvelopeRoute)


@router.get("", response_model=Envelope[CacheStats])
async def fetch_cache_stats(settings: SettingsDep, cache: CacheLayer = Depends(get_cache)):
    """Backend status plus a look at the cached user list; never 503s."""
    stats = CacheStats(available=cache.available, backend=cache.backend_name, **cache.stats)
    if cache.available:
        users_key = settings.users_cache_key
        try:
            keys = await cache.keys("*")
            stats.total_keys = len(keys)
            stats.users_list_cached = users_key in keys
            if stats.users_list_cached:
                stats.users_list_ttl = await cache.ttl(users_key)
        except CacheUnavailableError:
            stats.available = False
    return ok(stats, "Cache stats fetched successfully")


@router.get("/{key:path}", response_model=Envelope[CacheEntry])
async def fetch_cache_value(key: str, cache: CacheLayer = Depends(get_cache)):
    value = await cache.get(key, default=MISSING)
    if value is MISSING:
        raise NotFoundError(f"Key '{key}' not found in cache")
    return ok(
        CacheEntry(key=key, value=value, ttl=await cache.ttl(key)),
        "Cache value fetched successfully",
    )


@router.post(
    "/{key:path}", response_model=Envelope[CacheEntry], status_code=status.HTTP_201_CREATED
)
async def set_cache_value(
    key: str, body: CacheSetRequest, cache: CacheLayer = Depends(get_cache)
):
    await cache.set(key, body.value, ttl=body.ttl)
    return ok(CacheEntry(key=key, value=body.value, ttl=body.ttl), "Cache value set successfully")


@router.delete("/{key:path}", response_model=Envelope[CacheDeleteResult])
async def delete_cache_value(key: str, cache: CacheLayer = Depends(get_cache)):
    if not await cache.delete(key):
        raise NotFoundError(f"Key '{key}' not found in cache")
    return ok(CacheDeleteResult(key=key, deleted=True), "Cache key deleted successfully")


@redis_router.get("/ping", response_model=Envelope[PingResult])
async def ping_redis(cache: CacheLayer = Depends(get_cache)):
    latency = await cache.ping()
    return ok(PingResult(pong=True, latency_ms=round(latency, 3)), "PONG")


@redis_router.get("/keys", response_model=Envelope[list[str]])
async def fetch_redis_keys(
    pattern: str = Query(default="*", min_length=1),
    cache: CacheLayer = Depends(get_cache),
):
    keys = await cache.keys(pattern)
    return ok(keys, "Keys fetched successfully", count=len(keys))


@redis_router.delete("/flush", response_model=Envelope[None])
async def flush_redis(cache: CacheLayer = Depends(get_cache)):
    await cache.flush()
    return ok(None, "Cache flushed successfully")
