from functools import wraps
from typing import Any, Callable

from taskboard.cache.layer import CachedResult, cache_layer


def _to_json_ready(value: Any) -> Any:
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, (list, tuple)):
        return [_to_json_ready(item) for item in value]
    return value


def async_cached(
    key_builder: Callable[..., str],
    ttl: int | Callable[[], int] | None = None,
    accept: Callable[[Any], bool] | None = None,
):
    """
    Cache-aside decorator for async functions. key_builder receives the same
    args/kwargs; the wrapped call returns a CachedResult instead of the value.
    Example:
      @async_cached(lambda *_, **__: "users:all", ttl=300)
      async def list_users(db): ...
    """

    def decorator(fn: Callable):
        @wraps(fn)
        async def wrapper(*args, **kwargs) -> CachedResult:
            key = key_builder(*args, **kwargs)
            expiry = ttl() if callable(ttl) else ttl

            # loader closure calls the original function
            async def loader():
                return _to_json_ready(await fn(*args, **kwargs))

            return await cache_layer.fetch(key, loader, ttl=expiry, accept=accept)

        return wrapper

    return decorator


def async_cached_expire(key_builder: Callable[..., str]):
    """Drop the key once the wrapped call has succeeded. A None result (no match) keeps it."""

    def decorator(fn: Callable):
        @wraps(fn)
        async def wrapper(*args, **kwargs):
            result = await fn(*args, **kwargs)
            if result is not None:
                await cache_layer.invalidate(key_builder(*args, **kwargs))
            return result

        return wrapper

    return decorator
