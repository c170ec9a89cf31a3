"""
Async HTTP client for the Taskboard API.

One method per endpoint. Every failure surfaces as a single ``ApiError``
carrying the server's message when it sent one, else a per-call default.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

import httpx
import structlog

from taskboard.core.config import get_settings
from taskboard.schemas import (
    CacheEntry,
    CacheStats,
    PingResult,
    PostRead,
    TaskRead,
    UserRead,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class ApiError(Exception):
    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: list[dict[str, str]] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details or []


@dataclass(frozen=True)
class Listing(Generic[T]):
    items: list[T]
    count: int
    source: str | None = None


def _error_message(response: httpx.Response, default: str) -> tuple[str, list]:
    try:
        body = response.json()
    except ValueError:
        return default, []
    if not isinstance(body, dict):
        return default, []
    message = body.get("error") or body.get("message") or default
    details = body.get("details") or []
    if details:
        message = f"{message}: {details[0].get('field')}: {details[0].get('message')}"
    return message, details


class TaskboardClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or settings.api_timeout_seconds,
            transport=transport,
            headers={"Content-Type": "application/json"},
            event_hooks={"request": [self._log_request], "response": [self._log_response]},
        )

    async def __aenter__(self) -> "TaskboardClient":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    @staticmethod
    async def _log_request(request: httpx.Request) -> None:
        logger.debug("API request", method=request.method, url=str(request.url))

    @staticmethod
    async def _log_response(response: httpx.Response) -> None:
        request = response.request
        if response.status_code == 404:
            logger.warning("Resource not found", method=request.method, url=str(request.url))
        elif response.status_code >= 500:
            logger.error("Server error occurred", status=response.status_code, url=str(request.url))
        elif response.is_error:
            logger.info("API request rejected", status=response.status_code, url=str(request.url))

    async def _request(self, method: str, url: str, default_error: str, **kwargs) -> dict:
        try:
            response = await self._http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(default_error, error=str(e))
            raise ApiError(default_error) from e

        if response.is_error:
            message, details = _error_message(response, default_error)
            raise ApiError(message, response.status_code, details)

        try:
            return response.json()
        except ValueError as e:
            raise ApiError(default_error, response.status_code) from e

    # Users

    async def list_users(
        self, is_active: bool | None = None, role: str | None = None
    ) -> Listing[UserRead]:
        params: dict[str, Any] = {}
        if is_active is not None:
            params["isActive"] = str(is_active).lower()
        if role:
            params["role"] = role
        body = await self._request("GET", "/users", "Failed to fetch users", params=params)
        users = [UserRead.model_validate(u) for u in body.get("data") or []]
        return Listing(users, body.get("count", len(users)), body.get("source"))

    async def get_user(self, user_id: str) -> UserRead:
        body = await self._request("GET", f"/users/{user_id}", "Failed to fetch user")
        return UserRead.model_validate(body["data"])

    async def create_user(self, user_data: dict[str, Any]) -> UserRead:
        body = await self._request("POST", "/users", "Failed to create user", json=user_data)
        return UserRead.model_validate(body["data"])

    async def update_user(self, user_id: str, changes: dict[str, Any]) -> UserRead:
        body = await self._request(
            "PUT", f"/users/{user_id}", "Failed to update user", json=changes
        )
        return UserRead.model_validate(body["data"])

    async def delete_user(self, user_id: str) -> dict[str, Any]:
        body = await self._request("DELETE", f"/users/{user_id}", "Failed to delete user")
        return body["data"]

    async def delete_users(self, user_ids: list[str]) -> list[dict[str, Any]]:
        return await self._delete_all(self.delete_user, user_ids)

    # Tasks

    async def list_tasks(self, completed: bool | None = None) -> Listing[TaskRead]:
        params = {} if completed is None else {"completed": str(completed).lower()}
        body = await self._request("GET", "/tasks", "Failed to fetch tasks", params=params)
        tasks = [TaskRead.model_validate(t) for t in body.get("data") or []]
        return Listing(tasks, body.get("count", len(tasks)))

    async def get_task(self, task_id: str) -> TaskRead:
        body = await self._request("GET", f"/tasks/{task_id}", "Failed to fetch task")
        return TaskRead.model_validate(body["data"])

    async def create_task(self, title: str, description: str | None = None) -> TaskRead:
        payload: dict[str, Any] = {"title": title}
        if description is not None:
            payload["description"] = description
        body = await self._request("POST", "/tasks", "Failed to create task", json=payload)
        return TaskRead.model_validate(body["data"])

    async def update_task(self, task_id: str, **changes: Any) -> TaskRead:
        body = await self._request(
            "PUT", f"/tasks/{task_id}", "Failed to update task", json=changes
        )
        return TaskRead.model_validate(body["data"])

    async def delete_task(self, task_id: str) -> dict[str, Any]:
        body = await self._request("DELETE", f"/tasks/{task_id}", "Failed to delete task")
        return body["data"]

    async def delete_tasks(self, task_ids: list[str]) -> list[dict[str, Any]]:
        return await self._delete_all(self.delete_task, task_ids)

    # Posts

    async def list_posts(
        self,
        status: str | None = None,
        category: str | None = None,
        author: str | None = None,
    ) -> Listing[PostRead]:
        params = {
            k: v for k, v in {"status": status, "category": category, "author": author}.items() if v
        }
        body = await self._request("GET", "/posts", "Failed to fetch posts", params=params)
        posts = [PostRead.model_validate(p) for p in body.get("data") or []]
        return Listing(posts, body.get("count", len(posts)))

    async def get_post(self, post_id: str) -> PostRead:
        body = await self._request("GET", f"/posts/{post_id}", "Failed to fetch post")
        return PostRead.model_validate(body["data"])

    async def create_post(self, post_data: dict[str, Any]) -> PostRead:
        body = await self._request("POST", "/posts", "Failed to create post", json=post_data)
        return PostRead.model_validate(body["data"])

    async def update_post(self, post_id: str, changes: dict[str, Any]) -> PostRead:
        body = await self._request(
            "PUT", f"/posts/{post_id}", "Failed to update post", json=changes
        )
        return PostRead.model_validate(body["data"])

    async def delete_post(self, post_id: str) -> dict[str, Any]:
        body = await self._request("DELETE", f"/posts/{post_id}", "Failed to delete post")
        return body["data"]

    async def like_post(self, post_id: str, user_id: str) -> PostRead:
        body = await self._request(
            "POST", f"/posts/{post_id}/like", "Failed to like post", json={"user": user_id}
        )
        return PostRead.model_validate(body["data"])

    async def unlike_post(self, post_id: str, user_id: str) -> PostRead:
        body = await self._request(
            "DELETE", f"/posts/{post_id}/like/{user_id}", "Failed to remove like"
        )
        return PostRead.model_validate(body["data"])

    async def comment_on_post(self, post_id: str, user_id: str, content: str) -> PostRead:
        body = await self._request(
            "POST",
            f"/posts/{post_id}/comments",
            "Failed to add comment",
            json={"user": user_id, "content": content},
        )
        return PostRead.model_validate(body["data"])

    async def record_post_view(self, post_id: str) -> PostRead:
        body = await self._request("POST", f"/posts/{post_id}/views", "Failed to record view")
        return PostRead.model_validate(body["data"])

    # Cache

    async def cache_stats(self) -> CacheStats:
        body = await self._request("GET", "/cache", "Failed to fetch cache stats")
        return CacheStats.model_validate(body["data"])

    async def get_cache_value(self, key: str) -> CacheEntry:
        body = await self._request("GET", f"/cache/{key}", "Failed to get cache value")
        return CacheEntry.model_validate(body["data"])

    async def set_cache_value(self, key: str, value: Any, ttl: int | None = None) -> CacheEntry:
        payload: dict[str, Any] = {"value": value}
        if ttl is not None:
            payload["ttl"] = ttl
        body = await self._request(
            "POST", f"/cache/{key}", "Failed to set cache value", json=payload
        )
        return CacheEntry.model_validate(body["data"])

    async def delete_cache_value(self, key: str) -> dict[str, Any]:
        body = await self._request("DELETE", f"/cache/{key}", "Failed to delete cache key")
        return body["data"]

    async def delete_cache_values(self, keys: list[str]) -> list[dict[str, Any]]:
        return await self._delete_all(self.delete_cache_value, keys)

    async def ping_redis(self) -> PingResult:
        body = await self._request("GET", "/redis/ping", "Failed to ping cache")
        return PingResult.model_validate(body["data"])

    async def redis_keys(self, pattern: str = "*") -> list[str]:
        body = await self._request(
            "GET", "/redis/keys", "Failed to fetch keys", params={"pattern": pattern}
        )
        return list(body.get("data") or [])

    async def flush_redis(self) -> None:
        await self._request("DELETE", "/redis/flush", "Failed to flush cache")

    async def health(self) -> dict[str, Any]:
        # /health lives beside /api, not under it
        url = self.base_url.removesuffix("/api") + "/health"
        return await self._request("GET", url, "Failed to fetch health")

    @staticmethod
    async def _delete_all(delete_one, ids: list[str]) -> list[dict[str, Any]]:
        """Issue every delete at once and wait for all of them to settle.

        Any failure surfaces as one ApiError after the rest have finished.
        """
        results = await asyncio.gather(*(delete_one(i) for i in ids), return_exceptions=True)
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            first = failures[0]
            if isinstance(first, ApiError):
                raise first
            raise ApiError(f"Failed to delete {len(failures)} of {len(ids)} items") from first
        return results
