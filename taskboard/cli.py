from __future__ import annotations

import argparse
import asyncio
import functools
import json
import sys
from typing import Optional

import uvicorn

from taskboard.client import views
from taskboard.client.api import ApiError, TaskboardClient
from taskboard.client.state import (
    CacheEntryLoaded,
    CacheLoaded,
    SetActiveOnly,
    SetPattern,
    SetRoleFilter,
    SetSearch,
    SetSortBy,
    SetSortOrder,
    SetTaskFilter,
    Store,
    ToggleAddForm,
    ToggleShowCompleted,
)
from taskboard.core.config import get_settings
from taskboard.core.logging_config import configure_logging
from taskboard.models import PostCategory, PostStatus, Role


def _client(ns: argparse.Namespace) -> TaskboardClient:
    return TaskboardClient(base_url=ns.api_url)


def _async_command(fn):
    """Run an async ``cmd_*`` body with a client that is closed afterwards."""

    @functools.wraps(fn)
    def wrapper(ns: argparse.Namespace) -> int:
        async def run() -> int:
            async with _client(ns) as client:
                return await fn(ns, client, Store())

        return asyncio.run(run())

    return wrapper


def _fail(message: str) -> int:
    print(f"Error: {message}", file=sys.stderr)
    return 1


def _report(store: Store, target: str) -> int:
    last = getattr(store.state, target).last_action
    if last is None:
        return 0
    if not last.success:
        return _fail(last.message)
    print(last.message)
    return 0


def _apply_sort(store: Store, target: str, ns: argparse.Namespace) -> None:
    # SetSortBy flips the order on the current field, so pin it afterwards
    if ns.sort:
        store.dispatch(target, SetSortBy(ns.sort))
        store.dispatch(target, SetSortOrder(ns.order or "asc"))
    elif ns.order:
        store.dispatch(target, SetSortOrder(ns.order))


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("true", "yes", "1", "on"):
        return True
    if lowered in ("false", "no", "0", "off"):
        return False
    raise argparse.ArgumentTypeError(f"Invalid boolean '{value}'. Use true or false.")


# --- server ------------------------------------------------------------------


def cmd_serve(ns: argparse.Namespace) -> int:
    settings = get_settings()
    uvicorn.run(
        "taskboard.main:app",
        host=ns.host or settings.host,
        port=ns.port or settings.port,
        reload=ns.reload,
        log_config=None,
    )
    return 0


# --- tasks -------------------------------------------------------------------


@_async_command
async def cmd_tasks_list(ns, client, store) -> int:
    if ns.completed:
        store.dispatch("tasks", SetTaskFilter("completed"))
    elif ns.pending:
        store.dispatch("tasks", SetTaskFilter("pending"))
    if ns.search:
        store.dispatch("tasks", SetSearch(ns.search))
    if ns.hide_completed:
        store.dispatch("tasks", ToggleShowCompleted())
    _apply_sort(store, "tasks", ns)

    if not await views.load_with_retry(
        lambda: views.load_tasks(client, store), lambda: store.state.tasks.error
    ):
        return 1
    print(views.format_tasks(store.state.tasks))
    return 0


@_async_command
async def cmd_tasks_add(ns, client, store) -> int:
    await views.create_task(client, store, ns.title, ns.description)
    print(views.format_tasks(store.state.tasks))
    return _report(store, "tasks")


@_async_command
async def cmd_tasks_edit(ns, client, store) -> int:
    changes = {}
    if ns.title is not None:
        changes["title"] = ns.title
    if ns.description is not None:
        changes["description"] = ns.description
    if not changes:
        return _fail("Nothing to update. Pass --title and/or --description.")
    await views.update_task(client, store, ns.task_id, **changes)
    print(views.format_tasks(store.state.tasks))
    return _report(store, "tasks")


def _set_completed(completed: bool):
    @_async_command
    async def command(ns, client, store) -> int:
        await views.update_task(client, store, ns.task_id, completed=completed)
        print(views.format_tasks(store.state.tasks))
        return _report(store, "tasks")

    return command


cmd_tasks_done = _set_completed(True)
cmd_tasks_undo = _set_completed(False)


@_async_command
async def cmd_tasks_rm(ns, client, store) -> int:
    await views.delete_tasks(client, store, list(dict.fromkeys(ns.task_ids)))
    print(views.format_tasks(store.state.tasks))
    return _report(store, "tasks")


# --- users -------------------------------------------------------------------


@_async_command
async def cmd_users_list(ns, client, store) -> int:
    if ns.search:
        store.dispatch("users", SetSearch(ns.search))
    if ns.role:
        store.dispatch("users", SetRoleFilter(ns.role))
    if ns.active:
        store.dispatch("users", SetActiveOnly(True))
    _apply_sort(store, "users", ns)

    if not await views.load_with_retry(
        lambda: views.load_users(client, store), lambda: store.state.users.error
    ):
        return 1
    print(views.format_users(store.state.users))
    return 0


def _user_payload(ns: argparse.Namespace) -> dict:
    payload = {}
    for attr, key in (("name", "name"), ("email", "email"), ("age", "age"), ("active", "isActive")):
        value = getattr(ns, attr, None)
        if value is not None:
            payload[key] = value
    if ns.roles:
        payload["roles"] = ns.roles
    profile = {k: getattr(ns, k) for k in ("bio", "location") if getattr(ns, k, None)}
    if profile:
        payload["profile"] = profile
    return payload


@_async_command
async def cmd_users_add(ns, client, store) -> int:
    await views.create_user(client, store, _user_payload(ns))
    print(views.format_users(store.state.users))
    return _report(store, "users")


@_async_command
async def cmd_users_edit(ns, client, store) -> int:
    changes = _user_payload(ns)
    if not changes:
        return _fail("Nothing to update.")
    await views.update_user(client, store, ns.user_id, changes)
    print(views.format_users(store.state.users))
    return _report(store, "users")


@_async_command
async def cmd_users_rm(ns, client, store) -> int:
    await views.delete_users(client, store, list(dict.fromkeys(ns.user_ids)))
    print(views.format_users(store.state.users))
    return _report(store, "users")


@_async_command
async def cmd_users_show(ns, client, store) -> int:
    try:
        user = await client.get_user(ns.user_id)
    except ApiError as e:
        return _fail(e.message)
    print(views.format_user(user))
    return 0


# --- posts -------------------------------------------------------------------


@_async_command
async def cmd_posts_list(ns, client, store) -> int:
    try:
        listing = await client.list_posts(status=ns.status, category=ns.category, author=ns.author)
    except ApiError as e:
        return _fail(e.message)
    print(views.format_posts(listing.items))
    return 0


@_async_command
async def cmd_posts_add(ns, client, store) -> int:
    payload = {
        "title": ns.title,
        "content": ns.content,
        "author": ns.author,
        "category": ns.category,
        "status": ns.status,
        "tags": [t for t in (ns.tags or "").split(",") if t.strip()],
    }
    try:
        post = await client.create_post(payload)
    except ApiError as e:
        return _fail(e.message)
    print(f"Created post {post.id}: {post.title}")
    return 0


@_async_command
async def cmd_posts_publish(ns, client, store) -> int:
    try:
        post = await client.update_post(ns.post_id, {"status": PostStatus.PUBLISHED.value})
    except ApiError as e:
        return _fail(e.message)
    print(f"Published post {post.id} at {post.published_at.isoformat()}")
    return 0


# --- cache -------------------------------------------------------------------


@_async_command
async def cmd_cache_stats(ns, client, store) -> int:
    if not await views.load_with_retry(
        lambda: views.load_cache(client, store), lambda: store.state.cache.error
    ):
        return 1
    print(views.format_cache(store.state.cache))
    return 0


@_async_command
async def cmd_cache_keys(ns, client, store) -> int:
    store.dispatch("cache", SetPattern(ns.pattern))
    if ns.search:
        store.dispatch("cache", SetSearch(ns.search))
    try:
        keys = await client.redis_keys(ns.pattern)
    except ApiError as e:
        return _fail(e.message)
    store.dispatch("cache", CacheLoaded(tuple(keys)))
    print(views.format_cache(store.state.cache))
    return 0


@_async_command
async def cmd_cache_get(ns, client, store) -> int:
    try:
        entry = await client.get_cache_value(ns.key)
    except ApiError as e:
        return _fail(e.message)
    store.dispatch("cache", CacheEntryLoaded(entry))
    value = entry.value if isinstance(entry.value, str) else json.dumps(entry.value, indent=2)
    print(value)
    if entry.ttl is not None:
        print(f"(expires in {entry.ttl}s)")
    return 0


@_async_command
async def cmd_cache_set(ns, client, store) -> int:
    value = ns.value
    if ns.json:
        try:
            value = json.loads(ns.value)
        except ValueError as e:
            return _fail(f"Invalid JSON value: {e}")
    store.dispatch("cache", ToggleAddForm(True))
    try:
        entry = await client.set_cache_value(ns.key, value, ttl=ns.ttl)
    except ApiError as e:
        return _fail(e.message)
    store.dispatch("cache", CacheEntryLoaded(entry))
    store.dispatch("cache", ToggleAddForm(False))
    print(f"Set '{ns.key}'" + (f" for {ns.ttl}s" if ns.ttl else ""))
    return 0


@_async_command
async def cmd_cache_rm(ns, client, store) -> int:
    keys = list(dict.fromkeys(ns.keys))
    if not await views.delete_cache_keys(client, store, keys):
        return _fail(store.state.cache.error or "Failed to delete cache key")
    print(f"Deleted {len(keys)} key(s)")
    print(views.format_cache(store.state.cache))
    return 0


@_async_command
async def cmd_cache_flush(ns, client, store) -> int:
    try:
        await client.flush_redis()
    except ApiError as e:
        return _fail(e.message)
    print("Cache flushed.")
    return 0


@_async_command
async def cmd_cache_ping(ns, client, store) -> int:
    try:
        result = await client.ping_redis()
    except ApiError as e:
        return _fail(e.message)
    print(f"PONG ({result.latency_ms} ms)")
    return 0


@_async_command
async def cmd_cache_watch(ns, client, store) -> int:
    interval = ns.interval or get_settings().cache_poll_interval_seconds
    await views.watch_cache(client, store, interval, iterations=ns.iterations)
    return 0


# --- health ------------------------------------------------------------------


@_async_command
async def cmd_health(ns, client, store) -> int:
    try:
        health = await client.health()
    except ApiError as e:
        return _fail(e.message)
    print(views.format_health(health))
    return 0 if health.get("status") == "OK" else 1


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="taskboard",
        description="Taskboard: users, tasks and posts over a REST API with an optional cache.",
    )
    p.add_argument("--api-url", help="API base URL (default: API_BASE_URL env var).")
    p.add_argument("-v", "--verbose", action="store_true", help="Log every API request.")
    sub = p.add_subparsers(dest="cmd", required=True)

    s = sub.add_parser("serve", help="Run the API server.")
    s.add_argument("--host", help="Bind address (default: HOST env var).")
    s.add_argument("--port", type=int, help="Port (default: PORT env var).")
    s.add_argument("--reload", action="store_true", help="Reload on code changes.")
    s.set_defaults(func=cmd_serve)

    s = sub.add_parser("health", help="Show server, database and cache health.")
    s.set_defaults(func=cmd_health)

    # tasks
    tasks = sub.add_parser("tasks", help="Manage tasks.").add_subparsers(dest="action", required=True)

    s = tasks.add_parser("list", help="List tasks.")
    g = s.add_mutually_exclusive_group()
    g.add_argument("--completed", action="store_true", help="Only completed tasks.")
    g.add_argument("--pending", action="store_true", help="Only pending tasks.")
    s.add_argument("-s", "--search", help="Case-insensitive match on title or description.")
    s.add_argument("--hide-completed", action="store_true", help="Leave completed tasks out.")
    s.add_argument("--sort", choices=["created_at", "title", "completed"], help="Sort field.")
    s.add_argument("--order", choices=["asc", "desc"], help="Sort direction.")
    s.set_defaults(func=cmd_tasks_list)

    s = tasks.add_parser("add", help="Add a task.")
    s.add_argument("title", help="Task title.")
    s.add_argument("-d", "--description", help="Longer description.")
    s.set_defaults(func=cmd_tasks_add)

    s = tasks.add_parser("edit", help="Change a task's title or description.")
    s.add_argument("task_id", help="Task ID.")
    s.add_argument("--title", help="New title.")
    s.add_argument("-d", "--description", help="New description.")
    s.set_defaults(func=cmd_tasks_edit)

    s = tasks.add_parser("done", help="Mark a task as completed.")
    s.add_argument("task_id", help="Task ID.")
    s.set_defaults(func=cmd_tasks_done)

    s = tasks.add_parser("undo", help="Mark a task as pending again.")
    s.add_argument("task_id", help="Task ID.")
    s.set_defaults(func=cmd_tasks_undo)

    s = tasks.add_parser("rm", help="Delete one or more tasks.")
    s.add_argument("task_ids", nargs="+", help="Task IDs.")
    s.set_defaults(func=cmd_tasks_rm)

    # users
    users = sub.add_parser("users", help="Manage users.").add_subparsers(dest="action", required=True)
    role_choices = [r.value for r in Role]

    s = users.add_parser("list", help="List users.")
    s.add_argument("-s", "--search", help="Case-insensitive match on name or email.")
    s.add_argument("--role", choices=role_choices, help="Only users with this role.")
    s.add_argument("--active", action="store_true", help="Only active users.")
    s.add_argument("--sort", choices=["name", "email", "created_at"], help="Sort field.")
    s.add_argument("--order", choices=["asc", "desc"], help="Sort direction.")
    s.set_defaults(func=cmd_users_list)

    def user_fields(s: argparse.ArgumentParser) -> None:
        s.add_argument("--age", type=int, help="Age (0-120).")
        s.add_argument("--role", dest="roles", action="append", choices=role_choices, help="Role; repeat for several.")
        s.add_argument("--bio", help="Profile bio.")
        s.add_argument("--location", help="Profile location.")

    s = users.add_parser("add", help="Add a user.")
    s.add_argument("name", help="Full name.")
    s.add_argument("email", help="Email address.")
    s.add_argument("--active", type=_parse_bool, help="true or false (default: true).")
    user_fields(s)
    s.set_defaults(func=cmd_users_add)

    s = users.add_parser("edit", help="Update a user.")
    s.add_argument("user_id", help="User ID.")
    s.add_argument("--name", help="New name.")
    s.add_argument("--email", help="New email.")
    s.add_argument("--active", type=_parse_bool, help="true or false.")
    user_fields(s)
    s.set_defaults(func=cmd_users_edit)

    s = users.add_parser("rm", help="Delete one or more users.")
    s.add_argument("user_ids", nargs="+", help="User IDs.")
    s.set_defaults(func=cmd_users_rm)

    s = users.add_parser("show", help="Show one user.")
    s.add_argument("user_id", help="User ID.")
    s.set_defaults(func=cmd_users_show)

    # posts
    posts = sub.add_parser("posts", help="Manage posts.").add_subparsers(dest="action", required=True)

    s = posts.add_parser("list", help="List posts.")
    s.add_argument("--status", choices=[v.value for v in PostStatus])
    s.add_argument("--category", choices=[v.value for v in PostCategory])
    s.add_argument("--author", help="Author user ID.")
    s.set_defaults(func=cmd_posts_list)

    s = posts.add_parser("add", help="Write a post.")
    s.add_argument("title", help="Title (5-100 characters).")
    s.add_argument("content", help="Body (at least 10 characters).")
    s.add_argument("--author", required=True, help="Author user ID.")
    s.add_argument("--tags", help="Comma-separated tags.")
    s.add_argument("--category", choices=[v.value for v in PostCategory], default=PostCategory.OTHER.value)
    s.add_argument("--status", choices=[v.value for v in PostStatus], default=PostStatus.DRAFT.value)
    s.set_defaults(func=cmd_posts_add)

    s = posts.add_parser("publish", help="Publish a draft post.")
    s.add_argument("post_id", help="Post ID.")
    s.set_defaults(func=cmd_posts_publish)

    # cache
    cache = sub.add_parser("cache", help="Inspect and edit the cache.").add_subparsers(dest="action", required=True)

    s = cache.add_parser("stats", help="Backend status, counters and keys.")
    s.set_defaults(func=cmd_cache_stats)

    s = cache.add_parser("keys", help="List keys matching a glob pattern.")
    s.add_argument("pattern", nargs="?", default="*", help="Glob pattern (default: *).")
    s.add_argument("-s", "--search", help="Substring filter over the listed keys.")
    s.set_defaults(func=cmd_cache_keys)

    s = cache.add_parser("get", help="Read a key.")
    s.add_argument("key")
    s.set_defaults(func=cmd_cache_get)

    s = cache.add_parser("set", help="Write a key.")
    s.add_argument("key")
    s.add_argument("value")
    s.add_argument("--ttl", type=int, help="Expiry in seconds.")
    s.add_argument("--json", action="store_true", help="Parse VALUE as JSON.")
    s.set_defaults(func=cmd_cache_set)

    s = cache.add_parser("rm", help="Delete one or more keys.")
    s.add_argument("keys", nargs="+")
    s.set_defaults(func=cmd_cache_rm)

    s = cache.add_parser("flush", help="Remove every key.")
    s.set_defaults(func=cmd_cache_flush)

    s = cache.add_parser("ping", help="Ping the cache backend.")
    s.set_defaults(func=cmd_cache_ping)

    s = cache.add_parser("watch", help="Poll stats and keys.")
    s.add_argument("--interval", type=float, help="Seconds between polls (default: CACHE_POLL_INTERVAL_SECONDS).")
    s.add_argument("--iterations", type=int, help="Stop after this many polls.")
    s.set_defaults(func=cmd_cache_watch)

    return p


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    ns = parser.parse_args(argv)
    # keep stdout for tables
    configure_logging(get_settings(), level="DEBUG" if ns.verbose else "WARNING", stream=sys.stderr)
    try:
        return int(ns.func(ns))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
