"""
Terminal views: table rendering plus the fetch/dispatch controllers the
CLI commands are built from.

Controllers never raise ``ApiError`` for list fetches; the failure lands in
the slice's ``error`` field. Mutations record a ``LastAction`` and re-fetch.
"""

import asyncio
import sys
from typing import Any, Awaitable, Callable, Iterable, Literal, Optional

import structlog

from taskboard.client.api import ApiError, TaskboardClient
from taskboard.client.selectors import (
    select_task_counts,
    select_visible_cache_keys,
    select_visible_tasks,
    select_visible_users,
)
from taskboard.client.state import (
    ActionKind,
    CacheKeyRemoved,
    CacheLoaded,
    CacheState,
    ClearSelection,
    Failed,
    HideForms,
    Loading,
    OpenCreateForm,
    OpenEditForm,
    RecordAction,
    SelectAll,
    Store,
    TasksLoaded,
    TaskUIState,
    UsersLoaded,
    UserState,
)
from taskboard.schemas import PostRead

logger = structlog.get_logger(__name__)

Target = Literal["tasks", "users", "cache"]


def _short_date(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else ""


def format_tasks(state: TaskUIState) -> str:
    visible = select_visible_tasks(state)
    counts = select_task_counts(state)
    if not visible:
        lines = ["No tasks found."]
    else:
        lines = [f"{'ID':<24}  {'ST':<4}  {'CREATED':<16}  TITLE", "-" * 72]
        for t in visible:
            st = "DONE" if t.completed else "TODO"
            mark = "*" if t.id in state.selected_task_ids else " "
            lines.append(f"{t.id:<24}  {st:<4}  {_short_date(t.created_at):<16} {mark}{t.title}")
    lines.append(
        f"Showing {len(visible)} of {counts['total']} tasks "
        f"({counts['completed']} completed, {counts['pending']} pending)"
    )
    return "\n".join(lines)


def format_users(state: UserState) -> str:
    visible = select_visible_users(state)
    if not visible:
        lines = ["No users found."]
    else:
        lines = [f"{'ID':<24}  {'NAME':<24}  {'EMAIL':<30}  {'ACTIVE':<6}  ROLES", "-" * 100]
        for u in visible:
            roles = ",".join(r.value for r in u.roles)
            active = "yes" if u.is_active else "no"
            lines.append(f"{u.id:<24}  {u.name:<24}  {u.email:<30}  {active:<6}  {roles}")
    status = f"Showing {len(visible)} of {len(state.users)} users"
    if state.source:
        status += f" (source: {state.source})"
    lines.append(status)
    return "\n".join(lines)


def format_user(user) -> str:
    profile = user.profile
    rows = [
        ("ID", user.id),
        ("Name", user.name),
        ("Email", user.email),
        ("Age", user.age if user.age is not None else ""),
        ("Active", "yes" if user.is_active else "no"),
        ("Roles", ", ".join(r.value for r in user.roles)),
        ("Bio", profile.bio if profile and profile.bio else ""),
        ("Location", profile.location if profile and profile.location else ""),
        ("Created", _short_date(user.created_at)),
        ("Updated", _short_date(user.updated_at)),
    ]
    return "\n".join(f"{label:<9} {value}" for label, value in rows)


def format_posts(posts: Iterable[PostRead]) -> str:
    posts = list(posts)
    if not posts:
        return "No posts found."
    lines = [f"{'ID':<24}  {'STATUS':<9}  {'CATEGORY':<10}  {'LIKES':>5}  {'VIEWS':>5}  TITLE", "-" * 90]
    for p in posts:
        lines.append(
            f"{p.id:<24}  {p.status.value:<9}  {p.category.value:<10}  "
            f"{p.like_count:>5}  {p.views:>5}  {p.title}"
        )
    lines.append(f"Showing {len(posts)} posts")
    return "\n".join(lines)


def format_cache(state: CacheState) -> str:
    lines = []
    stats = state.stats
    if stats is not None:
        availability = "available" if stats.available else "unavailable"
        lines.append(f"Backend: {stats.backend} ({availability})  keys: {stats.total_keys}")
        lines.append(f"Hits: {stats.hits}  misses: {stats.misses}  errors: {stats.errors}")
        if stats.users_list_cached:
            lines.append(f"Users list cached, expires in {stats.users_list_ttl}s")
        else:
            lines.append("Users list not cached")
    visible = select_visible_cache_keys(state)
    lines.extend(f"  {key}" for key in visible)
    lines.append(f"Showing {len(visible)} of {len(state.keys)} keys")
    if state.last_updated:
        lines.append(f"Last updated {state.last_updated.strftime('%H:%M:%S')}")
    return "\n".join(lines)


def format_health(health: dict[str, Any]) -> str:
    services = health.get("services", {})
    database = services.get("database", {})
    cache = services.get("cache", {})
    return "\n".join(
        [
            f"Status:   {health.get('status')}",
            f"Server:   {services.get('server')}",
            f"Database: {database.get('status')}",
            f"Cache:    {cache.get('status')} ({cache.get('backend')})",
        ]
    )


# --- controllers -------------------------------------------------------------


async def load_tasks(client: TaskboardClient, store: Store, completed: Optional[bool] = None) -> bool:
    store.dispatch("tasks", Loading())
    try:
        listing = await client.list_tasks(completed=completed)
    except ApiError as e:
        store.dispatch("tasks", Failed(e.message))
        return False
    store.dispatch("tasks", TasksLoaded(tuple(listing.items)))
    return True


async def load_users(client: TaskboardClient, store: Store) -> bool:
    store.dispatch("users", Loading())
    try:
        listing = await client.list_users()
    except ApiError as e:
        store.dispatch("users", Failed(e.message))
        return False
    store.dispatch("users", UsersLoaded(tuple(listing.items), listing.source))
    return True


async def load_cache(client: TaskboardClient, store: Store) -> bool:
    store.dispatch("cache", Loading())
    try:
        stats = await client.cache_stats()
        # key listing 503s without a backend; stats alone still render
        keys = await client.redis_keys(store.state.cache.pattern) if stats.available else []
    except ApiError as e:
        store.dispatch("cache", Failed(e.message))
        return False
    store.dispatch("cache", CacheLoaded(tuple(keys), stats))
    return True


async def load_with_retry(
    load: Callable[[], Awaitable[bool]],
    error: Callable[[], Optional[str]],
    ask: Callable[[str], str] = input,
    interactive: Optional[bool] = None,
) -> bool:
    """Run ``load``; on failure print the error and offer to try again.

    The prompt is only shown on an interactive terminal.
    """
    if interactive is None:
        interactive = sys.stdin.isatty()
    while True:
        if await load():
            return True
        print(f"Error: {error()}", file=sys.stderr)
        if not interactive or ask("Retry? [y/N] ").strip().lower() not in ("y", "yes"):
            return False


async def _mutate(
    store: Store,
    target: Target,
    kind: ActionKind,
    call: Awaitable[Any],
    success_message: str,
) -> bool:
    try:
        await call
    except ApiError as e:
        logger.info("Mutation rejected", target=target, kind=kind, error=e.message)
        store.dispatch(target, RecordAction(kind, False, e.message))
        return False
    store.dispatch(target, HideForms())
    store.dispatch(target, RecordAction(kind, True, success_message))
    return True


async def create_task(client: TaskboardClient, store: Store, title: str, description: Optional[str]) -> bool:
    store.dispatch("tasks", OpenCreateForm())
    ok = await _mutate(
        store, "tasks", "create", client.create_task(title, description), "Task created successfully"
    )
    await load_tasks(client, store)
    return ok


async def update_task(client: TaskboardClient, store: Store, task_id: str, **changes: Any) -> bool:
    store.dispatch("tasks", OpenEditForm(task_id))
    ok = await _mutate(
        store, "tasks", "update", client.update_task(task_id, **changes), "Task updated successfully"
    )
    await load_tasks(client, store)
    return ok


async def delete_tasks(client: TaskboardClient, store: Store, task_ids: list[str]) -> bool:
    store.dispatch("tasks", ClearSelection())
    store.dispatch("tasks", SelectAll(tuple(task_ids)))
    if len(task_ids) == 1:
        call, kind, message = client.delete_task(task_ids[0]), "delete", "Task deleted successfully"
    else:
        call, kind = client.delete_tasks(task_ids), "bulk"
        message = f"{len(task_ids)} tasks deleted successfully"
    ok = await _mutate(store, "tasks", kind, call, message)
    store.dispatch("tasks", ClearSelection())
    await load_tasks(client, store)
    return ok


async def create_user(client: TaskboardClient, store: Store, user_data: dict[str, Any]) -> bool:
    store.dispatch("users", OpenCreateForm())
    ok = await _mutate(
        store, "users", "create", client.create_user(user_data), "User created successfully"
    )
    await load_users(client, store)
    return ok


async def update_user(client: TaskboardClient, store: Store, user_id: str, changes: dict[str, Any]) -> bool:
    store.dispatch("users", OpenEditForm(user_id))
    ok = await _mutate(
        store, "users", "update", client.update_user(user_id, changes), "User updated successfully"
    )
    await load_users(client, store)
    return ok


async def delete_users(client: TaskboardClient, store: Store, user_ids: list[str]) -> bool:
    store.dispatch("users", SelectAll(tuple(user_ids)))
    if len(user_ids) == 1:
        call, kind, message = client.delete_user(user_ids[0]), "delete", "User deleted successfully"
    else:
        call, kind = client.delete_users(user_ids), "bulk"
        message = f"{len(user_ids)} users deleted successfully"
    ok = await _mutate(store, "users", kind, call, message)
    store.dispatch("users", ClearSelection())
    await load_users(client, store)
    return ok


async def delete_cache_keys(client: TaskboardClient, store: Store, keys: list[str]) -> bool:
    try:
        await client.delete_cache_values(keys)
    except ApiError as e:
        await load_cache(client, store)
        store.dispatch("cache", Failed(e.message))
        return False
    for key in keys:
        store.dispatch("cache", CacheKeyRemoved(key))
    return await load_cache(client, store)


async def watch_cache(
    client: TaskboardClient,
    store: Store,
    interval: float,
    iterations: Optional[int] = None,
    emit: Callable[[str], None] = print,
) -> None:
    """Poll stats and keys until cancelled or ``iterations`` runs are done."""
    run = 0
    while iterations is None or run < iterations:
        if await load_cache(client, store):
            emit(format_cache(store.state.cache))
        else:
            emit(f"Error: {store.state.cache.error}")
        run += 1
        if iterations is None or run < iterations:
            await asyncio.sleep(interval)
