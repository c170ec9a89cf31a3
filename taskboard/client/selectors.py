"""Derived views over the client state. Pure functions, no I/O."""

from fnmatch import fnmatchcase

from taskboard.client.state import CacheState, TaskUIState, UserState
from taskboard.schemas import TaskRead, UserRead


def _task_sort_key(sort_by: str):
    if sort_by == "title":
        return lambda t: t.title.casefold()
    if sort_by == "completed":
        return lambda t: t.completed
    return lambda t: t.created_at


def select_visible_tasks(state: TaskUIState) -> list[TaskRead]:
    tasks = list(state.tasks)

    if state.filter == "completed":
        tasks = [t for t in tasks if t.completed]
    elif state.filter == "pending":
        tasks = [t for t in tasks if not t.completed]

    query = state.search_query.strip().casefold()
    if query:
        tasks = [
            t
            for t in tasks
            if query in t.title.casefold() or query in (t.description or "").casefold()
        ]

    if not state.show_completed:
        tasks = [t for t in tasks if not t.completed]

    # sorted() is stable, and stays stable with reverse=True
    return sorted(tasks, key=_task_sort_key(state.sort_by), reverse=state.sort_order == "desc")


def select_task_counts(state: TaskUIState) -> dict[str, int]:
    completed = sum(1 for t in state.tasks if t.completed)
    return {
        "total": len(state.tasks),
        "completed": completed,
        "pending": len(state.tasks) - completed,
    }


def _user_sort_key(sort_by: str):
    if sort_by == "email":
        return lambda u: u.email.casefold()
    if sort_by == "created_at":
        return lambda u: u.created_at
    return lambda u: u.name.casefold()


def select_visible_users(state: UserState) -> list[UserRead]:
    users = list(state.users)

    query = state.search.strip().casefold()
    if query:
        users = [u for u in users if query in u.name.casefold() or query in u.email.casefold()]
    if state.role:
        users = [u for u in users if state.role in u.roles]
    if state.active_only:
        users = [u for u in users if u.is_active]

    return sorted(users, key=_user_sort_key(state.sort_by), reverse=state.sort_order == "desc")


def select_visible_cache_keys(state: CacheState) -> list[str]:
    keys = [k for k in state.keys if fnmatchcase(k, state.pattern or "*")]
    query = state.search.strip().casefold()
    if query:
        keys = [k for k in keys if query in k.casefold()]
    return sorted(keys)
