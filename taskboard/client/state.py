"""
Client-side state for the task, user and cache screens.

Each slice is a frozen, serializable pydantic model. Actions are small
frozen dataclasses; ``reduce_*`` functions are pure and return a new slice,
leaving the slice untouched for actions they do not handle.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict

from taskboard.schemas import CacheEntry, CacheStats, TaskRead, UserRead

TaskFilter = Literal["all", "completed", "pending"]
TaskSortBy = Literal["created_at", "title", "completed"]
UserSortBy = Literal["name", "email", "created_at"]
SortOrder = Literal["asc", "desc"]
ActionKind = Literal["create", "update", "delete", "bulk"]

S = TypeVar("S", bound=BaseModel)


class LastAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: ActionKind
    success: bool
    message: str
    timestamp: datetime


class TaskUIState(BaseModel):
    model_config = ConfigDict(frozen=True)

    tasks: tuple[TaskRead, ...] = ()
    filter: TaskFilter = "all"
    sort_by: TaskSortBy = "created_at"
    sort_order: SortOrder = "desc"
    search_query: str = ""
    show_completed: bool = True

    is_creating: bool = False
    editing_task_id: str | None = None
    selected_task_ids: tuple[str, ...] = ()
    select_all: bool = False

    is_loading: bool = False
    error: str | None = None
    last_action: LastAction | None = None


class UserState(BaseModel):
    model_config = ConfigDict(frozen=True)

    users: tuple[UserRead, ...] = ()
    source: str | None = None
    search: str = ""
    role: str | None = None
    active_only: bool = False
    sort_by: UserSortBy = "name"
    sort_order: SortOrder = "asc"

    selected_user_ids: tuple[str, ...] = ()
    show_create_form: bool = False
    show_edit_form: bool = False
    editing_user_id: str | None = None

    is_loading: bool = False
    error: str | None = None
    last_action: LastAction | None = None


class CacheState(BaseModel):
    model_config = ConfigDict(frozen=True)

    keys: tuple[str, ...] = ()
    entries: dict[str, CacheEntry] = {}
    stats: CacheStats | None = None
    last_updated: datetime | None = None
    search: str = ""
    pattern: str = "*"

    selected_keys: tuple[str, ...] = ()
    show_add_form: bool = False
    is_loading: bool = False
    error: str | None = None


# --- actions shared by every slice -------------------------------------------


@dataclass(frozen=True)
class Loading:
    pass


@dataclass(frozen=True)
class Failed:
    error: str


@dataclass(frozen=True)
class SetSearch:
    query: str


@dataclass(frozen=True)
class SetSortBy:
    """Same field again flips the direction; a new field starts ascending."""

    field: str


@dataclass(frozen=True)
class SetSortOrder:
    order: SortOrder


@dataclass(frozen=True)
class ToggleSelection:
    item_id: str


@dataclass(frozen=True)
class SelectAll:
    item_ids: tuple[str, ...]


@dataclass(frozen=True)
class ClearSelection:
    pass


@dataclass(frozen=True)
class OpenCreateForm:
    pass


@dataclass(frozen=True)
class OpenEditForm:
    item_id: str


@dataclass(frozen=True)
class HideForms:
    """Cancel, or the form was submitted successfully."""


@dataclass(frozen=True)
class RecordAction:
    kind: ActionKind
    success: bool
    message: str


@dataclass(frozen=True)
class ResetFilters:
    pass


# --- slice specific actions --------------------------------------------------


@dataclass(frozen=True)
class TasksLoaded:
    tasks: tuple[TaskRead, ...]


@dataclass(frozen=True)
class SetTaskFilter:
    filter: TaskFilter


@dataclass(frozen=True)
class ToggleShowCompleted:
    pass


@dataclass(frozen=True)
class UsersLoaded:
    users: tuple[UserRead, ...]
    source: str | None = None


@dataclass(frozen=True)
class SetRoleFilter:
    role: str | None


@dataclass(frozen=True)
class SetActiveOnly:
    active_only: bool


@dataclass(frozen=True)
class CacheLoaded:
    keys: tuple[str, ...]
    stats: CacheStats | None = None


@dataclass(frozen=True)
class SetPattern:
    pattern: str


@dataclass(frozen=True)
class CacheEntryLoaded:
    entry: CacheEntry


@dataclass(frozen=True)
class CacheKeyRemoved:
    key: str


@dataclass(frozen=True)
class ToggleAddForm:
    visible: bool


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Reducer(Generic[S]):
    """Dispatch table from action type to a pure handler."""

    def __init__(self):
        self._handlers: dict[type, Callable[[S, Any], S]] = {}

    def on(self, *action_types: type):
        def register(handler: Callable[[S, Any], S]):
            for action_type in action_types:
                self._handlers[action_type] = handler
            return handler

        return register

    def __call__(self, state: S, action: Any) -> S:
        handler = self._handlers.get(type(action))
        return handler(state, action) if handler else state


def _toggle(ids: tuple[str, ...], item_id: str) -> tuple[str, ...]:
    if item_id in ids:
        return tuple(i for i in ids if i != item_id)
    return ids + (item_id,)


def _next_sort(current_field: str, current_order: SortOrder, new_field: str) -> dict:
    if current_field == new_field:
        return {"sort_order": "desc" if current_order == "asc" else "asc"}
    return {"sort_by": new_field, "sort_order": "asc"}


# --- tasks -------------------------------------------------------------------

reduce_tasks: Reducer[TaskUIState] = Reducer()


@reduce_tasks.on(Loading)
def _tasks_loading(state: TaskUIState, action: Loading) -> TaskUIState:
    return state.model_copy(update={"is_loading": True, "error": None})


@reduce_tasks.on(TasksLoaded)
def _tasks_loaded(state: TaskUIState, action: TasksLoaded) -> TaskUIState:
    ids = {t.id for t in action.tasks}
    return state.model_copy(
        update={
            "tasks": tuple(action.tasks),
            "is_loading": False,
            "error": None,
            # drop selections for tasks that no longer exist
            "selected_task_ids": tuple(i for i in state.selected_task_ids if i in ids),
        }
    )


@reduce_tasks.on(Failed)
def _tasks_failed(state: TaskUIState, action: Failed) -> TaskUIState:
    return state.model_copy(update={"is_loading": False, "error": action.error})


@reduce_tasks.on(SetTaskFilter)
def _set_task_filter(state: TaskUIState, action: SetTaskFilter) -> TaskUIState:
    return state.model_copy(update={"filter": action.filter})


@reduce_tasks.on(SetSortBy)
def _set_task_sort(state: TaskUIState, action: SetSortBy) -> TaskUIState:
    return state.model_copy(update=_next_sort(state.sort_by, state.sort_order, action.field))


@reduce_tasks.on(SetSortOrder)
def _set_task_sort_order(state: TaskUIState, action: SetSortOrder) -> TaskUIState:
    return state.model_copy(update={"sort_order": action.order})


@reduce_tasks.on(SetSearch)
def _set_task_search(state: TaskUIState, action: SetSearch) -> TaskUIState:
    return state.model_copy(update={"search_query": action.query})


@reduce_tasks.on(ToggleShowCompleted)
def _toggle_show_completed(state: TaskUIState, action: ToggleShowCompleted) -> TaskUIState:
    return state.model_copy(update={"show_completed": not state.show_completed})


@reduce_tasks.on(OpenCreateForm)
def _open_task_create(state: TaskUIState, action: OpenCreateForm) -> TaskUIState:
    return state.model_copy(update={"is_creating": True, "editing_task_id": None})


@reduce_tasks.on(OpenEditForm)
def _open_task_edit(state: TaskUIState, action: OpenEditForm) -> TaskUIState:
    return state.model_copy(update={"is_creating": False, "editing_task_id": action.item_id})


@reduce_tasks.on(HideForms)
def _hide_task_forms(state: TaskUIState, action: HideForms) -> TaskUIState:
    return state.model_copy(update={"is_creating": False, "editing_task_id": None})


@reduce_tasks.on(ToggleSelection)
def _toggle_task(state: TaskUIState, action: ToggleSelection) -> TaskUIState:
    return state.model_copy(
        update={"selected_task_ids": _toggle(state.selected_task_ids, action.item_id)}
    )


@reduce_tasks.on(SelectAll)
def _select_all_tasks(state: TaskUIState, action: SelectAll) -> TaskUIState:
    if state.select_all:
        return state.model_copy(update={"selected_task_ids": (), "select_all": False})
    ids = tuple(dict.fromkeys(action.item_ids))
    return state.model_copy(update={"selected_task_ids": ids, "select_all": True})


@reduce_tasks.on(ClearSelection)
def _clear_tasks(state: TaskUIState, action: ClearSelection) -> TaskUIState:
    return state.model_copy(update={"selected_task_ids": (), "select_all": False})


@reduce_tasks.on(RecordAction)
def _record_task_action(state: TaskUIState, action: RecordAction) -> TaskUIState:
    last = LastAction(
        kind=action.kind, success=action.success, message=action.message, timestamp=_now()
    )
    return state.model_copy(update={"last_action": last})


@reduce_tasks.on(ResetFilters)
def _reset_task_filters(state: TaskUIState, action: ResetFilters) -> TaskUIState:
    defaults = TaskUIState()
    return state.model_copy(
        update={
            "filter": defaults.filter,
            "sort_by": defaults.sort_by,
            "sort_order": defaults.sort_order,
            "search_query": defaults.search_query,
            "show_completed": defaults.show_completed,
        }
    )


# --- users -------------------------------------------------------------------

reduce_users: Reducer[UserState] = Reducer()


@reduce_users.on(Loading)
def _users_loading(state: UserState, action: Loading) -> UserState:
    return state.model_copy(update={"is_loading": True, "error": None})


@reduce_users.on(UsersLoaded)
def _users_loaded(state: UserState, action: UsersLoaded) -> UserState:
    ids = {u.id for u in action.users}
    return state.model_copy(
        update={
            "users": tuple(action.users),
            "source": action.source,
            "is_loading": False,
            "error": None,
            "selected_user_ids": tuple(i for i in state.selected_user_ids if i in ids),
        }
    )


@reduce_users.on(Failed)
def _users_failed(state: UserState, action: Failed) -> UserState:
    return state.model_copy(update={"is_loading": False, "error": action.error})


@reduce_users.on(SetSearch)
def _set_user_search(state: UserState, action: SetSearch) -> UserState:
    return state.model_copy(update={"search": action.query})


@reduce_users.on(SetSortBy)
def _set_user_sort(state: UserState, action: SetSortBy) -> UserState:
    return state.model_copy(update=_next_sort(state.sort_by, state.sort_order, action.field))


@reduce_users.on(SetSortOrder)
def _set_user_sort_order(state: UserState, action: SetSortOrder) -> UserState:
    return state.model_copy(update={"sort_order": action.order})


@reduce_users.on(SetRoleFilter)
def _set_role(state: UserState, action: SetRoleFilter) -> UserState:
    return state.model_copy(update={"role": action.role})


@reduce_users.on(SetActiveOnly)
def _set_active_only(state: UserState, action: SetActiveOnly) -> UserState:
    return state.model_copy(update={"active_only": action.active_only})


@reduce_users.on(OpenCreateForm)
def _open_user_create(state: UserState, action: OpenCreateForm) -> UserState:
    return state.model_copy(
        update={"show_create_form": True, "show_edit_form": False, "editing_user_id": None}
    )


@reduce_users.on(OpenEditForm)
def _open_user_edit(state: UserState, action: OpenEditForm) -> UserState:
    return state.model_copy(
        update={
            "show_create_form": False,
            "show_edit_form": True,
            "editing_user_id": action.item_id,
        }
    )


@reduce_users.on(HideForms)
def _hide_user_forms(state: UserState, action: HideForms) -> UserState:
    return state.model_copy(
        update={"show_create_form": False, "show_edit_form": False, "editing_user_id": None}
    )


@reduce_users.on(ToggleSelection)
def _toggle_user(state: UserState, action: ToggleSelection) -> UserState:
    return state.model_copy(
        update={"selected_user_ids": _toggle(state.selected_user_ids, action.item_id)}
    )


@reduce_users.on(SelectAll)
def _select_all_users(state: UserState, action: SelectAll) -> UserState:
    return state.model_copy(update={"selected_user_ids": tuple(dict.fromkeys(action.item_ids))})


@reduce_users.on(ClearSelection)
def _clear_users(state: UserState, action: ClearSelection) -> UserState:
    return state.model_copy(update={"selected_user_ids": ()})


@reduce_users.on(RecordAction)
def _record_user_action(state: UserState, action: RecordAction) -> UserState:
    last = LastAction(
        kind=action.kind, success=action.success, message=action.message, timestamp=_now()
    )
    return state.model_copy(update={"last_action": last})


@reduce_users.on(ResetFilters)
def _reset_user_filters(state: UserState, action: ResetFilters) -> UserState:
    defaults = UserState()
    return state.model_copy(
        update={
            "search": defaults.search,
            "role": defaults.role,
            "active_only": defaults.active_only,
            "sort_by": defaults.sort_by,
            "sort_order": defaults.sort_order,
        }
    )


# --- cache -------------------------------------------------------------------

reduce_cache: Reducer[CacheState] = Reducer()


@reduce_cache.on(Loading)
def _cache_loading(state: CacheState, action: Loading) -> CacheState:
    return state.model_copy(update={"is_loading": True, "error": None})


@reduce_cache.on(CacheLoaded)
def _cache_loaded(state: CacheState, action: CacheLoaded) -> CacheState:
    keys = tuple(action.keys)
    return state.model_copy(
        update={
            "keys": keys,
            "stats": action.stats if action.stats is not None else state.stats,
            "entries": {k: v for k, v in state.entries.items() if k in keys},
            "selected_keys": tuple(k for k in state.selected_keys if k in keys),
            "last_updated": _now(),
            "is_loading": False,
            "error": None,
        }
    )


@reduce_cache.on(Failed)
def _cache_failed(state: CacheState, action: Failed) -> CacheState:
    return state.model_copy(update={"is_loading": False, "error": action.error})


@reduce_cache.on(SetSearch)
def _set_cache_search(state: CacheState, action: SetSearch) -> CacheState:
    return state.model_copy(update={"search": action.query})


@reduce_cache.on(SetPattern)
def _set_pattern(state: CacheState, action: SetPattern) -> CacheState:
    return state.model_copy(update={"pattern": action.pattern or "*"})


@reduce_cache.on(CacheEntryLoaded)
def _entry_loaded(state: CacheState, action: CacheEntryLoaded) -> CacheState:
    entry = action.entry
    keys = state.keys if entry.key in state.keys else state.keys + (entry.key,)
    return state.model_copy(
        update={"entries": {**state.entries, entry.key: entry}, "keys": keys}
    )


@reduce_cache.on(CacheKeyRemoved)
def _key_removed(state: CacheState, action: CacheKeyRemoved) -> CacheState:
    return state.model_copy(
        update={
            "keys": tuple(k for k in state.keys if k != action.key),
            "entries": {k: v for k, v in state.entries.items() if k != action.key},
            "selected_keys": tuple(k for k in state.selected_keys if k != action.key),
        }
    )


@reduce_cache.on(ToggleSelection)
def _toggle_key(state: CacheState, action: ToggleSelection) -> CacheState:
    return state.model_copy(update={"selected_keys": _toggle(state.selected_keys, action.item_id)})


@reduce_cache.on(SelectAll)
def _select_all_keys(state: CacheState, action: SelectAll) -> CacheState:
    return state.model_copy(update={"selected_keys": tuple(dict.fromkeys(action.item_ids))})


@reduce_cache.on(ClearSelection)
def _clear_keys(state: CacheState, action: ClearSelection) -> CacheState:
    return state.model_copy(update={"selected_keys": ()})


@reduce_cache.on(ToggleAddForm)
def _toggle_add_form(state: CacheState, action: ToggleAddForm) -> CacheState:
    return state.model_copy(update={"show_add_form": action.visible})


# --- store -------------------------------------------------------------------


class AppState(BaseModel):
    model_config = ConfigDict(frozen=True)

    tasks: TaskUIState = TaskUIState()
    users: UserState = UserState()
    cache: CacheState = CacheState()


@dataclass
class Store:
    """Holds the current AppState; each dispatch runs one slice reducer.

    Slices are routed by ``target`` since the shared actions (Loading,
    SetSearch, ...) mean something different on every screen.
    """

    state: AppState = field(default_factory=AppState)

    def dispatch(self, target: Literal["tasks", "users", "cache"], action: Any) -> AppState:
        reducer = {"tasks": reduce_tasks, "users": reduce_users, "cache": reduce_cache}[target]
        current = getattr(self.state, target)
        self.state = self.state.model_copy(update={target: reducer(current, action)})
        return self.state
