from taskboard.cache.layer import CacheLayer, cache_layer
from taskboard.core.exceptions import BadRequestError
from taskboard.core.ids import is_object_id


def _object_id(value: str, label: str) -> str:
    # rejected before any database access
    if not is_object_id(value):
        raise BadRequestError(
            f"Invalid {label} ID format",
            details=[{"field": "id", "message": "Must be a 24-character hexadecimal string"}],
        )
    return value.lower()


def valid_user_id(user_id: str) -> str:
    return _object_id(user_id, "user")


def valid_task_id(task_id: str) -> str:
    return _object_id(task_id, "task")


def valid_post_id(post_id: str) -> str:
    return _object_id(post_id, "post")


def get_cache() -> CacheLayer:
    return cache_layer
