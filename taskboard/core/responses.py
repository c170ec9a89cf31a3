from datetime import datetime, timezone
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, Field, model_serializer

T = TypeVar("T")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Envelope(BaseModel, Generic[T]):
    """Uniform success body: ``{success, message, data, count?, source?, timestamp}``"""

    success: bool = True
    message: str
    data: T | None = None
    count: int | None = None
    source: Literal["cache", "database"] | None = None
    timestamp: datetime = Field(default_factory=utc_now)

    @model_serializer(mode="wrap")
    def _drop_unset_meta(self, handler):
        body = handler(self)
        for key in ("count", "source"):
            if body.get(key) is None:
                body.pop(key, None)
        return body


def ok(
    data: Any = None,
    message: str = "OK",
    count: int | None = None,
    source: str | None = None,
) -> dict[str, Any]:
    return {"message": message, "data": data, "count": count, "source": source}


def error_body(
    message: str, details: list[dict[str, str]] | None = None, **extra: Any
) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "error": message}
    if details:
        body["details"] = details
    body.update(extra)
    # same "Z" suffix pydantic writes for the success envelope
    body["timestamp"] = utc_now().isoformat().replace("+00:00", "Z")
    return body
