"""Request and response schemas.

Field rules are checked here, before anything reaches the database.
Responses use camelCase keys (``isActive``, ``createdAt``); requests accept
either spelling.
"""

import re
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StringConstraints,
    computed_field,
    field_validator,
)
from pydantic.alias_generators import to_camel
from typing_extensions import Annotated

from taskboard.models import PostCategory, PostStatus, Role

EMAIL_RE = re.compile(r"^\w+([.-]?\w+)*@\w+([.-]?\w+)*(\.\w{2,3})+$")


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _required(message: str):
    def check(value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            if not value:
                raise ValueError(message)
        return value

    return check


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip() or None
    return value


def _normalize_email(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    value = value.strip().lower()
    if not value:
        raise ValueError("Email is required")
    if not EMAIL_RE.match(value):
        raise ValueError("Please enter a valid email address")
    return value


def _dedupe(values: list) -> list:
    return list(dict.fromkeys(values))


def _normalize_tags(tags: list[str]) -> list[str]:
    cleaned = (tag.strip().lower() for tag in tags)
    return _dedupe([tag for tag in cleaned if tag])


def _reject_null(value: Any) -> Any:
    if value is None:
        raise ValueError("Field cannot be null")
    return value


UTCDateTime = Annotated[datetime, AfterValidator(_as_utc)]
ObjectIdStr = Annotated[
    str, StringConstraints(strip_whitespace=True, to_lower=True, pattern=r"^[0-9a-fA-F]{24}$")
]
UserName = Annotated[
    str, StringConstraints(min_length=2, max_length=50), BeforeValidator(_required("Name is required"))
]
Email = Annotated[str, BeforeValidator(_normalize_email)]
Roles = Annotated[list[Role], AfterValidator(_dedupe)]
TaskTitle = Annotated[
    str, StringConstraints(max_length=200), BeforeValidator(_required("Task title is required"))
]
TaskDescription = Annotated[
    Optional[Annotated[str, StringConstraints(max_length=1000)]],
    BeforeValidator(_blank_to_none),
]
PostTitle = Annotated[
    str, StringConstraints(min_length=5, max_length=100), BeforeValidator(_required("Title is required"))
]
PostContent = Annotated[str, StringConstraints(min_length=10)]
Tags = Annotated[list[str], AfterValidator(_normalize_tags)]


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )


# --- users ----------------------------------------------------------------


class Profile(CamelModel):
    bio: str | None = Field(default=None, max_length=500)
    avatar: str | None = None
    location: str | None = None


class UserCreate(CamelModel):
    name: UserName
    email: Email
    age: int | None = Field(default=None, ge=0, le=120)
    is_active: bool = True
    roles: Roles = Field(default_factory=lambda: [Role.USER])
    profile: Profile | None = None


class UserUpdate(CamelModel):
    """Partial update - only the provided fields are replaced"""

    name: UserName | None = None
    email: Email | None = None
    age: int | None = Field(default=None, ge=0, le=120)
    is_active: bool | None = None
    roles: Roles | None = None
    profile: Profile | None = None

    reject_null = field_validator("name", "email", "is_active", "roles", mode="before")(
        _reject_null
    )


class UserRead(CamelModel):
    id: str
    name: str
    email: str
    age: int | None = None
    is_active: bool
    roles: list[Role]
    profile: Profile | None = None
    created_at: UTCDateTime
    updated_at: UTCDateTime


class DeletedUser(CamelModel):
    id: str
    name: str


# --- tasks ----------------------------------------------------------------


class TaskCreate(CamelModel):
    title: TaskTitle
    description: TaskDescription = None


class TaskUpdate(CamelModel):
    """Schema for updating a task - all fields optional"""

    title: TaskTitle | None = None
    description: TaskDescription = None
    completed: bool | None = None

    reject_null = field_validator("title", "completed", mode="before")(_reject_null)


class TaskRead(CamelModel):
    id: str
    title: str
    description: str | None = None
    completed: bool
    created_at: UTCDateTime
    updated_at: UTCDateTime

    @computed_field
    @property
    def status(self) -> Literal["completed", "pending"]:
        return "completed" if self.completed else "pending"


class DeletedTask(CamelModel):
    id: str
    title: str


# --- posts ----------------------------------------------------------------


class PostCreate(CamelModel):
    title: PostTitle
    content: PostContent
    author: ObjectIdStr
    tags: Tags = Field(default_factory=list)
    category: PostCategory = PostCategory.OTHER
    status: PostStatus = PostStatus.DRAFT


class PostUpdate(CamelModel):
    title: PostTitle | None = None
    content: PostContent | None = None
    tags: Tags | None = None
    category: PostCategory | None = None
    status: PostStatus | None = None

    reject_null = field_validator(
        "title", "content", "tags", "category", "status", mode="before"
    )(_reject_null)


class LikeCreate(CamelModel):
    user: ObjectIdStr


class CommentCreate(CamelModel):
    user: ObjectIdStr
    content: Annotated[
        str,
        StringConstraints(min_length=1, max_length=500),
        BeforeValidator(_required("Comment cannot be empty")),
    ]


class Like(CamelModel):
    user: str
    created_at: UTCDateTime


class Comment(CamelModel):
    user: str
    content: str
    created_at: UTCDateTime


class PostRead(CamelModel):
    id: str
    title: str
    content: str
    author: str
    tags: list[str]
    category: PostCategory
    status: PostStatus
    views: int
    likes: list[Like]
    comments: list[Comment]
    published_at: UTCDateTime | None = None
    created_at: UTCDateTime
    updated_at: UTCDateTime

    @computed_field
    @property
    def like_count(self) -> int:
        return len(self.likes)

    @computed_field
    @property
    def comment_count(self) -> int:
        return len(self.comments)


class DeletedPost(CamelModel):
    id: str
    title: str


# --- cache ----------------------------------------------------------------


class CacheSetRequest(CamelModel):
    value: Any
    ttl: int | None = Field(default=None, gt=0)


class CacheEntry(CamelModel):
    key: str
    value: Any = None
    ttl: int | None = None


class CacheDeleteResult(CamelModel):
    key: str
    deleted: bool


class CacheStats(CamelModel):
    available: bool
    backend: str
    total_keys: int = 0
    users_list_cached: bool = False
    users_list_ttl: int | None = None
    hits: int = 0
    misses: int = 0
    errors: int = 0


class PingResult(CamelModel):
    pong: bool
    latency_ms: float
