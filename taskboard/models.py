from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import JSON, DateTime, String, Text
from sqlmodel import Column, Field, SQLModel

from taskboard.core.ids import new_object_id


def get_utc_now():
    """Helper function to get current UTC time with timezone"""
    return datetime.now(timezone.utc)


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"
    MODERATOR = "moderator"


class PostCategory(str, Enum):
    TECHNOLOGY = "technology"
    LIFESTYLE = "lifestyle"
    EDUCATION = "education"
    BUSINESS = "business"
    OTHER = "other"


class PostStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class User(SQLModel, table=True):
    """Database model"""

    __tablename__ = "users"

    id: str = Field(default_factory=new_object_id, primary_key=True, max_length=24)
    name: str = Field(max_length=50)
    email: str = Field(
        sa_column=Column(String(254), unique=True, index=True, nullable=False)
    )
    age: int | None = Field(default=None)
    is_active: bool = Field(default=True)
    roles: list[str] = Field(
        default_factory=lambda: [Role.USER.value],
        sa_column=Column(JSON, nullable=False),
    )
    profile: dict | None = Field(default=None, sa_column=Column(JSON, nullable=True))
    created_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
    updated_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class Task(SQLModel, table=True):
    """Database model"""

    __tablename__ = "tasks"

    id: str = Field(default_factory=new_object_id, primary_key=True, max_length=24)
    title: str = Field(max_length=200, index=True)
    description: str | None = Field(
        default=None, sa_column=Column(String(1000), nullable=True)
    )
    completed: bool = Field(default=False, index=True)
    created_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
    updated_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class Post(SQLModel, table=True):
    """Database model.

    ``author`` holds a user id without a foreign key constraint; deleting a
    user leaves their posts in place.
    """

    __tablename__ = "posts"

    id: str = Field(default_factory=new_object_id, primary_key=True, max_length=24)
    title: str = Field(max_length=100)
    content: str = Field(sa_column=Column(Text, nullable=False))
    author: str = Field(max_length=24, index=True)
    tags: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    category: str = Field(default=PostCategory.OTHER.value, index=True)
    status: str = Field(default=PostStatus.DRAFT.value, index=True)
    views: int = Field(default=0)
    likes: list[dict] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    comments: list[dict] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )
    published_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    created_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
    updated_at: datetime = Field(
        default_factory=get_utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
