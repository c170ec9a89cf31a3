from datetime import datetime, timezone

import structlog
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from taskboard.core.exceptions import BadRequestError
from taskboard.models import Post, PostStatus, User
from taskboard.schemas import CommentCreate, PostCreate, PostUpdate

logger = structlog.get_logger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


async def _ensure_user(user_id: str, field: str, db: AsyncSession):
    if await db.get(User, user_id) is None:
        raise BadRequestError(
            "Validation failed",
            details=[{"field": field, "message": f"User {user_id} does not exist"}],
        )


def _touch(post: Post):
    """Refresh updated_at and stamp published_at on the first publish."""
    post.updated_at = _now()
    if post.status == PostStatus.PUBLISHED.value and post.published_at is None:
        post.published_at = post.updated_at


class PostService:
    @staticmethod
    async def get_all_posts(
        db: AsyncSession,
        status: str | None = None,
        category: str | None = None,
        author: str | None = None,
    ):
        query = select(Post)
        if status:
            query = query.where(Post.status == status)
        if category:
            query = query.where(Post.category == category)
        if author:
            query = query.where(Post.author == author)
        query = query.order_by(Post.created_at.desc())

        result = await db.exec(query)
        return result.all()

    @staticmethod
    async def get_post(post_id: str, db: AsyncSession):
        return await db.get(Post, post_id)

    @staticmethod
    async def create_post(post_data: PostCreate, db: AsyncSession):
        await _ensure_user(post_data.author, "author", db)
        post = Post(**post_data.model_dump(mode="json"))
        _touch(post)
        db.add(post)
        await db.commit()
        await db.refresh(post)
        logger.info("Post created", post_id=post.id, author=post.author)
        return post

    @staticmethod
    async def update_post(post_id: str, post_data: PostUpdate, db: AsyncSession):
        post = await db.get(Post, post_id)
        if not post:
            return None
        update_data = post_data.model_dump(mode="json", exclude_unset=True)
        post.sqlmodel_update(update_data)
        _touch(post)
        await db.commit()
        await db.refresh(post)
        logger.info("Post updated", post_id=post.id, fields=sorted(update_data))
        return post

    @staticmethod
    async def delete_post(post_id: str, db: AsyncSession):
        post = await db.get(Post, post_id)
        if not post:
            return None
        await db.delete(post)
        await db.commit()
        logger.info("Post deleted", post_id=post_id)
        return post

    @staticmethod
    async def add_like(post_id: str, user_id: str, db: AsyncSession):
        post = await db.get(Post, post_id)
        if not post:
            return None
        await _ensure_user(user_id, "user", db)
        if any(like["user"] == user_id for like in post.likes):
            return post
        # JSON columns only notice reassignment
        post.likes = [*post.likes, {"user": user_id, "createdAt": _now().isoformat()}]
        _touch(post)
        await db.commit()
        await db.refresh(post)
        return post

    @staticmethod
    async def remove_like(post_id: str, user_id: str, db: AsyncSession):
        post = await db.get(Post, post_id)
        if not post:
            return None
        post.likes = [like for like in post.likes if like["user"] != user_id]
        _touch(post)
        await db.commit()
        await db.refresh(post)
        return post

    @staticmethod
    async def add_comment(post_id: str, comment: CommentCreate, db: AsyncSession):
        post = await db.get(Post, post_id)
        if not post:
            return None
        await _ensure_user(comment.user, "user", db)
        post.comments = [
            *post.comments,
            {"user": comment.user, "content": comment.content, "createdAt": _now().isoformat()},
        ]
        _touch(post)
        await db.commit()
        await db.refresh(post)
        return post

    @staticmethod
    async def increment_views(post_id: str, db: AsyncSession):
        post = await db.get(Post, post_id)
        if not post:
            return None
        post.views += 1
        await db.commit()
        await db.refresh(post)
        return post
