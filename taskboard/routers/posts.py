from fastapi import APIRouter, Depends, Query, status
from sqlmodel.ext.asyncio.session import AsyncSession

from taskboard.core.exceptions import NotFoundError
from taskboard.core.responses import Envelope, ok
from taskboard.core.routing import EnvelopeRoute
from taskboard.database import get_db
from taskboard.models import PostCategory, PostStatus
from taskboard.routers.deps import valid_post_id, valid_user_id
from taskboard.schemas import (
    CommentCreate,
    DeletedPost,
    LikeCreate,
    PostCreate,
    PostRead,
    PostUpdate,
)
from taskboard.services.post_service import PostService

router = APIRouter(prefix="/posts", tags=["posts"], route_class=EnvelopeRoute)


def _found(post) -> PostRead:
    if not post:
        raise NotFoundError("Post not found")
    return PostRead.model_validate(post)


@router.get("", response_model=Envelope[list[PostRead]])
async def fetch_posts(
    status_: PostStatus | None = Query(default=None, alias="status"),
    category: PostCategory | None = None,
    author: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    posts = await PostService.get_all_posts(
        db,
        status=status_.value if status_ else None,
        category=category.value if category else None,
        author=author.lower() if author else None,
    )
    data = [PostRead.model_validate(p) for p in posts]
    return ok(data, "Posts fetched successfully", count=len(data))


@router.post("", response_model=Envelope[PostRead], status_code=status.HTTP_201_CREATED)
async def create_post(post_data: PostCreate, db: AsyncSession = Depends(get_db)):
    post = await PostService.create_post(post_data, db)
    return ok(PostRead.model_validate(post), "Post created successfully")


@router.get("/{post_id}", response_model=Envelope[PostRead])
async def fetch_post(
    post_id: str = Depends(valid_post_id), db: AsyncSession = Depends(get_db)
):
    return ok(_found(await PostService.get_post(post_id, db)), "Post found")


@router.put("/{post_id}", response_model=Envelope[PostRead])
async def update_post(
    post_data: PostUpdate,
    post_id: str = Depends(valid_post_id),
    db: AsyncSession = Depends(get_db),
):
    post = await PostService.update_post(post_id, post_data, db)
    return ok(_found(post), "Post updated successfully")


@router.delete("/{post_id}", response_model=Envelope[DeletedPost])
async def delete_post(
    post_id: str = Depends(valid_post_id), db: AsyncSession = Depends(get_db)
):
    post = await PostService.delete_post(post_id, db)
    if not post:
        raise NotFoundError("Post not found")
    return ok(DeletedPost(id=post.id, title=post.title), "Post deleted successfully")


@router.post("/{post_id}/like", response_model=Envelope[PostRead])
async def like_post(
    like: LikeCreate,
    post_id: str = Depends(valid_post_id),
    db: AsyncSession = Depends(get_db),
):
    post = await PostService.add_like(post_id, like.user, db)
    return ok(_found(post), "Post liked")


@router.delete("/{post_id}/like/{user_id}", response_model=Envelope[PostRead])
async def unlike_post(
    post_id: str = Depends(valid_post_id),
    user_id: str = Depends(valid_user_id),
    db: AsyncSession = Depends(get_db),
):
    post = await PostService.remove_like(post_id, user_id, db)
    return ok(_found(post), "Like removed")


@router.post(
    "/{post_id}/comments",
    response_model=Envelope[PostRead],
    status_code=status.HTTP_201_CREATED,
)
async def comment_on_post(
    comment: CommentCreate,
    post_id: str = Depends(valid_post_id),
    db: AsyncSession = Depends(get_db),
):
    post = await PostService.add_comment(post_id, comment, db)
    return ok(_found(post), "Comment added")


@router.post("/{post_id}/views", response_model=Envelope[PostRead])
async def record_post_view(
    post_id: str = Depends(valid_post_id), db: AsyncSession = Depends(get_db)
):
    post = await PostService.increment_views(post_id, db)
    return ok(_found(post), "View recorded")
