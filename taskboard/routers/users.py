from fastapi import APIRouter, Depends, Query, status
from sqlmodel.ext.asyncio.session import AsyncSession

from taskboard.core.exceptions import NotFoundError
from taskboard.core.responses import Envelope, ok
from taskboard.core.routing import EnvelopeRoute
from taskboard.database import get_db
from taskboard.models import Role
from taskboard.routers.deps import valid_user_id
from taskboard.schemas import DeletedUser, UserCreate, UserRead, UserUpdate
from taskboard.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["users"], route_class=EnvelopeRoute)


@router.get("", response_model=Envelope[list[UserRead]])
async def fetch_users(
    is_active: bool | None = Query(default=None, alias="isActive"),
    role: Role | None = None,
    db: AsyncSession = Depends(get_db),
):
    """List users, newest first. The unfiltered list is served cache-aside."""
    if is_active is None and role is None:
        result = await UserService.get_cached_users(db)
        users = result.value
        message = (
            "Users fetched from cache"
            if result.source == "cache"
            else "Users fetched successfully"
        )
        return ok(users, message, count=len(users), source=result.source)

    users = await UserService.get_all_users(
        db, is_active=is_active, role=role.value if role else None
    )
    data = [UserRead.model_validate(u) for u in users]
    return ok(data, "Users fetched successfully", count=len(data), source="database")


@router.post("", response_model=Envelope[UserRead], status_code=status.HTTP_201_CREATED)
async def create_user(user_data: UserCreate, db: AsyncSession = Depends(get_db)):
    user = await UserService.create_user(user_data, db)
    return ok(UserRead.model_validate(user), "User created successfully")


@router.get("/{user_id}", response_model=Envelope[UserRead])
async def fetch_user(
    user_id: str = Depends(valid_user_id), db: AsyncSession = Depends(get_db)
):
    user = await UserService.get_user(user_id, db)
    if not user:
        raise NotFoundError("User not found")
    return ok(UserRead.model_validate(user), "User found")


@router.put("/{user_id}", response_model=Envelope[UserRead])
async def update_user(
    user_data: UserUpdate,
    user_id: str = Depends(valid_user_id),
    db: AsyncSession = Depends(get_db),
):
    user = await UserService.update_user(user_id, user_data, db)
    if not user:
        raise NotFoundError("User not found")
    return ok(UserRead.model_validate(user), "User updated successfully")


@router.delete("/{user_id}", response_model=Envelope[DeletedUser])
async def delete_user(
    user_id: str = Depends(valid_user_id), db: AsyncSession = Depends(get_db)
):
    user = await UserService.delete_user(user_id, db)
    if not user:
        raise NotFoundError("User not found")
    return ok(DeletedUser(id=user.id, name=user.name), "User deleted successfully")
