from datetime import datetime, timezone

import structlog
from sqlalchemy.exc import IntegrityError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from taskboard.cache.decorators import async_cached, async_cached_expire
from taskboard.core.config import get_settings
from taskboard.core.exceptions import ConflictError
from taskboard.models import User
from taskboard.schemas import UserCreate, UserRead, UserUpdate

logger = structlog.get_logger(__name__)


def _users_cache_key(*_, **__) -> str:
    return get_settings().users_cache_key


def _users_cache_ttl() -> int:
    return get_settings().users_cache_ttl_seconds


class UserService:
    @staticmethod
    async def get_all_users(
        db: AsyncSession,
        is_active: bool | None = None,
        role: str | None = None,
    ):
        query = select(User)
        if is_active is not None:
            query = query.where(User.is_active == is_active)
        query = query.order_by(User.created_at.desc())

        result = await db.exec(query)
        users = result.all()
        if role:
            # roles is a JSON column; filter after loading
            users = [u for u in users if role in (u.roles or [])]
        return users

    @staticmethod
    @async_cached(
        _users_cache_key, ttl=_users_cache_ttl, accept=lambda value: isinstance(value, list)
    )
    async def get_cached_users(db: AsyncSession):
        """Full user list as JSON-ready dicts, wrapped in a CachedResult."""
        users = await UserService.get_all_users(db)
        return [UserRead.model_validate(u) for u in users]

    @staticmethod
    async def get_user(user_id: str, db: AsyncSession):
        return await db.get(User, user_id)

    @staticmethod
    async def get_user_by_email(email: str, db: AsyncSession, exclude_id: str | None = None):
        query = select(User).where(User.email == email.lower())
        if exclude_id:
            query = query.where(User.id != exclude_id)
        result = await db.exec(query)
        return result.first()

    @staticmethod
    @async_cached_expire(_users_cache_key)
    async def create_user(user_data: UserCreate, db: AsyncSession):
        if await UserService.get_user_by_email(user_data.email, db):
            raise ConflictError("User with this email already exists")

        user = User(**user_data.model_dump(mode="json"))
        db.add(user)
        try:
            await db.commit()
        except IntegrityError as e:
            # lost a race against a concurrent insert with the same email
            await db.rollback()
            raise ConflictError("User with this email already exists") from e
        await db.refresh(user)
        logger.info("User created", user_id=user.id)
        return user

    @staticmethod
    @async_cached_expire(_users_cache_key)
    async def update_user(user_id: str, user_data: UserUpdate, db: AsyncSession):
        user = await db.get(User, user_id)
        if not user:
            return None

        update_data = user_data.model_dump(mode="json", exclude_unset=True)
        if "email" in update_data and await UserService.get_user_by_email(
            update_data["email"], db, exclude_id=user_id
        ):
            raise ConflictError("Another user with this email already exists")

        user.sqlmodel_update(update_data)
        user.updated_at = datetime.now(timezone.utc)
        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            raise ConflictError("Another user with this email already exists") from e
        await db.refresh(user)
        logger.info("User updated", user_id=user.id, fields=sorted(update_data))
        return user

    @staticmethod
    @async_cached_expire(_users_cache_key)
    async def delete_user(user_id: str, db: AsyncSession):
        user = await db.get(User, user_id)
        if not user:
            return None
        await db.delete(user)
        await db.commit()
        logger.info("User deleted", user_id=user_id)
        return user
