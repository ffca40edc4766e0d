from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db_handlers.base import BaseDBHandler, check_local_db
from app.models.user import Profile, User
from app.utils.logger import setup_logger

logger = setup_logger("db_handlers.user")


class UserDBHandler(BaseDBHandler[User]):
    def __init__(self):
        super().__init__(User)

    @check_local_db
    async def get_user_by_username(
        self, username: str, *, db: AsyncSession = None
    ) -> User | None:
        """Get a user by username."""
        try:
            stmt = select(User).filter(User.username == username)
            result = await db.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving user by username '{username}': {e}")
            raise


class ProfileDBHandler(BaseDBHandler[Profile]):
    def __init__(self):
        super().__init__(Profile)

    @check_local_db
    async def get_by_user(
        self, user_id: uuid.UUID, *, db: AsyncSession = None
    ) -> Profile | None:
        stmt = select(Profile).where(Profile.user_id == user_id)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()
