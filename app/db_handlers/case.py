from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db_handlers.base import OwnedDBHandler, check_local_db
from app.models.case import Case, Subscription
from app.utils.logger import setup_logger

logger = setup_logger("db_handlers.case")


class CaseDBHandler(OwnedDBHandler[Case]):
    def __init__(self):
        super().__init__(Case)

    @check_local_db
    async def get_latest_case(
        self, user_id: uuid.UUID, *, db: AsyncSession = None
    ) -> Case | None:
        """The user's most recently updated case, used as extraction context."""
        stmt = (
            select(Case)
            .where(Case.user_id == user_id)
            .order_by(Case.updated_at.desc())
            .limit(1)
        )
        result = await db.execute(stmt)
        return result.scalars().first()


class SubscriptionDBHandler(OwnedDBHandler[Subscription]):
    def __init__(self):
        super().__init__(Subscription)

    @check_local_db
    async def get_latest_subscription(
        self, user_id: uuid.UUID, *, db: AsyncSession = None
    ) -> Subscription | None:
        stmt = (
            select(Subscription)
            .where(Subscription.user_id == user_id)
            .order_by(Subscription.updated_at.desc())
            .limit(1)
        )
        result = await db.execute(stmt)
        return result.scalars().first()
