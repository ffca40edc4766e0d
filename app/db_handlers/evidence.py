from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db_handlers.base import OwnedDBHandler, check_local_db
from app.models.evidence import Evidence
from app.utils.logger import setup_logger

logger = setup_logger("db_handlers.evidence")


class EvidenceDBHandler(OwnedDBHandler[Evidence]):
    def __init__(self):
        super().__init__(Evidence)

    @check_local_db
    async def get_owned_in_order(
        self, ids: list[uuid.UUID], user_id: uuid.UUID, *, db: AsyncSession = None
    ) -> list[Evidence]:
        """Owned evidence rows in the order the ids were supplied. Foreign ids are dropped."""
        if not ids:
            return []
        stmt = select(Evidence).where(
            Evidence.id.in_(ids), Evidence.user_id == user_id
        )
        result = await db.execute(stmt)
        by_id = {row.id: row for row in result.scalars().all()}
        return [by_id[i] for i in ids if i in by_id]
