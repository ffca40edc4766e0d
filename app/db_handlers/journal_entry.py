from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db_handlers.base import OwnedDBHandler, check_local_db
from app.models.journal_entry import JournalEntry, JournalEntryEvidence
from app.utils.logger import setup_logger

logger = setup_logger("db_handlers.journal_entry")


class JournalEntryDBHandler(OwnedDBHandler[JournalEntry]):
    def __init__(self):
        super().__init__(JournalEntry)


class JournalEntryEvidenceDBHandler(OwnedDBHandler[JournalEntryEvidence]):
    def __init__(self):
        super().__init__(JournalEntryEvidence)

    @check_local_db
    async def attach_evidence(
        self,
        journal_entry_id: uuid.UUID,
        evidence_ids: list[uuid.UUID],
        user_id: uuid.UUID,
        *,
        db: AsyncSession = None,
    ) -> list[JournalEntryEvidence]:
        """
        Attach evidence to an entry as processed, appending after existing links.

        Evidence already attached to the entry is skipped, so a redelivered job
        does not duplicate links.
        """
        if not evidence_ids:
            return []

        existing_stmt = select(JournalEntryEvidence.evidence_id).where(
            JournalEntryEvidence.journal_entry_id == journal_entry_id
        )
        existing = {row[0] for row in (await db.execute(existing_stmt)).all()}

        max_stmt = select(func.max(JournalEntryEvidence.sort_order)).where(
            JournalEntryEvidence.journal_entry_id == journal_entry_id
        )
        current_max = (await db.execute(max_stmt)).scalar_one_or_none()
        next_order = 0 if current_max is None else current_max + 1

        now = datetime.now(UTC)
        rows = []
        for evidence_id in evidence_ids:
            if evidence_id in existing:
                continue
            rows.append(
                {
                    "journal_entry_id": journal_entry_id,
                    "evidence_id": evidence_id,
                    "user_id": user_id,
                    "sort_order": next_order,
                    "is_processed": True,
                    "processed_at": now,
                }
            )
            existing.add(evidence_id)
            next_order += 1

        return await self.batch_create(rows, db=db)
