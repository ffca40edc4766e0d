from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db_handlers.base import OwnedDBHandler, check_local_db
from app.models.event import (
    Event,
    EventEvidenceSuggestion,
    EventParticipant,
    EvidenceMention,
)
from app.models.evidence import EventEvidence
from app.utils.logger import setup_logger

logger = setup_logger("db_handlers.event")


class EventDBHandler(OwnedDBHandler[Event]):
    def __init__(self):
        super().__init__(Event)


class EventParticipantDBHandler(OwnedDBHandler[EventParticipant]):
    def __init__(self):
        super().__init__(EventParticipant)


class EvidenceMentionDBHandler(OwnedDBHandler[EvidenceMention]):
    def __init__(self):
        super().__init__(EvidenceMention)


class EventEvidenceSuggestionDBHandler(OwnedDBHandler[EventEvidenceSuggestion]):
    def __init__(self):
        super().__init__(EventEvidenceSuggestion)


class EventEvidenceDBHandler(OwnedDBHandler[EventEvidence]):
    def __init__(self):
        super().__init__(EventEvidence)

    @check_local_db
    async def create_links_skipping_existing(
        self, links: list[dict[str, Any]], *, db: AsyncSession = None
    ) -> list[EventEvidence]:
        """
        Insert event/evidence pairs that are not linked yet.

        Re-running the same capture therefore never duplicates a link.
        """
        if not links:
            return []

        event_ids = {link["event_id"] for link in links}
        stmt = select(EventEvidence.event_id, EventEvidence.evidence_id).where(
            EventEvidence.event_id.in_(event_ids)
        )
        result = await db.execute(stmt)
        existing = {(row[0], row[1]) for row in result.all()}

        new_links = [
            link
            for link in links
            if (link["event_id"], link["evidence_id"]) not in existing
        ]
        if len(new_links) < len(links):
            logger.debug(
                f"Skipping {len(links) - len(new_links)} event/evidence links that already exist"
            )
        return await self.batch_create(new_links, db=db)
