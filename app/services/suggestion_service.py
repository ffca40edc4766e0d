"""
Evidence suggestions for existing events.

Events are read owner-scoped and never modified; suggestions are stored as
separate rows, and only for events the caller owns.
"""

import uuid
from typing import Any

from app.db_handlers import EventDBHandler, EventEvidenceSuggestionDBHandler
from app.exceptions import InputValidationError, NotFoundError, PersistenceError
from app.services.extraction_context import ExtractionContextLoader
from app.services.llm_extractor import suggest_evidence
from app.services.llm_interface import LLMInterface
from app.services.llm_service import get_llm_client
from app.utils.logger import setup_logger

logger = setup_logger("suggestion_service")


def _parse_ids(raw_ids: list[str]) -> list[uuid.UUID] | None:
    """Unique ids in supplied order, or None when any id is malformed."""
    parsed = []
    for raw in raw_ids:
        try:
            parsed.append(uuid.UUID(raw))
        except ValueError:
            logger.debug(f"Malformed event id '{raw}'")
            return None
    return list(dict.fromkeys(parsed))


class SuggestionService:
    def __init__(self, llm_client: LLMInterface | None = None):
        self.event_handler = EventDBHandler()
        self.suggestion_handler = EventEvidenceSuggestionDBHandler()
        self.context_loader = ExtractionContextLoader()
        self._llm_client = llm_client

    @property
    def llm_client(self) -> LLMInterface | None:
        return self._llm_client or get_llm_client()

    async def suggest_for_events(self, user_id: uuid.UUID, event_ids: list[str]) -> dict[str, Any]:
        trimmed = [e.strip() for e in event_ids if e and e.strip()]
        if not trimmed:
            raise InputValidationError("eventIds must contain at least one id")

        # Every id must be owned; a malformed or foreign id fails the whole request
        parsed = _parse_ids(trimmed)
        if parsed is None:
            raise NotFoundError("No events found")
        events = await self.event_handler.get_owned_by_ids(parsed, user_id)
        if not events:
            raise NotFoundError("No events found")
        if len(events) != len(parsed):
            logger.warning(
                f"[Suggest user={user_id}] {len(parsed) - len(events)} of {len(parsed)} event ids not found for owner"
            )
            raise NotFoundError("Event not found")

        context = await self.context_loader.load(user_id)
        completion = await suggest_evidence(
            self.llm_client, [e.to_dict() for e in events], context.case_context
        )

        owned = {str(e.id): e.id for e in events}
        kept_groups = [g for g in completion.parsed.suggestions if g.event_id in owned]
        dropped = len(completion.parsed.suggestions) - len(kept_groups)
        if dropped:
            logger.warning(f"[Suggest user={user_id}] Dropped {dropped} suggestion groups for unknown events")

        rows = [
            {
                "user_id": user_id,
                "event_id": owned[group.event_id],
                "evidence_type": item.evidence_type,
                "evidence_status": item.evidence_status,
                "description": item.description.strip(),
            }
            for group in kept_groups
            for item in group.suggestions
            if item.description.strip()
        ]
        if rows:
            try:
                await self.suggestion_handler.batch_create(rows)
            except Exception as e:
                logger.error(f"[Suggest user={user_id}] Failed to store {len(rows)} suggestions: {e}")
                raise PersistenceError("Failed to save evidence suggestions") from e

        logger.info(f"[Suggest user={user_id}] Stored {len(rows)} suggestions for {len(kept_groups)} events")
        return {
            "suggestions": [g.model_dump(mode="json") for g in kept_groups],
            "metadata": completion.parsed.metadata.model_dump(mode="json"),
            "_usage": completion.usage,
            "_cost": completion.cost,
        }
