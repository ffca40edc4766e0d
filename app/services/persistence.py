"""
Persistence & linking for extraction results.

Writes happen as an explicit sequence of steps. Parent events are inserted in
one batch and are required; participants, mentions, evidence links and action
items hang off them and are optional: their failures are logged and returned as
PersistenceWarning records while the events stay created. Suggested evidence and
communications are required.

Every row written carries the owner id.
"""

import uuid
from dataclasses import dataclass, field
from typing import Any

from app.db_handlers import (
    ActionItemDBHandler,
    CommunicationDBHandler,
    EventDBHandler,
    EventEvidenceDBHandler,
    EventParticipantDBHandler,
    EvidenceDBHandler,
    EvidenceMentionDBHandler,
)
from app.exceptions import NotFoundError, PersistenceError, PersistenceWarning
from app.models import Evidence
from app.schemas import (
    ExtractedActionItem,
    ExtractedCommunication,
    ExtractedEvent,
    ExtractionResult,
    SuggestedEvidence,
)
from app.utils.logger import setup_logger

logger = setup_logger("persistence")

UNTITLED_EVENT = "Untitled event"
TITLE_MAX_LENGTH = 200

# Extraction participant group -> stored participant role
PARTICIPANT_ROLE_BY_GROUP = {
    "primary": "primary",
    "witnesses": "witness",
    "professionals": "professional",
}


@dataclass
class PersistResult:
    created_event_ids: list[uuid.UUID] = field(default_factory=list)
    created_evidence_ids: list[uuid.UUID] = field(default_factory=list)
    created_communication_ids: list[uuid.UUID] = field(default_factory=list)
    created_action_item_ids: list[uuid.UUID] = field(default_factory=list)
    linked_evidence_count: int = 0
    warnings: list[PersistenceWarning] = field(default_factory=list)

    def warning_dicts(self) -> list[dict[str, Any]]:
        return [w.to_dict() for w in self.warnings]


def build_event_row(event: ExtractedEvent, owner_id: uuid.UUID, transcript: str | None) -> dict[str, Any]:
    title = (event.title or "").strip()[:TITLE_MAX_LENGTH] or UNTITLED_EVENT
    description = (event.description or "").strip() or (transcript or "").strip() or None
    timestamp = event.primary_timestamp
    precision = event.timestamp_precision or "unknown"
    if precision == "unknown" or timestamp is None:
        timestamp, precision = None, "unknown"

    relevance = event.custody_relevance
    return {
        "user_id": owner_id,
        "type": event.type,
        "title": title,
        "description": description,
        "primary_timestamp": timestamp,
        "timestamp_precision": precision,
        "duration_minutes": event.duration_minutes,
        "location": event.location,
        "child_involved": bool(event.child_involved),
        "agreement_violation": relevance.agreement_violation,
        "safety_concern": relevance.safety_concern,
        "welfare_impact": relevance.welfare_impact or "unknown",
    }


def build_participant_rows(
    event_id: uuid.UUID, event: ExtractedEvent, owner_id: uuid.UUID
) -> list[dict[str, Any]]:
    rows = []
    for group, role in PARTICIPANT_ROLE_BY_GROUP.items():
        for label in getattr(event.participants, group):
            label = (label or "").strip()
            if not label:
                continue
            rows.append({"user_id": owner_id, "event_id": event_id, "role": role, "label": label})
    return rows


def build_mention_rows(
    event_id: uuid.UUID, event: ExtractedEvent, owner_id: uuid.UUID
) -> list[dict[str, Any]]:
    rows = []
    for mention in event.evidence_mentioned:
        description = (mention.description or "").strip()
        if not description:
            continue
        rows.append(
            {
                "user_id": owner_id,
                "event_id": event_id,
                "type": mention.type,
                "description": description,
                "status": mention.status,
            }
        )
    return rows


def build_link_rows(
    event_ids: list[uuid.UUID], evidence_ids: list[uuid.UUID], owner_id: uuid.UUID
) -> list[dict[str, Any]]:
    """Every event linked to every evidence item; the first evidence item is primary."""
    return [
        {
            "user_id": owner_id,
            "event_id": event_id,
            "evidence_id": evidence_id,
            "is_primary": i == 0,
        }
        for event_id in event_ids
        for i, evidence_id in enumerate(evidence_ids)
    ]


def _per_row_sources(
    sources: list[Evidence | None] | None, items: list, default: Evidence | None
) -> list[Evidence | None]:
    if sources is None:
        return [default] * len(items)
    if len(sources) != len(items):
        raise ValueError(f"Expected {len(items)} source rows, got {len(sources)}")
    return sources


class PersistenceService:
    def __init__(self):
        self.event_handler = EventDBHandler()
        self.participant_handler = EventParticipantDBHandler()
        self.mention_handler = EvidenceMentionDBHandler()
        self.event_evidence_handler = EventEvidenceDBHandler()
        self.evidence_handler = EvidenceDBHandler()
        self.action_item_handler = ActionItemDBHandler()
        self.communication_handler = CommunicationDBHandler()

    async def resolve_owned_evidence(
        self, evidence_ids: list[uuid.UUID], owner_id: uuid.UUID
    ) -> list[Evidence]:
        """
        Owned evidence rows in supplied order, duplicates removed.

        Any id the owner does not hold raises NotFoundError, so evidence can
        never be linked across users.
        """
        unique_ids = list(dict.fromkeys(evidence_ids))
        if not unique_ids:
            return []
        rows = await self.evidence_handler.get_owned_in_order(unique_ids, owner_id)
        if len(rows) != len(unique_ids):
            missing = len(unique_ids) - len(rows)
            logger.warning(f"[Persist user={owner_id}] {missing} evidence ids not found for owner")
            raise NotFoundError("Evidence not found")
        return rows

    async def resolve_owned_evidence_ids(
        self, evidence_ids: list[uuid.UUID], owner_id: uuid.UUID
    ) -> list[uuid.UUID]:
        return [row.id for row in await self.resolve_owned_evidence(evidence_ids, owner_id)]

    async def insert_events(
        self,
        events: list[ExtractedEvent],
        owner_id: uuid.UUID,
        transcript: str | None = None,
    ) -> list[uuid.UUID]:
        if not events:
            return []
        rows = [build_event_row(e, owner_id, transcript) for e in events]
        try:
            created = await self.event_handler.batch_create(rows)
        except Exception as e:
            logger.error(f"[Persist user={owner_id}] Failed to insert {len(rows)} events: {e}")
            raise PersistenceError("Failed to save events") from e
        logger.info(f"[Persist user={owner_id}] Inserted {len(created)} events")
        return [row.id for row in created]

    async def insert_children(
        self,
        event_ids: list[uuid.UUID],
        events: list[ExtractedEvent],
        owner_id: uuid.UUID,
        warnings: list[PersistenceWarning],
    ) -> None:
        participant_rows: list[dict[str, Any]] = []
        mention_rows: list[dict[str, Any]] = []
        for event_id, event in zip(event_ids, events, strict=True):
            participant_rows.extend(build_participant_rows(event_id, event, owner_id))
            mention_rows.extend(build_mention_rows(event_id, event, owner_id))

        await self._optional_batch(
            self.participant_handler, participant_rows, "participants", owner_id, warnings
        )
        await self._optional_batch(
            self.mention_handler, mention_rows, "evidence_mentions", owner_id, warnings
        )

    async def link_evidence(
        self,
        event_ids: list[uuid.UUID],
        evidence_ids: list[uuid.UUID],
        owner_id: uuid.UUID,
        warnings: list[PersistenceWarning],
    ) -> int:
        rows = build_link_rows(event_ids, evidence_ids, owner_id)
        if not rows:
            return 0
        try:
            created = await self.event_evidence_handler.create_links_skipping_existing(rows)
        except Exception as e:
            logger.warning(f"[Persist user={owner_id}] Linking evidence to events failed: {e}")
            warnings.append(PersistenceWarning(step="evidence_links", message=str(e), rows=len(rows)))
            return 0
        return len(created)

    async def insert_evidence(
        self,
        suggestions: list[SuggestedEvidence],
        owner_id: uuid.UUID,
        source: Evidence | None = None,
        sources: list[Evidence | None] | None = None,
    ) -> list[uuid.UUID]:
        """
        Insert model-suggested evidence rows.

        `sources`, when given, runs parallel to `suggestions` and names the
        stored image each suggestion was read from; otherwise every row points
        at `source`.
        """
        if not suggestions:
            return []
        sources = _per_row_sources(sources, suggestions, source)
        rows = [
            {
                "user_id": owner_id,
                "source_type": s.source_type,
                "summary": s.summary,
                "tags": list(s.tags),
                "storage_path": src.storage_path if src else None,
                "original_filename": src.original_filename if src else None,
                "mime_type": src.mime_type if src else None,
            }
            for s, src in zip(suggestions, sources, strict=True)
        ]
        try:
            created = await self.evidence_handler.batch_create(rows)
        except Exception as e:
            logger.error(f"[Persist user={owner_id}] Failed to insert suggested evidence: {e}")
            raise PersistenceError("Failed to save suggested evidence") from e
        return [row.id for row in created]

    async def insert_action_items(
        self,
        items: list[ExtractedActionItem],
        event_ids: list[uuid.UUID],
        owner_id: uuid.UUID,
        warnings: list[PersistenceWarning],
    ) -> list[uuid.UUID]:
        first_event_id = event_ids[0] if event_ids else None
        rows = [
            {
                "user_id": owner_id,
                "event_id": first_event_id,
                "priority": item.priority,
                "type": item.type,
                "description": item.description.strip(),
                "deadline": item.deadline,
                "status": "open",
            }
            for item in items
            if item.description and item.description.strip()
        ]
        created = await self._optional_batch(
            self.action_item_handler, rows, "action_items", owner_id, warnings
        )
        return [row.id for row in created]

    async def insert_communications(
        self,
        communications: list[ExtractedCommunication],
        owner_id: uuid.UUID,
        source: Evidence | None = None,
        sources: list[Evidence | None] | None = None,
    ) -> list[uuid.UUID]:
        if not communications:
            return []
        sources = _per_row_sources(sources, communications, source)
        rows = [
            {
                "user_id": owner_id,
                "evidence_id": src.id if src else None,
                "medium": c.medium,
                "direction": c.direction,
                "subject": c.subject,
                "summary": c.summary,
                "body_text": c.body_text,
                "from_label": c.participants.from_,
                "to_labels": list(c.participants.to),
                "other_labels": list(c.participants.others),
                "sent_at": c.sent_at,
                "timestamp_precision": c.timestamp_precision,
                "child_involved": c.child_involved,
                "agreement_violation": c.agreement_violation,
                "safety_concern": c.safety_concern,
                "welfare_impact": c.welfare_impact,
            }
            for c, src in zip(communications, sources, strict=True)
        ]
        try:
            created = await self.communication_handler.batch_create(rows)
        except Exception as e:
            logger.error(f"[Persist user={owner_id}] Failed to insert communications: {e}")
            raise PersistenceError("Failed to save communications") from e
        return [row.id for row in created]

    async def persist(
        self,
        result: ExtractionResult,
        owner_id: uuid.UUID,
        linked_evidence_ids: list[uuid.UUID] | None = None,
        *,
        transcript: str | None = None,
        source_evidence: Evidence | None = None,
        communication_sources: list[Evidence | None] | None = None,
        suggestion_sources: list[Evidence | None] | None = None,
    ) -> PersistResult:
        """
        Write an extraction result. Raises PersistenceError only for required steps.

        `source_evidence` is the image every communication and suggestion came
        from. When one capture carries several images, the per-row
        `communication_sources` and `suggestion_sources` lists take its place.
        """
        out = PersistResult()
        linked_evidence_ids = linked_evidence_ids or []

        out.created_event_ids = await self.insert_events(result.events, owner_id, transcript)
        if out.created_event_ids:
            await self.insert_children(out.created_event_ids, result.events, owner_id, out.warnings)
            out.linked_evidence_count = await self.link_evidence(
                out.created_event_ids, linked_evidence_ids, owner_id, out.warnings
            )

        out.created_evidence_ids = await self.insert_evidence(
            result.evidence, owner_id, source_evidence, sources=suggestion_sources
        )
        out.created_action_item_ids = await self.insert_action_items(
            result.action_items, out.created_event_ids, owner_id, out.warnings
        )
        out.created_communication_ids = await self.insert_communications(
            result.communications, owner_id, source_evidence, sources=communication_sources
        )

        if out.warnings:
            logger.warning(
                f"[Persist user={owner_id}] Completed with {len(out.warnings)} warnings: "
                f"{[w.step for w in out.warnings]}"
            )
        return out

    async def _optional_batch(
        self,
        handler,
        rows: list[dict[str, Any]],
        step: str,
        owner_id: uuid.UUID,
        warnings: list[PersistenceWarning],
    ) -> list:
        if not rows:
            return []
        try:
            return await handler.batch_create(rows)
        except Exception as e:
            logger.warning(f"[Persist user={owner_id}] Optional step '{step}' failed for {len(rows)} rows: {e}")
            warnings.append(PersistenceWarning(step=step, message=str(e), rows=len(rows)))
            return []
