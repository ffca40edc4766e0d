"""
Capture Orchestrator Service - coordinates capture-to-timeline processing.

Architecture: gate → intake → owned evidence → transcription → context →
extraction → journal entry → persistence, run either inline for a request or
on the job dispatcher for a submitted journal entry. The gate always runs
before any paid call.
"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any

from app.db_handlers import (
    JobDBHandler,
    JournalEntryDBHandler,
    JournalEntryEvidenceDBHandler,
)
from app.exceptions import (
    DaylightError,
    InputValidationError,
    PersistenceError,
    PersistenceWarning,
    ServiceUnavailable,
)
from app.schemas import ExtractionResult, SaveEventsRequest
from app.services.evidence_service import EvidenceService
from app.services.extraction_context import ExtractionContextLoader
from app.services.job_dispatcher import (
    JobDispatcher,
    JournalExtractionRequested,
    get_job_dispatcher,
)
from app.services.llm_extractor import (
    extract_communications,
    extract_events,
    merge_usage,
)
from app.services.llm_interface import LLMInterface
from app.services.llm_service import get_llm_client
from app.services.media_intake import (
    AudioClip,
    ImageUpload,
    build_capture_input,
    validate_audio,
)
from app.services.persistence import PersistenceService, PersistResult
from app.services.temporal import normalize_event_timing
from app.services.transcription_service import TranscriptionResult, transcribe
from app.services.usage_gate import UsageGate
from app.utils.logger import setup_logger

logger = setup_logger("capture_orchestrator")


@dataclass
class CaptureOutcome:
    created_event_ids: list[uuid.UUID]
    journal_entry_id: uuid.UUID | None
    warnings: list[dict[str, Any]] = field(default_factory=list)
    usage: dict[str, Any] | None = None
    linked_evidence_count: int = 0

    def to_response(self) -> dict[str, Any]:
        return {
            "createdEventIds": [str(i) for i in self.created_event_ids],
            "journalEntryId": str(self.journal_entry_id) if self.journal_entry_id else None,
            "warnings": self.warnings,
            "usage": self.usage,
        }


def build_result_summary(persisted: PersistResult, evidence_processed: int) -> dict[str, Any]:
    return {
        "events_created": len(persisted.created_event_ids),
        "evidence_processed": evidence_processed,
        "action_items_created": len(persisted.created_action_item_ids),
        "event_ids": [str(i) for i in persisted.created_event_ids],
        "warnings": persisted.warning_dicts(),
    }


def _add_costs(*costs: float | None) -> float | None:
    present = [c for c in costs if c is not None]
    return round(sum(present), 6) if present else None


def _error_message(error: Exception) -> str:
    if isinstance(error, DaylightError):
        return error.message
    return f"Extraction failed: {type(error).__name__}"


class CaptureOrchestratorService:
    """Orchestrates synchronous captures and asynchronous journal extraction."""

    def __init__(
        self,
        llm_client: LLMInterface | None = None,
        dispatcher: JobDispatcher | None = None,
    ):
        self.gate = UsageGate()
        self.persistence = PersistenceService()
        self.context_loader = ExtractionContextLoader()
        self.journal_handler = JournalEntryDBHandler()
        self.journal_evidence_handler = JournalEntryEvidenceDBHandler()
        self.job_handler = JobDBHandler()
        self.evidence_service = EvidenceService(llm_client=llm_client)
        self._llm_client = llm_client
        self.dispatcher = dispatcher or get_job_dispatcher()

    @property
    def llm_client(self) -> LLMInterface | None:
        return self._llm_client or get_llm_client()

    # ------------------------------------------------------------------
    # Synchronous capture
    # ------------------------------------------------------------------

    async def capture_now(
        self,
        user_id: uuid.UUID,
        *,
        narrative_text: str | None = None,
        audio: AudioClip | None = None,
        images: list[ImageUpload] | None = None,
        user_annotation: str | None = None,
        reference_date: date | None = None,
        reference_time_description: str | None = None,
        evidence_ids: list[uuid.UUID] | None = None,
    ) -> CaptureOutcome:
        log_prefix = f"[Capture user={user_id}]"
        await self.gate.ensure_can_capture(user_id)

        capture = build_capture_input(
            narrative_text=narrative_text,
            audio=audio,
            images=images,
            user_annotation=user_annotation,
            reference_date=reference_date,
            reference_time_description=reference_time_description,
        )
        evidence = await self.persistence.resolve_owned_evidence(evidence_ids or [], user_id)

        # Capture images become owned evidence before any model call, one at a time
        stored_images = []
        for image in capture.images:
            stored_images.append(
                await self.evidence_service.upload_evidence(
                    user_id, image.data, image.filename, image.mime_type, capture.user_annotation
                )
            )
        evidence = evidence + stored_images

        transcript = None
        if capture.audio is not None:
            transcription = await transcribe(
                self.llm_client,
                capture.audio.data,
                capture.audio.mime_type,
                capture.audio.filename,
            )
            transcript = transcription.transcript
            if transcription.is_empty and not capture.narrative_text and not capture.images:
                raise InputValidationError("No speech was detected in the recording")

        narrative = "\n\n".join(p for p in (capture.narrative_text, transcript) if p)

        context = await self.context_loader.load(
            user_id,
            reference_date=capture.reference_date,
            reference_time_description=capture.reference_time_description,
            evidence=evidence,
        )

        result = ExtractionResult()
        audit: dict[str, Any] = {}
        if narrative:
            result = await extract_events(self.llm_client, narrative, context)
            audit["narrative"] = result.audit.data if result.audit else None
        communication_sources: list = [None] * len(result.communications)
        suggestion_sources: list = [None] * len(result.evidence)

        # Images are analyzed one at a time, after the narrative
        for i, (image, stored) in enumerate(zip(capture.images, stored_images, strict=True)):
            _, image_result = await extract_communications(
                self.llm_client,
                context,
                image_bytes=image.data,
                mime_type=image.mime_type,
                annotation=capture.user_annotation,
            )
            audit[f"image_{i + 1}"] = image_result.audit.data if image_result.audit else None
            communication_sources += [stored] * len(image_result.communications)
            suggestion_sources += [stored] * len(image_result.evidence)
            result = result.model_copy(
                update={
                    "events": result.events + image_result.events,
                    "communications": result.communications + image_result.communications,
                    "evidence": result.evidence + image_result.evidence,
                    "usage": merge_usage(result.usage, image_result.usage),
                    "cost": _add_costs(result.cost, image_result.cost),
                }
            )

        now = datetime.now(UTC)
        journal_entry = await self.journal_handler.create(
            {
                "user_id": user_id,
                "event_text": narrative or (capture.user_annotation or ""),
                "reference_date": capture.reference_date,
                "reference_time_description": capture.reference_time_description,
                "status": "completed",
                "extraction_raw": audit,
                "processed_at": now,
                "completed_at": now,
            }
        )

        evidence_ids_owned = [e.id for e in evidence]
        persisted = await self.persistence.persist(
            result,
            user_id,
            evidence_ids_owned,
            transcript=transcript or narrative,
            communication_sources=communication_sources,
            suggestion_sources=suggestion_sources,
        )
        await self._attach_journal_evidence(journal_entry.id, evidence_ids_owned, user_id, persisted)

        logger.info(
            f"{log_prefix} Created {len(persisted.created_event_ids)} events, "
            f"journal entry {journal_entry.id}, {len(persisted.warnings)} warnings"
        )
        usage = dict(result.usage) if result.usage else None
        if usage is not None:
            usage["cost"] = result.cost
        return CaptureOutcome(
            created_event_ids=persisted.created_event_ids,
            journal_entry_id=journal_entry.id,
            warnings=persisted.warning_dicts(),
            usage=usage,
            linked_evidence_count=persisted.linked_evidence_count,
        )

    async def transcribe_only(self, user_id: uuid.UUID, audio: AudioClip) -> TranscriptionResult:
        """Speech-to-text for a recording the client will review before extraction."""
        await self.gate.ensure_can_capture(user_id)
        clip = validate_audio(audio)
        result = await transcribe(self.llm_client, clip.data, clip.mime_type, clip.filename)
        logger.info(f"[Transcribe user={user_id}] {len(clip.data)} bytes -> {len(result.transcript)} chars")
        return result

    async def preview_extraction(
        self,
        user_id: uuid.UUID,
        transcript: str,
        reference_date: date | None = None,
        reference_time_description: str | None = None,
    ) -> ExtractionResult:
        """Extract from a transcript without persisting anything."""
        await self.gate.ensure_can_capture(user_id)
        capture = build_capture_input(
            narrative_text=transcript,
            reference_date=reference_date,
            reference_time_description=reference_time_description,
        )
        context = await self.context_loader.load(
            user_id,
            reference_date=capture.reference_date,
            reference_time_description=capture.reference_time_description,
        )
        return await extract_events(self.llm_client, capture.narrative_text, context)

    async def save_events(self, user_id: uuid.UUID, request: SaveEventsRequest) -> CaptureOutcome:
        """Persist extraction output the user has reviewed on the client."""
        await self.gate.ensure_can_capture(user_id)
        if not request.events:
            raise InputValidationError("At least one event is required")

        evidence = await self.persistence.resolve_owned_evidence(request.evidence_ids, user_id)
        context = await self.context_loader.load(user_id, reference_date=request.reference_date)
        events = [normalize_event_timing(e, context.timezone) for e in request.events]

        now = datetime.now(UTC)
        journal_entry = await self.journal_handler.create(
            {
                "user_id": user_id,
                "event_text": request.transcript or "",
                "reference_date": request.reference_date,
                "reference_time_description": request.reference_time_description,
                "status": "completed",
                "extraction_raw": request.extraction_raw
                or {"events": [e.model_dump(mode="json") for e in events]},
                "processed_at": now,
                "completed_at": now,
            }
        )

        evidence_ids_owned = [e.id for e in evidence]
        persisted = await self.persistence.persist(
            ExtractionResult(events=events, action_items=request.action_items),
            user_id,
            evidence_ids_owned,
            transcript=request.transcript,
        )
        await self._attach_journal_evidence(journal_entry.id, evidence_ids_owned, user_id, persisted)

        logger.info(
            f"[SaveEvents user={user_id}] Saved {len(persisted.created_event_ids)} reviewed events "
            f"to journal entry {journal_entry.id}"
        )
        return CaptureOutcome(
            created_event_ids=persisted.created_event_ids,
            journal_entry_id=journal_entry.id,
            warnings=persisted.warning_dicts(),
            linked_evidence_count=persisted.linked_evidence_count,
        )

    async def _attach_journal_evidence(
        self,
        journal_entry_id: uuid.UUID,
        evidence_ids: list[uuid.UUID],
        user_id: uuid.UUID,
        persisted: PersistResult,
    ) -> None:
        if not evidence_ids:
            return
        try:
            await self.journal_evidence_handler.attach_evidence(journal_entry_id, evidence_ids, user_id)
        except Exception as e:
            logger.warning(f"[Capture user={user_id}] Linking evidence to journal entry failed: {e}")
            persisted.warnings.append(
                PersistenceWarning(step="journal_evidence", message=str(e), rows=len(evidence_ids))
            )

    # ------------------------------------------------------------------
    # Asynchronous journal submission
    # ------------------------------------------------------------------

    async def submit_journal(
        self,
        user_id: uuid.UUID,
        event_text: str | None,
        reference_date: date | None = None,
        reference_time_description: str | None = None,
        evidence_ids: list[uuid.UUID] | None = None,
    ) -> dict[str, Any]:
        await self.gate.ensure_can_capture(user_id)
        capture = build_capture_input(
            narrative_text=event_text or "",
            reference_date=reference_date,
            reference_time_description=reference_time_description,
        )
        owned_ids = await self.persistence.resolve_owned_evidence_ids(evidence_ids or [], user_id)

        journal_entry = await self.journal_handler.create(
            {
                "user_id": user_id,
                "event_text": capture.narrative_text,
                "reference_date": capture.reference_date,
                "reference_time_description": capture.reference_time_description,
                "status": "processing",
            }
        )
        job = await self.job_handler.create_job(
            {
                "user_id": user_id,
                "type": "journal_extraction",
                "journal_entry_id": journal_entry.id,
            }
        )
        job_id = uuid.UUID(str(job["id"]))

        message = JournalExtractionRequested(
            job_id=job_id,
            journal_entry_id=journal_entry.id,
            user_id=user_id,
            event_text=capture.narrative_text,
            reference_date=capture.reference_date,
            reference_time_description=capture.reference_time_description,
            evidence_ids=tuple(owned_ids),
        )
        try:
            self.dispatcher.publish(message)
        except (RuntimeError, LookupError) as e:
            # Nothing will ever pick the job up; close it out instead of leaving it pending
            logger.error(f"[Job {job_id}] Could not queue journal extraction: {e}")
            error = ServiceUnavailable("Journal processing is unavailable right now, please retry")
            await self.mark_failed(message, error)
            raise error from e
        logger.info(f"[Job {job_id}] Queued journal extraction for entry {journal_entry.id}")
        return {
            "journalEntryId": str(journal_entry.id),
            "jobId": str(job_id),
            "message": "Processing started",
        }

    async def run_journal_extraction(self, payload: JournalExtractionRequested) -> None:
        """Worker for JournalExtractionRequested. Safe to run more than once per job."""
        log_prefix = f"[Job {payload.job_id}]"
        job = await self.job_handler.get_owned(payload.job_id, payload.user_id)
        if job is None:
            logger.warning(f"{log_prefix} Job not found, dropping message")
            return
        if job.is_terminal:
            logger.info(f"{log_prefix} Job already {job.status}, skipping redelivery")
            return

        await self.job_handler.update_job_status(payload.job_id, payload.user_id, "processing")

        evidence_ids = list(payload.evidence_ids)
        if evidence_ids:
            await self.journal_evidence_handler.attach_evidence(
                payload.journal_entry_id, evidence_ids, payload.user_id
            )
        evidence = await self.persistence.resolve_owned_evidence(evidence_ids, payload.user_id)

        context = await self.context_loader.load(
            payload.user_id,
            reference_date=payload.reference_date,
            reference_time_description=payload.reference_time_description,
            evidence=evidence,
        )
        result = await extract_events(self.llm_client, payload.event_text, context)

        persisted = await self.persistence.persist(
            result,
            payload.user_id,
            [e.id for e in evidence],
            transcript=payload.event_text,
        )

        now = datetime.now(UTC)
        updated = await self.journal_handler.update_owned(
            payload.journal_entry_id,
            payload.user_id,
            {
                "status": "completed",
                "extraction_raw": result.audit.data if result.audit else None,
                "processed_at": now,
                "completed_at": now,
            },
        )
        if updated is None:
            raise PersistenceError("Journal entry disappeared during processing")

        summary = build_result_summary(persisted, evidence_processed=len(evidence))
        await self.job_handler.update_job_status(
            payload.job_id, payload.user_id, "completed", result_summary=summary
        )
        logger.info(
            f"{log_prefix} Completed: {summary['events_created']} events, "
            f"{summary['action_items_created']} action items, {len(summary['warnings'])} warnings"
        )

    async def mark_failed(self, payload: JournalExtractionRequested, error: Exception) -> None:
        """Record a job that exhausted its attempts."""
        log_prefix = f"[Job {payload.job_id}]"
        message = _error_message(error)

        job = await self.job_handler.get_owned(payload.job_id, payload.user_id)
        if job is not None and not job.is_terminal:
            if job.status == "pending":
                await self.job_handler.update_job_status(payload.job_id, payload.user_id, "processing")
            await self.job_handler.update_job_status(
                payload.job_id, payload.user_id, "failed", error_message=message
            )

        await self.journal_handler.update_owned(
            payload.journal_entry_id,
            payload.user_id,
            {"status": "cancelled", "processing_error": message},
        )
        logger.error(f"{log_prefix} Failed permanently: {message}")


def register_journal_worker(dispatcher: JobDispatcher, orchestrator: CaptureOrchestratorService) -> None:
    dispatcher.register(
        JournalExtractionRequested,
        orchestrator.run_journal_extraction,
        on_final_failure=orchestrator.mark_failed,
    )
