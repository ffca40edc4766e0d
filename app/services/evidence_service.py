"""
Evidence Service - upload, listing and model-assisted analysis of evidence.

Stored source types are kept as classified; reads present recordings and
unclassified files as documents.
"""

import uuid
from typing import Any

from app.config import settings
from app.db_handlers import EvidenceDBHandler
from app.exceptions import InputValidationError, NotFoundError, PersistenceError
from app.models import Evidence
from app.services.extraction_context import ExtractionContextLoader
from app.services.llm_extractor import (
    analyze_evidence,
    describe_photo,
    extract_communications,
)
from app.services.llm_interface import LLMInterface
from app.services.llm_service import get_llm_client
from app.services.media_intake import (
    ImageUpload,
    SourceType,
    classify_mime,
    presented_source_type,
    validate_image,
)
from app.services.persistence import PersistenceService
from app.services.storage_service import StorageService, build_evidence_path
from app.services.usage_gate import UsageGate
from app.utils.logger import setup_logger

logger = setup_logger("evidence_service")

TYPE_LABELS: dict[SourceType, str] = {
    SourceType.TEXT: "Text message",
    SourceType.EMAIL: "Email",
    SourceType.PHOTO: "Photo",
    SourceType.DOCUMENT: "Document",
}
SUMMARY_TITLE_LENGTH = 60


def evidence_title(evidence: Evidence) -> str:
    """Filename, then storage path, then the summary's first sentence, then a type label."""
    if evidence.original_filename:
        return evidence.original_filename
    if evidence.storage_path:
        return evidence.storage_path
    summary = (evidence.summary or "").strip()
    if summary:
        first_sentence = summary.split(". ")[0].strip()
        if len(first_sentence) > SUMMARY_TITLE_LENGTH:
            return first_sentence[:SUMMARY_TITLE_LENGTH] + "..."
        return first_sentence
    return TYPE_LABELS[presented_source_type(evidence.source_type)]


def present_evidence(evidence: Evidence) -> dict[str, Any]:
    return {
        "id": str(evidence.id),
        "sourceType": presented_source_type(evidence.source_type).value,
        "title": evidence_title(evidence),
        "originalName": evidence.original_filename,
        "mimeType": evidence.mime_type,
        "summary": evidence.summary or "",
        "tags": list(evidence.tags or []),
        "userAnnotation": evidence.user_annotation,
        "createdAt": evidence.created_at.isoformat() if evidence.created_at else None,
    }


class EvidenceService:
    def __init__(self, llm_client: LLMInterface | None = None):
        self.gate = UsageGate()
        self.storage = StorageService()
        self.evidence_handler = EvidenceDBHandler()
        self.persistence = PersistenceService()
        self.context_loader = ExtractionContextLoader()
        self._llm_client = llm_client

    @property
    def llm_client(self) -> LLMInterface | None:
        return self._llm_client or get_llm_client()

    async def get_owned_evidence(self, user_id: uuid.UUID, evidence_id: uuid.UUID) -> Evidence:
        evidence = await self.evidence_handler.get_owned(evidence_id, user_id)
        if evidence is None:
            raise NotFoundError("Evidence not found")
        return evidence

    async def _signed_url_for(self, evidence: Evidence) -> str:
        if not evidence.storage_path:
            raise InputValidationError("Evidence has no stored file")
        return await self.storage.create_signed_url(
            evidence.storage_path, settings.signed_url_ttl_seconds
        )

    async def upload_evidence(
        self,
        user_id: uuid.UUID,
        content: bytes,
        filename: str | None,
        content_type: str | None,
        annotation: str | None = None,
    ) -> Evidence:
        await self.gate.ensure_can_upload_evidence(user_id)

        if not content:
            raise InputValidationError("File is empty")
        if len(content) > settings.max_evidence_bytes:
            raise InputValidationError(
                f"File too large ({len(content)} bytes, max {settings.max_evidence_bytes})"
            )

        mime = content_type or "application/octet-stream"
        path = build_evidence_path(user_id, filename)
        await self.storage.upload(path, content, mime)

        name = filename or path.rsplit("/", 1)[-1]
        evidence = await self.evidence_handler.create(
            {
                "user_id": user_id,
                "source_type": classify_mime(mime).value,
                "storage_path": path,
                "original_filename": filename,
                "mime_type": mime,
                "summary": f"Uploaded file: {name}",
                "tags": [],
                "user_annotation": (annotation or "").strip() or None,
            }
        )
        logger.info(f"[Evidence user={user_id}] Uploaded {name} as {evidence.source_type} ({evidence.id})")
        return evidence

    async def list_evidence(self, user_id: uuid.UUID, limit: int = 100, offset: int = 0) -> list[Evidence]:
        return await self.evidence_handler.list_owned(user_id, limit=limit, offset=offset)

    async def describe_photo(
        self, user_id: uuid.UUID, evidence_id: uuid.UUID, annotation: str | None = None
    ) -> dict[str, Any]:
        evidence = await self.get_owned_evidence(user_id, evidence_id)
        image_url = await self._signed_url_for(evidence)
        context = await self.context_loader.load(user_id)

        completion = await describe_photo(
            self.llm_client, image_url, context, annotation or evidence.user_annotation
        )
        description = completion.parsed

        # Empty model output keeps what is already stored
        updates = {
            "summary": description.summary.strip() or evidence.summary,
            "tags": [t for t in description.tags if t.strip()] or list(evidence.tags or []),
        }
        updated = await self.evidence_handler.update_owned(evidence.id, user_id, updates)
        if updated is None:
            raise NotFoundError("Evidence not found")

        return {
            "evidence": present_evidence(updated),
            "suggestedTitle": description.suggested_title or None,
            "_usage": completion.usage,
            "_cost": completion.cost,
        }

    async def extract_communication(
        self,
        user_id: uuid.UUID,
        *,
        image: ImageUpload | None = None,
        evidence_id: uuid.UUID | None = None,
        annotation: str | None = None,
    ) -> dict[str, Any]:
        """
        Read a message or email screenshot and persist what it shows.

        A new image is stored as evidence first; an existing evidence id is read
        through a signed URL. Extracted events are linked to the source evidence.
        """
        if image is None and evidence_id is None:
            raise InputValidationError("Provide an image or an evidenceId")

        if evidence_id is not None:
            source = await self.get_owned_evidence(user_id, evidence_id)
            if classify_mime(source.mime_type) is not SourceType.PHOTO:
                raise InputValidationError("Evidence is not an image")
            image_kwargs: dict[str, Any] = {"image_url": await self._signed_url_for(source)}
        else:
            image = validate_image(image)
            source = await self.upload_evidence(
                user_id, image.data, image.filename, image.mime_type, annotation
            )
            image_kwargs = {"image_bytes": image.data, "mime_type": image.mime_type}

        context = await self.context_loader.load(user_id)
        extraction, result = await extract_communications(
            self.llm_client, context, annotation=annotation, **image_kwargs
        )

        persisted = await self.persistence.persist(
            result, user_id, [source.id], source_evidence=source
        )

        try:
            await self.evidence_handler.update_owned(
                source.id, user_id, {"extraction_raw": result.audit.data if result.audit else None}
            )
        except Exception as e:
            raise PersistenceError("Failed to store the extraction on the evidence") from e

        response = extraction.model_dump(mode="json", by_alias=True)
        response["_db"] = {
            "created_communication_ids": [str(i) for i in persisted.created_communication_ids],
            "created_event_ids": [str(i) for i in persisted.created_event_ids],
            "created_evidence_ids": [str(i) for i in persisted.created_evidence_ids],
            "source_evidence_id": str(source.id),
            "warnings": persisted.warning_dicts(),
        }
        response["_usage"] = result.usage
        response["_cost"] = result.cost
        logger.info(
            f"[Evidence user={user_id}] Communication extract from {source.id}: "
            f"{len(persisted.created_communication_ids)} communications, "
            f"{len(persisted.created_event_ids)} events"
        )
        return response

    async def process_evidence(
        self, user_id: uuid.UUID, items: list[tuple[uuid.UUID, str | None]]
    ) -> list[dict[str, Any]]:
        """
        Analyze owned evidence items one after another and store the analysis.

        Ownership of every item is checked before the first model call.
        """
        evidence_rows = [await self.get_owned_evidence(user_id, evidence_id) for evidence_id, _ in items]
        context = await self.context_loader.load(user_id)

        results = []
        for evidence, (_, annotation) in zip(evidence_rows, items, strict=True):
            annotation = (annotation or "").strip() or None
            image_url = None
            if classify_mime(evidence.mime_type) is SourceType.PHOTO and evidence.storage_path:
                image_url = await self._signed_url_for(evidence)

            completion = await analyze_evidence(
                self.llm_client,
                context,
                image_url=image_url,
                mime_type=evidence.mime_type,
                filename=evidence.original_filename,
                annotation=annotation,
            )
            analysis = completion.parsed
            updated = await self.evidence_handler.update_owned(
                evidence.id,
                user_id,
                {
                    "user_annotation": annotation,
                    "extraction_raw": {"extraction": completion.raw},
                    "summary": analysis.summary or evidence.summary,
                    "tags": analysis.suggested_tags or list(evidence.tags or []),
                },
            )
            if updated is None:
                raise NotFoundError("Evidence not found")

            results.append(
                {
                    "evidenceId": str(evidence.id),
                    "extraction": analysis.model_dump(mode="json"),
                    "_usage": completion.usage,
                    "_cost": completion.cost,
                }
            )
        return results
