"""
Evidence API Routes - upload, listing and model-assisted evidence analysis.
"""

import uuid

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status

from app.dependencies.auth import get_current_user
from app.dependencies.services import get_evidence_service, get_suggestion_service
from app.exceptions import InputValidationError
from app.models import User
from app.schemas import EvidenceResponse, SuggestedEvidenceRequest
from app.services.evidence_service import EvidenceService, present_evidence
from app.services.media_intake import ImageUpload
from app.services.suggestion_service import SuggestionService
from app.utils.logger import setup_logger

logger = setup_logger("api.evidence")

router = APIRouter(prefix="/api", tags=["Evidence"])


def _parse_evidence_id(evidence_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(evidence_id)
    except ValueError as e:
        raise InputValidationError("Invalid evidence_id format") from e


@router.post("/evidence", response_model=EvidenceResponse, status_code=status.HTTP_201_CREATED)
async def upload_evidence(
    file: UploadFile = File(...),
    annotation: str | None = Form(None),
    current_user: User = Depends(get_current_user),
    evidence_service: EvidenceService = Depends(get_evidence_service),
):
    """Store a file as evidence for the current user."""
    evidence = await evidence_service.upload_evidence(
        current_user.id,
        await file.read(),
        file.filename,
        file.content_type,
        annotation,
    )
    return present_evidence(evidence)


@router.get("/evidence", response_model=list[EvidenceResponse])
async def list_evidence(
    limit: int = Query(100, ge=1, le=500, description="Maximum number of items to return"),
    offset: int = Query(0, ge=0, description="Number of items to skip"),
    current_user: User = Depends(get_current_user),
    evidence_service: EvidenceService = Depends(get_evidence_service),
):
    """Evidence owned by the current user, newest first."""
    rows = await evidence_service.list_evidence(current_user.id, limit=limit, offset=offset)
    return [present_evidence(e) for e in rows]


@router.get("/evidence/{evidence_id}", response_model=EvidenceResponse)
async def get_evidence(
    evidence_id: str,
    current_user: User = Depends(get_current_user),
    evidence_service: EvidenceService = Depends(get_evidence_service),
):
    evidence = await evidence_service.get_owned_evidence(
        current_user.id, _parse_evidence_id(evidence_id)
    )
    return present_evidence(evidence)


@router.post("/evidence/{evidence_id}/describe")
async def describe_evidence_photo(
    evidence_id: str,
    annotation: str | None = Form(None),
    current_user: User = Depends(get_current_user),
    evidence_service: EvidenceService = Depends(get_evidence_service),
):
    """Describe a stored photo and update its summary and tags."""
    return await evidence_service.describe_photo(
        current_user.id, _parse_evidence_id(evidence_id), annotation
    )


@router.post("/evidence/communication-extract")
async def communication_extract(
    image: UploadFile | None = File(None),
    evidence_id: str | None = Form(None, alias="evidenceId"),
    annotation: str | None = Form(None),
    current_user: User = Depends(get_current_user),
    evidence_service: EvidenceService = Depends(get_evidence_service),
):
    """
    Read a screenshot of messages or an email.

    Accepts a new image upload or the id of an image already stored as evidence.
    """
    upload = None
    if image is not None:
        upload = ImageUpload(
            data=await image.read(),
            mime_type=image.content_type or "",
            filename=image.filename,
        )
    return await evidence_service.extract_communication(
        current_user.id,
        image=upload,
        evidence_id=_parse_evidence_id(evidence_id) if evidence_id else None,
        annotation=annotation,
    )


@router.post("/events/suggested-evidence")
async def suggested_evidence(
    request: SuggestedEvidenceRequest,
    current_user: User = Depends(get_current_user),
    suggestion_service: SuggestionService = Depends(get_suggestion_service),
):
    """Suggest evidence worth gathering for owned events."""
    return await suggestion_service.suggest_for_events(current_user.id, request.event_ids)
