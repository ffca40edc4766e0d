"""
Capture API Routes - synchronous capture, journal submission and job status.

Every route resolves the owner first; the usage gate then runs inside the
service before any transcription or extraction call.
"""

import uuid

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status

from app.dependencies.auth import get_current_user
from app.dependencies.ownership import get_owned_job
from app.dependencies.services import get_capture_orchestrator, get_evidence_service
from app.exceptions import InputValidationError
from app.models import Job, User
from app.schemas import (
    AudioContainerResponse,
    CaptureRequest,
    CaptureResponse,
    JobResponse,
    JournalSubmitResponse,
    ProcessEvidenceRequest,
    SaveEventsRequest,
    SaveEventsResponse,
    TranscriptionResponse,
    VoiceExtractionRequest,
)
from app.services.capture_orchestrator import CaptureOrchestratorService
from app.services.evidence_service import EvidenceService
from app.services.media_intake import (
    AUDIO_CONTAINER_PREFERENCE,
    AudioClip,
    ImageUpload,
    select_audio_container,
)
from app.utils.logger import setup_logger

logger = setup_logger("api.capture")

router = APIRouter(prefix="/api", tags=["Capture"])


def _parse_evidence_ids(raw_ids: list[str]) -> list[uuid.UUID]:
    """Multipart clients send ids either repeated or as one comma-separated field."""
    parsed = []
    for raw in raw_ids:
        for part in raw.split(","):
            part = part.strip()
            if not part:
                continue
            try:
                parsed.append(uuid.UUID(part))
            except ValueError as e:
                raise InputValidationError(f"Invalid evidence id: {part}") from e
    return parsed


@router.post("/capture", response_model=CaptureResponse)
async def capture(
    request: CaptureRequest,
    current_user: User = Depends(get_current_user),
    orchestrator: CaptureOrchestratorService = Depends(get_capture_orchestrator),
):
    """Extract events from narrative text and persist them in one request."""
    outcome = await orchestrator.capture_now(
        current_user.id,
        narrative_text=request.event_text or "",
        reference_date=request.reference_date,
        reference_time_description=request.reference_time_description,
        evidence_ids=request.evidence_ids,
    )
    return outcome.to_response()


@router.post("/capture/audio", response_model=CaptureResponse)
async def capture_audio(
    audio: UploadFile | None = File(None),
    images: list[UploadFile] | None = File(None),
    event_text: str | None = Form(None, alias="eventText"),
    user_annotation: str | None = Form(None, alias="userAnnotation"),
    reference_date: str | None = Form(None, alias="referenceDate"),
    reference_time_description: str | None = Form(None, alias="referenceTimeDescription"),
    evidence_ids: list[str] = Form([], alias="evidenceIds"),
    current_user: User = Depends(get_current_user),
    orchestrator: CaptureOrchestratorService = Depends(get_capture_orchestrator),
):
    """
    Capture from a recording and/or screenshots, with optional typed text.

    Same response as POST /capture; the transcript becomes part of the narrative.
    """
    # Reuse the JSON model's lenient date handling
    fields = CaptureRequest.model_validate(
        {
            "referenceDate": reference_date,
            "referenceTimeDescription": reference_time_description,
        }
    )

    clip = None
    if audio is not None:
        clip = AudioClip(
            data=await audio.read(),
            mime_type=audio.content_type or "",
            filename=audio.filename,
        )
    image_uploads = [
        ImageUpload(data=await img.read(), mime_type=img.content_type or "", filename=img.filename)
        for img in images or []
    ]

    outcome = await orchestrator.capture_now(
        current_user.id,
        narrative_text=event_text,
        audio=clip,
        images=image_uploads,
        user_annotation=user_annotation,
        reference_date=fields.reference_date,
        reference_time_description=fields.reference_time_description,
        evidence_ids=_parse_evidence_ids(evidence_ids),
    )
    return outcome.to_response()


@router.post("/capture/save-events", response_model=SaveEventsResponse)
async def save_events(
    request: SaveEventsRequest,
    current_user: User = Depends(get_current_user),
    orchestrator: CaptureOrchestratorService = Depends(get_capture_orchestrator),
):
    """Persist events the user reviewed after a voice-extraction preview."""
    outcome = await orchestrator.save_events(current_user.id, request)
    return SaveEventsResponse(
        created_event_ids=[str(i) for i in outcome.created_event_ids],
        linked_evidence_count=outcome.linked_evidence_count,
        journal_entry_id=str(outcome.journal_entry_id) if outcome.journal_entry_id else None,
        warnings=outcome.warnings,
    )


@router.post("/capture/process-evidence")
async def process_evidence(
    request: ProcessEvidenceRequest,
    current_user: User = Depends(get_current_user),
    evidence_service: EvidenceService = Depends(get_evidence_service),
):
    """Analyze owned evidence items and store the analysis on each."""
    results = await evidence_service.process_evidence(
        current_user.id, [(item.evidence_id, item.annotation) for item in request.items]
    )
    if len(results) == 1:
        return results[0]
    return {"results": results}


@router.post(
    "/journal/submit",
    response_model=JournalSubmitResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def submit_journal(
    request: CaptureRequest,
    current_user: User = Depends(get_current_user),
    orchestrator: CaptureOrchestratorService = Depends(get_capture_orchestrator),
):
    """Queue a journal entry for background extraction and return the job id to poll."""
    result = await orchestrator.submit_journal(
        current_user.id,
        request.event_text,
        reference_date=request.reference_date,
        reference_time_description=request.reference_time_description,
        evidence_ids=request.evidence_ids,
    )
    return result


@router.get("/jobs/{job_id}", response_model=JobResponse)
async def get_job(job: Job = Depends(get_owned_job)):
    """Current status of an owned job."""
    return JobResponse.from_job(job)


@router.post("/transcribe", response_model=TranscriptionResponse)
async def transcribe_audio(
    audio: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    orchestrator: CaptureOrchestratorService = Depends(get_capture_orchestrator),
):
    """Transcribe a recording without extracting or saving anything."""
    clip = AudioClip(
        data=await audio.read(),
        mime_type=audio.content_type or "",
        filename=audio.filename,
    )
    result = await orchestrator.transcribe_only(current_user.id, clip)
    return TranscriptionResponse(transcript=result.transcript)


@router.post("/voice-extraction")
async def voice_extraction(
    request: VoiceExtractionRequest,
    current_user: User = Depends(get_current_user),
    orchestrator: CaptureOrchestratorService = Depends(get_capture_orchestrator),
):
    """Preview extraction for a transcript; nothing is persisted."""
    result = await orchestrator.preview_extraction(
        current_user.id,
        request.transcript,
        reference_date=request.reference_date,
        reference_time_description=request.reference_time_description,
    )
    return result.preview()


@router.get("/capture/audio-container", response_model=AudioContainerResponse)
async def audio_container(
    supported: list[str] | None = Query(None),
    current_user: User = Depends(get_current_user),
):
    """
    Recording container the client should use, picked from the types its
    recorder reports as supported. A null mimeType means the recorder default.
    """
    return AudioContainerResponse(
        mime_type=select_audio_container(supported),
        preference=list(AUDIO_CONTAINER_PREFERENCE),
    )
