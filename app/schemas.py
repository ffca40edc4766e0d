import uuid
from datetime import date, datetime
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from app.utils.logger import setup_logger

logger = setup_logger("schemas")

EventType = Literal["incident", "positive", "medical", "school", "communication", "legal"]
TimestampPrecision = Literal["exact", "day", "approximate", "unknown"]
WelfareImpact = Literal["none", "minor", "moderate", "significant", "positive", "unknown"]
EvidenceKind = Literal["text", "email", "photo", "document", "recording", "other"]
EvidenceStatus = Literal["have", "need_to_get", "need_to_create"]
ActionPriority = Literal["urgent", "high", "normal", "low"]
ActionType = Literal["document", "contact", "file", "obtain", "other"]
CommunicationMedium = Literal["text", "email", "unknown"]
CommunicationDirection = Literal["incoming", "outgoing", "mixed", "unknown"]


# ===========================================
# MODEL OUTPUT SCHEMAS
# ===========================================
# These double as the JSON schema sent with each extraction request and as the
# validator for the response. Enumerations are closed: an unexpected value is a
# validation failure, never coerced.


class ExtractedParticipants(BaseModel):
    primary: list[str] = Field(
        default_factory=list,
        description="Main people involved, e.g. co-parent, child, self, other",
    )
    witnesses: list[str] = Field(default_factory=list)
    professionals: list[str] = Field(
        default_factory=list, description="Teachers, doctors, police, counselors"
    )


class ExtractedEvidenceMention(BaseModel):
    type: EvidenceKind
    description: str = ""
    status: EvidenceStatus


class CustodyRelevance(BaseModel):
    agreement_violation: bool | None = None
    safety_concern: bool | None = None
    welfare_impact: WelfareImpact = "unknown"


class ExtractedEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: EventType
    title: str = ""
    description: str = ""
    primary_timestamp: datetime | None = Field(
        default=None,
        description="ISO 8601 timestamp; null when the narrative does not support one",
    )
    timestamp_precision: TimestampPrecision = "unknown"
    duration_minutes: int | None = Field(default=None, ge=0)
    location: str | None = None
    participants: ExtractedParticipants = Field(default_factory=ExtractedParticipants)
    child_involved: bool = False
    evidence_mentioned: list[ExtractedEvidenceMention] = Field(default_factory=list)
    patterns_noted: list[str] = Field(default_factory=list)
    custody_relevance: CustodyRelevance = Field(default_factory=CustodyRelevance)


class ExtractedActionItem(BaseModel):
    priority: ActionPriority = "normal"
    type: ActionType = "other"
    description: str = Field(..., min_length=1)
    deadline: date | None = None


class ExtractionMetadata(BaseModel):
    extraction_confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    ambiguities: list[str] = Field(default_factory=list)


class EventExtraction(BaseModel):
    """Structured output of narrative extraction."""

    events: list[ExtractedEvent] = Field(default_factory=list)
    action_items: list[ExtractedActionItem] = Field(default_factory=list)
    metadata: ExtractionMetadata = Field(default_factory=ExtractionMetadata)


class CommunicationParticipants(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: str | None = Field(default=None, alias="from")
    to: list[str] = Field(default_factory=list)
    others: list[str] = Field(default_factory=list)


class ExtractedCommunication(BaseModel):
    medium: CommunicationMedium = "unknown"
    direction: CommunicationDirection = "unknown"
    subject: str | None = None
    summary: str = Field(..., min_length=1)
    body_text: str | None = None
    participants: CommunicationParticipants = Field(
        default_factory=CommunicationParticipants
    )
    sent_at: datetime | None = None
    timestamp_precision: TimestampPrecision = "unknown"
    child_involved: bool = False
    agreement_violation: bool | None = None
    safety_concern: bool | None = None
    welfare_impact: WelfareImpact = "unknown"


class SuggestedCommunicationEvent(BaseModel):
    """Event suggestion from an image; relevance fields are flat here."""

    type: Literal["communication"] = "communication"
    title: str = ""
    description: str = ""
    primary_timestamp: datetime | None = None
    timestamp_precision: TimestampPrecision = "unknown"
    child_involved: bool = False
    agreement_violation: bool | None = None
    safety_concern: bool | None = None
    welfare_impact: WelfareImpact = "unknown"

    def to_extracted_event(self) -> ExtractedEvent:
        return ExtractedEvent(
            type=self.type,
            title=self.title,
            description=self.description,
            primary_timestamp=self.primary_timestamp,
            timestamp_precision=self.timestamp_precision,
            child_involved=self.child_involved,
            custody_relevance=CustodyRelevance(
                agreement_violation=self.agreement_violation,
                safety_concern=self.safety_concern,
                welfare_impact=self.welfare_impact,
            ),
        )


class SuggestedEvidence(BaseModel):
    source_type: EvidenceKind = "photo"
    summary: str = ""
    tags: list[str] = Field(default_factory=list)


class CommunicationSuggestions(BaseModel):
    events: list[SuggestedCommunicationEvent] = Field(default_factory=list)
    evidence: list[SuggestedEvidence] = Field(default_factory=list)


class CommunicationMetadata(BaseModel):
    image_analysis_confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    raw_ocr_text: str | None = None
    ambiguities: list[str] = Field(default_factory=list)


class CommunicationExtraction(BaseModel):
    """Structured output of screenshot/email image extraction."""

    communications: list[ExtractedCommunication] = Field(default_factory=list)
    db_suggestions: CommunicationSuggestions = Field(
        default_factory=CommunicationSuggestions
    )
    metadata: CommunicationMetadata = Field(default_factory=CommunicationMetadata)


class PhotoDescription(BaseModel):
    suggested_title: str = ""
    summary: str = ""
    tags: list[str] = Field(default_factory=list)


class KeyFact(BaseModel):
    fact: str
    confidence: Literal["high", "medium", "low"] = "medium"


class EvidenceTimestamp(BaseModel):
    value: str = Field(..., description="The timestamp as shown")
    iso: str | None = Field(default=None, description="ISO 8601 form if parseable")
    context: str = ""


class EvidenceQuote(BaseModel):
    speaker: str = ""
    text: str
    context: str | None = None


class EvidenceRelevance(BaseModel):
    child_related: bool = False
    agreement_related: bool = False
    safety_related: bool = False
    communication_type: Literal["text", "email", "document", "photo", "other", "none"] = "none"


class EvidenceAnalysis(BaseModel):
    summary: str = Field("", description="1-3 sentence factual description of what the evidence shows")
    key_facts: list[KeyFact] = Field(default_factory=list)
    timestamps: list[EvidenceTimestamp] = Field(default_factory=list)
    quotes: list[EvidenceQuote] = Field(default_factory=list)
    people_mentioned: list[str] = Field(default_factory=list)
    relevance: EvidenceRelevance = Field(default_factory=EvidenceRelevance)
    suggested_tags: list[str] = Field(default_factory=list)


class EvidenceSuggestionItem(BaseModel):
    evidence_type: EvidenceKind
    evidence_status: EvidenceStatus
    description: str = Field(..., min_length=1)


class EventEvidenceSuggestions(BaseModel):
    event_id: str
    suggestions: list[EvidenceSuggestionItem] = Field(default_factory=list)


class EvidenceSuggestionMetadata(BaseModel):
    notes: str | None = None


class EvidenceSuggestionExtraction(BaseModel):
    suggestions: list[EventEvidenceSuggestions] = Field(default_factory=list)
    metadata: EvidenceSuggestionMetadata = Field(
        default_factory=EvidenceSuggestionMetadata
    )


# ===========================================
# PIPELINE VALUE OBJECTS
# ===========================================


class AuditPayload(BaseModel):
    """Opaque copy of what the model returned. Stored, never read back into logic."""

    model_config = ConfigDict(frozen=True)

    kind: str
    data: dict[str, Any]


class ExtractionResult(BaseModel):
    """
    Normalized output of every extraction variant.

    All variants converge on this shape so a single persistence path handles
    narrative captures and image captures alike.
    """

    events: list[ExtractedEvent] = Field(default_factory=list)
    communications: list[ExtractedCommunication] = Field(default_factory=list)
    evidence: list[SuggestedEvidence] = Field(default_factory=list)
    action_items: list[ExtractedActionItem] = Field(default_factory=list)
    metadata: ExtractionMetadata = Field(default_factory=ExtractionMetadata)
    usage: dict[str, int] | None = None
    cost: float | None = None
    audit: AuditPayload | None = None

    def preview(self) -> dict[str, Any]:
        """Client-facing dict with usage echoed back for cost accounting."""
        data = self.model_dump(
            mode="json", exclude={"audit", "usage", "cost"}, by_alias=True
        )
        data["_usage"] = self.usage
        data["_cost"] = self.cost
        return data


# ===========================================
# API SCHEMAS
# ===========================================


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


def _lenient_date(v: Any) -> date | None:
    """Reference dates that cannot be parsed fall back to 'now' downstream."""
    if v in (None, ""):
        return None
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    try:
        return datetime.fromisoformat(str(v).replace("Z", "+00:00")).date()
    except ValueError:
        logger.warning(f"Ignoring unparseable reference date {v!r}")
        return None


class CaptureRequest(CamelModel):
    event_text: str | None = Field(default=None, alias="eventText")
    reference_date: date | None = Field(default=None, alias="referenceDate")
    reference_time_description: str | None = Field(
        default=None, alias="referenceTimeDescription"
    )
    evidence_ids: list[uuid.UUID] = Field(default_factory=list, alias="evidenceIds")

    @field_validator("reference_date", mode="before")
    @classmethod
    def parse_reference_date(cls, v: Any) -> date | None:
        return _lenient_date(v)


class CaptureResponse(CamelModel):
    created_event_ids: list[str] = Field(alias="createdEventIds")
    journal_entry_id: str | None = Field(default=None, alias="journalEntryId")
    warnings: list[dict[str, Any]] = Field(default_factory=list)
    usage: dict[str, Any] | None = None


class JournalSubmitResponse(CamelModel):
    journal_entry_id: str = Field(alias="journalEntryId")
    job_id: str = Field(alias="jobId")
    message: str = "Processing started"


class JobResponse(CamelModel):
    id: str
    type: str
    status: str
    journal_entry_id: str | None = Field(default=None, alias="journalEntryId")
    attempts: int = 0
    created_at: str | None = Field(default=None, alias="createdAt")
    started_at: str | None = Field(default=None, alias="startedAt")
    completed_at: str | None = Field(default=None, alias="completedAt")
    error_message: str | None = Field(default=None, alias="errorMessage")
    result_summary: dict[str, Any] | None = Field(default=None, alias="resultSummary")

    @classmethod
    def from_job(cls, job) -> "JobResponse":
        data = job.to_dict()
        return cls(
            id=data["id"],
            type=data["type"],
            status=data["status"],
            journal_entry_id=data.get("journal_entry_id"),
            attempts=data.get("attempts") or 0,
            created_at=data.get("created_at"),
            started_at=data.get("started_at"),
            completed_at=data.get("completed_at"),
            error_message=data.get("error_message"),
            result_summary=data.get("result_summary"),
        )


class SaveEventsRequest(CamelModel):
    events: list[ExtractedEvent] = Field(default_factory=list)
    action_items: list[ExtractedActionItem] = Field(
        default_factory=list, alias="actionItems"
    )
    evidence_ids: list[uuid.UUID] = Field(default_factory=list, alias="evidenceIds")
    transcript: str | None = None
    reference_date: date | None = Field(default=None, alias="referenceDate")
    reference_time_description: str | None = Field(
        default=None, alias="referenceTimeDescription"
    )
    extraction_raw: dict[str, Any] | None = Field(default=None, alias="extractionRaw")

    @field_validator("reference_date", mode="before")
    @classmethod
    def parse_reference_date(cls, v: Any) -> date | None:
        return _lenient_date(v)


class SaveEventsResponse(CamelModel):
    created_event_ids: list[str] = Field(alias="createdEventIds")
    linked_evidence_count: int = Field(alias="linkedEvidenceCount")
    journal_entry_id: str | None = Field(default=None, alias="journalEntryId")
    warnings: list[dict[str, Any]] = Field(default_factory=list)


class VoiceExtractionRequest(CamelModel):
    transcript: str
    reference_date: date | None = Field(default=None, alias="referenceDate")
    reference_time_description: str | None = Field(
        default=None, alias="referenceTimeDescription"
    )

    @field_validator("reference_date", mode="before")
    @classmethod
    def parse_reference_date(cls, v: Any) -> date | None:
        return _lenient_date(v)


class TranscriptionResponse(BaseModel):
    transcript: str


class AudioContainerResponse(CamelModel):
    mime_type: str | None = Field(default=None, alias="mimeType")
    preference: list[str] = Field(default_factory=list)


class SuggestedEvidenceRequest(CamelModel):
    event_ids: list[str] = Field(default_factory=list, alias="eventIds")


class ProcessEvidenceItem(CamelModel):
    evidence_id: uuid.UUID = Field(alias="evidenceId")
    annotation: str | None = None


class ProcessEvidenceRequest(CamelModel):
    items: list[ProcessEvidenceItem] = Field(default_factory=list)

    @model_validator(mode="after")
    def require_items(self) -> "ProcessEvidenceRequest":
        if not self.items:
            raise ValueError("At least one evidence item is required")
        return self


class EvidenceResponse(CamelModel):
    id: str
    source_type: EvidenceKind = Field(alias="sourceType")
    title: str
    original_name: str | None = Field(default=None, alias="originalName")
    mime_type: str | None = Field(default=None, alias="mimeType")
    summary: str = ""
    tags: list[str] = Field(default_factory=list)
    user_annotation: str | None = Field(default=None, alias="userAnnotation")
    created_at: str | None = Field(default=None, alias="createdAt")


class UsageResponse(BaseModel):
    tier: str
    journal_entries: int
    evidence_uploads: int
    limits: dict[str, Any]


# ===========================================
# AUTH SCHEMAS
# ===========================================


class UserCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=8)
    display_name: str | None = Field(default=None, max_length=100)


class UserLogin(BaseModel):
    username: str
    password: str


class UserResponse(BaseModel):
    id: uuid.UUID
    username: str
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
