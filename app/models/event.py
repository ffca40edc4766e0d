"""
Event model and the rows that hang off a single timeline entry.

An Event is one structured timeline entry produced from a capture. It is created
only by the persistence layer from one extraction item and is never edited in
place afterwards; the only later writes are link rows.

Architecture:
    JournalEntry → (extraction) → Event ←→ EventEvidence ←→ Evidence
    Event → EventParticipant / EvidenceMention / ActionItem / EventEvidenceSuggestion

Key Features:
    - Closed vocabularies for type, precision and welfare impact
    - Timestamp/precision consistency enforced at the model level
    - Owner reference on every row
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import relationship, validates

from app.models.base import (
    SCHEMA_NAME,
    Base,
    OwnedMixin,
    TimestampMixin,
    UUIDMixin,
    check_choice,
)

EVENT_TYPES = ("incident", "positive", "medical", "school", "communication", "legal")
TIMESTAMP_PRECISIONS = ("exact", "day", "approximate", "unknown")
WELFARE_IMPACTS = ("none", "minor", "moderate", "significant", "positive", "unknown")
PARTICIPANT_ROLES = ("primary", "witness", "professional")
EVIDENCE_TYPES = ("text", "email", "photo", "document", "recording", "other")
EVIDENCE_STATUSES = ("have", "need_to_get", "need_to_create")


class Event(Base, UUIDMixin, TimestampMixin, OwnedMixin):
    """
    A single structured timeline entry.

    An event whose precision is 'unknown' never carries a timestamp; the
    inverse does not hold (an 'approximate' event may still have one).
    """

    __tablename__ = "events"
    __table_args__ = (
        Index("ix_events_user_timestamp", "user_id", "primary_timestamp"),
        CheckConstraint(
            "timestamp_precision <> 'unknown' OR primary_timestamp IS NULL",
            name="ck_events_unknown_precision_has_no_timestamp",
        ),
        {"schema": SCHEMA_NAME},
    )

    type = Column(
        String(20),
        nullable=False,
        comment="Event category: incident/positive/medical/school/communication/legal",
    )

    title = Column(
        String(200),
        nullable=False,
        default="Untitled event",
        comment="Short human-readable headline",
    )

    description = Column(
        Text,
        nullable=True,
        comment="Neutral narrative of what happened",
    )

    primary_timestamp = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="Resolved point in time; null when it cannot be supported by the input",
    )

    timestamp_precision = Column(
        String(20),
        nullable=False,
        default="unknown",
        comment="How much of primary_timestamp is backed by the input: exact/day/approximate/unknown",
    )

    duration_minutes = Column(
        Integer, nullable=True, comment="Duration of the event when stated"
    )

    location = Column(String(255), nullable=True, comment="Where the event occurred")

    child_involved = Column(
        Boolean,
        nullable=False,
        default=False,
        server_default="false",
        comment="Whether a child was present or directly affected",
    )

    agreement_violation = Column(
        Boolean,
        nullable=True,
        comment="Whether the event breaches a custody agreement; null when undetermined",
    )

    safety_concern = Column(
        Boolean,
        nullable=True,
        comment="Whether the event raises a safety concern; null when undetermined",
    )

    welfare_impact = Column(
        String(20),
        nullable=False,
        default="unknown",
        comment="Impact on child welfare: none/minor/moderate/significant/positive/unknown",
    )

    participants = relationship(
        "EventParticipant",
        back_populates="event",
        cascade="all, delete-orphan",
        doc="Role-tagged people involved in the event",
    )

    evidence_mentions = relationship(
        "EvidenceMention",
        back_populates="event",
        cascade="all, delete-orphan",
        doc="Evidence the narrator says exists or is needed",
    )

    evidence_links = relationship(
        "EventEvidence",
        back_populates="event",
        cascade="all, delete-orphan",
        doc="Junction rows to stored evidence",
    )

    @validates("type")
    def validate_type(self, key, value):
        return check_choice(key, value, EVENT_TYPES)

    @validates("timestamp_precision")
    def validate_precision(self, key, value):
        return check_choice(key, value, TIMESTAMP_PRECISIONS)

    @validates("welfare_impact")
    def validate_welfare_impact(self, key, value):
        return check_choice(key, value, WELFARE_IMPACTS)

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if self.timestamp_precision == "unknown" and self.primary_timestamp is not None:
            raise ValueError(
                "An event with 'unknown' precision must not carry a primary_timestamp"
            )

    def __repr__(self):
        return (
            f"<Event(id={self.id}, type='{self.type}', "
            f"title='{(self.title or '')[:40]}', "
            f"primary_timestamp={self.primary_timestamp}, "
            f"precision='{self.timestamp_precision}')>"
        )


class EventParticipant(Base, UUIDMixin, TimestampMixin, OwnedMixin):
    """Role-tagged label attached to an event."""

    __tablename__ = "event_participants"
    __table_args__ = (
        Index("ix_event_participants_event_id", "event_id"),
        {"schema": SCHEMA_NAME},
    )

    event_id = Column(
        PG_UUID(as_uuid=True),
        ForeignKey(f"{SCHEMA_NAME}.events.id", ondelete="CASCADE"),
        nullable=False,
        comment="Event this participant belongs to",
    )

    role = Column(
        String(20),
        nullable=False,
        comment="Participant role: primary/witness/professional",
    )

    label = Column(
        String(200),
        nullable=False,
        comment="Free-text label as given by the narrator (e.g. 'co-parent', 'teacher')",
    )

    event = relationship("Event", back_populates="participants")

    @validates("role")
    def validate_role(self, key, value):
        return check_choice(key, value, PARTICIPANT_ROLES)

    def __repr__(self):
        return f"<EventParticipant(event_id={self.event_id}, role='{self.role}', label='{self.label}')>"


class EvidenceMention(Base, UUIDMixin, TimestampMixin, OwnedMixin):
    """A claim that some evidence exists or is needed. Descriptive only, not a file."""

    __tablename__ = "evidence_mentions"
    __table_args__ = (
        Index("ix_evidence_mentions_event_id", "event_id"),
        {"schema": SCHEMA_NAME},
    )

    event_id = Column(
        PG_UUID(as_uuid=True),
        ForeignKey(f"{SCHEMA_NAME}.events.id", ondelete="CASCADE"),
        nullable=False,
        comment="Event the mention was extracted from",
    )

    type = Column(
        String(20),
        nullable=False,
        comment="Kind of evidence: text/email/photo/document/recording/other",
    )

    description = Column(Text, nullable=False, comment="What the evidence is")

    status = Column(
        String(20),
        nullable=False,
        comment="Availability: have/need_to_get/need_to_create",
    )

    event = relationship("Event", back_populates="evidence_mentions")

    @validates("type")
    def validate_type(self, key, value):
        return check_choice(key, value, EVIDENCE_TYPES)

    @validates("status")
    def validate_status(self, key, value):
        return check_choice(key, value, EVIDENCE_STATUSES)


class EventEvidenceSuggestion(Base, UUIDMixin, TimestampMixin, OwnedMixin):
    """Model-suggested evidence the user could gather for an event."""

    __tablename__ = "event_evidence_suggestions"
    __table_args__ = (
        Index("ix_event_evidence_suggestions_event_id", "event_id"),
        {"schema": SCHEMA_NAME},
    )

    event_id = Column(
        PG_UUID(as_uuid=True),
        ForeignKey(f"{SCHEMA_NAME}.events.id", ondelete="CASCADE"),
        nullable=False,
        comment="Event the suggestion is for",
    )

    evidence_type = Column(
        String(20), nullable=False, comment="Suggested kind of evidence"
    )

    evidence_status = Column(
        String(20),
        nullable=False,
        comment="Whether the user likely has it already or must obtain/create it",
    )

    description = Column(Text, nullable=False, comment="What to gather and why")

    @validates("evidence_type")
    def validate_evidence_type(self, key, value):
        return check_choice(key, value, EVIDENCE_TYPES)

    @validates("evidence_status")
    def validate_evidence_status(self, key, value):
        return check_choice(key, value, EVIDENCE_STATUSES)
