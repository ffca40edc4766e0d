"""
Evidence model and its event junction.

Evidence is a stored artifact (an uploaded file or an item suggested by image
extraction). The stored source_type keeps the full vocabulary; collapsing
'recording' and 'other' into 'document' happens only when rows are presented.
"""

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
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
from app.models.event import EVIDENCE_TYPES


class Evidence(Base, UUIDMixin, TimestampMixin, OwnedMixin):
    """
    A stored artifact that supports one or more events.
    """

    __tablename__ = "evidence"
    __table_args__ = (
        Index("ix_evidence_user_created", "user_id", "created_at"),
        {"schema": SCHEMA_NAME},
    )

    source_type = Column(
        String(20),
        nullable=False,
        comment="Stored kind: text/email/photo/document/recording/other",
    )

    storage_path = Column(
        String(512),
        nullable=True,
        comment="Owner-namespaced object path in the evidence bucket",
    )

    original_filename = Column(
        String(255), nullable=True, comment="Filename supplied at upload"
    )

    mime_type = Column(String(127), nullable=True, comment="MIME type at upload")

    summary = Column(
        Text,
        nullable=False,
        default="",
        server_default="",
        comment="Short description of what the evidence shows",
    )

    tags = Column(
        ARRAY(String),
        nullable=False,
        default=list,
        server_default="{}",
        comment="Free-form tags",
    )

    user_annotation = Column(
        Text,
        nullable=True,
        comment="User note about what the evidence shows or why it matters; given to the model as context",
    )

    extraction_raw = Column(
        JSONB,
        nullable=True,
        comment="Opaque model analysis of the file, kept for audit and reprocessing",
    )

    event_links = relationship(
        "EventEvidence",
        back_populates="evidence",
        cascade="all, delete-orphan",
    )

    @validates("source_type")
    def validate_source_type(self, key, value):
        return check_choice(key, value, EVIDENCE_TYPES)

    def __repr__(self):
        return (
            f"<Evidence(id={self.id}, source_type='{self.source_type}', "
            f"original_filename='{self.original_filename}')>"
        )


class EventEvidence(Base, UUIDMixin, TimestampMixin, OwnedMixin):
    """
    Junction row linking an event to an evidence item.

    All evidence of one capture is linked to every event of that capture; the
    first evidence item is primary for each event.
    """

    __tablename__ = "event_evidence"
    __table_args__ = (
        UniqueConstraint("event_id", "evidence_id", name="uq_event_evidence_pair"),
        Index("ix_event_evidence_evidence_id", "evidence_id"),
        {"schema": SCHEMA_NAME},
    )

    event_id = Column(
        PG_UUID(as_uuid=True),
        ForeignKey(f"{SCHEMA_NAME}.events.id", ondelete="CASCADE"),
        nullable=False,
        comment="Linked event",
    )

    evidence_id = Column(
        PG_UUID(as_uuid=True),
        ForeignKey(f"{SCHEMA_NAME}.evidence.id", ondelete="CASCADE"),
        nullable=False,
        comment="Linked evidence",
    )

    is_primary = Column(
        Boolean,
        nullable=False,
        default=False,
        server_default="false",
        comment="Whether this is the primary evidence for the event",
    )

    event = relationship("Event", back_populates="evidence_links")
    evidence = relationship("Evidence", back_populates="event_links")

    def __repr__(self):
        return f"<EventEvidence(event_id={self.event_id}, evidence_id={self.evidence_id}, is_primary={self.is_primary})>"
