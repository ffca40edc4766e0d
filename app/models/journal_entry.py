"""
Journal entry model: the durable record of one capture submission.

Asynchronous submissions create the entry in 'processing' and the worker later
attaches the raw extraction payload and marks it 'completed' (or 'cancelled' with
a processing error). Synchronous captures create it directly as 'completed'.

The extraction_raw column is an audit payload only. It is stored for debugging and
reprocessing and is never read back into business logic.
"""

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
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

JOURNAL_STATUSES = ("draft", "processing", "review", "completed", "cancelled")


class JournalEntry(Base, UUIDMixin, TimestampMixin, OwnedMixin):
    """
    One narrative submission and its eventual extraction outcome.
    """

    __tablename__ = "journal_entries"
    __table_args__ = (
        Index("ix_journal_entries_user_status", "user_id", "status"),
        {"schema": SCHEMA_NAME},
    )

    event_text = Column(
        Text, nullable=True, comment="Narrative text (typed or transcribed)"
    )

    reference_date = Column(
        Date,
        nullable=True,
        comment="Date the narrated events are anchored to",
    )

    reference_time_description = Column(
        Text,
        nullable=True,
        comment="User-supplied description of when the events happened",
    )

    status = Column(
        String(20),
        nullable=False,
        default="draft",
        comment="Entry status: draft/processing/review/completed/cancelled",
    )

    extraction_raw = Column(
        JSONB,
        nullable=True,
        comment="Raw extraction payload kept for audit and reprocessing",
    )

    processing_error = Column(
        Text, nullable=True, comment="Error message when processing failed"
    )

    processed_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="When evidence for this entry was processed",
    )

    completed_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="When extraction finished and events were saved",
    )

    jobs = relationship("Job", back_populates="journal_entry")

    evidence_links = relationship(
        "JournalEntryEvidence",
        back_populates="journal_entry",
        cascade="all, delete-orphan",
        order_by="JournalEntryEvidence.sort_order",
    )

    @validates("status")
    def validate_status(self, key, value):
        return check_choice(key, value, JOURNAL_STATUSES)

    def __repr__(self):
        return f"<JournalEntry(id={self.id}, status='{self.status}')>"


class JournalEntryEvidence(Base, UUIDMixin, TimestampMixin, OwnedMixin):
    """Evidence attached to a journal entry, in the order it was added."""

    __tablename__ = "journal_entry_evidence"
    __table_args__ = (
        UniqueConstraint(
            "journal_entry_id", "evidence_id", name="uq_journal_entry_evidence_pair"
        ),
        {"schema": SCHEMA_NAME},
    )

    journal_entry_id = Column(
        PG_UUID(as_uuid=True),
        ForeignKey(f"{SCHEMA_NAME}.journal_entries.id", ondelete="CASCADE"),
        nullable=False,
        comment="Owning journal entry",
    )

    evidence_id = Column(
        PG_UUID(as_uuid=True),
        ForeignKey(f"{SCHEMA_NAME}.evidence.id", ondelete="CASCADE"),
        nullable=False,
        comment="Attached evidence",
    )

    sort_order = Column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
        comment="Position of the evidence within the entry",
    )

    is_processed = Column(
        Boolean,
        nullable=False,
        default=False,
        server_default="false",
        comment="Whether the evidence has been analyzed for this entry",
    )

    processed_at = Column(
        DateTime(timezone=True), nullable=True, comment="When it was analyzed"
    )

    journal_entry = relationship("JournalEntry", back_populates="evidence_links")
