"""
Job model for asynchronous capture processing.

One job row exists per asynchronous submission. It is created synchronously so the
client has an id to poll, advanced to 'processing' by the worker that picks it up,
and moved to a terminal state once extraction and persistence finish or fail.

Status transitions:
    pending → processing → completed
    pending → processing → failed

Redelivery of the same message may re-enter 'processing' while the job is still
processing; terminal states are final.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text
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

JOB_STATUSES = ("pending", "processing", "completed", "failed")
JOB_TYPES = ("journal_extraction",)
TERMINAL_JOB_STATUSES = ("completed", "failed")

ALLOWED_JOB_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "pending": ("processing",),
    "processing": ("processing", "completed", "failed"),
    "completed": (),
    "failed": (),
}


class Job(Base, UUIDMixin, TimestampMixin, OwnedMixin):
    """
    Tracking row for one asynchronous submission, independent of its business content.
    """

    __tablename__ = "jobs"
    __table_args__ = (
        Index("ix_jobs_status", "status"),
        Index("ix_jobs_journal_entry_id", "journal_entry_id"),
        {"schema": SCHEMA_NAME},
    )

    type = Column(
        String(40),
        nullable=False,
        default="journal_extraction",
        comment="Kind of work the job tracks",
    )

    status = Column(
        String(20),
        nullable=False,
        default="pending",
        comment="Current processing status: pending/processing/completed/failed",
    )

    journal_entry_id = Column(
        PG_UUID(as_uuid=True),
        ForeignKey(f"{SCHEMA_NAME}.journal_entries.id", ondelete="SET NULL"),
        nullable=True,
        comment="Journal entry being processed, when the job belongs to one",
    )

    attempts = Column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
        comment="Number of times a worker picked the job up",
    )

    started_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="When a worker first moved the job to processing",
    )

    completed_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the job reached a terminal state",
    )

    error_message = Column(
        Text, nullable=True, comment="Failure reason for failed jobs"
    )

    result_summary = Column(
        JSONB,
        nullable=True,
        comment="Counts and ids produced by a completed job",
    )

    journal_entry = relationship("JournalEntry", back_populates="jobs")

    @validates("status")
    def validate_status(self, key, value):
        check_choice(key, value, JOB_STATUSES)
        current = self.status
        if current is not None and not can_transition(current, value):
            raise ValueError(f"Illegal job status transition {current} -> {value}")
        return value

    @validates("type")
    def validate_type(self, key, value):
        return check_choice(key, value, JOB_TYPES)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES

    def __repr__(self):
        return f"<Job(id={self.id}, type='{self.type}', status='{self.status}')>"


def can_transition(current: str, new: str) -> bool:
    return new in ALLOWED_JOB_TRANSITIONS.get(current, ())
