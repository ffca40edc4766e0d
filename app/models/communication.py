"""
Communication model for messages read off screenshots of text or email threads.
"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import validates

from app.models.base import (
    SCHEMA_NAME,
    Base,
    OwnedMixin,
    TimestampMixin,
    UUIDMixin,
    check_choice,
)
from app.models.event import TIMESTAMP_PRECISIONS, WELFARE_IMPACTS

COMMUNICATION_MEDIUMS = ("text", "email", "unknown")
COMMUNICATION_DIRECTIONS = ("incoming", "outgoing", "mixed", "unknown")


class Communication(Base, UUIDMixin, TimestampMixin, OwnedMixin):
    """
    One message or thread extracted from an image of a conversation.
    """

    __tablename__ = "communications"
    __table_args__ = (
        Index("ix_communications_user_sent_at", "user_id", "sent_at"),
        {"schema": SCHEMA_NAME},
    )

    evidence_id = Column(
        PG_UUID(as_uuid=True),
        ForeignKey(f"{SCHEMA_NAME}.evidence.id", ondelete="SET NULL"),
        nullable=True,
        comment="Evidence image the communication was read from",
    )

    medium = Column(String(10), nullable=False, default="unknown", comment="text/email/unknown")

    direction = Column(
        String(10),
        nullable=False,
        default="unknown",
        comment="incoming/outgoing/mixed relative to the user",
    )

    subject = Column(String(255), nullable=True, comment="Email subject if any")

    summary = Column(Text, nullable=False, comment="Neutral summary of the exchange")

    body_text = Column(Text, nullable=True, comment="Transcribed message body")

    from_label = Column(String(200), nullable=True, comment="Sender label")

    to_labels = Column(
        ARRAY(String), nullable=False, default=list, server_default="{}", comment="Recipient labels"
    )

    other_labels = Column(
        ARRAY(String),
        nullable=False,
        default=list,
        server_default="{}",
        comment="Other people present in the thread",
    )

    sent_at = Column(DateTime(timezone=True), nullable=True, comment="When it was sent")

    timestamp_precision = Column(
        String(20), nullable=False, default="unknown", comment="Precision of sent_at"
    )

    child_involved = Column(
        Boolean, nullable=False, default=False, server_default="false"
    )

    agreement_violation = Column(Boolean, nullable=True)

    safety_concern = Column(Boolean, nullable=True)

    welfare_impact = Column(String(20), nullable=False, default="unknown")

    @validates("medium")
    def validate_medium(self, key, value):
        return check_choice(key, value, COMMUNICATION_MEDIUMS)

    @validates("direction")
    def validate_direction(self, key, value):
        return check_choice(key, value, COMMUNICATION_DIRECTIONS)

    @validates("timestamp_precision")
    def validate_precision(self, key, value):
        return check_choice(key, value, TIMESTAMP_PRECISIONS)

    @validates("welfare_impact")
    def validate_welfare_impact(self, key, value):
        return check_choice(key, value, WELFARE_IMPACTS)
