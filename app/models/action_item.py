"""
Action item model for follow-ups suggested during extraction.
"""

from sqlalchemy import Column, Date, ForeignKey, Index, String, Text
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

ACTION_PRIORITIES = ("urgent", "high", "normal", "low")
ACTION_TYPES = ("document", "contact", "file", "obtain", "other")
ACTION_STATUSES = ("open", "in_progress", "done", "dismissed")


class ActionItem(Base, UUIDMixin, TimestampMixin, OwnedMixin):
    __tablename__ = "action_items"
    __table_args__ = (
        Index("ix_action_items_user_status", "user_id", "status"),
        {"schema": SCHEMA_NAME},
    )

    event_id = Column(
        PG_UUID(as_uuid=True),
        ForeignKey(f"{SCHEMA_NAME}.events.id", ondelete="SET NULL"),
        nullable=True,
        comment="First event of the capture that produced this item",
    )

    priority = Column(
        String(10), nullable=False, default="normal", comment="urgent/high/normal/low"
    )

    type = Column(
        String(20),
        nullable=False,
        default="other",
        comment="document/contact/file/obtain/other",
    )

    description = Column(Text, nullable=False, comment="What needs to be done")

    deadline = Column(Date, nullable=True, comment="Due date when one was stated")

    status = Column(
        String(20),
        nullable=False,
        default="open",
        comment="open/in_progress/done/dismissed",
    )

    @validates("priority")
    def validate_priority(self, key, value):
        return check_choice(key, value, ACTION_PRIORITIES)

    @validates("type")
    def validate_type(self, key, value):
        return check_choice(key, value, ACTION_TYPES)

    @validates("status")
    def validate_status(self, key, value):
        return check_choice(key, value, ACTION_STATUSES)

    def __repr__(self):
        return f"<ActionItem(id={self.id}, priority='{self.priority}', status='{self.status}')>"
