"""
Database models for the Daylight capture-to-timeline service.

Architecture: User → JournalEntry/Job → Events ←→ Evidence workflow pattern.
Every table except users carries a non-nullable owner reference.
"""

from app.models.action_item import ActionItem
from app.models.case import Case, Subscription
from app.models.communication import Communication
from app.models.event import (
    Event,
    EventEvidenceSuggestion,
    EventParticipant,
    EvidenceMention,
)
from app.models.evidence import EventEvidence, Evidence
from app.models.job import Job
from app.models.journal_entry import JournalEntry, JournalEntryEvidence
from app.models.user import Profile, User

__all__ = [
    # Accounts and context
    "User",
    "Profile",
    "Case",
    "Subscription",
    # Timeline
    "Event",
    "EventParticipant",
    "EvidenceMention",
    "EventEvidenceSuggestion",
    "ActionItem",
    "Communication",
    # Evidence
    "Evidence",
    "EventEvidence",
    # Submissions and processing
    "JournalEntry",
    "JournalEntryEvidence",
    "Job",
]
