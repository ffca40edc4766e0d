from app.db_handlers.action_item import ActionItemDBHandler, CommunicationDBHandler
from app.db_handlers.base import BaseDBHandler, OwnedDBHandler, check_local_db
from app.db_handlers.case import CaseDBHandler, SubscriptionDBHandler
from app.db_handlers.event import (
    EventDBHandler,
    EventEvidenceDBHandler,
    EventEvidenceSuggestionDBHandler,
    EventParticipantDBHandler,
    EvidenceMentionDBHandler,
)
from app.db_handlers.evidence import EvidenceDBHandler
from app.db_handlers.job import InvalidJobTransition, JobDBHandler
from app.db_handlers.journal_entry import (
    JournalEntryDBHandler,
    JournalEntryEvidenceDBHandler,
)
from app.db_handlers.user import ProfileDBHandler, UserDBHandler

__all__ = [
    "BaseDBHandler",
    "OwnedDBHandler",
    "check_local_db",
    "UserDBHandler",
    "ProfileDBHandler",
    "CaseDBHandler",
    "SubscriptionDBHandler",
    "EventDBHandler",
    "EventParticipantDBHandler",
    "EvidenceMentionDBHandler",
    "EventEvidenceDBHandler",
    "EventEvidenceSuggestionDBHandler",
    "EvidenceDBHandler",
    "JobDBHandler",
    "InvalidJobTransition",
    "JournalEntryDBHandler",
    "JournalEntryEvidenceDBHandler",
    "ActionItemDBHandler",
    "CommunicationDBHandler",
]
