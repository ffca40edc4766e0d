from __future__ import annotations

from app.db_handlers.base import OwnedDBHandler
from app.models.action_item import ActionItem
from app.models.communication import Communication


class ActionItemDBHandler(OwnedDBHandler[ActionItem]):
    def __init__(self):
        super().__init__(ActionItem)


class CommunicationDBHandler(OwnedDBHandler[Communication]):
    def __init__(self):
        super().__init__(Communication)
