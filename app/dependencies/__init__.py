from app.dependencies.auth import get_current_user
from app.dependencies.ownership import get_owned_job
from app.dependencies.services import (
    get_capture_orchestrator,
    get_evidence_service,
    get_suggestion_service,
    get_usage_gate,
)

__all__ = [
    "get_current_user",
    "get_owned_job",
    "get_capture_orchestrator",
    "get_evidence_service",
    "get_suggestion_service",
    "get_usage_gate",
]
