"""
Service providers for route handlers.

Handlers receive services through these functions so tests can swap them via
app.dependency_overrides.
"""

from app.services.capture_orchestrator import CaptureOrchestratorService
from app.services.evidence_service import EvidenceService
from app.services.suggestion_service import SuggestionService
from app.services.usage_gate import UsageGate


def get_capture_orchestrator() -> CaptureOrchestratorService:
    return CaptureOrchestratorService()


def get_evidence_service() -> EvidenceService:
    return EvidenceService()


def get_suggestion_service() -> SuggestionService:
    return SuggestionService()


def get_usage_gate() -> UsageGate:
    return UsageGate()
