"""
Context assembled around a narrative before extraction.

Speaker identity, case background, the temporal anchor and attached-evidence
summaries are loaded per owner. Lookup failures never abort a capture; they
degrade to generic context.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from typing import Any

from app.db_handlers import CaseDBHandler, ProfileDBHandler
from app.models import Case, Evidence
from app.prompts import (
    DEFAULT_CASE_CONTEXT,
    DEFAULT_SPEAKER_LINE,
    EVIDENCE_CONTEXT_FOOTER,
    EVIDENCE_CONTEXT_HEADER,
    SPEAKER_LINE_TEMPLATE,
    TEMPORAL_GUIDANCE_TEMPLATE,
)
from app.services.temporal import (
    ResolvedTime,
    get_timezone,
    reference_datetime,
    resolve_time_expression,
)
from app.utils.logger import setup_logger

logger = setup_logger("extraction_context")


@dataclass
class EvidenceSummary:
    evidence_id: uuid.UUID | None
    annotation: str | None
    summary: str | None


@dataclass
class ExtractionContext:
    speaker_line: str = DEFAULT_SPEAKER_LINE
    case_context: str = DEFAULT_CASE_CONTEXT
    reference: datetime | None = None
    timezone: tzinfo | None = None
    time_anchor: ResolvedTime | None = None
    evidence_summaries: list[EvidenceSummary] = field(default_factory=list)

    def temporal_guidance(self) -> str:
        reference = self.reference or reference_datetime(None, self.timezone or get_timezone(None))
        guidance = TEMPORAL_GUIDANCE_TEMPLATE.format(
            reference_iso=reference.isoformat(),
            timezone=getattr(reference.tzinfo, "key", None) or str(reference.tzinfo),
        )
        if self.time_anchor is not None:
            guidance += "\n" + self.time_anchor.anchor_line()
        return guidance

    def evidence_context(self) -> str:
        if not self.evidence_summaries:
            return ""
        lines = [EVIDENCE_CONTEXT_HEADER]
        for i, item in enumerate(self.evidence_summaries, start=1):
            entry = f"Evidence {i}:"
            if item.annotation:
                entry += f'\n  User\'s note: "{item.annotation}"'
            if item.summary:
                entry += f"\n  Analysis: {item.summary}"
            lines.append(entry)
        lines.append(EVIDENCE_CONTEXT_FOOTER)
        return "\n".join(lines)


def build_speaker_line(name: str | None) -> str:
    name = (name or "").strip()
    if not name:
        return DEFAULT_SPEAKER_LINE
    return SPEAKER_LINE_TEMPLATE.format(name=name)


def build_case_context(case: Case | None) -> str:
    if case is None:
        return DEFAULT_CASE_CONTEXT

    parts = []
    if case.case_type:
        parts.append(f"case type: {case.case_type}")
    if case.your_role:
        parts.append(f"your role: {case.your_role}")
    if case.stage:
        parts.append(f"stage: {case.stage}")
    if case.opposing_party_name:
        opposing = case.opposing_party_name
        if case.opposing_party_role:
            opposing += f" ({case.opposing_party_role})"
        parts.append(f"opposing party: {opposing}")
    if case.children_summary:
        parts.append(f"children: {case.children_summary}")
    if case.parenting_schedule:
        parts.append(f"parenting schedule: {case.parenting_schedule}")
    if case.goals_summary:
        parts.append(f"user goals: {case.goals_summary}")
    if case.risk_flags:
        parts.append(f"risk flags: {', '.join(case.risk_flags)}")
    if case.next_court_date:
        parts.append(f"next court date: {case.next_court_date.isoformat()}")

    if not parts:
        return DEFAULT_CASE_CONTEXT
    return f"The speaker is involved in a family law matter: {'; '.join(parts)}."


def summarize_evidence(evidence: Evidence) -> EvidenceSummary:
    """Prefer the stored analysis summary over the upload-time summary."""
    summary = None
    raw: dict[str, Any] | None = evidence.extraction_raw
    if isinstance(raw, dict):
        extraction = raw.get("extraction")
        if isinstance(extraction, dict) and extraction.get("summary"):
            summary = extraction["summary"]
    return EvidenceSummary(
        evidence_id=evidence.id,
        annotation=evidence.user_annotation,
        summary=summary or evidence.summary,
    )


class ExtractionContextLoader:
    """Loads the per-owner context for an extraction call."""

    def __init__(self):
        self.profile_handler = ProfileDBHandler()
        self.case_handler = CaseDBHandler()

    async def load(
        self,
        user_id: uuid.UUID,
        *,
        reference_date: date | None = None,
        reference_time_description: str | None = None,
        evidence: list[Evidence] | None = None,
    ) -> ExtractionContext:
        tz = get_timezone(None)
        speaker_line = DEFAULT_SPEAKER_LINE
        try:
            profile = await self.profile_handler.get_by_user(user_id)
            if profile is not None:
                speaker_line = build_speaker_line(profile.speaker_name)
                tz = get_timezone(profile.timezone)
        except Exception as e:
            logger.warning(f"[Context user={user_id}] Profile lookup failed: {e}")

        case_context = DEFAULT_CASE_CONTEXT
        try:
            case_context = build_case_context(await self.case_handler.get_latest_case(user_id))
        except Exception as e:
            logger.warning(f"[Context user={user_id}] Case lookup failed: {e}")

        reference = reference_datetime(reference_date, tz)
        anchor = None
        if reference_time_description:
            anchor = resolve_time_expression(reference_time_description, reference)
            logger.info(
                f"[Context user={user_id}] Reference time '{reference_time_description}' "
                f"resolved to {anchor.timestamp} ({anchor.precision})"
            )

        return ExtractionContext(
            speaker_line=speaker_line,
            case_context=case_context,
            reference=reference,
            timezone=tz,
            time_anchor=anchor,
            evidence_summaries=[summarize_evidence(e) for e in evidence or []],
        )

