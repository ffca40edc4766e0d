"""
LLM Extractor Service - schema-constrained extraction for the capture pipeline.

Every call sends a JSON schema generated from the Pydantic output models, parses
the reply and validates it strictly. Failures surface as typed UpstreamError
kinds and are never retried here: empty output is 'empty', output that breaks
the schema is 'invalid_output'.
"""

import base64
import time
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from openai import OpenAIError
from pydantic import BaseModel, ValidationError

from app.config import settings
from app.exceptions import UpstreamError
from app.prompts import (
    ANALYZE_EVIDENCE_ANNOTATED_USER_PROMPT,
    ANALYZE_EVIDENCE_SYSTEM_PROMPT,
    ANALYZE_EVIDENCE_USER_PROMPT,
    DESCRIBE_PHOTO_SYSTEM_PROMPT,
    DESCRIBE_PHOTO_USER_PROMPT,
    EXTRACT_COMMUNICATIONS_SYSTEM_PROMPT,
    EXTRACT_COMMUNICATIONS_USER_PROMPT,
    EXTRACT_EVENTS_SYSTEM_PROMPT,
    NON_IMAGE_EVIDENCE_NOTE,
    SUGGEST_EVIDENCE_SYSTEM_PROMPT,
    SUGGEST_EVIDENCE_USER_PROMPT,
)
from app.schemas import (
    AuditPayload,
    CommunicationExtraction,
    EventExtraction,
    EvidenceAnalysis,
    EvidenceSuggestionExtraction,
    ExtractionMetadata,
    ExtractionResult,
    PhotoDescription,
)
from app.services.extraction_context import ExtractionContext
from app.services.llm_interface import LLMInterface
from app.services.llm_providers.openai_client import map_openai_error
from app.services.temporal import get_timezone, normalize_event_timing
from app.utils.json_parser import extract_json_object
from app.utils.logger import setup_logger

logger = setup_logger("llm_extractor")

OutputT = TypeVar("OutputT", bound=BaseModel)


@dataclass
class StructuredCompletion(Generic[OutputT]):
    parsed: OutputT
    raw: dict[str, Any]
    usage: dict[str, int] | None
    cost: float | None


def build_response_format(model_cls: type[BaseModel], name: str) -> dict[str, Any]:
    return {
        "type": "json_schema",
        "json_schema": {
            "name": name,
            "schema": model_cls.model_json_schema(),
            "strict": False,
        },
    }


def _usage_from_response(response: dict[str, Any]) -> dict[str, int] | None:
    usage = response.get("usage")
    if not usage:
        return None
    return {
        "prompt_tokens": int(usage.get("prompt_tokens") or 0),
        "completion_tokens": int(usage.get("completion_tokens") or 0),
        "total_tokens": int(usage.get("total_tokens") or 0),
    }


def compute_cost(usage: dict[str, int] | None) -> float | None:
    """USD cost of a call from configured per-1K token prices."""
    if not usage:
        return None
    cost = (
        usage.get("prompt_tokens", 0) / 1000 * settings.openai_input_cost_per_1k
        + usage.get("completion_tokens", 0) / 1000 * settings.openai_output_cost_per_1k
    )
    return round(cost, 6)


def merge_usage(*usages: dict[str, int] | None) -> dict[str, int] | None:
    present = [u for u in usages if u]
    if not present:
        return None
    keys = ("prompt_tokens", "completion_tokens", "total_tokens")
    return {k: sum(u.get(k, 0) for u in present) for k in keys}


def _image_part(image_url: str | None, image_bytes: bytes | None, mime_type: str | None) -> dict[str, Any]:
    if image_url:
        url = image_url
    elif image_bytes:
        encoded = base64.b64encode(image_bytes).decode("ascii")
        url = f"data:{mime_type or 'image/png'};base64,{encoded}"
    else:
        raise ValueError("An image URL or image bytes are required")
    return {"type": "image_url", "image_url": {"url": url, "detail": "high"}}


async def _structured_completion(
    llm_client: LLMInterface | None,
    messages: list[dict[str, Any]],
    output_model: type[OutputT],
    schema_name: str,
    operation: str,
) -> StructuredCompletion[OutputT]:
    if llm_client is None:
        raise UpstreamError(f"{operation}: model provider is not configured", kind="failure")

    start_time = time.perf_counter()
    try:
        response = await llm_client.generate_chat_completion(
            messages=messages,
            temperature=settings.llm_extraction_temperature,
            max_tokens=settings.llm_extraction_max_tokens,
            response_format=build_response_format(output_model, schema_name),
        )
    except OpenAIError as e:
        raise map_openai_error(e, operation) from e

    usage = _usage_from_response(response)
    content = None
    if response.get("choices"):
        content = (response["choices"][0].get("message") or {}).get("content")

    raw = extract_json_object(content)
    if raw is None:
        logger.error(f"{operation} returned no parseable JSON (content length {len(content or '')})")
        raise UpstreamError(f"{operation} returned an empty response", kind="empty")

    try:
        parsed = output_model.model_validate(raw)
    except ValidationError as e:
        logger.error(f"{operation} output failed schema validation: {e.error_count()} errors: {e}")
        raise UpstreamError(
            f"{operation} returned output that does not match the expected schema",
            kind="invalid_output",
        ) from e

    duration = time.perf_counter() - start_time
    logger.info(f"{operation} completed in {duration:.2f}s, usage: {usage}")
    return StructuredCompletion(parsed=parsed, raw=raw, usage=usage, cost=compute_cost(usage))


async def extract_events(
    llm_client: LLMInterface | None,
    narrative_text: str,
    context: ExtractionContext,
) -> ExtractionResult:
    """
    Extract zero or more timeline events from a narrative.

    Returned events have consistent timing: 'unknown' precision never carries a
    timestamp. When the user gave an explicit reference time and the narrative
    yields a single event, that time is applied to it.
    """
    system_prompt = EXTRACT_EVENTS_SYSTEM_PROMPT.format(
        speaker_line=context.speaker_line,
        case_context=context.case_context,
        temporal_guidance=context.temporal_guidance(),
        evidence_context=context.evidence_context(),
    )
    messages = [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": narrative_text},
    ]
    completion = await _structured_completion(
        llm_client, messages, EventExtraction, "event_extraction", "Event extraction"
    )
    extraction = completion.parsed

    tz = context.timezone or get_timezone(None)
    events = [normalize_event_timing(e, tz) for e in extraction.events]

    anchor = context.time_anchor
    if anchor is not None and anchor.timestamp is not None and len(events) == 1:
        events[0] = events[0].model_copy(
            update={
                "primary_timestamp": anchor.timestamp,
                "timestamp_precision": anchor.precision,
            }
        )

    logger.info(
        f"Event extraction produced {len(events)} events and {len(extraction.action_items)} action items"
    )
    return ExtractionResult(
        events=events,
        action_items=extraction.action_items,
        metadata=extraction.metadata,
        usage=completion.usage,
        cost=completion.cost,
        audit=AuditPayload(kind="event_extraction", data={"extraction": completion.raw}),
    )


async def extract_communications(
    llm_client: LLMInterface | None,
    context: ExtractionContext,
    *,
    image_url: str | None = None,
    image_bytes: bytes | None = None,
    mime_type: str | None = None,
    annotation: str | None = None,
) -> tuple[CommunicationExtraction, ExtractionResult]:
    """
    Extract communications from a screenshot or email photo.

    Returns the model's own shape plus the same normalized ExtractionResult the
    narrative path produces, so both persist the same way.
    """
    system_prompt = EXTRACT_COMMUNICATIONS_SYSTEM_PROMPT.format(
        speaker_line=context.speaker_line, case_context=context.case_context
    )
    note = f'\nThe user added this note: "{annotation}"' if annotation else ""
    messages = [
        {"role": "system", "content": system_prompt},
        {
            "role": "user",
            "content": [
                {"type": "text", "text": EXTRACT_COMMUNICATIONS_USER_PROMPT.format(annotation=note)},
                _image_part(image_url, image_bytes, mime_type),
            ],
        },
    ]
    completion = await _structured_completion(
        llm_client,
        messages,
        CommunicationExtraction,
        "communication_extraction",
        "Communication extraction",
    )
    extraction = completion.parsed
    tz = context.timezone or get_timezone(None)

    communications = []
    for comm in extraction.communications:
        sent_at, precision = comm.sent_at, comm.timestamp_precision
        if precision == "unknown" or sent_at is None:
            sent_at, precision = None, "unknown"
        elif sent_at.tzinfo is None:
            sent_at = sent_at.replace(tzinfo=tz)
        communications.append(
            comm.model_copy(update={"sent_at": sent_at, "timestamp_precision": precision})
        )

    events = [
        normalize_event_timing(suggested.to_extracted_event(), tz)
        for suggested in extraction.db_suggestions.events
    ]

    result = ExtractionResult(
        events=events,
        communications=communications,
        evidence=extraction.db_suggestions.evidence,
        metadata=ExtractionMetadata(
            extraction_confidence=extraction.metadata.image_analysis_confidence,
            ambiguities=extraction.metadata.ambiguities,
        ),
        usage=completion.usage,
        cost=completion.cost,
        audit=AuditPayload(kind="communication_extraction", data={"extraction": completion.raw}),
    )
    return extraction, result


async def describe_photo(
    llm_client: LLMInterface | None,
    image_url: str,
    context: ExtractionContext,
    annotation: str | None = None,
) -> StructuredCompletion[PhotoDescription]:
    system_prompt = DESCRIBE_PHOTO_SYSTEM_PROMPT.format(
        speaker_line=context.speaker_line, case_context=context.case_context
    )
    note = f'\nThe user added this note: "{annotation}"' if annotation else ""
    messages = [
        {"role": "system", "content": system_prompt},
        {
            "role": "user",
            "content": [
                {"type": "text", "text": DESCRIBE_PHOTO_USER_PROMPT.format(annotation=note)},
                _image_part(image_url, None, None),
            ],
        },
    ]
    return await _structured_completion(
        llm_client, messages, PhotoDescription, "photo_description", "Photo description"
    )


async def analyze_evidence(
    llm_client: LLMInterface | None,
    context: ExtractionContext,
    *,
    image_url: str | None,
    mime_type: str | None,
    filename: str | None,
    annotation: str | None = None,
) -> StructuredCompletion[EvidenceAnalysis]:
    """Analyze one evidence item. Non-image files are described by name and type only."""
    system_prompt = ANALYZE_EVIDENCE_SYSTEM_PROMPT.format(case_context=context.case_context)
    user_prompt = (
        ANALYZE_EVIDENCE_ANNOTATED_USER_PROMPT.format(annotation=annotation)
        if annotation
        else ANALYZE_EVIDENCE_USER_PROMPT
    )
    content: list[dict[str, Any]] = [{"type": "text", "text": user_prompt}]
    if image_url:
        content.append(_image_part(image_url, None, None))
    else:
        content.append(
            {
                "type": "text",
                "text": NON_IMAGE_EVIDENCE_NOTE.format(
                    mime_type=mime_type or "unknown", filename=filename or "unnamed"
                ),
            }
        )
    messages = [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": content},
    ]
    return await _structured_completion(
        llm_client, messages, EvidenceAnalysis, "evidence_analysis", "Evidence analysis"
    )


async def suggest_evidence(
    llm_client: LLMInterface | None,
    events: list[dict[str, Any]],
    case_context: str,
) -> StructuredCompletion[EvidenceSuggestionExtraction]:
    events_context = "\n\n".join(
        "\n".join(
            [
                f"event_id: {e['id']}",
                f"type: {e.get('type')}",
                f"title: {e.get('title')}",
                f"description: {e.get('description')}",
                f"when: {e.get('primary_timestamp') or 'unknown'}",
            ]
        )
        for e in events
    )
    messages = [
        {"role": "system", "content": SUGGEST_EVIDENCE_SYSTEM_PROMPT},
        {
            "role": "user",
            "content": SUGGEST_EVIDENCE_USER_PROMPT.format(
                case_context=case_context, events_context=events_context
            ),
        },
    ]
    return await _structured_completion(
        llm_client,
        messages,
        EvidenceSuggestionExtraction,
        "evidence_suggestions",
        "Evidence suggestion",
    )
