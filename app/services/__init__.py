"""
Daylight Services Package - Capture-to-Timeline Extraction Services

Services behind the capture endpoints: usage gating, media intake, transcription,
LLM extraction, temporal normalization, persistence, and background journal jobs.

Core Services:
- capture_orchestrator: Coordinates a capture from gate check to saved events
- usage_gate: Per-tier monthly quota checks
- media_intake & transcription_service: Upload classification and speech-to-text
- extraction_context & temporal: Prompt context and date/time normalization
- llm_extractor: Structured event extraction and upstream error mapping
- persistence: Event, child row, and evidence link writes
- job_dispatcher: In-process at-least-once job delivery with retries
- evidence_service, storage_service & suggestion_service: Evidence handling
- llm_service & llm_interface: LLM client registry and abstraction
"""
