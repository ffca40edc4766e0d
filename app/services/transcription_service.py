"""
Transcription adapter: audio clip in, transcript out.

Upstream errors are translated into typed UpstreamError kinds. An empty
transcript is not an error here; the caller decides whether other input
makes up for it.
"""

from dataclasses import dataclass

from openai import OpenAIError

from app.config import settings
from app.exceptions import UpstreamError
from app.services.llm_interface import LLMInterface
from app.services.llm_providers.openai_client import map_openai_error
from app.services.media_intake import audio_extension_for, normalize_audio_mime
from app.utils.logger import setup_logger

logger = setup_logger("transcription_service")


@dataclass
class TranscriptionResult:
    transcript: str

    @property
    def is_empty(self) -> bool:
        return not self.transcript


async def transcribe(
    llm_client: LLMInterface | None,
    audio_bytes: bytes,
    mime_type: str | None,
    filename: str | None = None,
    language: str | None = None,
) -> TranscriptionResult:
    if llm_client is None:
        raise UpstreamError("Transcription service is not configured", kind="failure")

    mime = normalize_audio_mime(mime_type, filename)
    upload_name = f"audio.{audio_extension_for(mime)}"
    effective_language = language or settings.transcription_language

    try:
        text = await llm_client.transcribe_audio(
            audio_bytes, upload_name, language=effective_language
        )
    except OpenAIError as e:
        raise map_openai_error(e, "Transcription") from e

    transcript = (text or "").strip()
    if not transcript:
        logger.warning(f"Transcription of {len(audio_bytes)} bytes ({mime}) returned no speech")
    return TranscriptionResult(transcript=transcript)
