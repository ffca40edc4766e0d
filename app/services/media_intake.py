"""
Media intake: validation and MIME handling for capture input.

Nothing here touches the network or the database. Every rejection is an
InputValidationError raised before any paid call.
"""

import mimetypes
import os
from dataclasses import dataclass, field
from datetime import date
from enum import StrEnum
from typing import assert_never

from app.config import settings
from app.exceptions import InputValidationError
from app.utils.logger import setup_logger

logger = setup_logger("media_intake")

# Recording containers in order of preference for the capture client
AUDIO_CONTAINER_PREFERENCE = (
    "audio/webm;codecs=opus",
    "audio/webm",
    "audio/ogg;codecs=opus",
    "audio/mp4",
    "audio/mpeg",
    "audio/wav",
)

DEFAULT_AUDIO_MIME = "audio/webm"

_AUDIO_EXTENSIONS = {
    ".webm": "audio/webm",
    ".ogg": "audio/ogg",
    ".oga": "audio/ogg",
    ".opus": "audio/ogg",
    ".mp4": "audio/mp4",
    ".m4a": "audio/mp4",
    ".mp3": "audio/mpeg",
    ".mpga": "audio/mpeg",
    ".mpeg": "audio/mpeg",
    ".wav": "audio/wav",
    ".flac": "audio/flac",
}

_GENERIC_MIMES = {"", "application/octet-stream", "binary/octet-stream"}

_DOCUMENT_MIMES = {
    "application/pdf",
    "application/msword",
    "application/rtf",
    "application/vnd.oasis.opendocument.text",
}
_DOCUMENT_MIME_PREFIXES = ("application/vnd.openxmlformats-officedocument.", "application/vnd.ms-")


class SourceType(StrEnum):
    TEXT = "text"
    EMAIL = "email"
    PHOTO = "photo"
    DOCUMENT = "document"
    RECORDING = "recording"
    OTHER = "other"


@dataclass
class AudioClip:
    data: bytes
    mime_type: str
    filename: str | None = None


@dataclass
class ImageUpload:
    data: bytes
    mime_type: str
    filename: str | None = None


@dataclass
class CaptureInput:
    """A validated capture. Transient: never persisted as such."""

    narrative_text: str | None = None
    audio: AudioClip | None = None
    images: list[ImageUpload] = field(default_factory=list)
    user_annotation: str | None = None
    reference_date: date | None = None
    reference_time_description: str | None = None


def _base_mime(mime: str | None) -> str:
    return (mime or "").split(";", 1)[0].strip().lower()


def select_audio_container(supported: list[str] | set[str] | None) -> str | None:
    """First preferred container the client reports support for, else None (client default)."""
    if not supported:
        return None
    normalized = {s.strip().lower() for s in supported}
    for candidate in AUDIO_CONTAINER_PREFERENCE:
        if candidate in normalized:
            return candidate
    return None


def normalize_audio_mime(mime: str | None, filename: str | None = None) -> str:
    """
    Strip codec parameters and fill in a missing or generic type from the file
    extension. Falls back to audio/webm, the recorder's default container.
    """
    base = _base_mime(mime)
    if base and base not in _GENERIC_MIMES:
        # Some recorders label audio-only webm as video/webm
        if base.startswith("video/"):
            return "audio/" + base.split("/", 1)[1]
        return base

    if filename:
        ext = os.path.splitext(filename)[1].lower()
        if ext in _AUDIO_EXTENSIONS:
            return _AUDIO_EXTENSIONS[ext]
        guessed, _ = mimetypes.guess_type(filename)
        if guessed and guessed.startswith("audio/"):
            return guessed

    return DEFAULT_AUDIO_MIME


def audio_extension_for(mime: str) -> str:
    """File extension the speech-to-text API expects for a normalized audio MIME."""
    base = _base_mime(mime)
    for ext, candidate in _AUDIO_EXTENSIONS.items():
        if candidate == base:
            return ext.lstrip(".")
    return "webm"


def classify_mime(mime: str | None) -> SourceType:
    base = _base_mime(mime)
    if base.startswith("image/"):
        return SourceType.PHOTO
    if base.startswith("audio/") or base.startswith("video/"):
        return SourceType.RECORDING
    if base == "message/rfc822":
        return SourceType.EMAIL
    if base.startswith("text/"):
        return SourceType.TEXT
    if base in _DOCUMENT_MIMES or base.startswith(_DOCUMENT_MIME_PREFIXES):
        return SourceType.DOCUMENT
    return SourceType.OTHER


def presented_source_type(source_type: SourceType | str) -> SourceType:
    """
    Source type as shown to clients. Recordings and unclassified files display
    as documents; the stored value is left alone.
    """
    st = SourceType(source_type)
    match st:
        case SourceType.RECORDING | SourceType.OTHER:
            return SourceType.DOCUMENT
        case SourceType.TEXT | SourceType.EMAIL | SourceType.PHOTO | SourceType.DOCUMENT:
            return st
        case _:
            assert_never(st)


def is_image(mime: str | None) -> bool:
    return classify_mime(mime) is SourceType.PHOTO


def validate_audio(audio: AudioClip) -> AudioClip:
    if not audio.data:
        raise InputValidationError("Audio file is empty")
    if len(audio.data) > settings.max_audio_bytes:
        raise InputValidationError(
            f"Audio file too large ({len(audio.data)} bytes, max {settings.max_audio_bytes})"
        )
    mime = normalize_audio_mime(audio.mime_type, audio.filename)
    if classify_mime(mime) is not SourceType.RECORDING:
        raise InputValidationError(f"Unsupported audio type: {audio.mime_type}")
    return AudioClip(data=audio.data, mime_type=mime, filename=audio.filename)


def validate_image(image: ImageUpload) -> ImageUpload:
    if not image.data:
        raise InputValidationError("Image file is empty")
    if not is_image(image.mime_type):
        raise InputValidationError(f"Unsupported image type: {image.mime_type or 'unknown'}")
    if len(image.data) > settings.max_image_bytes:
        raise InputValidationError(
            f"Image too large ({len(image.data)} bytes, max {settings.max_image_bytes})"
        )
    return ImageUpload(data=image.data, mime_type=_base_mime(image.mime_type), filename=image.filename)


def build_capture_input(
    *,
    narrative_text: str | None = None,
    audio: AudioClip | None = None,
    images: list[ImageUpload] | None = None,
    user_annotation: str | None = None,
    reference_date: date | None = None,
    reference_time_description: str | None = None,
) -> CaptureInput:
    """Validate raw capture parts and return the normalized CaptureInput."""
    text = narrative_text.strip() if narrative_text is not None else None
    if narrative_text is not None and not text and audio is None and not images:
        raise InputValidationError("Event text is required")

    if not text and audio is None and not images:
        raise InputValidationError("Provide narrative text, audio or at least one image")

    validated_audio = validate_audio(audio) if audio is not None else None
    validated_images = [validate_image(img) for img in images or []]

    description = (reference_time_description or "").strip() or None
    annotation = (user_annotation or "").strip() or None

    logger.debug(
        f"Capture input accepted: text={len(text or '')} chars, "
        f"audio={'yes' if validated_audio else 'no'}, images={len(validated_images)}"
    )
    return CaptureInput(
        narrative_text=text or None,
        audio=validated_audio,
        images=validated_images,
        user_annotation=annotation,
        reference_date=reference_date,
        reference_time_description=description,
    )
