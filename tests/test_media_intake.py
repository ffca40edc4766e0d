from datetime import date

import pytest

from app.exceptions import InputValidationError
from app.services.media_intake import (
    AudioClip,
    ImageUpload,
    SourceType,
    audio_extension_for,
    build_capture_input,
    classify_mime,
    normalize_audio_mime,
    presented_source_type,
    select_audio_container,
)


@pytest.mark.parametrize(
    "mime,expected",
    [
        ("image/png", SourceType.PHOTO),
        ("image/heic", SourceType.PHOTO),
        ("audio/webm;codecs=opus", SourceType.RECORDING),
        ("video/mp4", SourceType.RECORDING),
        ("message/rfc822", SourceType.EMAIL),
        ("text/plain", SourceType.TEXT),
        ("application/pdf", SourceType.DOCUMENT),
        ("application/vnd.openxmlformats-officedocument.wordprocessingml.document", SourceType.DOCUMENT),
        ("application/zip", SourceType.OTHER),
        (None, SourceType.OTHER),
    ],
)
def test_classify_mime(mime, expected):
    assert classify_mime(mime) is expected


@pytest.mark.parametrize(
    "stored,presented",
    [
        ("recording", "document"),
        ("other", "document"),
        ("photo", "photo"),
        ("text", "text"),
        ("email", "email"),
        ("document", "document"),
    ],
)
def test_presented_source_type(stored, presented):
    assert presented_source_type(stored).value == presented


def test_audio_container_preference():
    assert select_audio_container(["audio/mp4", "audio/webm"]) == "audio/webm"
    assert select_audio_container(["audio/mp4"]) == "audio/mp4"
    assert select_audio_container(["audio/x-unknown"]) is None
    assert select_audio_container(None) is None


@pytest.mark.parametrize(
    "mime,filename,expected",
    [
        ("audio/webm;codecs=opus", None, "audio/webm"),
        ("video/webm", None, "audio/webm"),
        ("application/octet-stream", "memo.m4a", "audio/mp4"),
        (None, "memo.mp3", "audio/mpeg"),
        (None, None, "audio/webm"),
    ],
)
def test_normalize_audio_mime(mime, filename, expected):
    assert normalize_audio_mime(mime, filename) == expected


def test_audio_extension_for():
    assert audio_extension_for("audio/mpeg") == "mp3"
    assert audio_extension_for("audio/ogg") == "ogg"
    assert audio_extension_for("audio/unknown") == "webm"


def test_blank_text_without_media_is_rejected():
    with pytest.raises(InputValidationError, match="Event text is required"):
        build_capture_input(narrative_text="   ")


def test_nothing_at_all_is_rejected():
    with pytest.raises(InputValidationError):
        build_capture_input()


def test_empty_audio_is_rejected():
    with pytest.raises(InputValidationError, match="empty"):
        build_capture_input(audio=AudioClip(data=b"", mime_type="audio/webm"))


def test_non_image_upload_is_rejected():
    with pytest.raises(InputValidationError, match="Unsupported image type"):
        build_capture_input(images=[ImageUpload(data=b"%PDF", mime_type="application/pdf")])


def test_capture_input_is_normalized():
    capture = build_capture_input(
        narrative_text="  Pickup was late.  ",
        audio=AudioClip(data=b"\x1a\x45\xdf\xa3", mime_type="audio/webm;codecs=opus"),
        user_annotation="  ",
        reference_date=date(2024, 11, 23),
        reference_time_description=" at 6pm ",
    )

    assert capture.narrative_text == "Pickup was late."
    assert capture.audio.mime_type == "audio/webm"
    assert capture.user_annotation is None
    assert capture.reference_time_description == "at 6pm"
