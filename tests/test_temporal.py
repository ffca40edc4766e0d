from datetime import UTC, date, datetime, timedelta, timezone

import pytest

from app.schemas import ExtractedEvent
from app.services.temporal import (
    get_timezone,
    normalize_event_timing,
    reference_datetime,
    resolve_time_expression,
)

# Saturday
REFERENCE = reference_datetime(date(2024, 11, 23), UTC)


def test_clock_time_on_reference_date_is_exact():
    resolved = resolve_time_expression("at 6pm", REFERENCE)

    assert resolved.timestamp == datetime(2024, 11, 23, 18, 0, tzinfo=UTC)
    assert resolved.precision == "exact"


@pytest.mark.parametrize(
    "text",
    ["sometime last month", "a while ago", "a few weeks ago", "recently", ""],
)
def test_vague_expressions_are_unknown(text):
    resolved = resolve_time_expression(text, REFERENCE)

    assert resolved.timestamp is None
    assert resolved.precision == "unknown"


@pytest.mark.parametrize(
    "text,expected,precision",
    [
        ("yesterday at 18:45", datetime(2024, 11, 22, 18, 45, tzinfo=UTC), "exact"),
        ("this morning", datetime(2024, 11, 23, 9, 0, tzinfo=UTC), "approximate"),
        ("last night", datetime(2024, 11, 22, 21, 0, tzinfo=UTC), "approximate"),
        ("yesterday", datetime(2024, 11, 22, 0, 0, tzinfo=UTC), "day"),
        ("last saturday", datetime(2024, 11, 16, 0, 0, tzinfo=UTC), "day"),
        ("on 2024-11-20 at 7:30 am", datetime(2024, 11, 20, 7, 30, tzinfo=UTC), "exact"),
    ],
)
def test_relative_expressions(text, expected, precision):
    resolved = resolve_time_expression(text, REFERENCE)

    assert resolved.timestamp == expected
    assert resolved.precision == precision


def test_resolution_is_deterministic():
    first = resolve_time_expression("this evening", REFERENCE)
    second = resolve_time_expression("this evening", REFERENCE)

    assert first == second


def test_reference_without_date_uses_now():
    now = datetime(2025, 1, 5, 14, 30, tzinfo=UTC)

    assert reference_datetime(None, UTC, now=now) == now


def test_unknown_timezone_falls_back_to_utc():
    assert get_timezone("Mars/Olympus_Mons") is UTC
    assert get_timezone(None) is UTC


def test_anchor_line_mentions_resolved_time():
    line = resolve_time_expression("at 6pm", REFERENCE).anchor_line()

    assert "2024-11-23T18:00:00+00:00" in line
    assert "exact" in line


def test_unknown_precision_drops_timestamp():
    event = ExtractedEvent(
        type="incident",
        primary_timestamp=datetime(2024, 11, 23, 18, 0),
        timestamp_precision="unknown",
    )

    normalized = normalize_event_timing(event, UTC)

    assert normalized.primary_timestamp is None
    assert normalized.timestamp_precision == "unknown"


def test_missing_timestamp_cannot_claim_precision():
    event = ExtractedEvent(type="incident", timestamp_precision="exact")

    assert normalize_event_timing(event).timestamp_precision == "unknown"


def test_naive_timestamp_is_read_in_user_timezone():
    tz = timezone(timedelta(hours=-5))
    event = ExtractedEvent(
        type="school",
        primary_timestamp=datetime(2024, 11, 23, 8, 15),
        timestamp_precision="exact",
    )

    normalized = normalize_event_timing(event, tz)

    assert normalized.primary_timestamp == datetime(2024, 11, 23, 8, 15, tzinfo=tz)
    assert normalized.timestamp_precision == "exact"
