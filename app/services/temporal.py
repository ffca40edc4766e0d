"""
Deterministic temporal resolution.

Turns a short time expression ("at 6pm", "this morning", "yesterday") into a
timestamp plus a precision, relative to a reference datetime. Anything that
cannot be pinned down resolves to no timestamp with 'unknown' precision; a time
is never invented.
"""

import re
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.schemas import ExtractedEvent, TimestampPrecision
from app.utils.logger import setup_logger

logger = setup_logger("temporal")

DAY_PART_HOURS: dict[str, int] = {
    "morning": 9,
    "noon": 12,
    "afternoon": 15,
    "evening": 18,
    "tonight": 20,
    "night": 21,
}

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

# Phrases that place an event somewhere in a span wider than a day
_VAGUE_RE = re.compile(
    r"\b(sometime|some time|a while ago|recently|last (week|month|year)|"
    r"(few|couple of|several) (days|weeks|months) ago|earlier this (week|month|year)|"
    r"this (week|month|year)|months? ago|weeks? ago|years? ago)\b",
    re.IGNORECASE,
)
_CLOCK_12H_RE = re.compile(
    r"\b(1[0-2]|0?[1-9])(?::([0-5]\d))?\s*(a\.?m\.?|p\.?m\.?)(?![a-z])", re.IGNORECASE
)
_CLOCK_24H_RE = re.compile(r"\b([01]?\d|2[0-3]):([0-5]\d)\b")
_ISO_DATE_RE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
_DAY_PART_RE = re.compile(
    r"\b(last night|tonight|this morning|this afternoon|this evening|"
    r"morning|noon|midday|afternoon|evening|night)\b",
    re.IGNORECASE,
)
_WEEKDAY_RE = re.compile(r"\b(last\s+)?(" + "|".join(WEEKDAYS) + r")\b", re.IGNORECASE)


@dataclass(frozen=True)
class ResolvedTime:
    timestamp: datetime | None
    precision: TimestampPrecision
    source_text: str = ""

    def anchor_line(self) -> str:
        """Prompt line stating the resolved time as the authoritative anchor."""
        if self.timestamp is None:
            return (
                f'The user described the time as "{self.source_text}". It does not identify '
                "a specific time: use a null primary_timestamp with precision \"unknown\" "
                "unless the narrative itself states a date and time."
            )
        return (
            f'The user described the time as "{self.source_text}", which resolves to '
            f"{self.timestamp.isoformat()} (precision: {self.precision}). Treat this as "
            "authoritative for when the events happened; do not infer a different time "
            "from the narrative."
        )


def get_timezone(name: str | None) -> tzinfo:
    if not name:
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone '{name}', using UTC")
        return UTC


def reference_datetime(
    reference_date: date | None, tz: tzinfo = UTC, now: datetime | None = None
) -> datetime:
    """
    The anchor for relative expressions: the chosen reference date at midnight,
    or the current time when no usable date was chosen.
    """
    if reference_date is None:
        current = now or datetime.now(tz)
        return current.astimezone(tz)
    return datetime.combine(reference_date, time(0, 0), tzinfo=tz)


def _clock_time(text: str) -> time | None:
    match = _CLOCK_12H_RE.search(text)
    if match:
        hour = int(match.group(1)) % 12
        minute = int(match.group(2) or 0)
        if match.group(3).lower().startswith("p"):
            hour += 12
        return time(hour, minute)

    match = _CLOCK_24H_RE.search(text)
    if match:
        return time(int(match.group(1)), int(match.group(2)))
    return None


def _explicit_date(text: str) -> date | None:
    match = _ISO_DATE_RE.search(text)
    if not match:
        return None
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        return None


def _relative_day(text: str, reference: date) -> tuple[date | None, bool]:
    """Return (day, recognized). recognized is False when no day word was found."""
    lowered = text.lower()
    if re.search(r"\b(yesterday|last night)\b", lowered):
        return reference - timedelta(days=1), True
    if re.search(r"\b(today|tonight|this (morning|afternoon|evening))\b", lowered):
        return reference, True

    match = _WEEKDAY_RE.search(lowered)
    if match:
        target = WEEKDAYS.index(match.group(2))
        delta = (reference.weekday() - target) % 7
        if match.group(1) and delta == 0:
            delta = 7
        return reference - timedelta(days=delta), True
    return None, False


def _day_part_hour(text: str) -> int | None:
    match = _DAY_PART_RE.search(text)
    if not match:
        return None
    phrase = match.group(1).lower()
    if phrase == "last night":
        return DAY_PART_HOURS["night"]
    if phrase == "midday":
        return DAY_PART_HOURS["noon"]
    return DAY_PART_HOURS[phrase.split()[-1]]


def resolve_time_expression(text: str | None, reference: datetime) -> ResolvedTime:
    """
    Resolve a time expression against a reference datetime.

    - A clock time lands on the explicit, relative or reference date at
      'exact' precision.
    - A day part alone uses its conventional hour at 'approximate' precision.
    - A day without a time is 'day' precision at midnight.
    - Anything wider than a day, or unrecognized, is null at 'unknown'.
    """
    source = (text or "").strip()
    unknown = ResolvedTime(timestamp=None, precision="unknown", source_text=source)
    if not source:
        return unknown
    if _VAGUE_RE.search(source):
        return unknown

    tz = reference.tzinfo or UTC
    day = _explicit_date(source)
    if day is None:
        day, recognized = _relative_day(source, reference.date())
        if not recognized:
            day = None

    clock = _clock_time(source)
    if clock is not None:
        anchor_day = day or reference.date()
        return ResolvedTime(
            timestamp=datetime.combine(anchor_day, clock, tzinfo=tz),
            precision="exact",
            source_text=source,
        )

    hour = _day_part_hour(source)
    if hour is not None:
        anchor_day = day or reference.date()
        return ResolvedTime(
            timestamp=datetime.combine(anchor_day, time(hour, 0), tzinfo=tz),
            precision="approximate",
            source_text=source,
        )

    if day is not None:
        return ResolvedTime(
            timestamp=datetime.combine(day, time(0, 0), tzinfo=tz),
            precision="day",
            source_text=source,
        )

    return unknown


def normalize_event_timing(event: ExtractedEvent, tz: tzinfo = UTC) -> ExtractedEvent:
    """
    Enforce timestamp/precision consistency on model output.

    'unknown' precision drops any timestamp; a missing timestamp cannot claim a
    precision; naive timestamps are read in the user's timezone.
    """
    timestamp = event.primary_timestamp
    precision = event.timestamp_precision

    if precision == "unknown" and timestamp is not None:
        logger.debug(f"Dropping timestamp {timestamp} on event '{event.title}' with unknown precision")
        timestamp = None
    if timestamp is None:
        precision = "unknown"
    elif timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=tz)

    if timestamp == event.primary_timestamp and precision == event.timestamp_precision:
        return event
    return event.model_copy(
        update={"primary_timestamp": timestamp, "timestamp_precision": precision}
    )
