"""
Steward — Natural-language date/time and calendar-event parsing.

Handles the small phrase set the agent recognizes: an explicit ISO-8601
timestamp, or a day (today, tomorrow, a weekday name, YYYY-MM-DD) combined
with a time (2pm, 2:30 pm, 14:30). Relative days resolve in the zone of the
base datetime.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

_WEEKDAYS = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

_ISO_RE = re.compile(r"\b\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(?::\d{2})?(?:Z|[+-]\d{2}:\d{2})")
_WEEKDAY_RE = re.compile(r"\b(sunday|monday|tuesday|wednesday|thursday|friday|saturday)\b")
_YMD_RE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
_AMPM_RE = re.compile(r"\b(\d{1,2})(?::(\d{2}))?\s*(am|pm)\b")
_H24_RE = re.compile(r"\b([01]?\d|2[0-3]):([0-5]\d)\b")

_DURATION_RE = re.compile(r"\bfor\s+(\d{1,3})\s*(minutes?|mins?|hours?|hrs?)\b", re.IGNORECASE)
_LOCATION_RE = re.compile(r"\b(?:at|in)\s+([a-z0-9][\w\s.'-]{1,80})$", re.IGNORECASE)
_LEADING_VERB_RE = re.compile(r"^\s*(add|create|schedule)\s+", re.IGNORECASE)
_DAY_PHRASE_RE = re.compile(
    r"\b(today|tomorrow|monday|tuesday|wednesday|thursday|friday|saturday|sunday)\b.*$",
    re.IGNORECASE | re.DOTALL,
)

DEFAULT_DURATION_MINUTES = 60


@dataclass
class ParsedCalendarEvent:
    title: str
    when_iso: str | None
    duration_minutes: int = DEFAULT_DURATION_MINUTES
    location: str | None = None


def _resolve_day(lower: str, base: datetime) -> date | None:
    if re.search(r"\btoday\b", lower):
        return base.date()

    if re.search(r"\btomorrow\b", lower):
        return base.date() + timedelta(days=1)

    weekday = _WEEKDAY_RE.search(lower)
    if weekday:
        target = _WEEKDAYS[weekday.group(1)]
        delta = (target - base.weekday()) % 7 or 7
        return base.date() + timedelta(days=delta)

    ymd = _YMD_RE.search(lower)
    if ymd:
        try:
            return date(int(ymd.group(1)), int(ymd.group(2)), int(ymd.group(3)))
        except ValueError:
            return None

    return None


def _resolve_time(lower: str) -> tuple[int, int] | None:
    ampm = _AMPM_RE.search(lower)
    if ampm:
        raw_hour = int(ampm.group(1))
        minute = int(ampm.group(2) or 0)
        if not 1 <= raw_hour <= 12 or not 0 <= minute <= 59:
            return None
        hour = raw_hour % 12
        if ampm.group(3) == "pm":
            hour += 12
        return hour, minute

    h24 = _H24_RE.search(lower)
    if h24:
        return int(h24.group(1)), int(h24.group(2))

    return None


def parse_datetime_from_text(text: str, base: datetime | None = None) -> str | None:
    """Return an ISO-8601 timestamp (UTC) for the phrase, or None if day or time is missing."""
    base = base or datetime.now(timezone.utc)
    if base.tzinfo is None:
        base = base.replace(tzinfo=timezone.utc)

    iso = _ISO_RE.search(text)
    if iso:
        try:
            parsed = datetime.fromisoformat(iso.group(0).replace("Z", "+00:00"))
            return parsed.astimezone(timezone.utc).isoformat()
        except ValueError:
            pass

    lower = text.lower()
    day = _resolve_day(lower, base)
    if day is None:
        return None

    time_of_day = _resolve_time(lower)
    if time_of_day is None:
        return None

    hour, minute = time_of_day
    local = datetime(day.year, day.month, day.day, hour, minute, tzinfo=base.tzinfo)
    return local.astimezone(timezone.utc).isoformat()


def _parse_duration_minutes(text: str) -> int | None:
    match = _DURATION_RE.search(text)
    if not match:
        return None
    count = int(match.group(1))
    if count <= 0:
        return None
    unit = match.group(2).lower()
    if unit.startswith(("hour", "hr")):
        return count * 60
    return count


def _parse_location(text: str) -> str | None:
    match = _LOCATION_RE.search(text)
    if not match:
        return None
    value = match.group(1).strip()
    if not value or re.search(r"(\d\s*|\b)(am|pm)$", value.lower()):
        return None
    return value


def _parse_title(text: str) -> str:
    title = _LEADING_VERB_RE.sub("", text, count=1)
    title = _DAY_PHRASE_RE.sub("", title, count=1)
    title = _DURATION_RE.sub("", title, count=1).strip()
    return title or "Calendar event"


def parse_calendar_event_request(text: str, now: datetime | None = None) -> ParsedCalendarEvent:
    return ParsedCalendarEvent(
        title=_parse_title(text),
        when_iso=parse_datetime_from_text(text, now),
        duration_minutes=_parse_duration_minutes(text) or DEFAULT_DURATION_MINUTES,
        location=_parse_location(text),
    )
