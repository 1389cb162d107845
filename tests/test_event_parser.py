"""Tests for steward.core.event_parser — date/time and event extraction."""

from datetime import datetime, timedelta, timezone

import pytest

from steward.core.event_parser import parse_calendar_event_request, parse_datetime_from_text

# Saturday
BASE = datetime(2026, 2, 7, 10, 0, tzinfo=timezone.utc)


class TestParseDatetime:
    def test_tomorrow_with_12_hour_time(self):
        parsed = parse_datetime_from_text("Schedule dentist tomorrow at 2pm", BASE)
        assert parsed == datetime(2026, 2, 8, 14, 0, tzinfo=timezone.utc).isoformat()

    def test_today_with_minutes(self):
        parsed = parse_datetime_from_text("call today 3:15 pm", BASE)
        assert parsed == datetime(2026, 2, 7, 15, 15, tzinfo=timezone.utc).isoformat()

    def test_next_weekday_with_24_hour_time(self):
        parsed = parse_datetime_from_text("Set a meeting Friday 09:30", BASE)
        assert parsed == datetime(2026, 2, 13, 9, 30, tzinfo=timezone.utc).isoformat()

    def test_same_weekday_means_next_week(self):
        parsed = parse_datetime_from_text("saturday 8am", BASE)
        assert parsed == datetime(2026, 2, 14, 8, 0, tzinfo=timezone.utc).isoformat()

    def test_explicit_date(self):
        parsed = parse_datetime_from_text("on 2026-03-01 at 12am", BASE)
        assert parsed == datetime(2026, 3, 1, 0, 0, tzinfo=timezone.utc).isoformat()

    def test_iso_timestamp_wins(self):
        parsed = parse_datetime_from_text("at 2026-03-01T16:45:00Z tomorrow 2pm", BASE)
        assert parsed == datetime(2026, 3, 1, 16, 45, tzinfo=timezone.utc).isoformat()

    def test_iso_offset_normalized_to_utc(self):
        parsed = parse_datetime_from_text("2026-02-10T15:00:00-08:00", BASE)
        assert parsed == datetime(2026, 2, 10, 23, 0, tzinfo=timezone.utc).isoformat()

    def test_relative_day_uses_base_zone(self):
        base = BASE.astimezone(timezone(timedelta(hours=-8)))
        parsed = parse_datetime_from_text("tomorrow 9am", base)
        assert parsed == datetime(2026, 2, 8, 17, 0, tzinfo=timezone.utc).isoformat()

    @pytest.mark.parametrize("text", ["schedule a meeting soon", "meeting tomorrow", "at 3pm", "tomorrow 13pm"])
    def test_missing_or_invalid_parts(self, text):
        assert parse_datetime_from_text(text, BASE) is None


class TestParseCalendarEvent:
    def test_full_request(self):
        parsed = parse_calendar_event_request(
            "Schedule dentist appointment tomorrow 2pm for 90 minutes at Mission Clinic", BASE
        )
        assert parsed.title.lower() == "dentist appointment"
        assert parsed.when_iso == datetime(2026, 2, 8, 14, 0, tzinfo=timezone.utc).isoformat()
        assert parsed.duration_minutes == 90
        assert parsed.location == "Mission Clinic"

    def test_duration_in_hours(self):
        parsed = parse_calendar_event_request("add workshop monday 10am for 2 hours", BASE)
        assert parsed.duration_minutes == 120
        assert parsed.title == "workshop"

    def test_defaults(self):
        parsed = parse_calendar_event_request("create event", BASE)
        assert parsed.title == "event"
        assert parsed.when_iso is None
        assert parsed.duration_minutes == 60
        assert parsed.location is None

    def test_empty_title_falls_back(self):
        assert parse_calendar_event_request("schedule tomorrow 2pm", BASE).title == "Calendar event"

    def test_trailing_time_is_not_a_location(self):
        parsed = parse_calendar_event_request("add meeting tomorrow at 2pm", BASE)
        assert parsed.location is None
