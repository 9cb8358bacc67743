"""Tests for the iCalendar file and Google Calendar link."""

from datetime import datetime, timezone
from urllib.parse import parse_qs, urlparse

import pytest

from conftest import PACIFIC
from consultations.exports import (
    build_ics,
    escape_ics_text,
    fold_ics_line,
    format_ics_datetime,
    google_calendar_link,
    ics_filename,
)
from consultations.models.booking import ClientInfo

START = datetime(2026, 10, 19, 10, 30, tzinfo=PACIFIC)
MEET = "https://meet.google.com/abc-defg-hij"


@pytest.fixture
def client_info():
    return ClientInfo(name="Ada Lovelace", email="ada@example.com", topic="Code Review")


class TestIcs:
    def test_datetime_format(self):
        assert format_ics_datetime(START) == "20261019T173000Z"
        assert format_ics_datetime(datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)) == "20260102T030405Z"

    def test_escape(self):
        assert escape_ics_text("a,b;c\\d\ne") == "a\\,b\\;c\\\\d\\ne"

    def test_event_fields(self, client_info):
        ics = build_ics(client_info, START, MEET, "coffee@techconsult.dev", uid="abc@coffee-chat")
        lines = ics.split("\r\n")

        assert lines[0] == "BEGIN:VCALENDAR"
        assert lines[-2] == "END:VCALENDAR"
        assert lines[-1] == ""
        assert "DTSTART:20261019T173000Z" in lines
        assert "DTEND:20261019T180000Z" in lines
        assert "SUMMARY:Tech Consultation - Ada Lovelace" in lines
        assert f"LOCATION:{MEET}" in lines
        assert "ORGANIZER:mailto:coffee@techconsult.dev" in lines
        assert "ATTENDEE:mailto:ada@example.com" in lines
        assert "UID:abc@coffee-chat" in lines
        assert "STATUS:CONFIRMED" in lines
        assert any(line.startswith("DTSTAMP:") for line in lines)

    def test_description_unfolds_to_one_line(self, client_info):
        ics = build_ics(client_info, START, MEET, "coffee@techconsult.dev")
        unfolded = ics.replace("\r\n ", "")
        description = next(line for line in unfolded.split("\r\n") if line.startswith("DESCRIPTION:"))
        assert "\\n" in description
        assert MEET in description
        assert "Company: Not specified" in description

    def test_lines_folded_at_75_octets(self, client_info):
        ics = build_ics(client_info, START, MEET, "coffee@techconsult.dev")
        lines = ics.split("\r\n")
        assert all(len(line.encode("utf-8")) <= 75 for line in lines)
        assert any(line.startswith(" ") for line in lines)

    def test_no_uid_by_default(self, client_info):
        ics = build_ics(client_info, START, MEET, "coffee@techconsult.dev")
        assert "UID:" not in ics

    def test_custom_duration(self, client_info):
        ics = build_ics(client_info, START, MEET, "coffee@techconsult.dev", session_minutes=60)
        assert "DTEND:20261019T183000Z" in ics.split("\r\n")

    def test_filename(self, client_info):
        assert ics_filename(client_info) == "coffee-chat-Ada-Lovelace.ics"


class TestFoldIcsLine:
    def test_short_line_untouched(self):
        assert fold_ics_line("SUMMARY:Coffee") == "SUMMARY:Coffee"

    def test_long_line(self):
        line = "DESCRIPTION:" + "x" * 150
        folded = fold_ics_line(line)
        parts = folded.split("\r\n")
        assert [len(p) for p in parts] == [75, 75, 14]
        assert all(p.startswith(" ") for p in parts[1:])
        assert folded.replace("\r\n ", "") == line

    def test_multibyte_characters_not_split(self):
        line = "SUMMARY:" + "\u00e9" * 60
        parts = fold_ics_line(line).split("\r\n")
        assert all(len(p.encode("utf-8")) <= 75 for p in parts)
        assert "".join(p[1:] if i else p for i, p in enumerate(parts)) == line


class TestGoogleCalendarLink:
    def test_params(self, client_info):
        url = google_calendar_link(client_info, START)
        parsed = urlparse(url)
        params = parse_qs(parsed.query)

        assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == (
            "https://calendar.google.com/calendar/render"
        )
        assert params["action"] == ["TEMPLATE"]
        assert params["text"] == ["Tech Consultation - Ada Lovelace"]
        assert params["dates"] == ["20261019T173000Z/20261019T180000Z"]
        assert "Code Review" in params["details"][0]
        assert params["location"] == ["Google Meet (link will be provided)"]
