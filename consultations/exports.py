"""Calendar file and link exports for a confirmed booking."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from urllib.parse import urlencode

from consultations.models.booking import ClientInfo

PRODID = "-//Coffee Chat//Consultation Booking//EN"
GOOGLE_CALENDAR_RENDER_URL = "https://calendar.google.com/calendar/render"


def format_ics_datetime(dt: datetime) -> str:
    """``20251001T173000Z``"""
    return dt.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def escape_ics_text(value: str) -> str:
    """Escape a TEXT value per RFC 5545 section 3.3.11."""
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
    )


def fold_ics_line(line: str, limit: int = 75) -> str:
    """Fold a content line at ``limit`` octets per RFC 5545 section 3.1.

    Continuation lines start with a single space, which counts toward the
    limit. Multi-byte UTF-8 characters are never split.
    """
    parts: list[str] = []
    current = ""
    size = 0
    for char in line:
        width = len(char.encode("utf-8"))
        if size + width > limit:
            parts.append(current)
            current = " "
            size = 1
        current += char
        size += width
    parts.append(current)
    return "\r\n".join(parts)


def build_ics(
    client: ClientInfo,
    start: datetime,
    meet_link: str,
    organizer_email: str,
    session_minutes: int = 30,
    uid: str = "",
) -> str:
    """Single-event iCalendar file the client can import into their calendar."""
    end = start + timedelta(minutes=session_minutes)
    description = (
        f"Tech consultation session with {client.name}\n\n"
        f"Topic: {client.topic}\n"
        f"Company: {client.company or 'Not specified'}\n\n"
        f"Join Google Meet: {meet_link}\n\n"
        "About the session:\n"
        f"- Duration: {session_minutes} minutes\n"
        f"- Focus: {client.topic}"
    )
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        "BEGIN:VEVENT",
    ]
    if uid:
        lines.append(f"UID:{uid}")
    lines += [
        f"DTSTAMP:{format_ics_datetime(datetime.now(tz=timezone.utc))}",
        f"DTSTART:{format_ics_datetime(start)}",
        f"DTEND:{format_ics_datetime(end)}",
        f"SUMMARY:{escape_ics_text(f'Tech Consultation - {client.name}')}",
        f"DESCRIPTION:{escape_ics_text(description)}",
        f"LOCATION:{escape_ics_text(meet_link)}",
        f"ORGANIZER:mailto:{organizer_email}",
        f"ATTENDEE:mailto:{client.email}",
        "STATUS:CONFIRMED",
        "SEQUENCE:0",
        "END:VEVENT",
        "END:VCALENDAR",
    ]
    return "\r\n".join(fold_ics_line(line) for line in lines) + "\r\n"


def ics_filename(client: ClientInfo) -> str:
    return f"coffee-chat-{'-'.join(client.name.split())}.ics"


def google_calendar_link(
    client: ClientInfo,
    start: datetime,
    session_minutes: int = 30,
) -> str:
    """Pre-filled "add to Google Calendar" template URL."""
    end = start + timedelta(minutes=session_minutes)
    params = {
        "action": "TEMPLATE",
        "text": f"Tech Consultation - {client.name}",
        "dates": f"{format_ics_datetime(start)}/{format_ics_datetime(end)}",
        "details": (
            f"Tech consultation session about {client.topic}.\n\n"
            f"Client: {client.name}\n"
            f"Company: {client.company or 'Not specified'}\n\n"
            f"This is a {session_minutes}-minute session via Google Meet."
        ),
        "location": "Google Meet (link will be provided)",
        "sf": "true",
        "output": "xml",
    }
    return f"{GOOGLE_CALENDAR_RENDER_URL}?{urlencode(params)}"
