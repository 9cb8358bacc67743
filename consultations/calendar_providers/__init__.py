"""Calendar provider abstractions and implementations."""

from .base import (
    Attendee,
    CalendarEvent,
    CalendarProvider,
    extract_meet_link,
    generate_placeholder_meet_link,
)

__all__ = [
    "Attendee",
    "CalendarEvent",
    "CalendarProvider",
    "extract_meet_link",
    "generate_placeholder_meet_link",
]
