"""Abstract base class for calendar providers.

Defines the interface for creating consultation events with a video
conference attached. Any calendar backend (Google, Outlook, etc.)
implements this ABC.
"""

from __future__ import annotations

import random
import string
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

MEET_BASE_URL = "https://meet.google.com"

_TOKEN_ALPHABET = string.ascii_lowercase + string.digits


@dataclass
class Attendee:
    email: str
    display_name: str = ""
    organizer: bool = False


@dataclass
class CalendarEvent:
    """Represents a calendar event to be created."""

    summary: str
    start: datetime
    end: datetime
    description: str = ""
    attendees: list[Attendee] = field(default_factory=list)
    location: str = ""
    timezone: str = ""
    with_video_conference: bool = True


def extract_meet_link(event: dict[str, Any]) -> Optional[str]:
    """Return the video entry point URI of a provider event record, if any."""
    conference = event.get("conferenceData") or {}
    for entry in conference.get("entryPoints") or []:
        if entry.get("entryPointType") == "video" and entry.get("uri"):
            return entry["uri"]
    return None


def generate_placeholder_meet_link() -> str:
    """A Meet-shaped link with a random ``xxx-xxx-xxx`` code.

    Placeholder only: no meeting room exists behind it.
    """
    code = "-".join(
        "".join(random.choices(_TOKEN_ALPHABET, k=3)) for _ in range(3)
    )
    return f"{MEET_BASE_URL}/{code}"


class CalendarProvider(ABC):
    """Abstract calendar backend.

    Subclasses must implement event creation.
    """

    @abstractmethod
    async def create_event(
        self, calendar_id: str, event: CalendarEvent
    ) -> dict:
        """Create a calendar event.

        Args:
            calendar_id: The calendar to create the event on.
            event: Event details.

        Returns:
            Dict containing ``"event_id"``, ``"html_link"``, and
            ``"meet_link"`` (``None`` when no conference was attached).
        """
