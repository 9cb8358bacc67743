"""Google Calendar provider implementation.

Uses a Google Cloud service account to interact with the Calendar API v3.
Events are created with a Google Meet conference request; the Meet URI is
read back from the event's ``conferenceData``. The service account JSON key
path is read from the ``GOOGLE_SERVICE_ACCOUNT_JSON`` environment variable.
"""

from __future__ import annotations

import asyncio
import logging
import os
import secrets
from datetime import datetime, timezone
from functools import partial
from typing import Any

from google.oauth2.service_account import Credentials
from googleapiclient.discovery import build

from .base import CalendarEvent, CalendarProvider, extract_meet_link

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar.events"]


class GoogleCalendarProvider(CalendarProvider):
    """CalendarProvider backed by Google Calendar API v3."""

    def __init__(self, service_account_path: str | None = None) -> None:
        sa_path = service_account_path or os.environ.get(
            "GOOGLE_SERVICE_ACCOUNT_JSON", ""
        )
        if not sa_path:
            raise ValueError(
                "Google service account JSON path must be provided via "
                "constructor argument or GOOGLE_SERVICE_ACCOUNT_JSON env var."
            )
        self._credentials = Credentials.from_service_account_file(
            sa_path, scopes=SCOPES
        )
        self._service = build(
            "calendar", "v3", credentials=self._credentials
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _run_in_executor(self, func, *args, **kwargs) -> Any:
        """Run a synchronous Google API call in the default thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, partial(func, *args, **kwargs)
        )

    @staticmethod
    def _to_rfc3339(dt: datetime) -> str:
        """Convert a datetime to an RFC 3339 string with timezone."""
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.isoformat()

    def _event_body(self, event: CalendarEvent) -> dict[str, Any]:
        start: dict[str, Any] = {"dateTime": self._to_rfc3339(event.start)}
        end: dict[str, Any] = {"dateTime": self._to_rfc3339(event.end)}
        if event.timezone:
            start["timeZone"] = event.timezone
            end["timeZone"] = event.timezone

        body: dict[str, Any] = {
            "summary": event.summary,
            "start": start,
            "end": end,
            "reminders": {
                "useDefault": False,
                "overrides": [
                    {"method": "email", "minutes": 24 * 60},
                    {"method": "email", "minutes": 60},
                    {"method": "popup", "minutes": 15},
                ],
            },
            "guestsCanModify": False,
            "guestsCanInviteOthers": False,
            "guestsCanSeeOtherGuests": False,
        }
        if event.description:
            body["description"] = event.description
        if event.location:
            body["location"] = event.location
        if event.attendees:
            body["attendees"] = [
                {
                    "email": a.email,
                    "displayName": a.display_name,
                    "responseStatus": "accepted" if a.organizer else "needsAction",
                    **({"organizer": True} if a.organizer else {}),
                }
                for a in event.attendees
            ]
        if event.with_video_conference:
            body["conferenceData"] = {
                "createRequest": {
                    "requestId": f"coffee-chat-{secrets.token_hex(6)}",
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            }
        return body

    # ------------------------------------------------------------------
    # CalendarProvider interface
    # ------------------------------------------------------------------

    async def create_event(
        self, calendar_id: str, event: CalendarEvent
    ) -> dict:
        """Insert an event into the Google Calendar.

        Sends email invitations to every attendee and asks Google to attach
        a Meet conference.
        """
        result = await self._run_in_executor(
            self._service.events()
            .insert(
                calendarId=calendar_id,
                body=self._event_body(event),
                conferenceDataVersion=1,
                sendUpdates="all",
            )
            .execute
        )

        logger.info("Created event %s on calendar %s", result["id"], calendar_id)

        return {
            "event_id": result["id"],
            "html_link": result.get("htmlLink", ""),
            "status": result.get("status", "confirmed"),
            "meet_link": extract_meet_link(result),
        }
