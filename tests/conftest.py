"""Shared fixtures: a fixed clock, fake integrations and a ready draft."""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from consultations.calendar_providers.base import CalendarProvider
from consultations.draft import BookingDraft, ClientDetailsForm
from consultations.notifications.email import EmailReport
from consultations.store import InMemoryBookingStore

PACIFIC = ZoneInfo("America/Los_Angeles")

# Friday 2026-10-16, 12:00 PT
NOW = datetime(2026, 10, 16, 19, 0, tzinfo=timezone.utc)
TODAY = date(2026, 10, 16)
MONDAY = date(2026, 10, 19)


class FakeCalendarProvider(CalendarProvider):
    """Records created events and returns a fixed Meet link."""

    def __init__(self, meet_link="https://meet.google.com/abc-defg-hij", error=None):
        self.meet_link = meet_link
        self.error = error
        self.events = []

    async def create_event(self, calendar_id, event):
        if self.error is not None:
            raise self.error
        self.events.append((calendar_id, event))
        return {
            "event_id": f"evt_{len(self.events)}",
            "html_link": f"https://calendar.google.com/event/evt_{len(self.events)}",
            "status": "confirmed",
            "meet_link": self.meet_link,
        }


class FakeMailer:
    """Stands in for NotificationMailer; records every confirmation."""

    def __init__(self, client_sent=True, admin_sent=True):
        self.client_sent = client_sent
        self.admin_sent = admin_sent
        self.sent = []

    async def send_booking_confirmation(
        self, client, start, time_display, meet_link, calendar_link=""
    ):
        self.sent.append({
            "client": client,
            "start": start,
            "time_display": time_display,
            "meet_link": meet_link,
            "calendar_link": calendar_link,
        })
        report = EmailReport(client_sent=self.client_sent, admin_sent=self.admin_sent)
        if not self.client_sent:
            report.errors["client"] = "EmailJS returned 500"
        if not self.admin_sent:
            report.errors["admin"] = "EmailJS returned 500"
        return report


@pytest.fixture
def store():
    return InMemoryBookingStore()


@pytest.fixture
def calendar():
    return FakeCalendarProvider()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def ada_form():
    return ClientDetailsForm(
        name="Ada Lovelace",
        email="ada@example.com",
        company="Analytical Engines",
        experience="Senior Developer (5+ years)",
        topic="Code Review",
    )


@pytest.fixture
def ready_draft(ada_form):
    """A draft in CONFIRMING for Monday 10:30 PT."""
    draft = BookingDraft(today=lambda: TODAY)
    draft.select_date(MONDAY)
    draft.select_time("10:30")
    draft.submit_details(ada_form)
    return draft
