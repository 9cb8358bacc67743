"""Post-confirmation sequence: calendar event → persist booking → emails.

Each step records its own ``StepResult``; the booking's terminal status is
derived from the three results by ``derive_status``. A failing step never
stops the sequence and no step is retried, so the visitor always reaches a
confirmed state. The status tells a full confirmation apart from a
degraded one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta, tzinfo
from enum import Enum
from typing import Any, Optional

from consultations.calendar_providers.base import (
    Attendee,
    CalendarEvent,
    CalendarProvider,
    generate_placeholder_meet_link,
)
from consultations.draft import BookingDraft
from consultations.models.booking import Booking, ClientInfo, NewBooking
from consultations.notifications.email import NotificationMailer
from consultations.store.base import BookingStore, SchemaMissingError, StoreError

log = logging.getLogger("consultations.orchestrator")

MSG_CONFIRMED = "Confirmation emails sent successfully!"
MSG_EMAIL_FAILED = "Booking confirmed, but email sending failed"
MSG_PERSIST_FAILED = "Booking confirmed, but it could not be saved"
MSG_UNEXPECTED = "Booking confirmed, but some features unavailable"


def redact_pii(value: str) -> str:
    """Mask PII for logging — show first 3 and last 2 chars only."""
    if not value or len(value) <= 5:
        return "***"
    return value[:3] + "***" + value[-2:]


class StepStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class OutcomeStatus(str, Enum):
    CONFIRMED = "confirmed"
    CONFIRMED_DEGRADED = "confirmed_degraded"


@dataclass
class StepResult:
    name: str
    status: StepStatus = StepStatus.PENDING
    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "status": self.status.value, "detail": self.detail}


@dataclass
class BookingOutcome:
    """Result record attached to one booking attempt."""

    calendar: StepResult = field(default_factory=lambda: StepResult("calendar"))
    persist: StepResult = field(default_factory=lambda: StepResult("persist"))
    email: StepResult = field(default_factory=lambda: StepResult("email"))
    meet_link: str = ""
    meet_link_is_placeholder: bool = False
    calendar_event: Optional[dict[str, Any]] = None
    booking: Optional[Booking] = None
    schema_missing: bool = False
    unexpected_error: Optional[str] = None
    status: OutcomeStatus = OutcomeStatus.CONFIRMED_DEGRADED
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "message": self.message,
            "meet_link": self.meet_link,
            "meet_link_is_placeholder": self.meet_link_is_placeholder,
            "calendar_link": (self.calendar_event or {}).get("html_link", ""),
            "booking": self.booking.model_dump(mode="json") if self.booking else None,
            "schema_missing": self.schema_missing,
            "steps": [s.to_dict() for s in (self.calendar, self.persist, self.email)],
        }


def derive_status(outcome: BookingOutcome) -> tuple[OutcomeStatus, str]:
    """Terminal status from the step results.

    A placeholder Meet link does not degrade the booking; a lost row or
    unsent emails do.
    """
    if outcome.unexpected_error is not None:
        return OutcomeStatus.CONFIRMED_DEGRADED, MSG_UNEXPECTED
    if outcome.persist.status != StepStatus.SUCCEEDED:
        return OutcomeStatus.CONFIRMED_DEGRADED, MSG_PERSIST_FAILED
    if outcome.email.status != StepStatus.SUCCEEDED:
        return OutcomeStatus.CONFIRMED_DEGRADED, MSG_EMAIL_FAILED
    return OutcomeStatus.CONFIRMED, MSG_CONFIRMED


def build_calendar_event(
    client: ClientInfo,
    draft: BookingDraft,
    tz: tzinfo,
    session_minutes: int,
    admin_email: str,
    timezone_name: str = "",
) -> CalendarEvent:
    start = draft.start_time(tz)
    return CalendarEvent(
        summary=f"Tech Consultation - {client.name}",
        start=start,
        end=start + timedelta(minutes=session_minutes),
        description=(
            f"Tech consultation session with {client.name}\n\n"
            f"Topic: {client.topic}\n"
            f"Company: {client.company or 'Not specified'}\n"
            f"Experience: {client.experience.value if client.experience else 'Not specified'}\n\n"
            "About the session:\n"
            f"- Duration: {session_minutes} minutes\n"
            f"- Focus: {client.topic}\n"
            "- Platform: Google Meet (link will be generated automatically)\n\n"
            "Please join 2-3 minutes early to test your connection."
        ),
        attendees=[
            Attendee(email=client.email, display_name=client.name),
            Attendee(email=admin_email, display_name="Coffee Chat Consultant", organizer=True),
        ],
        timezone=timezone_name,
    )


class BookingOrchestrator:
    """Runs the calendar → persist → email sequence for a confirmed draft."""

    def __init__(
        self,
        store: BookingStore,
        tz: tzinfo,
        calendar_provider: Optional[CalendarProvider] = None,
        calendar_id: str = "primary",
        mailer: Optional[NotificationMailer] = None,
        admin_email: str = "",
        session_minutes: int = 30,
        timezone_name: str = "",
    ) -> None:
        self._store = store
        self._tz = tz
        self._calendar_provider = calendar_provider
        self._calendar_id = calendar_id
        self._mailer = mailer
        self._admin_email = admin_email
        self._session_minutes = session_minutes
        self._timezone_name = timezone_name

    async def run(self, draft: BookingDraft) -> BookingOutcome:
        outcome = BookingOutcome()
        try:
            await self._run_steps(draft, outcome)
        except Exception as exc:
            log.exception("Booking orchestration failed unexpectedly")
            outcome.unexpected_error = str(exc)
            if not outcome.meet_link:
                outcome.meet_link = generate_placeholder_meet_link()
                outcome.meet_link_is_placeholder = True
        outcome.status, outcome.message = derive_status(outcome)
        log.info(
            "Booking for %s finished: %s (calendar=%s persist=%s email=%s)",
            redact_pii(draft.client.email if draft.client else ""),
            outcome.status.value,
            outcome.calendar.status.value,
            outcome.persist.status.value,
            outcome.email.status.value,
        )
        return outcome

    async def _run_steps(self, draft: BookingDraft, outcome: BookingOutcome) -> None:
        client = draft.client
        if client is None or draft.selected_time is None:
            raise ValueError("Draft is not ready for confirmation")
        start = draft.start_time(self._tz)

        # 1. Calendar event + Meet link
        await self._create_calendar_event(client, draft, outcome)

        # 2. Persist
        try:
            outcome.booking = await self._store.insert(
                NewBooking.from_client(start, client, outcome.meet_link)
            )
            outcome.persist.status = StepStatus.SUCCEEDED
            outcome.persist.detail = outcome.booking.id
        except SchemaMissingError as exc:
            log.error("Bookings table missing; booking not saved: %s", exc)
            outcome.persist.status = StepStatus.FAILED
            outcome.persist.detail = str(exc)
            outcome.schema_missing = True
        except StoreError as exc:
            log.error("Failed to save booking: %s", exc)
            outcome.persist.status = StepStatus.FAILED
            outcome.persist.detail = str(exc)

        # 3. Emails
        if self._mailer is None:
            outcome.email.status = StepStatus.SKIPPED
            outcome.email.detail = "Email not configured"
            return
        report = await self._mailer.send_booking_confirmation(
            client,
            start,
            draft.selected_time.display,
            outcome.meet_link,
            (outcome.calendar_event or {}).get("html_link", ""),
        )
        if report.all_sent:
            outcome.email.status = StepStatus.SUCCEEDED
        else:
            outcome.email.status = StepStatus.FAILED
            outcome.email.detail = "; ".join(f"{k}: {v}" for k, v in report.errors.items())

    async def _create_calendar_event(
        self, client: ClientInfo, draft: BookingDraft, outcome: BookingOutcome
    ) -> None:
        meet_link: Optional[str] = None
        if self._calendar_provider is None:
            outcome.calendar.status = StepStatus.SKIPPED
            outcome.calendar.detail = "Calendar not configured"
        else:
            event = build_calendar_event(
                client,
                draft,
                self._tz,
                self._session_minutes,
                self._admin_email,
                self._timezone_name,
            )
            try:
                result = await self._calendar_provider.create_event(
                    calendar_id=self._calendar_id, event=event
                )
                outcome.calendar_event = result
                outcome.calendar.status = StepStatus.SUCCEEDED
                outcome.calendar.detail = result.get("event_id", "")
                meet_link = result.get("meet_link")
            except Exception as exc:
                log.warning("Calendar event creation failed, using placeholder link: %s", exc)
                outcome.calendar.status = StepStatus.FAILED
                outcome.calendar.detail = str(exc)

        if meet_link:
            outcome.meet_link = meet_link
        else:
            outcome.meet_link = generate_placeholder_meet_link()
            outcome.meet_link_is_placeholder = True
