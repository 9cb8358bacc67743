"""Transactional email via the EmailJS REST API.

Two templates are used: one addressed to the client, one alerting the
admin. They are sent independently, so a failure sending one never
prevents the other.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import httpx

from consultations.availability import format_long_date
from consultations.models.booking import ClientInfo

log = logging.getLogger("consultations.notifications.email")

EMAILJS_SEND_URL = "https://api.emailjs.com/api/v1.0/email/send"

NOT_SPECIFIED = "Not specified"


class EmailDeliveryError(Exception):
    """EmailJS rejected the message or could not be reached."""


@dataclass
class EmailReport:
    """Outcome of sending the client and admin notifications."""

    client_sent: bool = False
    admin_sent: bool = False
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def all_sent(self) -> bool:
        return self.client_sent and self.admin_sent


class EmailJSClient:
    """Minimal EmailJS sender. One POST per message, no retry."""

    def __init__(
        self,
        service_id: str,
        public_key: str,
        private_key: str = "",
        client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
    ) -> None:
        self._service_id = service_id
        self._public_key = public_key
        self._private_key = private_key
        self._client = client
        self._timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self._service_id and self._public_key)

    async def send(self, template_id: str, params: dict[str, Any]) -> None:
        if not self.configured or not template_id:
            raise EmailDeliveryError("EmailJS is not configured")

        body: dict[str, Any] = {
            "service_id": self._service_id,
            "template_id": template_id,
            "user_id": self._public_key,
            "template_params": params,
        }
        if self._private_key:
            body["accessToken"] = self._private_key

        try:
            if self._client is not None:
                resp = await self._client.post(EMAILJS_SEND_URL, json=body)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.post(EMAILJS_SEND_URL, json=body)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise EmailDeliveryError(
                f"EmailJS returned {exc.response.status_code}: {exc.response.text[:200]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise EmailDeliveryError(f"EmailJS unreachable: {exc}") from exc


def client_email_params(
    client: ClientInfo,
    start: datetime,
    time_display: str,
    meet_link: str,
    calendar_link: str = "",
    tz_label: str = "PT",
) -> dict[str, Any]:
    meeting_date = format_long_date(start.date())
    return {
        "to_email": client.email,
        "to_name": client.name,
        "from_name": "Coffee Chat Consultations",
        "subject": "Your Tech Consultation is Confirmed!",
        "meeting_date": meeting_date,
        "meeting_time": f"{time_display} {tz_label}",
        "meeting_topic": client.topic,
        "meet_link": meet_link,
        "client_name": client.name,
        "client_company": client.company or NOT_SPECIFIED,
        "client_experience": client.experience.value if client.experience else NOT_SPECIFIED,
        "calendar_link": calendar_link,
        "message": (
            f"Hi {client.name},\n\n"
            "Great news! Your tech consultation has been confirmed. "
            "Here are the details:\n\n"
            f"Date: {meeting_date}\n"
            f"Time: {time_display} {tz_label}\n"
            f"Topic: {client.topic}\n"
            f"Google Meet: {meet_link}\n\n"
            "Before our session:\n"
            "- Test your microphone and camera\n"
            "- Prepare any specific questions or code you'd like to discuss\n"
            "- Have your development environment ready if doing code review\n\n"
            "Looking forward to our chat!\n\n"
            "Best regards,\nThe Coffee Chat Team"
        ),
    }


def admin_email_params(
    client: ClientInfo,
    start: datetime,
    time_display: str,
    meet_link: str,
    admin_email: str,
    calendar_link: str = "",
    tz_label: str = "PT",
) -> dict[str, Any]:
    meeting_date = format_long_date(start.date())
    company = client.company or NOT_SPECIFIED
    experience = client.experience.value if client.experience else NOT_SPECIFIED
    return {
        "to_email": admin_email,
        "to_name": "Admin",
        "from_name": "Coffee Chat Booking System",
        "subject": "New Consultation Booking",
        "meeting_date": meeting_date,
        "meeting_time": f"{time_display} {tz_label}",
        "meeting_topic": client.topic,
        "meet_link": meet_link,
        "client_name": client.name,
        "client_email": client.email,
        "client_company": company,
        "client_experience": experience,
        "calendar_link": calendar_link,
        "message": (
            "New consultation booking received:\n\n"
            f"Client: {client.name}\n"
            f"Email: {client.email}\n"
            f"Company: {company}\n"
            f"Experience: {experience}\n\n"
            f"Date: {meeting_date}\n"
            f"Time: {time_display} {tz_label}\n"
            f"Topic: {client.topic}\n"
            f"Google Meet: {meet_link}\n\n"
            f"Calendar Event: {calendar_link or 'N/A'}"
        ),
    }


class NotificationMailer:
    """Sends the client confirmation and the admin alert for a booking."""

    def __init__(
        self,
        sender: EmailJSClient,
        client_template_id: str,
        admin_template_id: str,
        admin_email: str,
        tz_label: str = "PT",
    ) -> None:
        self._sender = sender
        self._client_template_id = client_template_id
        self._admin_template_id = admin_template_id
        self._admin_email = admin_email
        self._tz_label = tz_label

    async def send_booking_confirmation(
        self,
        client: ClientInfo,
        start: datetime,
        time_display: str,
        meet_link: str,
        calendar_link: str = "",
    ) -> EmailReport:
        report = EmailReport()

        try:
            await self._sender.send(
                self._client_template_id,
                client_email_params(
                    client, start, time_display, meet_link, calendar_link, self._tz_label
                ),
            )
            report.client_sent = True
        except EmailDeliveryError as exc:
            log.warning("Client confirmation email failed: %s", exc)
            report.errors["client"] = str(exc)

        try:
            await self._sender.send(
                self._admin_template_id,
                admin_email_params(
                    client,
                    start,
                    time_display,
                    meet_link,
                    self._admin_email,
                    calendar_link,
                    self._tz_label,
                ),
            )
            report.admin_sent = True
        except EmailDeliveryError as exc:
            log.warning("Admin notification email failed: %s", exc)
            report.errors["admin"] = str(exc)

        return report
