"""Multi-step booking draft: date → time → client details → confirming.

The draft is transient. It accumulates the visitor's choices and only
moves forward on valid input. ``back()`` steps one state backward, and
``reset()`` starts a new booking. Reaching ``CONFIRMING`` is terminal for
the draft; the session layer runs the orchestrator from there.

Usage::

    draft = BookingDraft()
    draft.select_date(date(2026, 10, 20))
    draft.select_time("10:30")
    draft.submit_details(ClientDetailsForm(name="Ada", email="ada@example.com",
                                           topic="Code Review"))
    assert draft.step == DraftStep.CONFIRMING
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import date, datetime, tzinfo
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel

from consultations.availability import (
    TimeSlotOption,
    find_slot,
    generate_dates,
    slot_start,
)
from consultations.models.booking import ClientInfo, ExperienceLevel, Topic

log = logging.getLogger("consultations.draft")

EMAIL_PATTERN = re.compile(r"\S+@\S+\.\S+")


class DraftStep(str, Enum):
    SELECTING_DATE = "selecting_date"
    SELECTING_TIME = "selecting_time"
    ENTERING_DETAILS = "entering_details"
    CONFIRMING = "confirming"


_STEP_ORDER = [
    DraftStep.SELECTING_DATE,
    DraftStep.SELECTING_TIME,
    DraftStep.ENTERING_DETAILS,
    DraftStep.CONFIRMING,
]


class DraftError(Exception):
    """Base class for draft errors."""


class InvalidTransitionError(DraftError):
    """The requested action does not apply to the current step."""

    def __init__(self, step: DraftStep, action: str) -> None:
        super().__init__(f"Cannot {action} while {step.value}")
        self.step = step
        self.action = action


class DraftValidationError(DraftError):
    """Per-field validation failures. The draft state is unchanged."""

    def __init__(self, errors: dict[str, str]) -> None:
        super().__init__("; ".join(f"{k}: {v}" for k, v in errors.items()))
        self.errors = errors


class ClientDetailsForm(BaseModel):
    """Raw client details as typed into the form."""

    name: str = ""
    email: str = ""
    company: str = ""
    experience: str = ""
    topic: str = ""
    custom_topic: str = ""


def validate_client_details(form: ClientDetailsForm) -> ClientInfo:
    """Check the form and resolve it into ``ClientInfo``.

    Raises DraftValidationError with one message per failing field.
    """
    errors: dict[str, str] = {}

    if not form.name.strip():
        errors["name"] = "Name is required"

    if not form.email.strip():
        errors["email"] = "Email is required"
    elif not EMAIL_PATTERN.search(form.email):
        errors["email"] = "Please enter a valid email address"

    topic = form.topic.strip()
    if not topic:
        errors["topic"] = "Please specify what you'd like to discuss"
    elif topic not in {t.value for t in Topic}:
        errors["topic"] = "Please choose a topic from the list"
    elif topic == Topic.OTHER.value and not form.custom_topic.strip():
        errors["custom_topic"] = "Please specify your consultation topic"

    experience: Optional[ExperienceLevel] = None
    if form.experience.strip():
        try:
            experience = ExperienceLevel(form.experience.strip())
        except ValueError:
            errors["experience"] = "Please choose an experience level from the list"

    if errors:
        raise DraftValidationError(errors)

    resolved_topic = form.custom_topic.strip() if topic == Topic.OTHER.value else topic
    return ClientInfo(
        name=form.name.strip(),
        email=form.email.strip(),
        company=form.company.strip() or None,
        experience=experience,
        topic=resolved_topic,
    )


class BookingDraft:
    """Booking form state threaded through the four steps."""

    def __init__(
        self,
        window_days: int = 30,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._window_days = window_days
        self._today = today
        self.step = DraftStep.SELECTING_DATE
        self.selected_date: Optional[date] = None
        self.selected_time: Optional[TimeSlotOption] = None
        self.client: Optional[ClientInfo] = None
        self.form: Optional[ClientDetailsForm] = None

    # ── Transitions ────────────────────────────────────────────

    def _require(self, step: DraftStep, action: str) -> None:
        if self.step != step:
            raise InvalidTransitionError(self.step, action)

    def select_date(self, day: date) -> None:
        self._require(DraftStep.SELECTING_DATE, "select a date")
        if day not in generate_dates(self._window_days, today=self._today()):
            raise DraftValidationError({"date": "Please choose an available weekday"})
        self.selected_date = day
        self.step = DraftStep.SELECTING_TIME
        log.debug("Draft date selected: %s", day.isoformat())

    def select_time(self, value: str) -> None:
        self._require(DraftStep.SELECTING_TIME, "select a time")
        slot = find_slot(value)
        if slot is None or not slot.available:
            raise DraftValidationError({"time": "This time slot is not available"})
        self.selected_time = slot
        self.step = DraftStep.ENTERING_DETAILS
        log.debug("Draft time selected: %s", value)

    def submit_details(self, form: ClientDetailsForm) -> ClientInfo:
        self._require(DraftStep.ENTERING_DETAILS, "submit details")
        client = validate_client_details(form)
        self.form = form
        self.client = client
        self.step = DraftStep.CONFIRMING
        return client

    def back(self) -> DraftStep:
        """Go one step back. Entered data is kept."""
        if self.step in (DraftStep.SELECTING_DATE, DraftStep.CONFIRMING):
            raise InvalidTransitionError(self.step, "go back")
        self.step = _STEP_ORDER[_STEP_ORDER.index(self.step) - 1]
        return self.step

    def reset(self) -> None:
        """Start a new booking."""
        self.step = DraftStep.SELECTING_DATE
        self.selected_date = None
        self.selected_time = None
        self.client = None
        self.form = None

    # ── Derived values ─────────────────────────────────────────

    @property
    def is_complete(self) -> bool:
        return self.step == DraftStep.CONFIRMING

    def start_time(self, tz: tzinfo) -> datetime:
        """Session start in business time. Only valid once date and time are chosen."""
        if self.selected_date is None or self.selected_time is None:
            raise InvalidTransitionError(self.step, "compute a start time")
        return slot_start(self.selected_date, self.selected_time.value, tz)

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step.value,
            "date": self.selected_date.isoformat() if self.selected_date else None,
            "time": (
                {"value": self.selected_time.value, "display": self.selected_time.display}
                if self.selected_time else None
            ),
            "client": self.client.model_dump(mode="json") if self.client else None,
        }
