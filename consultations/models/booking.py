"""Pydantic models for bookings and the closed value sets they draw from."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, field_validator


class BookingStatus(str, Enum):
    CONFIRMED = "confirmed"


class ExperienceLevel(str, Enum):
    STUDENT = "Student"
    JUNIOR = "Junior Developer (0-2 years)"
    MID_LEVEL = "Mid-level Developer (2-5 years)"
    SENIOR = "Senior Developer (5+ years)"
    ENGINEERING_MANAGER = "Engineering Manager"
    CTO_ARCHITECT = "CTO/Architect"
    NON_TECHNICAL = "Non-technical"


class Topic(str, Enum):
    CODE_REVIEW = "Code Review"
    SYSTEM_ARCHITECTURE = "System Architecture"
    CAREER_ADVICE = "Career Advice"
    INTERVIEW_PREP = "Technical Interview Prep"
    PROJECT_PLANNING = "Project Planning"
    STACK_DECISION = "Technology Stack Decision"
    PERFORMANCE = "Performance Optimization"
    BEST_PRACTICES = "Best Practices"
    OTHER = "Other"


class ClientInfo(BaseModel):
    """Validated client details collected on the details step.

    ``topic`` is already resolved: a ``Topic`` value, or the custom text
    when the client picked "Other".
    """

    name: str
    email: str
    company: Optional[str] = None
    experience: Optional[ExperienceLevel] = None
    topic: str


class NewBooking(BaseModel):
    """Insert payload — everything except the store-assigned fields."""

    date_time: datetime
    client_name: str
    client_email: str
    client_company: Optional[str] = None
    client_experience: Optional[str] = None
    topic: str
    meet_link: str
    status: BookingStatus = BookingStatus.CONFIRMED

    @field_validator("date_time")
    @classmethod
    def store_as_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @classmethod
    def from_client(cls, date_time: datetime, client: ClientInfo, meet_link: str) -> "NewBooking":
        return cls(
            date_time=date_time,
            client_name=client.name,
            client_email=client.email,
            client_company=client.company or None,
            client_experience=client.experience.value if client.experience else None,
            topic=client.topic,
            meet_link=meet_link,
        )


class Booking(NewBooking):
    """A stored booking row."""

    id: str
    created_at: datetime
    updated_at: datetime
