"""Data models for the booking service."""

from .booking import (
    Booking,
    BookingStatus,
    ClientInfo,
    ExperienceLevel,
    NewBooking,
    Topic,
)

__all__ = [
    "Booking",
    "BookingStatus",
    "ClientInfo",
    "ExperienceLevel",
    "NewBooking",
    "Topic",
]
