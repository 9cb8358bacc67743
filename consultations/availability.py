"""Candidate dates and half-hour time slots offered on the booking form.

Nothing here checks real bookings: weekends are skipped and a fixed list of
slots is marked unavailable. ``BookingStore.is_time_slot_available`` is the
hook for a real check (see ``Settings.hide_booked_slots``).
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo

START_HOUR = 9
END_HOUR = 17
SLOT_MINUTES = 30

UNAVAILABLE_SLOTS: tuple[str, ...] = ("10:00", "11:30", "14:00", "15:30")

_SATURDAY = 5


@dataclass(frozen=True)
class TimeSlotOption:
    """One bookable half-hour start time."""

    value: str      # "HH:MM", 24-hour
    display: str    # "9:30 AM"
    available: bool = True


class AvailableDates:
    """The next ``count`` weekdays after ``today``.

    Iterating is lazy and every iteration starts again from tomorrow.
    """

    def __init__(self, count: int, today: date) -> None:
        if count < 0:
            raise ValueError("count must be >= 0")
        self.count = count
        self.today = today

    def __iter__(self) -> Iterator[date]:
        produced = 0
        current = self.today
        while produced < self.count:
            current += timedelta(days=1)
            if current.weekday() < _SATURDAY:
                produced += 1
                yield current

    def __len__(self) -> int:
        return self.count

    def __contains__(self, item: object) -> bool:
        if not isinstance(item, date) or isinstance(item, datetime):
            return False
        return any(d == item for d in self)


def generate_dates(count: int = 30, today: date | None = None) -> AvailableDates:
    """Return the next ``count`` weekdays, starting tomorrow."""
    return AvailableDates(count, today or date.today())


def format_slot_label(value: str) -> str:
    """``"13:30"`` → ``"1:30 PM"``."""
    hour, minute = (int(p) for p in value.split(":"))
    suffix = "AM" if hour < 12 else "PM"
    return f"{hour % 12 or 12}:{minute:02d} {suffix}"


def generate_time_slots(unavailable: tuple[str, ...] | set[str] = UNAVAILABLE_SLOTS) -> list[TimeSlotOption]:
    """Return the 16 half-hour slots from 09:00 to 16:30."""
    slots: list[TimeSlotOption] = []
    for hour in range(START_HOUR, END_HOUR):
        for minute in range(0, 60, SLOT_MINUTES):
            value = f"{hour:02d}:{minute:02d}"
            slots.append(
                TimeSlotOption(
                    value=value,
                    display=format_slot_label(value),
                    available=value not in unavailable,
                )
            )
    return slots


def find_slot(value: str) -> TimeSlotOption | None:
    for slot in generate_time_slots():
        if slot.value == value:
            return slot
    return None


def slot_start(day: date, value: str, tz: tzinfo) -> datetime:
    """Aware start datetime of slot ``value`` on ``day`` in business time."""
    start = datetime.strptime(value, "%H:%M").time()
    return datetime.combine(day, time(start.hour, start.minute), tzinfo=tz)


def format_long_date(day: date) -> str:
    """``"Monday, September 1, 2025"``"""
    return f"{day.strftime('%A, %B')} {day.day}, {day.year}"
