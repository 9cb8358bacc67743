"""Admin panel queries over the fetched booking list.

Search, the status-window filter and the stats are computed in memory over
the list returned by ``BookingStore.list_all``. ``AdminBookingView`` keeps
that list fresh: it reloads on demand and on every change pushed by the
store's subscription.
"""

from __future__ import annotations

import csv
import io
import logging
from collections.abc import Callable, Iterable
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from enum import Enum
from typing import Any, Optional

from consultations.availability import format_long_date, format_slot_label
from consultations.models.booking import Booking
from consultations.store.base import BookingChange, BookingStore

log = logging.getLogger("consultations.admin")

CSV_HEADER = ["Date", "Time", "Client Name", "Email", "Company", "Topic", "Experience", "Status"]


class StatusFilter(str, Enum):
    ALL = "all"
    UPCOMING = "upcoming"
    PAST = "past"
    TODAY = "today"


class BookingBadge(str, Enum):
    TODAY = "today"
    UPCOMING = "upcoming"
    PAST = "past"


@dataclass
class BookingStats:
    total: int = 0
    this_week: int = 0
    this_month: int = 0
    this_year: int = 0
    upcoming: int = 0
    past: int = 0
    today: int = 0
    pending: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def _local(dt: datetime, tz: tzinfo) -> datetime:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(tz)


def classify(booking: Booking, now: datetime, tz: tzinfo) -> BookingBadge:
    """Badge shown next to a booking: same calendar day wins over upcoming/past."""
    when = _local(booking.date_time, tz)
    if when.date() == _local(now, tz).date():
        return BookingBadge.TODAY
    if booking.date_time > now:
        return BookingBadge.UPCOMING
    return BookingBadge.PAST


def matches_search(booking: Booking, term: str) -> bool:
    needle = term.lower()
    haystack = (
        booking.client_name,
        booking.client_email,
        booking.client_company or "",
        booking.topic,
    )
    return any(needle in field.lower() for field in haystack)


def filter_bookings(
    bookings: Iterable[Booking],
    now: datetime,
    tz: tzinfo,
    search: str = "",
    status: StatusFilter = StatusFilter.ALL,
) -> list[Booking]:
    """Apply the search term, then the status window."""
    result = list(bookings)
    if search:
        result = [b for b in result if matches_search(b, search)]

    if status == StatusFilter.UPCOMING:
        result = [b for b in result if b.date_time > now]
    elif status == StatusFilter.PAST:
        result = [b for b in result if b.date_time <= now]
    elif status == StatusFilter.TODAY:
        today = _local(now, tz).date()
        result = [b for b in result if _local(b.date_time, tz).date() == today]
    return result


def compute_stats(bookings: Iterable[Booking], now: datetime, tz: tzinfo) -> BookingStats:
    """Counts over the unfiltered list. Weeks start on Sunday."""
    local_now = _local(now, tz)
    midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    start_of_week = midnight - timedelta(days=(local_now.weekday() + 1) % 7)
    start_of_month = midnight.replace(day=1)
    start_of_year = start_of_month.replace(month=1)

    stats = BookingStats()
    for b in bookings:
        when = _local(b.date_time, tz)
        stats.total += 1
        if b.date_time > now:
            stats.upcoming += 1
        else:
            stats.past += 1
        if when >= start_of_week:
            stats.this_week += 1
        if when >= start_of_month:
            stats.this_month += 1
        if when >= start_of_year:
            stats.this_year += 1
        if when.date() == local_now.date():
            stats.today += 1
    stats.pending = stats.upcoming
    return stats


def export_csv(bookings: Iterable[Booking], now: datetime, tz: tzinfo) -> str:
    """CSV text for the given (already filtered) bookings."""
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for b in bookings:
        when = _local(b.date_time, tz)
        writer.writerow([
            format_long_date(when.date()),
            format_slot_label(when.strftime("%H:%M")),
            b.client_name,
            b.client_email,
            b.client_company or "",
            b.topic,
            b.client_experience or "",
            "Upcoming" if b.date_time > now else "Past",
        ])
    return output.getvalue()


def csv_filename(now: datetime) -> str:
    return f"coffee-bookings-{now.date().isoformat()}.csv"


class AdminBookingView:
    """The admin panel's copy of the booking list plus derived stats."""

    def __init__(
        self,
        store: BookingStore,
        tz: tzinfo,
        clock: Callable[[], datetime] = lambda: datetime.now(tz=timezone.utc),
    ) -> None:
        self._store = store
        self._tz = tz
        self._clock = clock
        self.bookings: list[Booking] = []
        self.stats = BookingStats()
        self.loaded_at: Optional[datetime] = None

    async def reload(self) -> BookingStats:
        """Fetch the full list and recompute stats. Store errors propagate."""
        self.bookings = await self._store.list_all()
        self.loaded_at = self._clock()
        self.stats = compute_stats(self.bookings, self.loaded_at, self._tz)
        return self.stats

    async def on_change(self, change: BookingChange) -> None:
        log.info("Booking %s received, reloading admin view", change.type)
        await self.reload()

    def query(self, search: str = "", status: StatusFilter = StatusFilter.ALL) -> list[Booking]:
        return filter_bookings(self.bookings, self._clock(), self._tz, search, status)

    def rows(self, bookings: Iterable[Booking]) -> list[dict[str, Any]]:
        now = self._clock()
        return [
            {**b.model_dump(mode="json"), "badge": classify(b, now, self._tz).value}
            for b in bookings
        ]

    def export(self, search: str = "", status: StatusFilter = StatusFilter.ALL) -> str:
        return export_csv(self.query(search, status), self._clock(), self._tz)

    async def delete(self, booking_id: str) -> None:
        """Delete one row, then refresh the view."""
        await self._store.delete(booking_id)
        await self.reload()
