"""Abstract base class for the booking table store.

Defines the operations the booking flow and the admin panel need against the
single ``bookings`` table. Any backend (the hosted Supabase project, the
in-process store used for local development) implements this ABC.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Any, Optional, Union

from consultations.models.booking import Booking, NewBooking


class StoreError(Exception):
    """A store operation failed. Never retried automatically."""


class SchemaMissingError(StoreError):
    """The bookings table has not been provisioned."""


class BookingNotFoundError(StoreError):
    """No booking row with the given id."""


@dataclass
class BookingChange:
    """One insert/update/delete event pushed by the change feed."""

    type: str                                  # INSERT | UPDATE | DELETE
    record: Optional[dict[str, Any]] = None
    old_record: Optional[dict[str, Any]] = None


ChangeCallback = Callable[[BookingChange], Union[Awaitable[None], None]]


def utc_day_bounds(day: date) -> tuple[datetime, datetime]:
    """First and last instant of ``day`` in UTC."""
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    end = start + timedelta(days=1) - timedelta(microseconds=1)
    return start, end


class BookingStore(ABC):
    """Abstract booking store.

    Subclasses must implement the CRUD operations and the change
    subscription. Every operation makes a single attempt; failures surface
    as ``StoreError`` (``SchemaMissingError`` when the table is missing).
    """

    @abstractmethod
    async def insert(
        self, booking: Union[NewBooking, list[NewBooking]]
    ) -> Union[Booking, list[Booking]]:
        """Insert one booking or a batch.

        Returns the stored row(s), including ``id``, ``created_at`` and
        ``updated_at``. A single booking returns a single row.
        """

    @abstractmethod
    async def list_all(self) -> list[Booking]:
        """All bookings, most recently created first."""

    @abstractmethod
    async def list_for_date(self, day: date) -> list[Booking]:
        """Bookings whose ``date_time`` falls on ``day`` (UTC bounds), earliest first."""

    @abstractmethod
    async def delete(self, booking_id: str) -> None:
        """Delete one booking. Raise BookingNotFoundError if no row has that id."""

    @abstractmethod
    async def update(self, booking_id: str, fields: dict[str, Any]) -> Booking:
        """Apply a partial update and stamp ``updated_at``.

        Raises BookingNotFoundError if no row matched.
        """

    @abstractmethod
    def subscribe(
        self, on_change: ChangeCallback
    ) -> AbstractAsyncContextManager[Any]:
        """Open the change feed for the lifetime of an ``async with`` block.

        ``on_change`` is called for every insert, update and delete on the
        table. The channel is released when the block exits, on every path.
        """

    @abstractmethod
    async def check_schema(self) -> None:
        """Raise SchemaMissingError if the bookings table does not exist."""

    async def clear_all(self) -> None:
        """Delete every booking (admin maintenance)."""
        for booking in await self.list_all():
            await self.delete(booking.id)

    async def is_time_slot_available(self, day: date, value: str, tz: tzinfo) -> bool:
        """True if no stored booking starts at ``value`` on ``day`` in business time."""
        taken = await self.booked_slots(day, tz)
        return value not in taken

    async def booked_slots(self, day: date, tz: tzinfo) -> set[str]:
        """``HH:MM`` start times already booked on ``day`` in business time."""
        start = datetime.combine(day, time.min, tzinfo=tz).astimezone(timezone.utc)
        # A business day can straddle two UTC days.
        days = {start.date(), (start + timedelta(days=1) - timedelta(microseconds=1)).date()}
        taken: set[str] = set()
        for utc_day in sorted(days):
            for booking in await self.list_for_date(utc_day):
                local = booking.date_time.astimezone(tz)
                if local.date() == day:
                    taken.add(local.strftime("%H:%M"))
        return taken

    async def aclose(self) -> None:
        """Release network resources held by the store."""
