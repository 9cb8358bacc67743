"""Process-local booking store.

Used when no Supabase project is configured (local development) and in
tests. Change events fan out to one ``asyncio.Queue`` per subscriber, each
drained by its own task that invokes the subscriber's callback.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Any, AsyncIterator, Union

from consultations.models.booking import Booking, NewBooking

from .base import (
    BookingChange,
    BookingNotFoundError,
    BookingStore,
    ChangeCallback,
    SchemaMissingError,
    utc_day_bounds,
)
from .realtime import dispatch_change

log = logging.getLogger("consultations.store.memory")


class InMemoryBookingStore(BookingStore):
    """BookingStore holding rows in a dict keyed by id."""

    def __init__(self, schema_ready: bool = True) -> None:
        self.schema_ready = schema_ready
        self._rows: dict[str, Booking] = {}
        self._subscribers: list[asyncio.Queue[BookingChange]] = []

    # ── Helpers ────────────────────────────────────────────────

    def _check(self) -> None:
        if not self.schema_ready:
            raise SchemaMissingError("Table 'bookings' does not exist")

    def _emit(self, change: BookingChange) -> None:
        for q in self._subscribers:
            q.put_nowait(change)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    # ── BookingStore interface ─────────────────────────────────

    async def insert(
        self, booking: Union[NewBooking, list[NewBooking]]
    ) -> Union[Booking, list[Booking]]:
        self._check()
        batch = booking if isinstance(booking, list) else [booking]
        stored: list[Booking] = []
        for item in batch:
            now = datetime.now(tz=timezone.utc)
            row = Booking(
                **item.model_dump(),
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
            )
            self._rows[row.id] = row
            stored.append(row)
            self._emit(BookingChange(type="INSERT", record=row.model_dump(mode="json")))
        log.info("Inserted %d booking(s) in memory", len(stored))
        return stored if isinstance(booking, list) else stored[0]

    async def list_all(self) -> list[Booking]:
        self._check()
        return sorted(self._rows.values(), key=lambda b: b.created_at, reverse=True)

    async def list_for_date(self, day: date) -> list[Booking]:
        self._check()
        start, end = utc_day_bounds(day)
        matches = [b for b in self._rows.values() if start <= b.date_time <= end]
        return sorted(matches, key=lambda b: b.date_time)

    async def delete(self, booking_id: str) -> None:
        self._check()
        if self._rows.pop(booking_id, None) is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        self._emit(BookingChange(type="DELETE", old_record={"id": booking_id}))

    async def update(self, booking_id: str, fields: dict[str, Any]) -> Booking:
        self._check()
        current = self._rows.get(booking_id)
        if current is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        data = current.model_dump()
        data.update(fields)
        data["updated_at"] = datetime.now(tz=timezone.utc)
        row = Booking.model_validate(data)
        self._rows[booking_id] = row
        self._emit(
            BookingChange(
                type="UPDATE",
                record=row.model_dump(mode="json"),
                old_record={"id": booking_id},
            )
        )
        return row

    async def check_schema(self) -> None:
        self._check()

    @asynccontextmanager
    async def subscribe(self, on_change: ChangeCallback) -> AsyncIterator[asyncio.Queue]:
        q: asyncio.Queue[BookingChange] = asyncio.Queue()
        self._subscribers.append(q)
        log.info("Change subscriber added (total: %d)", len(self._subscribers))

        async def _drain() -> None:
            while True:
                change = await q.get()
                await dispatch_change(on_change, change)
                q.task_done()

        task = asyncio.create_task(_drain())
        try:
            yield q
        finally:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            self._subscribers.remove(q)
            log.info("Change subscriber removed (total: %d)", len(self._subscribers))
