"""Tests for the in-memory booking store and the BookingStore helpers."""

import asyncio
from datetime import date, datetime, timezone

import pytest

from conftest import PACIFIC
from consultations.models.booking import NewBooking
from consultations.store import (
    BookingNotFoundError,
    BookingStore,
    InMemoryBookingStore,
    SchemaMissingError,
)
from consultations.store.base import utc_day_bounds


def _booking(when, name="Ada Lovelace", email="ada@example.com"):
    return NewBooking(
        date_time=when,
        client_name=name,
        client_email=email,
        topic="Code Review",
        meet_link="https://meet.google.com/abc-defg-hij",
    )


async def _wait_for(predicate, timeout=1.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


# ── CRUD ───────────────────────────────────────────────────────────


class TestCrud:
    async def test_insert_assigns_fields(self, store):
        row = await store.insert(_booking(datetime(2026, 10, 19, 17, 30, tzinfo=timezone.utc)))
        assert row.id
        assert row.created_at == row.updated_at
        assert row.status == "confirmed"

    async def test_insert_batch(self, store):
        rows = await store.insert([
            _booking(datetime(2026, 10, 19, 17, 0, tzinfo=timezone.utc)),
            _booking(datetime(2026, 10, 20, 17, 0, tzinfo=timezone.utc), name="Grace"),
        ])
        assert isinstance(rows, list)
        assert len(rows) == 2
        assert len({r.id for r in rows}) == 2

    async def test_list_all_newest_first(self, store):
        first = await store.insert(_booking(datetime(2026, 10, 19, 17, 0, tzinfo=timezone.utc)))
        await asyncio.sleep(0.001)
        second = await store.insert(_booking(datetime(2026, 10, 18, 17, 0, tzinfo=timezone.utc)))
        assert [b.id for b in await store.list_all()] == [second.id, first.id]

    async def test_list_for_date(self, store):
        await store.insert([
            _booking(datetime(2026, 10, 19, 18, 0, tzinfo=timezone.utc)),
            _booking(datetime(2026, 10, 19, 16, 0, tzinfo=timezone.utc)),
            _booking(datetime(2026, 10, 20, 0, 0, tzinfo=timezone.utc)),
        ])
        rows = await store.list_for_date(date(2026, 10, 19))
        assert [r.date_time.hour for r in rows] == [16, 18]

    async def test_delete(self, store):
        row = await store.insert(_booking(datetime(2026, 10, 19, 17, 0, tzinfo=timezone.utc)))
        await store.delete(row.id)
        assert await store.list_all() == []

    async def test_delete_missing(self, store):
        with pytest.raises(BookingNotFoundError):
            await store.delete("nope")

    async def test_update(self, store):
        row = await store.insert(_booking(datetime(2026, 10, 19, 17, 0, tzinfo=timezone.utc)))
        await asyncio.sleep(0.001)
        updated = await store.update(row.id, {"topic": "Career Advice"})
        assert updated.topic == "Career Advice"
        assert updated.updated_at > row.updated_at
        assert updated.created_at == row.created_at

    async def test_update_missing(self, store):
        with pytest.raises(BookingNotFoundError):
            await store.update("nope", {"topic": "x"})

    async def test_clear_all(self, store):
        await store.insert([
            _booking(datetime(2026, 10, 19, 17, 0, tzinfo=timezone.utc)),
            _booking(datetime(2026, 10, 20, 17, 0, tzinfo=timezone.utc)),
        ])
        await store.clear_all()
        assert await store.list_all() == []


class TestSchemaMissing:
    async def test_every_operation_fails(self):
        store = InMemoryBookingStore(schema_ready=False)
        with pytest.raises(SchemaMissingError):
            await store.check_schema()
        with pytest.raises(SchemaMissingError):
            await store.list_all()
        with pytest.raises(SchemaMissingError):
            await store.insert(_booking(datetime(2026, 10, 19, 17, 0, tzinfo=timezone.utc)))


# ── Slot helpers ───────────────────────────────────────────────────


class TestBookedSlots:
    async def test_booked_in_business_time(self, store):
        # 10:30 PT on Monday
        await store.insert(_booking(datetime(2026, 10, 19, 17, 30, tzinfo=timezone.utc)))
        assert await store.booked_slots(date(2026, 10, 19), PACIFIC) == {"10:30"}
        assert not await store.is_time_slot_available(date(2026, 10, 19), "10:30", PACIFIC)
        assert await store.is_time_slot_available(date(2026, 10, 19), "11:00", PACIFIC)

    async def test_evening_booking_on_next_utc_day(self, store):
        # 17:30 PT Monday is 00:30 UTC Tuesday
        await store.insert(_booking(datetime(2026, 10, 20, 0, 30, tzinfo=timezone.utc)))
        assert await store.booked_slots(date(2026, 10, 19), PACIFIC) == {"17:30"}
        assert await store.booked_slots(date(2026, 10, 20), PACIFIC) == set()

    def test_utc_day_bounds(self):
        start, end = utc_day_bounds(date(2026, 10, 19))
        assert start == datetime(2026, 10, 19, tzinfo=timezone.utc)
        assert end.date() == date(2026, 10, 19)
        assert end.hour == 23 and end.minute == 59


# ── Change subscription ────────────────────────────────────────────


class TestSubscribe:
    async def test_receives_changes(self, store):
        changes = []

        async with store.subscribe(changes.append):
            assert store.subscriber_count == 1
            row = await store.insert(_booking(datetime(2026, 10, 19, 17, 0, tzinfo=timezone.utc)))
            await store.update(row.id, {"topic": "Career Advice"})
            await store.delete(row.id)
            await _wait_for(lambda: len(changes) == 3)

        assert [c.type for c in changes] == ["INSERT", "UPDATE", "DELETE"]
        assert changes[0].record["id"] == row.id
        assert changes[2].old_record == {"id": row.id}

    async def test_released_on_exit(self, store):
        async with store.subscribe(lambda change: None):
            pass
        assert store.subscriber_count == 0

    async def test_released_on_error(self, store):
        with pytest.raises(RuntimeError):
            async with store.subscribe(lambda change: None):
                raise RuntimeError("socket gone")
        assert store.subscriber_count == 0

    async def test_callback_error_does_not_stop_feed(self, store):
        seen = []

        async def flaky(change):
            seen.append(change.type)
            if len(seen) == 1:
                raise ValueError("boom")

        async with store.subscribe(flaky):
            row = await store.insert(_booking(datetime(2026, 10, 19, 17, 0, tzinfo=timezone.utc)))
            await store.delete(row.id)
            await _wait_for(lambda: len(seen) == 2)


class TestBookingStoreABC:
    def test_cannot_instantiate(self):
        with pytest.raises(TypeError):
            BookingStore()
