"""Supabase (PostgREST) implementation of the booking store.

Talks to ``<SUPABASE_URL>/rest/v1/<table>`` over ``httpx``. The change feed
is delegated to ``SupabaseRealtimeChannel``. Requests are made exactly once;
a missing table is reported as ``SchemaMissingError`` so callers can show
the setup SQL instead of retrying.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Any, AsyncIterator, Union

import httpx

from consultations.models.booking import Booking, NewBooking

from .base import (
    BookingNotFoundError,
    BookingStore,
    ChangeCallback,
    SchemaMissingError,
    StoreError,
    utc_day_bounds,
)
from .realtime import SupabaseRealtimeChannel

log = logging.getLogger("consultations.store.supabase")

# PostgREST / Postgres codes for "relation does not exist"
_MISSING_TABLE_CODES = {"42P01", "PGRST205"}


class SupabaseBookingStore(BookingStore):
    """BookingStore backed by a hosted Supabase table."""

    def __init__(
        self,
        url: str,
        api_key: str,
        table: str = "bookings",
        client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
    ) -> None:
        if not url:
            raise ValueError("Supabase URL must be provided (SUPABASE_URL).")
        self._url = url.rstrip("/")
        self._api_key = api_key
        self._table = table
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @property
    def _endpoint(self) -> str:
        return f"{self._url}/rest/v1/{self._table}"

    def _headers(self, returning: bool = False) -> dict[str, str]:
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        if returning:
            headers["Prefer"] = "return=representation"
        return headers

    @staticmethod
    def _is_missing_table(response: httpx.Response) -> bool:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            return False
        code = str(body.get("code", ""))
        message = str(body.get("message", ""))
        return code in _MISSING_TABLE_CODES or "does not exist" in message

    async def _request(
        self,
        method: str,
        params: Any = None,
        json: Any = None,
        returning: bool = False,
    ) -> Any:
        try:
            response = await self._client.request(
                method,
                self._endpoint,
                params=params,
                json=json,
                headers=self._headers(returning=returning),
            )
        except httpx.HTTPError as exc:
            raise StoreError(f"Supabase request failed: {exc}") from exc

        if response.is_error:
            if self._is_missing_table(response):
                raise SchemaMissingError(
                    f"Table {self._table!r} does not exist. Run the setup SQL first."
                )
            raise StoreError(
                f"Supabase {method} {self._table} returned "
                f"{response.status_code}: {response.text[:200]}"
            )

        if not response.content:
            return None
        return response.json()

    # ------------------------------------------------------------------
    # BookingStore interface
    # ------------------------------------------------------------------

    async def insert(
        self, booking: Union[NewBooking, list[NewBooking]]
    ) -> Union[Booking, list[Booking]]:
        batch = booking if isinstance(booking, list) else [booking]
        rows = await self._request(
            "POST",
            json=[b.model_dump(mode="json") for b in batch],
            returning=True,
        )
        stored = [Booking.model_validate(row) for row in rows or []]
        if len(stored) != len(batch):
            raise StoreError(f"Expected {len(batch)} stored rows, got {len(stored)}")
        log.info("Inserted %d booking(s) into %s", len(stored), self._table)
        return stored if isinstance(booking, list) else stored[0]

    async def list_all(self) -> list[Booking]:
        rows = await self._request(
            "GET", params={"select": "*", "order": "created_at.desc"}
        )
        return [Booking.model_validate(row) for row in rows or []]

    async def list_for_date(self, day: date) -> list[Booking]:
        start, end = utc_day_bounds(day)
        rows = await self._request(
            "GET",
            params=[
                ("select", "*"),
                ("date_time", f"gte.{start.isoformat()}"),
                ("date_time", f"lte.{end.isoformat()}"),
                ("order", "date_time.asc"),
            ],
        )
        return [Booking.model_validate(row) for row in rows or []]

    async def delete(self, booking_id: str) -> None:
        rows = await self._request("DELETE", params={"id": f"eq.{booking_id}"}, returning=True)
        if not rows:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        log.info("Deleted booking %s", booking_id)

    async def update(self, booking_id: str, fields: dict[str, Any]) -> Booking:
        payload = dict(fields)
        payload["updated_at"] = datetime.now(tz=timezone.utc).isoformat()
        rows = await self._request(
            "PATCH",
            params={"id": f"eq.{booking_id}"},
            json=payload,
            returning=True,
        )
        if not rows:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        return Booking.model_validate(rows[0])

    async def check_schema(self) -> None:
        await self._request("GET", params={"select": "id", "limit": "1"})

    async def clear_all(self) -> None:
        # PostgREST refuses an unfiltered DELETE.
        await self._request(
            "DELETE", params={"id": "neq.00000000-0000-0000-0000-000000000000"}
        )
        log.info("Cleared all bookings from %s", self._table)

    @asynccontextmanager
    async def subscribe(self, on_change: ChangeCallback) -> AsyncIterator[SupabaseRealtimeChannel]:
        channel = SupabaseRealtimeChannel(
            url=self._url, api_key=self._api_key, table=self._table
        )
        await channel.open(on_change)
        try:
            yield channel
        finally:
            await channel.close()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
