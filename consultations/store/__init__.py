"""Booking store abstraction and implementations."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .base import (
    BookingChange,
    BookingNotFoundError,
    BookingStore,
    SchemaMissingError,
    StoreError,
)
from .memory import InMemoryBookingStore

if TYPE_CHECKING:
    from consultations.config import Settings

log = logging.getLogger("consultations.store")

__all__ = [
    "BookingChange",
    "BookingNotFoundError",
    "BookingStore",
    "InMemoryBookingStore",
    "SchemaMissingError",
    "StoreError",
    "create_store",
]


def create_store(settings: "Settings") -> BookingStore:
    """Supabase when SUPABASE_URL is set, otherwise the in-memory store."""
    if settings.supabase_url:
        from .supabase import SupabaseBookingStore

        return SupabaseBookingStore(
            url=settings.supabase_url,
            api_key=settings.supabase_anon_key,
            table=settings.bookings_table,
        )
    log.warning("Using in-memory booking store; bookings are lost on restart")
    return InMemoryBookingStore()
