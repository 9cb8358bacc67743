"""Bookings table setup helper.

Usage:
    python -m consultations.setup_db check     # is the table provisioned?
    python -m consultations.setup_db sql       # print the setup SQL
    python -m consultations.setup_db seed      # insert three sample bookings
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone

from consultations.config import Settings
from consultations.models.booking import NewBooking
from consultations.store import create_store
from consultations.store.base import BookingStore, SchemaMissingError, StoreError

log = logging.getLogger("consultations.setup_db")

SETUP_SQL = """\
CREATE TABLE IF NOT EXISTS {table} (
  id uuid DEFAULT uuid_generate_v4() PRIMARY KEY,
  created_at timestamp with time zone DEFAULT timezone('utc'::text, now()) NOT NULL,
  date_time timestamp with time zone NOT NULL,
  client_name varchar NOT NULL,
  client_email varchar NOT NULL,
  client_company varchar,
  client_experience varchar,
  topic varchar NOT NULL,
  meet_link varchar NOT NULL,
  status varchar DEFAULT 'confirmed' NOT NULL,
  updated_at timestamp with time zone DEFAULT timezone('utc'::text, now()) NOT NULL
);

ALTER TABLE {table} ENABLE ROW LEVEL SECURITY;
CREATE POLICY "Allow all operations on {table}" ON {table} FOR ALL USING (true);
ALTER PUBLICATION supabase_realtime ADD TABLE {table};
"""

SAMPLE_BOOKINGS = [
    NewBooking(
        date_time=datetime(2025, 9, 1, 10, 0, tzinfo=timezone.utc),
        client_name="John Doe",
        client_email="john@example.com",
        client_company="Tech Corp",
        client_experience="Senior Developer (5+ years)",
        topic="Code Review",
        meet_link="https://meet.google.com/abc-def-ghi",
    ),
    NewBooking(
        date_time=datetime(2025, 9, 2, 14, 30, tzinfo=timezone.utc),
        client_name="Jane Smith",
        client_email="jane@startup.com",
        client_company="Startup Inc",
        client_experience="Junior Developer (0-2 years)",
        topic="Career Advice",
        meet_link="https://meet.google.com/xyz-123-456",
    ),
    NewBooking(
        date_time=datetime(2025, 8, 30, 9, 0, tzinfo=timezone.utc),
        client_name="Mike Johnson",
        client_email="mike@freelancer.com",
        client_company="Freelancer",
        client_experience="Mid-level Developer (2-5 years)",
        topic="System Architecture",
        meet_link="https://meet.google.com/mno-789-xyz",
    ),
]


def setup_sql(table: str = "bookings") -> str:
    return SETUP_SQL.format(table=table)


def setup_instructions(table: str = "bookings") -> str:
    """Human-readable steps shown when the table is missing."""
    return (
        f"The {table!r} table does not exist.\n\n"
        "1. Open your Supabase project dashboard\n"
        "2. Click \"SQL Editor\" in the left sidebar\n"
        "3. Paste and run this SQL:\n\n"
        f"{setup_sql(table)}"
    )


async def check(store: BookingStore) -> bool:
    """True if the table exists. Other store errors propagate."""
    try:
        await store.check_schema()
    except SchemaMissingError:
        return False
    return True


async def seed(store: BookingStore) -> int:
    rows = await store.insert(list(SAMPLE_BOOKINGS))
    return len(rows)


async def _run(command: str, settings: Settings) -> int:
    if command == "sql":
        print(setup_sql(settings.bookings_table))
        return 0

    store = create_store(settings)
    try:
        if command == "check":
            if await check(store):
                print(f"Table {settings.bookings_table!r} is ready.")
                return 0
            print(setup_instructions(settings.bookings_table))
            return 1

        count = await seed(store)
        print(f"Inserted {count} sample booking(s).")
        return 0
    except SchemaMissingError:
        print(setup_instructions(settings.bookings_table), file=sys.stderr)
        return 1
    except StoreError as exc:
        print(f"Store error: {exc}", file=sys.stderr)
        return 2
    finally:
        await store.aclose()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Bookings table setup helper")
    parser.add_argument("command", choices=["check", "sql", "seed"])
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    return asyncio.run(_run(args.command, Settings()))


if __name__ == "__main__":
    sys.exit(main())
