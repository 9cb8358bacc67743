"""Tests for the bookings table setup helper."""

import pytest

from consultations import setup_db
from consultations.setup_db import SAMPLE_BOOKINGS, check, main, seed, setup_instructions, setup_sql
from consultations.store import InMemoryBookingStore


class TestSetupSql:
    def test_table_definition(self):
        sql = setup_sql()
        assert "CREATE TABLE IF NOT EXISTS bookings" in sql
        for column in ("date_time", "client_name", "client_email", "meet_link", "status", "updated_at"):
            assert column in sql
        assert "ENABLE ROW LEVEL SECURITY" in sql
        assert "ADD TABLE bookings" in sql

    def test_custom_table(self):
        assert "CREATE TABLE IF NOT EXISTS consultations" in setup_sql("consultations")

    def test_instructions_include_sql(self):
        text = setup_instructions()
        assert "SQL Editor" in text
        assert setup_sql() in text


class TestCheckAndSeed:
    async def test_check_ready(self):
        assert await check(InMemoryBookingStore()) is True

    async def test_check_missing(self):
        assert await check(InMemoryBookingStore(schema_ready=False)) is False

    async def test_seed(self):
        store = InMemoryBookingStore()
        assert await seed(store) == 3
        names = {b.client_name for b in await store.list_all()}
        assert names == {"John Doe", "Jane Smith", "Mike Johnson"}

    def test_sample_bookings_have_meet_links(self):
        assert all(b.meet_link.startswith("https://meet.google.com/") for b in SAMPLE_BOOKINGS)


class TestCli:
    @pytest.fixture(autouse=True)
    def no_supabase(self, monkeypatch):
        monkeypatch.delenv("SUPABASE_URL", raising=False)

    def test_sql(self, capsys):
        assert main(["sql"]) == 0
        assert "CREATE TABLE IF NOT EXISTS" in capsys.readouterr().out

    def test_check_in_memory(self, capsys):
        assert main(["check"]) == 0
        assert "is ready" in capsys.readouterr().out

    def test_seed_in_memory(self, capsys):
        assert main(["seed"]) == 0
        assert "Inserted 3 sample booking(s)." in capsys.readouterr().out

    def test_check_missing_table(self, capsys, monkeypatch):
        monkeypatch.setattr(
            setup_db, "create_store", lambda settings: InMemoryBookingStore(schema_ready=False)
        )
        assert main(["check"]) == 1
        assert "SQL Editor" in capsys.readouterr().out

    def test_unknown_command(self):
        with pytest.raises(SystemExit):
            main(["drop"])
