"""Tests for BookingSession — one visitor's pass through the form."""

import asyncio

import pytest

from conftest import MONDAY, PACIFIC, TODAY
from consultations.draft import BookingDraft, ClientDetailsForm, DraftStep, DraftValidationError, InvalidTransitionError
from consultations.orchestrator import BookingOrchestrator, OutcomeStatus
from consultations.session import BookingSession, SessionRegistry


class CountingOrchestrator(BookingOrchestrator):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.runs = 0

    async def run(self, draft):
        self.runs += 1
        await asyncio.sleep(0)
        return await super().run(draft)


@pytest.fixture
def orchestrator(store, calendar, mailer):
    return CountingOrchestrator(store=store, tz=PACIFIC, calendar_provider=calendar, mailer=mailer)


@pytest.fixture
def session(orchestrator):
    draft = BookingDraft(today=lambda: TODAY)
    draft.select_date(MONDAY)
    draft.select_time("10:30")
    return BookingSession(draft=draft, orchestrator=orchestrator)


class TestConfirm:
    async def test_submit_details_confirms(self, session, ada_form, store):
        outcome = await session.submit_details(ada_form)
        assert session.draft.step == DraftStep.CONFIRMING
        assert outcome.status == OutcomeStatus.CONFIRMED
        assert len(await store.list_all()) == 1

    async def test_invalid_details_do_not_run(self, session, orchestrator):
        with pytest.raises(DraftValidationError):
            await session.submit_details(ClientDetailsForm(name="Ada"))
        assert orchestrator.runs == 0
        assert session.outcome is None

    async def test_runs_once(self, session, ada_form, orchestrator, store):
        first = await session.submit_details(ada_form)
        second = await session.confirm()
        assert first is second
        assert orchestrator.runs == 1
        assert len(await store.list_all()) == 1

    async def test_concurrent_confirms_run_once(self, session, ada_form, orchestrator, store):
        session.draft.submit_details(ada_form)
        outcomes = await asyncio.gather(*(session.confirm() for _ in range(5)))
        assert orchestrator.runs == 1
        assert all(o is outcomes[0] for o in outcomes)
        assert len(await store.list_all()) == 1

    async def test_confirm_before_details(self, session):
        with pytest.raises(InvalidTransitionError):
            await session.confirm()

    async def test_reset_allows_new_booking(self, session, ada_form, orchestrator, store):
        await session.submit_details(ada_form)
        session.reset()
        assert session.outcome is None
        assert session.draft.step == DraftStep.SELECTING_DATE

        session.draft.select_date(MONDAY)
        session.draft.select_time("11:00")
        await session.submit_details(ada_form)
        assert orchestrator.runs == 2
        assert len(await store.list_all()) == 2

    async def test_to_dict(self, session, ada_form):
        assert session.to_dict()["outcome"] is None
        await session.submit_details(ada_form)
        data = session.to_dict()
        assert data["step"] == "confirming"
        assert data["outcome"]["status"] == "confirmed"
        assert data["outcome"]["booking"]["client_email"] == "ada@example.com"


class TestSessionRegistry:
    def test_register_and_get(self, session):
        registry = SessionRegistry()
        sid = registry.register(session)
        assert session.session_id == sid
        assert session.started_at > 0
        assert registry.get(sid) is session
        assert len(registry) == 1

    def test_ids_are_unique(self, orchestrator):
        registry = SessionRegistry()
        ids = {
            registry.register(BookingSession(BookingDraft(), orchestrator)) for _ in range(10)
        }
        assert len(ids) == 10

    def test_unregister(self, session):
        registry = SessionRegistry()
        sid = registry.register(session)
        registry.unregister(sid)
        registry.unregister(sid)
        assert registry.get(sid) is None
        assert len(registry) == 0


class Ticker:
    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestSessionExpiry:
    def test_idle_session_evicted_on_get(self, session):
        ticker = Ticker()
        registry = SessionRegistry(ttl=600, clock=ticker)
        sid = registry.register(session)

        ticker.now += 599
        assert registry.get(sid) is session
        ticker.now += 600
        assert registry.get(sid) is None
        assert len(registry) == 0

    def test_activity_keeps_session_alive(self, session):
        ticker = Ticker()
        registry = SessionRegistry(ttl=600, clock=ticker)
        sid = registry.register(session)

        for _ in range(5):
            ticker.now += 500
            assert registry.get(sid) is session
        assert session.started_at == 1_000.0
        assert session.last_seen == 3_500.0

    def test_abandoned_sessions_swept_on_register(self, orchestrator):
        ticker = Ticker()
        registry = SessionRegistry(ttl=600, clock=ticker)
        for _ in range(50):
            registry.register(BookingSession(BookingDraft(), orchestrator))
        assert len(registry) == 50

        ticker.now += 600
        registry.register(BookingSession(BookingDraft(), orchestrator))
        assert len(registry) == 1
