"""Per-visitor booking session: owns a draft and confirms it exactly once.

Each visitor of the booking form gets a BookingSession that:
  1. Holds the BookingDraft as the visitor moves through the steps
  2. Runs the BookingOrchestrator the first time the draft reaches
     CONFIRMING, and hands back the same outcome on every later call
  3. Forgets the outcome when the visitor starts a new booking
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from typing import Any, Callable, Optional

from consultations.draft import BookingDraft, ClientDetailsForm, DraftStep, InvalidTransitionError
from consultations.orchestrator import BookingOrchestrator, BookingOutcome, redact_pii

log = logging.getLogger("consultations.session")


class BookingSession:
    """One visitor's pass through the booking form.

    Typical lifecycle::

        session = BookingSession(draft=BookingDraft(), orchestrator=orchestrator)
        session.draft.select_date(day)
        session.draft.select_time("10:30")
        outcome = await session.submit_details(form)
    """

    def __init__(self, draft: BookingDraft, orchestrator: BookingOrchestrator) -> None:
        self.draft = draft
        self._orchestrator = orchestrator
        self._outcome: Optional[BookingOutcome] = None
        self._confirm_lock = asyncio.Lock()
        self.session_id: str = ""
        self.started_at: float = 0.0
        self.last_seen: float = 0.0

    @property
    def outcome(self) -> Optional[BookingOutcome]:
        return self._outcome

    async def submit_details(self, form: ClientDetailsForm) -> BookingOutcome:
        """Validate the details step and, on success, confirm the booking."""
        self.draft.submit_details(form)
        return await self.confirm()

    async def confirm(self) -> BookingOutcome:
        """Run the orchestrator once per entry into CONFIRMING."""
        if self.draft.step != DraftStep.CONFIRMING:
            raise InvalidTransitionError(self.draft.step, "confirm")
        async with self._confirm_lock:
            if self._outcome is None:
                log.info(
                    "Confirming booking for %s",
                    redact_pii(self.draft.client.email if self.draft.client else ""),
                )
                self._outcome = await self._orchestrator.run(self.draft)
        return self._outcome

    def reset(self) -> None:
        """New booking: clear the draft and the previous outcome."""
        self.draft.reset()
        self._outcome = None

    def to_dict(self) -> dict[str, Any]:
        d = {"session_id": self.session_id, "started_at": self.started_at}
        d.update(self.draft.to_dict())
        d["outcome"] = self._outcome.to_dict() if self._outcome else None
        return d


class SessionRegistry:
    """Active booking sessions keyed by an unguessable id.

    A session idle for ``ttl`` seconds or more is evicted on the next
    ``register`` or ``get``.
    """

    def __init__(self, ttl: float = 3600.0, clock: Callable[[], float] = time.time) -> None:
        self._sessions: dict[str, BookingSession] = {}
        self._ttl = ttl
        self._clock = clock

    def _sweep(self, now: float) -> None:
        expired = [
            sid for sid, session in self._sessions.items()
            if now - session.last_seen >= self._ttl
        ]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            log.info("Evicted %d idle session(s)", len(expired))

    def register(self, session: BookingSession) -> str:
        now = self._clock()
        self._sweep(now)
        session_id = secrets.token_urlsafe(18)
        session.session_id = session_id
        session.started_at = now
        session.last_seen = now
        self._sessions[session_id] = session
        log.info("Session registered: %s", session_id)
        return session_id

    def unregister(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        log.info("Session unregistered: %s", session_id)

    def get(self, session_id: str) -> Optional[BookingSession]:
        now = self._clock()
        self._sweep(now)
        session = self._sessions.get(session_id)
        if session is not None:
            session.last_seen = now
        return session

    def __len__(self) -> int:
        return len(self._sessions)
