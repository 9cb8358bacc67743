"""FastAPI application — booking form API, admin API and admin change stream.

Endpoints:

  GET  /health                                  Health check
  GET  /api/availability/dates                  Next N weekdays
  GET  /api/availability/slots                  Half-hour slots with availability
  POST /api/drafts                              Start a booking draft
  GET  /api/drafts/{id}                         Draft state (+ outcome once confirmed)
  POST /api/drafts/{id}/date|time|details       Move the draft forward
  POST /api/drafts/{id}/back|reset              Step back / start over
  GET  /api/drafts/{id}/calendar.ics            iCalendar download
  GET  /api/drafts/{id}/google-calendar-link    "Add to Google Calendar" link
  POST /api/admin/login|logout                  Admin session gate
  GET  /api/admin/setup                         Table check + setup SQL
  GET  /api/admin/bookings                      Filtered list + stats
  GET  /api/admin/bookings/export.csv           CSV of the filtered list
  DEL  /api/admin/bookings/{id}                 Delete one booking
  WS   /api/admin/stream?token=...              Live booking changes

The booking flow:
  1. POST /api/drafts returns a session id
  2. The visitor picks a date, then a time, then submits their details
  3. A valid details submission enters CONFIRMING and runs the
     orchestrator once: calendar event → persist → emails
  4. The response carries the outcome: confirmed or confirmed_degraded
"""

from __future__ import annotations

# Load .env into os.environ early so Settings() and the Google client
# see the same values.
from dotenv import load_dotenv
load_dotenv()

import logging
import time
from collections.abc import Callable
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

# Configure root logger early so all app loggers (consultations.store, etc.)
# have a handler and are visible when run via `uvicorn consultations.app:app`.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)-28s %(levelname)-7s %(message)s",
)

from fastapi import Depends, FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, Response
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel, Field

from consultations.admin import AdminBookingView, StatusFilter, csv_filename
from consultations.auth import (
    AdminSessionManager,
    authorize_admin_ws,
    bearer_scheme,
    get_session_manager,
    require_admin_session,
)
from consultations.availability import (
    UNAVAILABLE_SLOTS,
    format_long_date,
    generate_dates,
    generate_time_slots,
)
from consultations.calendar_providers.base import CalendarProvider
from consultations.config import Settings, settings as default_settings
from consultations.draft import (
    BookingDraft,
    ClientDetailsForm,
    DraftStep,
    DraftValidationError,
    InvalidTransitionError,
)
from consultations.exports import build_ics, google_calendar_link, ics_filename
from consultations.notifications.email import EmailJSClient, NotificationMailer
from consultations.orchestrator import BookingOrchestrator
from consultations.session import BookingSession, SessionRegistry
from consultations.setup_db import check, setup_instructions, setup_sql
from consultations.store import (
    BookingChange,
    BookingNotFoundError,
    BookingStore,
    SchemaMissingError,
    StoreError,
    create_store,
)

log = logging.getLogger("consultations.app")

_START_TIME = time.time()


# ── Request bodies ────────────────────────────────────────────────

class DateSelection(BaseModel):
    day: date = Field(alias="date")


class TimeSelection(BaseModel):
    time: str


class LoginRequest(BaseModel):
    username: str
    password: str


def create_app(
    config: Optional[Settings] = None,
    store: Optional[BookingStore] = None,
    calendar_provider: Optional[CalendarProvider] = None,
    mailer: Optional[NotificationMailer] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Collaborators not passed in are built from ``config``: the Supabase
    store (or the in-memory one), the Google Calendar provider and the
    EmailJS mailer, each only when its settings are present.
    """
    config = config or default_settings
    for warning in config.validate_startup():
        log.warning(warning)

    tz = config.tz
    now: Callable[[], datetime] = clock or (lambda: datetime.now(tz=timezone.utc))

    store = store or create_store(config)
    if calendar_provider is None:
        calendar_provider = _create_calendar_provider(config)
    if mailer is None:
        mailer = _create_mailer(config)

    orchestrator = BookingOrchestrator(
        store=store,
        tz=tz,
        calendar_provider=calendar_provider,
        calendar_id=config.google_calendar_id,
        mailer=mailer,
        admin_email=config.admin_email,
        session_minutes=config.session_minutes,
        timezone_name=config.business_timezone,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info(
            "Booking service started (store=%s, calendar=%s, email=%s)",
            type(store).__name__,
            "on" if calendar_provider else "off",
            "on" if mailer else "off",
        )
        yield
        await store.aclose()
        log.info("Booking service stopped")

    app = FastAPI(
        title="Coffee Chat Consultations",
        description="Consultation booking form and admin panel API",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = config
    app.state.store = store
    app.state.orchestrator = orchestrator
    app.state.sessions = SessionRegistry(ttl=config.draft_session_ttl_minutes * 60)
    app.state.admin_sessions = AdminSessionManager(
        username=config.admin_username,
        password=config.admin_password,
        ttl=timedelta(minutes=config.admin_session_ttl_minutes),
        debug=config.debug,
        clock=now,
    )

    def _today() -> date:
        return now().astimezone(tz).date()

    def _get_session(session_id: str) -> BookingSession:
        session = app.state.sessions.get(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail="Session not found")
        return session

    def _require_outcome(session: BookingSession, action: str):
        if session.outcome is None or session.draft.client is None:
            raise InvalidTransitionError(session.draft.step, action)
        return session.outcome

    async def _booked(day: date) -> set[str]:
        """Slots already taken on ``day``, when real bookings are consulted."""
        if not config.hide_booked_slots:
            return set()
        try:
            return await store.booked_slots(day, tz)
        except StoreError as e:
            log.warning("Could not load booked slots for %s: %s", day.isoformat(), e)
            return set()

    # ── Error mapping ──────────────────────────────────────────

    @app.exception_handler(DraftValidationError)
    async def _validation_error(request: Request, exc: DraftValidationError) -> JSONResponse:
        return JSONResponse({"errors": exc.errors}, status_code=422)

    @app.exception_handler(InvalidTransitionError)
    async def _transition_error(request: Request, exc: InvalidTransitionError) -> JSONResponse:
        return JSONResponse({"error": str(exc), "step": exc.step.value}, status_code=409)

    @app.exception_handler(SchemaMissingError)
    async def _schema_missing(request: Request, exc: SchemaMissingError) -> JSONResponse:
        log.error("Bookings table missing: %s", exc)
        return JSONResponse(
            {
                "error": "Database setup required",
                "instructions": setup_instructions(config.bookings_table),
                "sql": setup_sql(config.bookings_table),
            },
            status_code=503,
        )

    @app.exception_handler(BookingNotFoundError)
    async def _not_found(request: Request, exc: BookingNotFoundError) -> JSONResponse:
        return JSONResponse({"error": str(exc)}, status_code=404)

    @app.exception_handler(StoreError)
    async def _store_error(request: Request, exc: StoreError) -> JSONResponse:
        log.error("Store error on %s: %s", request.url.path, exc)
        return JSONResponse({"error": "Booking store unavailable"}, status_code=502)

    # ── Health check ───────────────────────────────────────────

    @app.get("/health")
    async def health() -> JSONResponse:
        """Lightweight health check — confirms the event loop is responsive."""
        uptime = round(time.time() - _START_TIME, 1)
        return JSONResponse({
            "status": "ok",
            "uptime": uptime,
            "store": type(store).__name__,
            "sessions": len(app.state.sessions),
        })

    # ── Availability ───────────────────────────────────────────

    @app.get("/api/availability/dates")
    async def available_dates(
        count: int = Query(default=config.booking_window_days, ge=0, le=365),
    ) -> JSONResponse:
        dates = generate_dates(count, today=_today())
        return JSONResponse({
            "dates": [{"value": d.isoformat(), "display": format_long_date(d)} for d in dates],
        })

    @app.get("/api/availability/slots")
    async def available_slots(day: Optional[date] = Query(default=None, alias="date")) -> JSONResponse:
        unavailable = set(UNAVAILABLE_SLOTS)
        if day is not None:
            unavailable |= await _booked(day)
        return JSONResponse({
            "timezone": config.timezone_label,
            "slots": [asdict(s) for s in generate_time_slots(unavailable)],
        })

    # ── Booking drafts ─────────────────────────────────────────

    @app.post("/api/drafts")
    async def start_draft() -> JSONResponse:
        draft = BookingDraft(window_days=config.booking_window_days, today=_today)
        session = BookingSession(draft=draft, orchestrator=orchestrator)
        app.state.sessions.register(session)
        return JSONResponse(session.to_dict(), status_code=201)

    @app.get("/api/drafts/{session_id}")
    async def get_draft(session_id: str) -> JSONResponse:
        return JSONResponse(_get_session(session_id).to_dict())

    @app.delete("/api/drafts/{session_id}")
    async def discard_draft(session_id: str) -> JSONResponse:
        _get_session(session_id)
        app.state.sessions.unregister(session_id)
        return JSONResponse({"deleted": session_id})

    @app.post("/api/drafts/{session_id}/date")
    async def select_date(session_id: str, body: DateSelection) -> JSONResponse:
        session = _get_session(session_id)
        session.draft.select_date(body.day)
        return JSONResponse(session.to_dict())

    @app.post("/api/drafts/{session_id}/time")
    async def select_time(session_id: str, body: TimeSelection) -> JSONResponse:
        session = _get_session(session_id)
        draft = session.draft
        if draft.step == DraftStep.SELECTING_TIME and draft.selected_date is not None:
            if body.time in await _booked(draft.selected_date):
                raise DraftValidationError({"time": "This time slot is not available"})
        draft.select_time(body.time)
        return JSONResponse(session.to_dict())

    @app.post("/api/drafts/{session_id}/details")
    async def submit_details(session_id: str, body: ClientDetailsForm) -> JSONResponse:
        session = _get_session(session_id)
        await session.submit_details(body)
        return JSONResponse(session.to_dict())

    @app.post("/api/drafts/{session_id}/back")
    async def step_back(session_id: str) -> JSONResponse:
        session = _get_session(session_id)
        session.draft.back()
        return JSONResponse(session.to_dict())

    @app.post("/api/drafts/{session_id}/reset")
    async def reset_draft(session_id: str) -> JSONResponse:
        session = _get_session(session_id)
        session.reset()
        return JSONResponse(session.to_dict())

    @app.get("/api/drafts/{session_id}/calendar.ics")
    async def download_ics(session_id: str) -> Response:
        session = _get_session(session_id)
        outcome = _require_outcome(session, "download a calendar file")
        client = session.draft.client
        ics = build_ics(
            client,
            session.draft.start_time(tz),
            outcome.meet_link,
            config.organizer_email,
            config.session_minutes,
            uid=f"{outcome.booking.id}@coffee-chat" if outcome.booking else "",
        )
        return Response(
            content=ics,
            media_type="text/calendar",
            headers={"Content-Disposition": f'attachment; filename="{ics_filename(client)}"'},
        )

    @app.get("/api/drafts/{session_id}/google-calendar-link")
    async def calendar_link(session_id: str) -> JSONResponse:
        session = _get_session(session_id)
        _require_outcome(session, "build a calendar link")
        url = google_calendar_link(
            session.draft.client, session.draft.start_time(tz), config.session_minutes
        )
        return JSONResponse({"url": url})

    # ── Admin session gate ─────────────────────────────────────

    @app.post("/api/admin/login")
    async def admin_login(
        body: LoginRequest,
        manager: AdminSessionManager = Depends(get_session_manager),
    ) -> JSONResponse:
        session = manager.login(body.username, body.password)
        if session is None:
            raise HTTPException(status_code=401, detail="Invalid username or password")
        return JSONResponse({
            "token": session.token,
            "expires_at": session.expires_at.isoformat(),
        })

    @app.post("/api/admin/logout", dependencies=[Depends(require_admin_session)])
    async def admin_logout(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
        manager: AdminSessionManager = Depends(get_session_manager),
    ) -> JSONResponse:
        logged_out = manager.logout(credentials.credentials) if credentials else False
        return JSONResponse({"logged_out": logged_out})

    # ── Admin API ──────────────────────────────────────────────

    @app.get("/api/admin/setup", dependencies=[Depends(require_admin_session)])
    async def admin_setup() -> JSONResponse:
        """Report whether the bookings table exists; include the SQL if not."""
        ready = await check(store)
        body: dict[str, Any] = {"ready": ready, "table": config.bookings_table}
        if not ready:
            body["instructions"] = setup_instructions(config.bookings_table)
            body["sql"] = setup_sql(config.bookings_table)
        return JSONResponse(body)

    @app.get("/api/admin/bookings", dependencies=[Depends(require_admin_session)])
    async def admin_bookings(
        search: str = "",
        status: StatusFilter = StatusFilter.ALL,
    ) -> JSONResponse:
        view = AdminBookingView(store, tz, clock=now)
        await view.reload()
        rows = view.rows(view.query(search, status))
        return JSONResponse({
            "bookings": rows,
            "count": len(rows),
            "stats": view.stats.to_dict(),
        })

    @app.get("/api/admin/bookings/export.csv", dependencies=[Depends(require_admin_session)])
    async def admin_export(
        search: str = "",
        status: StatusFilter = StatusFilter.ALL,
    ) -> Response:
        view = AdminBookingView(store, tz, clock=now)
        await view.reload()
        return Response(
            content=view.export(search, status),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{csv_filename(now())}"'},
        )

    @app.delete("/api/admin/bookings/{booking_id}", dependencies=[Depends(require_admin_session)])
    async def admin_delete(booking_id: str) -> JSONResponse:
        view = AdminBookingView(store, tz, clock=now)
        await view.delete(booking_id)
        log.info("Admin deleted booking %s", booking_id)
        return JSONResponse({"deleted": booking_id, "stats": view.stats.to_dict()})

    # ── Admin change stream ────────────────────────────────────

    @app.websocket("/api/admin/stream")
    async def admin_stream(websocket: WebSocket, token: str = "") -> None:
        """Push a snapshot, then ``{change, stats}`` for every booking change.

        The store subscription is held exactly as long as the socket is open.
        """
        if not await authorize_admin_ws(websocket, token):
            return
        await websocket.accept()
        view = AdminBookingView(store, tz, clock=now)

        try:
            await view.reload()
        except SchemaMissingError:
            await websocket.send_json({
                "type": "error",
                "error": "Database setup required",
                "sql": setup_sql(config.bookings_table),
            })
            await websocket.close(code=1011)
            return
        except StoreError as exc:
            log.error("Admin stream snapshot failed: %s", exc)
            await websocket.send_json({"type": "error", "error": "Booking store unavailable"})
            await websocket.close(code=1011)
            return

        await websocket.send_json({
            "type": "snapshot",
            "bookings": view.rows(view.bookings),
            "stats": view.stats.to_dict(),
        })

        async def push(change: BookingChange) -> None:
            await view.on_change(change)
            await websocket.send_json({
                "type": "change",
                "change": asdict(change),
                "stats": view.stats.to_dict(),
            })

        try:
            async with store.subscribe(push):
                while True:
                    await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        except StoreError as e:
            log.warning("Admin stream ended: %s", e)
        log.info("Admin stream closed")

    return app


# ── Helper functions ──────────────────────────────────────────────

def _create_calendar_provider(config: Settings) -> Optional[CalendarProvider]:
    """Google Calendar provider, or None when not configured or unusable."""
    if not config.google_service_account_json:
        return None
    try:
        from consultations.calendar_providers.google import GoogleCalendarProvider
        return GoogleCalendarProvider(
            service_account_path=config.google_service_account_json,
        )
    except Exception as e:
        log.warning("Google Calendar not configured: %s", e)
        return None


def _create_mailer(config: Settings) -> Optional[NotificationMailer]:
    sender = EmailJSClient(
        service_id=config.emailjs_service_id,
        public_key=config.emailjs_public_key,
        private_key=config.emailjs_private_key,
    )
    if not sender.configured:
        return None
    return NotificationMailer(
        sender,
        client_template_id=config.emailjs_client_template_id,
        admin_template_id=config.emailjs_admin_template_id,
        admin_email=config.admin_email,
        tz_label=config.timezone_label,
    )


# ── Module-level app instance for uvicorn ──────────────────────

app = create_app()


if __name__ == "__main__":
    import uvicorn

    log_config = uvicorn.config.LOGGING_CONFIG
    log_config["formatters"]["default"]["fmt"] = (
        "%(asctime)s %(name)-12s %(levelname)-8s %(message)s"
    )

    uvicorn.run(
        "consultations.app:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug,
        log_config=log_config,
    )
