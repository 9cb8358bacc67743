"""Application configuration via environment variables."""

from __future__ import annotations

import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic_settings import BaseSettings

log = logging.getLogger("consultations.config")


class Settings(BaseSettings):
    # Hosted table store (Supabase)
    supabase_url: str = ""
    supabase_anon_key: str = ""
    bookings_table: str = "bookings"

    # Google Calendar
    google_service_account_json: str = ""
    google_calendar_id: str = "primary"

    # EmailJS
    emailjs_service_id: str = ""
    emailjs_public_key: str = ""
    emailjs_private_key: str = ""
    emailjs_client_template_id: str = ""
    emailjs_admin_template_id: str = ""

    # Business
    admin_email: str = "admin@coffechat.dev"
    organizer_email: str = "coffee@techconsult.dev"
    business_timezone: str = "America/Los_Angeles"
    timezone_label: str = "PT"
    session_minutes: int = 30
    booking_window_days: int = 30
    # Idle draft sessions are dropped after this long
    draft_session_ttl_minutes: int = 60
    # Also hide slots that already hold a booking (off: static list only)
    hide_booked_slots: bool = False

    # Admin auth
    admin_username: str = ""
    admin_password: str = ""
    admin_session_ttl_minutes: int = 60

    # Server
    host: str = "127.0.0.1"
    port: int = 8080
    debug: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.business_timezone)

    def validate_startup(self) -> list[str]:
        """Validate configuration at startup. Returns warnings, raises on errors."""
        warnings: list[str] = []
        _placeholders = {"your-anon-key", "path/to/service-account.json", "https://xyz.supabase.co"}

        try:
            ZoneInfo(self.business_timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(
                f"BUSINESS_TIMEZONE {self.business_timezone!r} is not a known IANA time zone."
            )

        if self.session_minutes <= 0:
            raise ValueError("SESSION_MINUTES must be positive.")

        if self.draft_session_ttl_minutes <= 0:
            raise ValueError("DRAFT_SESSION_TTL_MINUTES must be positive.")

        # Supabase: fall back to the in-memory store
        if not self.supabase_url or self.supabase_url in _placeholders:
            warnings.append(
                "SUPABASE_URL not set. Bookings are kept in memory and lost on restart."
            )
        elif not self.supabase_anon_key or self.supabase_anon_key in _placeholders:
            warnings.append("SUPABASE_ANON_KEY is missing — store requests will be rejected.")

        # Google Calendar: placeholder meet links only
        if not self.google_service_account_json or self.google_service_account_json in _placeholders:
            warnings.append(
                "GOOGLE_SERVICE_ACCOUNT_JSON not set — calendar integration disabled, "
                "placeholder Meet links will be generated."
            )

        if not (self.emailjs_service_id and self.emailjs_public_key):
            warnings.append("EmailJS not configured — confirmation emails will not be sent.")

        # Admin credentials: warn if unset
        if not (self.admin_username and self.admin_password):
            if self.debug:
                warnings.append(
                    "ADMIN_USERNAME/ADMIN_PASSWORD not set. Admin APIs are open (DEBUG=true)."
                )
            else:
                warnings.append(
                    "ADMIN_USERNAME/ADMIN_PASSWORD not set. Admin APIs are locked in production."
                )

        return warnings


settings = Settings()
