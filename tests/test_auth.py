"""Tests for admin session login, expiry and the auth guards."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException

from consultations.auth import AdminSessionManager, check_token


class Clock:
    def __init__(self):
        self.now = datetime(2026, 10, 16, 19, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def manager(clock):
    return AdminSessionManager("admin", "s3cret", ttl=timedelta(minutes=60), clock=clock)


# ── Login / logout ─────────────────────────────────────────────────


class TestAdminSessionManager:
    def test_login_success(self, manager, clock):
        session = manager.login("admin", "s3cret")
        assert session is not None
        assert session.username == "admin"
        assert session.expires_at == clock.now + timedelta(minutes=60)
        assert manager.validate(session.token) is session

    @pytest.mark.parametrize("username,password", [
        ("admin", "wrong"),
        ("root", "s3cret"),
        ("", ""),
    ])
    def test_login_rejected(self, manager, username, password):
        assert manager.login(username, password) is None

    def test_tokens_unique(self, manager):
        tokens = {manager.login("admin", "s3cret").token for _ in range(5)}
        assert len(tokens) == 5

    def test_logout(self, manager):
        session = manager.login("admin", "s3cret")
        assert manager.logout(session.token) is True
        assert manager.validate(session.token) is None
        assert manager.logout(session.token) is False

    def test_expiry(self, manager, clock):
        session = manager.login("admin", "s3cret")
        clock.advance(minutes=59)
        assert manager.validate(session.token) is not None
        clock.advance(minutes=1)
        assert manager.validate(session.token) is None
        # Expired sessions are dropped, not revived.
        clock.now -= timedelta(minutes=30)
        assert manager.validate(session.token) is None

    def test_unconfigured_never_logs_in(self, clock):
        manager = AdminSessionManager("", "", clock=clock)
        assert manager.configured is False
        assert manager.login("", "") is None


# ── Guard matrix ───────────────────────────────────────────────────


class TestCheckToken:
    def test_valid_token(self, manager):
        session = manager.login("admin", "s3cret")
        check_token(manager, session.token)

    def test_missing_token(self, manager):
        with pytest.raises(HTTPException) as exc_info:
            check_token(manager, None)
        assert exc_info.value.status_code == 401

    def test_wrong_token(self, manager):
        with pytest.raises(HTTPException) as exc_info:
            check_token(manager, "not-a-session")
        assert exc_info.value.status_code == 401

    def test_expired_token(self, manager, clock):
        session = manager.login("admin", "s3cret")
        clock.advance(hours=2)
        with pytest.raises(HTTPException) as exc_info:
            check_token(manager, session.token)
        assert exc_info.value.status_code == 401

    def test_unconfigured_debug_allows(self, clock):
        check_token(AdminSessionManager("", "", debug=True, clock=clock), None)

    def test_unconfigured_production_locked(self, clock):
        with pytest.raises(HTTPException) as exc_info:
            check_token(AdminSessionManager("", "", debug=False, clock=clock), "anything")
        assert exc_info.value.status_code == 403
