"""Admin session gate.

Login checks the configured username/password and issues a short-lived
session token. Two guards protect the admin API:
  - require_admin_session()  — HTTP endpoints (Bearer token in Authorization header)
  - authorize_admin_ws()     — WebSocket endpoints (?token= query param)

Behavior matrix:
  credentials set + valid, unexpired token  → allow
  credentials set + wrong/missing/expired   → 401 Unauthorized
  credentials empty + DEBUG=true            → allow (local dev convenience)
  credentials empty + DEBUG=false           → 403 Forbidden (locked in production)
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, Request, WebSocket, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

log = logging.getLogger("consultations.auth")

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class AdminSession:
    token: str
    username: str
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class AdminSessionManager:
    """Issues and validates admin sessions. Sessions live in process memory."""

    def __init__(
        self,
        username: str,
        password: str,
        ttl: timedelta = timedelta(minutes=60),
        debug: bool = False,
        clock: Callable[[], datetime] = lambda: datetime.now(tz=timezone.utc),
    ) -> None:
        self._username = username
        self._password = password
        self._ttl = ttl
        self.debug = debug
        self._clock = clock
        self._sessions: dict[str, AdminSession] = {}

    @property
    def configured(self) -> bool:
        return bool(self._username and self._password)

    def login(self, username: str, password: str) -> Optional[AdminSession]:
        """Return a new session on matching credentials, else None."""
        if not self.configured:
            return None
        user_ok = secrets.compare_digest(username.encode(), self._username.encode())
        pass_ok = secrets.compare_digest(password.encode(), self._password.encode())
        if not (user_ok and pass_ok):
            log.warning("Admin login rejected")
            return None
        now = self._clock()
        session = AdminSession(
            token=secrets.token_urlsafe(32),
            username=username,
            created_at=now,
            expires_at=now + self._ttl,
        )
        self._sessions[session.token] = session
        log.info("Admin session created (expires %s)", session.expires_at.isoformat())
        return session

    def logout(self, token: str) -> bool:
        return self._sessions.pop(token, None) is not None

    def validate(self, token: str) -> Optional[AdminSession]:
        session = self._sessions.get(token)
        if session is None:
            return None
        if session.is_expired(self._clock()):
            del self._sessions[token]
            log.info("Admin session expired")
            return None
        return session


def check_token(manager: AdminSessionManager, token: str | None) -> None:
    """Raise HTTPException unless ``token`` grants admin access."""
    if not manager.configured:
        if manager.debug:
            return  # Local dev: allow without auth
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin credentials not configured. Set ADMIN_USERNAME and ADMIN_PASSWORD.",
        )

    if not token or manager.validate(token) is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid, expired or missing admin session.",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_session_manager(request: Request) -> AdminSessionManager:
    return request.app.state.admin_sessions


async def require_admin_session(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    manager: AdminSessionManager = Depends(get_session_manager),
) -> None:
    """FastAPI dependency — protect HTTP admin endpoints with a session token."""
    check_token(manager, credentials.credentials if credentials else None)


async def authorize_admin_ws(websocket: WebSocket, token: str) -> bool:
    """WebSocket auth — browsers can't send headers, so use ?token= query param.

    Closes the socket and returns False when access is denied.
    """
    manager: AdminSessionManager = websocket.app.state.admin_sessions
    try:
        check_token(manager, token)
    except HTTPException as exc:
        code = 4003 if exc.status_code == status.HTTP_403_FORBIDDEN else 4001
        await websocket.close(code=code, reason=str(exc.detail))
        return False
    return True
