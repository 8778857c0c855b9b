"""
Credential check against the ``login`` tab and the session it produces.

Identity is carried in an explicit ``SessionContext`` persisted through a
``SessionStore``, so handlers never reach into ambient storage directly.
"""

from __future__ import annotations

import datetime as dt
import hmac
import logging
from dataclasses import asdict, dataclass
from typing import Callable, Optional, Protocol

from flask import session

from catalog.audit import STATUS_ERROR, STATUS_FAILED, STATUS_LOGOUT, STATUS_SUCCESS, AuditSink
from catalog.config import ADMIN_MARKER, LOGIN_SHEET
from catalog.sheets import SheetsError, fetch_values

logger = logging.getLogger(__name__)

SESSION_KEY = "session"


@dataclass(frozen=True)
class SessionContext:
    email: str
    authenticated: bool
    login_time: str
    is_admin: bool = False

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data) -> Optional["SessionContext"]:
        if not isinstance(data, dict) or not data.get("email"):
            return None
        return cls(
            email=str(data["email"]),
            authenticated=bool(data.get("authenticated")),
            login_time=str(data.get("login_time", "")),
            is_admin=bool(data.get("is_admin")),
        )


@dataclass(frozen=True)
class AuthResult:
    authenticated: bool
    is_admin: bool = False
    message: str = ""


class SessionStore(Protocol):
    def get(self) -> Optional[SessionContext]: ...

    def set(self, ctx: SessionContext) -> None: ...

    def clear(self) -> None: ...


class MemorySessionStore:
    def __init__(self):
        self._ctx: Optional[SessionContext] = None

    def get(self) -> Optional[SessionContext]:
        return self._ctx

    def set(self, ctx: SessionContext) -> None:
        self._ctx = ctx

    def clear(self) -> None:
        self._ctx = None


class FlaskSessionStore:
    """Keeps the context in Flask's signed session cookie."""

    def get(self) -> Optional[SessionContext]:
        return SessionContext.from_dict(session.get(SESSION_KEY))

    def set(self, ctx: SessionContext) -> None:
        session[SESSION_KEY] = ctx.to_dict()

    def clear(self) -> None:
        session.pop(SESSION_KEY, None)


def check_credentials(email: str, password: str, rows: list[list[str]]) -> AuthResult:
    """
    Match *email*/*password* against login rows (header row first).

    Column 1 is the email, column 2 the password, column 3 the role; the
    admin marker in column 3 grants admin.
    """
    if len(rows) <= 1:
        return AuthResult(False, message="No user data available")
    if not email or not password:
        return AuthResult(False, message="Invalid credentials")

    for row in rows[1:]:
        if len(row) < 2 or row[0].strip() != email:
            continue
        if hmac.compare_digest(row[1].encode(), password.encode()):
            is_admin = len(row) > 2 and row[2].strip() == ADMIN_MARKER
            return AuthResult(True, is_admin=is_admin, message="Login successful")
        break
    return AuthResult(False, message="Invalid credentials")


def fetch_login_rows() -> list[list[str]]:
    return fetch_values(LOGIN_SHEET)


def login(
    email: str,
    password: str,
    store: SessionStore,
    audit: AuditSink,
    ip_address: Optional[str] = None,
    rows_loader: Callable[[], list] = fetch_login_rows,
) -> AuthResult:
    """
    Authenticate and, on success, start a session.

    Transport failures propagate as ``SheetsError`` after being audited.
    """
    email = (email or "").strip()
    try:
        rows = rows_loader()
    except SheetsError:
        audit.record(email, STATUS_ERROR, "System error during login", ip_address)
        raise

    result = check_credentials(email, password or "", rows)
    if not result.authenticated:
        logger.info("Login failed for %s: %s", email, result.message)
        audit.record(email, STATUS_FAILED, result.message, ip_address)
        return result

    store.set(SessionContext(
        email=email,
        authenticated=True,
        login_time=dt.datetime.now(dt.timezone.utc).isoformat(),
        is_admin=result.is_admin,
    ))
    logger.info("Login succeeded for %s (admin=%s)", email, result.is_admin)
    audit.record(email, STATUS_SUCCESS, result.message, ip_address)
    return result


def logout(store: SessionStore, audit: AuditSink, ip_address: Optional[str] = None) -> None:
    ctx = store.get()
    store.clear()
    if ctx is not None:
        audit.record(ctx.email, STATUS_LOGOUT, "User logged out", ip_address)
