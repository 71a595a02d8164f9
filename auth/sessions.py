"""
auth/sessions.py -- Server-side session lifecycle and cookie transport.

Sessions are opaque tokens (secrets.token_urlsafe(32), 256 bits of entropy)
stored in the sessions table. They have an absolute expiry fixed at creation
and no renewal. A session is valid iff revoked_at is unset and
now < expires_at; the comparison is done in SQL against the injected clock.

Cookie: the token is the only thing the client holds. It is written as an
httpOnly, SameSite=Lax cookie whose max_age equals the session TTL, and it
is deleted (not left to expire) on logout and on any validation failure.
"""

from __future__ import annotations

import secrets
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from auth.models import Principal, Session

if TYPE_CHECKING:
    from auth.store import AccountStore
    from core.config import Settings


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


class SessionStore:
    """Create, validate and revoke sessions.

    Usage:
        sessions = SessionStore(store, ttl_seconds=14 * 86400)
        session = sessions.create(account.id)
        principal = sessions.validate(session.id)  # Principal or None
        sessions.revoke(session.id)                # idempotent
    """

    def __init__(self, store: AccountStore, ttl_seconds: float, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def create(self, account_id: str) -> Session:
        """Issue a new session for account_id, expiring ttl_seconds from now."""
        now = self._clock()
        session = Session(
            id=new_session_id(),
            account_id=account_id,
            created_at=now,
            expires_at=now + self.ttl_seconds,
        )
        self._store.insert_session(session)
        return session

    def validate(self, session_id: str | None) -> Principal | None:
        """Return the session's account, or None if missing, revoked or expired."""
        if not session_id:
            return None
        return self._store.get_valid_session(session_id, now=self._clock())

    def revoke(self, session_id: str) -> None:
        """Mark the session revoked. Unknown or already-revoked ids are a no-op."""
        self._store.revoke_session(session_id, now=self._clock())


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, session_id: str, settings: Settings) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST (CSRF mitigation).
    secure: only sent over HTTPS when SECURE_COOKIES=true.
    max_age: the session TTL, so cookie and session expire together.
    """
    response.set_cookie(
        settings.session_cookie_name,
        value=session_id,
        max_age=settings.session_ttl_seconds,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
    )


def clear_session_cookie(response, settings: Settings) -> None:
    """Delete the session cookie with the same attributes it was set with."""
    response.delete_cookie(
        settings.session_cookie_name,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
    )
