"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the
service do the work.

Timestamps are epoch seconds (float, UTC) taken from the injectable clock.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Account:
    """A registered user, keyed by the canonical E.164 phone number.

    password_hash is the self-describing argon2id PHC string; the cost
    parameters used at hash time are embedded in it.

    failed_login_count and locked_until belong to the login flow. Signup
    always writes them as 0 / None.
    """

    id: str
    phone_e164: str
    password_hash: str
    failed_login_count: int = 0
    locked_until: float | None = None  # locked while now < locked_until
    created_at: float | None = None
    password_updated_at: float | None = None

    def is_locked(self, now: float) -> bool:
        return self.locked_until is not None and now < self.locked_until


@dataclass
class Session:
    """A server-side session. Valid iff revoked_at is None and now < expires_at.

    Sessions are never renewed: expires_at is fixed at creation. The only
    mutation is the one-way transition to revoked.
    """

    id: str
    account_id: str
    created_at: float
    expires_at: float
    revoked_at: float | None = None

    def is_valid(self, now: float) -> bool:
        return self.revoked_at is None and now < self.expires_at


@dataclass
class Principal:
    """The authenticated identity behind a valid session cookie."""

    account_id: str
    phone_e164: str
    session_id: str
    expires_at: float
