"""
auth/service.py -- Signup / login / logout orchestration.

AuthService composes the phone normalizer, password policy, rate limiter,
lockout policy and session store into the three user-facing flows. Each
flow returns exactly one AuthOutcome; nothing expected escapes as an
exception.

Outcome design:
  AuthOutcome.message is the user-facing text and is deliberately coarse.
  AuthOutcome.cause is the precise reason and goes to logs only. An unknown
  phone and a wrong password produce the same kind and the same message, so
  no response reveals whether a number is registered.

Flow order (each step may end the flow):
  signup: IP quota -> phone -> password strength -> uniqueness -> hash ->
          insert account -> create session                      => created
  login:  IP quota -> phone -> phone quota -> account lookup -> lock check ->
          verify -> lockout bookkeeping -> create session       => success
  logout: revoke if a session id was presented                  => logged_out

Fault policy: storage (SQLAlchemyError) and hashing (argon2 HashingError)
failures are logged with the traceback and returned as internal_error with a
generic message. Logout swallows any revoke failure after logging: clearing the
client's cookie matters more than the revoke.

Telemetry: metric log lines carry the account id and calling-country code
only. Raw phone numbers and passwords are never logged.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from argon2.exceptions import HashingError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import (
    AuthenticationError,
    AuthError,
    ConflictError,
    LockedError,
    PersistenceError,
    RateLimitedError,
)
from auth.lockout import LockoutPolicy
from auth.models import Account, Principal, Session
from auth.passwords import PasswordPolicy
from auth.phone import country_calling_code, normalize_phone
from auth.rate_limit import FixedWindowRateLimiter, login_ip_key, login_phone_key, signup_ip_key
from auth.sessions import SessionStore
from auth.store import AccountStore
from core.config import Settings

logger = logging.getLogger("phonegate.auth")

LOGIN_RATE_LIMITED_MESSAGE = "Too many login attempts. Please try again later."
SIGNUP_RATE_LIMITED_MESSAGE = "Too many signup attempts. Please try again later."

_UNKNOWN_IP = "unknown"


class OutcomeKind(str, Enum):
    created = "created"
    success = "success"
    logged_out = "logged_out"
    validation_error = "validation_error"
    conflict = "conflict"
    invalid_credentials = "invalid_credentials"
    locked = "locked"
    rate_limited = "rate_limited"
    internal_error = "internal_error"


@dataclass
class AuthOutcome:
    """The single result of an auth flow."""

    kind: OutcomeKind
    message: str
    cause: str = ""
    account_id: str | None = None
    session: Session | None = None
    retry_after: int | None = None

    @property
    def ok(self) -> bool:
        return self.kind in (OutcomeKind.created, OutcomeKind.success, OutcomeKind.logged_out)

    @classmethod
    def from_error(cls, exc: AuthError) -> AuthOutcome:
        return cls(
            kind=OutcomeKind(exc.kind),
            message=exc.message,
            cause=exc.cause,
            retry_after=getattr(exc, "retry_after", None),
        )


class AuthService:
    """Auth orchestrator.

    Usage:
        service = AuthService.from_settings(get_settings())
        outcome = service.login("+447400123456", "correct horse", client_ip="203.0.113.7")
        if outcome.kind is OutcomeKind.success:
            set_session_cookie(response, outcome.session.id, settings)
    """

    def __init__(
        self,
        store: AccountStore,
        sessions: SessionStore,
        limiter: FixedWindowRateLimiter,
        passwords: PasswordPolicy,
        lockout: LockoutPolicy,
        settings: Settings,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.sessions = sessions
        self.limiter = limiter
        self.passwords = passwords
        self.lockout = lockout
        self.settings = settings
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: AccountStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> AuthService:
        """Build the service and its collaborators from one Settings instance.

        The limiter shares the clock so a simulated clock in tests moves
        windows, lockouts and session expiry together.
        """
        store = store or AccountStore(settings.database_url)
        return cls(
            store=store,
            sessions=SessionStore(store, ttl_seconds=settings.session_ttl_seconds, clock=clock),
            limiter=FixedWindowRateLimiter(clock=clock),
            passwords=PasswordPolicy.from_settings(settings),
            lockout=LockoutPolicy.from_settings(settings),
            settings=settings,
            clock=clock,
        )

    @property
    def locked_message(self) -> str:
        # Same wording whatever the remaining lock time.
        return f"Too many attempts. Try again in {self.settings.lockout_duration_minutes} minutes."

    # ------------------------------------------------------------------
    # Public flows
    # ------------------------------------------------------------------

    def signup(self, phone: object, password: object, client_ip: str | None = None) -> AuthOutcome:
        return self._run("signup", self._signup, phone, password, client_ip or _UNKNOWN_IP)

    def login(self, phone: object, password: object, client_ip: str | None = None) -> AuthOutcome:
        return self._run("login", self._login, phone, password, client_ip or _UNKNOWN_IP)

    def logout(self, session_id: str | None) -> AuthOutcome:
        """Revoke the presented session, if any. Always ends logged_out."""
        if session_id:
            try:
                self.sessions.revoke(session_id)
            except Exception:
                # Revocation is best-effort; the client cookie is cleared regardless.
                logger.exception("Session revoke failed during logout; clearing client session anyway")
        return AuthOutcome(kind=OutcomeKind.logged_out, message="Logged out.")

    def authenticate(self, session_id: str | None) -> Principal | None:
        """Resolve a session cookie value to its account, or None."""
        return self.sessions.validate(session_id)

    # ------------------------------------------------------------------
    # Flow bodies -- raise AuthError subclasses, _run converts them
    # ------------------------------------------------------------------

    def _signup(self, raw_phone: object, password: object, client_ip: str) -> AuthOutcome:
        self._check_quota(
            signup_ip_key(client_ip),
            self.settings.signup_per_ip_per_minute,
            SIGNUP_RATE_LIMITED_MESSAGE,
            cause="signup ip quota exhausted",
        )
        phone = normalize_phone(raw_phone)
        self.passwords.validate_strength(password)

        if self.store.get_account_by_phone(phone) is not None:
            _metric("auth.signup.conflict", country_code=country_calling_code(phone))
            raise ConflictError(cause="phone already registered")

        now = self._clock()
        account = Account(
            id=str(uuid.uuid4()),
            phone_e164=phone,
            password_hash=self.passwords.hash(password),
            created_at=now,
            password_updated_at=now,
        )
        try:
            self.store.insert_account(account)
        except IntegrityError as exc:
            _metric("auth.signup.conflict", country_code=country_calling_code(phone))
            raise ConflictError(cause="phone registered concurrently") from exc

        session = self.sessions.create(account.id)
        _metric("auth.signup.success", user_id=account.id, country_code=country_calling_code(phone))
        return AuthOutcome(
            kind=OutcomeKind.created,
            message="Account created.",
            account_id=account.id,
            session=session,
        )

    def _login(self, raw_phone: object, password: object, client_ip: str) -> AuthOutcome:
        self._check_quota(
            login_ip_key(client_ip),
            self.settings.login_per_ip_per_minute,
            LOGIN_RATE_LIMITED_MESSAGE,
            cause="login ip quota exhausted",
        )
        phone = normalize_phone(raw_phone)
        country_code = country_calling_code(phone)
        self._check_quota(
            login_phone_key(phone),
            self.settings.login_per_phone_per_minute,
            LOGIN_RATE_LIMITED_MESSAGE,
            cause="login phone quota exhausted",
        )

        account = self.store.get_account_by_phone(phone)
        if account is None:
            # Pay the same hashing cost as a real mismatch.
            self.passwords.dummy_verify(password)
            raise AuthenticationError(cause="unknown phone")

        now = self._clock()
        if self.lockout.is_locked(account, now):
            _metric("auth.login.locked", user_id=account.id, country_code=country_code)
            raise LockedError(self.locked_message, cause="account locked")

        if not self.passwords.verify(account.password_hash, password):
            state = self.lockout.record_failure(self.store, account.id, now)
            _metric(
                "auth.login.failure",
                user_id=account.id,
                country_code=country_code,
                failed_count=state.failed_login_count,
            )
            if state.locked:
                _metric("auth.login.locked", user_id=account.id, country_code=country_code)
                raise LockedError(self.locked_message, cause="lockout threshold reached")
            raise AuthenticationError(cause="wrong password")

        if not self.lockout.record_success(self.store, account.id, now):
            raise LockedError(self.locked_message, cause="account locked by a concurrent attempt")

        if self.passwords.needs_rehash(account.password_hash):
            self.store.update_password_hash(account.id, self.passwords.hash(password), now)
            logger.info("Rehashed password for account %s with current cost parameters", account.id)

        session = self.sessions.create(account.id)
        _metric("auth.login.success", user_id=account.id, country_code=country_code)
        return AuthOutcome(
            kind=OutcomeKind.success,
            message="Login successful",
            account_id=account.id,
            session=session,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_quota(self, key: str, limit: int, message: str, cause: str) -> None:
        window = self.settings.rate_limit_window_seconds
        if not self.limiter.allow(key, limit=limit, window_seconds=window):
            _metric("auth.rate_limited", scope=":".join(key.split(":", 2)[:2]))
            raise RateLimitedError(message, cause=cause, retry_after=self.limiter.retry_after(key) or window)

    def _run(self, flow: str, body: Callable[..., AuthOutcome], *args: object) -> AuthOutcome:
        try:
            return body(*args)
        except AuthError as exc:
            logger.info("%s rejected: %s (%s)", flow, exc.kind, exc.cause)
            return AuthOutcome.from_error(exc)
        except (SQLAlchemyError, HashingError) as exc:
            logger.exception("%s failed with an unexpected storage or hashing error", flow)
            return AuthOutcome.from_error(PersistenceError(cause=type(exc).__name__))


def _metric(name: str, **fields: object) -> None:
    """Emit a telemetry line. Fields must never identify a phone or carry a secret."""
    rendered = " ".join(f"{key}={value}" for key, value in fields.items() if value is not None)
    logger.info("metric %s %s", name, rendered)
