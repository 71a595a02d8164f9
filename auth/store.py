"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts and sessions.

Pattern: Repository + Data Mapper.
AccountStore is the repository; _row_to_account / _row_to_session are the
mappers. The service and session code never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Concurrency:
  Every method is a single statement on its own connection. The lockout
  mutations (record_failed_login / reset_failed_logins) are single
  conditional UPDATEs, so concurrent logins against one account are
  serialized by the database's row-level atomicity rather than by a
  read-then-write in Python.

Timestamps are epoch seconds (REAL). Comparisons such as "session not yet
expired" happen in SQL against a `now` passed in by the caller, so the
caller's clock is the only clock.

DB path: phonegate_auth.db at the project root unless DATABASE_URL is set.
"""

from __future__ import annotations

from sqlalchemy import (
    Column,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    case,
    create_engine,
    event,
    or_,
    select,
    text,
)
from sqlalchemy.engine import Engine

from auth.models import Account, Principal, Session

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("phone_e164", String(20), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),  # argon2id PHC string
    Column("failed_login_count", Integer, nullable=False, server_default="0"),
    Column("locked_until", Float),
    Column("created_at", Float, nullable=False),
    Column("password_updated_at", Float, nullable=False),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", String(64), primary_key=True),
    Column("account_id", String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("created_at", Float, nullable=False),
    Column("expires_at", Float, nullable=False),
    Column("revoked_at", Float),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account and Session rows.

    Usage:
        store = AccountStore("sqlite:///:memory:")
        store.insert_account(Account(id=..., phone_e164="+447400123456", password_hash=...))
        account = store.get_account_by_phone("+447400123456")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def insert_account(self, account: Account) -> None:
        """Insert a new account.

        Raises sqlalchemy.exc.IntegrityError if the phone already exists.
        Signup catches that as the signal that a concurrent request won the
        race past the uniqueness check.
        """
        with self.engine.connect() as conn:
            conn.execute(
                _accounts.insert().values(
                    id=account.id,
                    phone_e164=account.phone_e164,
                    password_hash=account.password_hash,
                    failed_login_count=0,
                    locked_until=None,
                    created_at=account.created_at,
                    password_updated_at=account.password_updated_at,
                )
            )
            conn.commit()

    def get_account_by_phone(self, phone_e164: str) -> Account | None:
        """Look up an account by canonical phone. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.phone_e164 == phone_e164)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_account_by_id(self, account_id: str) -> Account | None:
        """Look up an account by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def record_failed_login(
        self,
        account_id: str,
        now: float,
        threshold: int,
        lock_until: float,
    ) -> tuple[int, float | None] | None:
        """Count one failed login in a single conditional UPDATE.

        The counter only ever grows here; a successful login is the one
        thing that resets it. When the new count reaches threshold,
        locked_until is set to lock_until; otherwise it is cleared.

        Applies only while the account is not locked. Returns the new
        (failed_login_count, locked_until), or None when no row matched
        (account missing, or locked by a concurrent request).
        """
        new_count = _accounts.c.failed_login_count + 1
        stmt = (
            _accounts.update()
            .where(_accounts.c.id == account_id)
            .where(_not_locked(now))
            .values(
                failed_login_count=new_count,
                locked_until=case((new_count >= threshold, lock_until), else_=None),
            )
            .returning(_accounts.c.failed_login_count, _accounts.c.locked_until)
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
            conn.commit()
        if row is None:
            return None
        return row.failed_login_count, row.locked_until

    def reset_failed_logins(self, account_id: str, now: float) -> bool:
        """Clear the failure counter and lock in a single conditional UPDATE.

        Returns False if the account became locked concurrently (or vanished).
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account_id)
                .where(_not_locked(now))
                .values(failed_login_count=0, locked_until=None)
            )
            conn.commit()
        return result.rowcount > 0

    def update_password_hash(self, account_id: str, password_hash: str, now: float) -> None:
        """Replace the stored hash (cost-parameter upgrade on login)."""
        with self.engine.connect() as conn:
            conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account_id)
                .values(password_hash=password_hash, password_updated_at=now)
            )
            conn.commit()

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def insert_session(self, session: Session) -> None:
        """Insert a session row. The primary key rejects a reused id."""
        with self.engine.connect() as conn:
            conn.execute(
                _sessions.insert().values(
                    id=session.id,
                    account_id=session.account_id,
                    created_at=session.created_at,
                    expires_at=session.expires_at,
                    revoked_at=None,
                )
            )
            conn.commit()

    def get_session(self, session_id: str) -> Session | None:
        """Fetch a session row regardless of validity. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.id == session_id)).fetchone()
        return _row_to_session(row) if row is not None else None

    def get_valid_session(self, session_id: str, now: float) -> Principal | None:
        """Return the owning account of a session that is unrevoked and unexpired."""
        stmt = (
            select(
                _sessions.c.id,
                _sessions.c.account_id,
                _sessions.c.expires_at,
                _accounts.c.phone_e164,
            )
            .select_from(_sessions.join(_accounts, _sessions.c.account_id == _accounts.c.id))
            .where(_sessions.c.id == session_id)
            .where(_sessions.c.revoked_at.is_(None))
            .where(_sessions.c.expires_at > now)
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        if row is None:
            return None
        return Principal(
            account_id=row.account_id,
            phone_e164=row.phone_e164,
            session_id=row.id,
            expires_at=row.expires_at,
        )

    def revoke_session(self, session_id: str, now: float) -> bool:
        """Stamp revoked_at once. Returns True only for the call that revoked it."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _sessions.update()
                .where(_sessions.c.id == session_id)
                .where(_sessions.c.revoked_at.is_(None))
                .values(revoked_at=now)
            )
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _not_locked(now: float):
    return or_(_accounts.c.locked_until.is_(None), _accounts.c.locked_until <= now)


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        phone_e164=row.phone_e164,
        password_hash=row.password_hash,
        failed_login_count=row.failed_login_count,
        locked_until=row.locked_until,
        created_at=row.created_at,
        password_updated_at=row.password_updated_at,
    )


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        account_id=row.account_id,
        created_at=row.created_at,
        expires_at=row.expires_at,
        revoked_at=row.revoked_at,
    )
