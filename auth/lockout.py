"""
auth/lockout.py -- Per-account progressive lockout.

Applied inline by the login flow against the Account row:

  - Before verifying a password, is_locked() is checked. A locked account
    short-circuits: no verification, no counter change. A locked account
    therefore never accumulates further failures while locked.
  - Wrong password: record_failure() increments failed_login_count. When the
    new count reaches the threshold, locked_until = now + duration.
  - Right password: record_success() resets the count and clears the lock.

Both mutations are one conditional UPDATE each (see AccountStore), so
concurrent attempts on one account cannot lose updates.

The counter is never aged out: failures spread over any length of time
still add up, and once a lock expires the next wrong password re-locks
immediately because the count is already past the threshold. Only a
successful login resets it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from auth.models import Account
    from auth.store import AccountStore
    from core.config import Settings


@dataclass
class LockoutState:
    """Result of recording a failed attempt."""

    failed_login_count: int
    locked_until: float | None

    @property
    def locked(self) -> bool:
        return self.locked_until is not None


class LockoutPolicy:
    def __init__(self, threshold: int = 6, duration_seconds: float = 900) -> None:
        self.threshold = threshold
        self.duration_seconds = duration_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> LockoutPolicy:
        return cls(
            threshold=settings.lockout_threshold,
            duration_seconds=settings.lockout_duration_seconds,
        )

    @staticmethod
    def is_locked(account: Account, now: float) -> bool:
        return account.is_locked(now)

    def record_failure(self, store: AccountStore, account_id: str, now: float) -> LockoutState:
        """Persist one failed attempt; lock the account if it crossed the threshold.

        If the row did not match (a concurrent attempt locked the account
        first) the account is reported as locked without a new count.
        """
        result = store.record_failed_login(
            account_id,
            now=now,
            threshold=self.threshold,
            lock_until=now + self.duration_seconds,
        )
        if result is None:
            return LockoutState(failed_login_count=self.threshold, locked_until=now + self.duration_seconds)
        count, locked_until = result
        return LockoutState(failed_login_count=count, locked_until=locked_until)

    def record_success(self, store: AccountStore, account_id: str, now: float) -> bool:
        """Reset the counter and lock. False means the account was locked concurrently."""
        return store.reset_failed_logins(account_id, now)
