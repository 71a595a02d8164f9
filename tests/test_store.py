"""Unit tests for auth/store.py -- account and session persistence.

Covers:
- insert/get round trip by phone and id; duplicate phone raises IntegrityError
- record_failed_login(): increments, locks at threshold, restarts an old
  streak, refuses to touch a locked account
- reset_failed_logins(): clears count and lock; refuses while locked
- get_valid_session(): join with account, filtered on revoked/expired
- revoke_session(): only the first call reports a change
"""

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import Account, Session
from auth.store import AccountStore
from tests.conftest import START_TIME, UK_MOBILE, US_NUMBER

NOW = START_TIME


def _account(store: AccountStore, account_id: str = "acct-1", phone: str = UK_MOBILE) -> Account:
    account = Account(
        id=account_id,
        phone_e164=phone,
        password_hash="$argon2id$placeholder",
        created_at=NOW,
        password_updated_at=NOW,
    )
    store.insert_account(account)
    return account


class TestAccounts:
    def test_insert_and_fetch(self, store: AccountStore) -> None:
        _account(store)
        by_phone = store.get_account_by_phone(UK_MOBILE)
        by_id = store.get_account_by_id("acct-1")
        assert by_phone == by_id
        assert by_phone.failed_login_count == 0
        assert by_phone.locked_until is None
        assert by_phone.created_at == NOW

    def test_missing_returns_none(self, store: AccountStore) -> None:
        assert store.get_account_by_phone(US_NUMBER) is None
        assert store.get_account_by_id("nope") is None

    def test_duplicate_phone_rejected(self, store: AccountStore) -> None:
        _account(store)
        with pytest.raises(IntegrityError):
            _account(store, account_id="acct-2")

    def test_update_password_hash(self, store: AccountStore) -> None:
        _account(store)
        store.update_password_hash("acct-1", "$argon2id$new", NOW + 5)
        account = store.get_account_by_id("acct-1")
        assert account.password_hash == "$argon2id$new"
        assert account.password_updated_at == NOW + 5

    def test_ping(self, store: AccountStore) -> None:
        assert store.ping() is True


class TestFailedLoginBookkeeping:
    def _fail(self, store: AccountStore, now: float = NOW, threshold: int = 3):
        return store.record_failed_login("acct-1", now=now, threshold=threshold, lock_until=now + 900)

    def test_increments_below_threshold(self, store: AccountStore) -> None:
        _account(store)
        assert self._fail(store) == (1, None)
        assert self._fail(store) == (2, None)
        assert store.get_account_by_id("acct-1").failed_login_count == 2

    def test_locks_at_threshold(self, store: AccountStore) -> None:
        _account(store)
        self._fail(store)
        self._fail(store)
        assert self._fail(store) == (3, NOW + 900)
        assert store.get_account_by_id("acct-1").locked_until == NOW + 900

    def test_locked_account_is_not_touched(self, store: AccountStore) -> None:
        _account(store)
        for _ in range(3):
            self._fail(store)
        assert self._fail(store, now=NOW + 10) is None
        assert store.get_account_by_id("acct-1").failed_login_count == 3

    def test_old_failures_still_count(self, store: AccountStore) -> None:
        _account(store)
        self._fail(store)
        self._fail(store, now=NOW + 3600)
        assert self._fail(store, now=NOW + 86400) == (3, NOW + 86400 + 900)

    def test_expired_lock_relocks_on_next_failure(self, store: AccountStore) -> None:
        _account(store)
        for _ in range(3):
            self._fail(store)
        assert self._fail(store, now=NOW + 901) == (4, NOW + 901 + 900)

    def test_missing_account_returns_none(self, store: AccountStore) -> None:
        assert self._fail(store) is None

    def test_reset_clears_everything(self, store: AccountStore) -> None:
        _account(store)
        self._fail(store)
        assert store.reset_failed_logins("acct-1", now=NOW + 1) is True
        account = store.get_account_by_id("acct-1")
        assert (account.failed_login_count, account.locked_until) == (0, None)

    def test_reset_refused_while_locked(self, store: AccountStore) -> None:
        _account(store)
        for _ in range(3):
            self._fail(store)
        assert store.reset_failed_logins("acct-1", now=NOW + 1) is False
        assert store.reset_failed_logins("acct-1", now=NOW + 900) is True


class TestSessions:
    def _session(self, store: AccountStore, session_id: str = "tok-1") -> Session:
        session = Session(id=session_id, account_id="acct-1", created_at=NOW, expires_at=NOW + 100)
        store.insert_session(session)
        return session

    def test_valid_session_joins_account(self, store: AccountStore) -> None:
        _account(store)
        self._session(store)
        principal = store.get_valid_session("tok-1", now=NOW + 1)
        assert principal.account_id == "acct-1"
        assert principal.phone_e164 == UK_MOBILE
        assert principal.session_id == "tok-1"
        assert principal.expires_at == NOW + 100

    def test_expired_session_is_absent(self, store: AccountStore) -> None:
        _account(store)
        self._session(store)
        assert store.get_valid_session("tok-1", now=NOW + 100) is None

    def test_revoked_session_is_absent(self, store: AccountStore) -> None:
        _account(store)
        self._session(store)
        assert store.revoke_session("tok-1", now=NOW + 1) is True
        assert store.get_valid_session("tok-1", now=NOW + 2) is None

    def test_revoke_is_one_shot(self, store: AccountStore) -> None:
        _account(store)
        self._session(store)
        assert store.revoke_session("tok-1", now=NOW + 1) is True
        assert store.revoke_session("tok-1", now=NOW + 2) is False
        assert store.get_session("tok-1").revoked_at == NOW + 1

    def test_revoke_unknown_session(self, store: AccountStore) -> None:
        assert store.revoke_session("ghost", now=NOW) is False

    def test_duplicate_session_id_rejected(self, store: AccountStore) -> None:
        _account(store)
        self._session(store)
        with pytest.raises(IntegrityError):
            self._session(store)
