"""Unit tests for auth/passwords.py -- strength policy and argon2id hashing.

Covers:
- Strength rules: required, 8+ characters
- Hash/verify round trip; any other plaintext fails
- Garbage, truncated and empty stored hashes verify False without raising
- Hashes are self-describing: a policy with different costs still verifies
  them and reports that a rehash is due
"""

import pytest

from auth.errors import ValidationError
from auth.passwords import PASSWORD_REQUIRED_MESSAGE, PASSWORD_TOO_SHORT_MESSAGE, PasswordPolicy


@pytest.fixture
def policy() -> PasswordPolicy:
    return PasswordPolicy(memory_cost_kib=1024, time_cost=1, parallelism=1)


class TestValidateStrength:
    @pytest.mark.parametrize("password", [None, "", 12345678])
    def test_required(self, password) -> None:
        with pytest.raises(ValidationError) as exc_info:
            PasswordPolicy.validate_strength(password)
        assert exc_info.value.message == PASSWORD_REQUIRED_MESSAGE

    def test_too_short(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            PasswordPolicy.validate_strength("1234567")
        assert exc_info.value.message == PASSWORD_TOO_SHORT_MESSAGE

    def test_exactly_eight_is_accepted(self) -> None:
        PasswordPolicy.validate_strength("12345678")


class TestHashing:
    def test_round_trip(self, policy: PasswordPolicy) -> None:
        stored = policy.hash("s3cret-passphrase")
        assert policy.verify(stored, "s3cret-passphrase") is True

    def test_other_plaintext_fails(self, policy: PasswordPolicy) -> None:
        stored = policy.hash("s3cret-passphrase")
        assert policy.verify(stored, "s3cret-passphrasE") is False
        assert policy.verify(stored, "") is False

    def test_hash_is_argon2id_with_embedded_parameters(self, policy: PasswordPolicy) -> None:
        stored = policy.hash("s3cret-passphrase")
        assert stored.startswith("$argon2id$")
        assert "m=1024,t=1,p=1" in stored

    def test_salted(self, policy: PasswordPolicy) -> None:
        assert policy.hash("same-password") != policy.hash("same-password")

    @pytest.mark.parametrize(
        "garbage",
        ["", "not-a-hash", "$argon2id$v=19$m=1024,t=1,p=1$", "$2b$12$abcdefghijklmnopqrstuv", b"\x00\xff\x10"],
    )
    def test_garbage_hash_returns_false(self, policy: PasswordPolicy, garbage) -> None:
        assert policy.verify(garbage, "anything-at-all") is False

    def test_truncated_hash_returns_false(self, policy: PasswordPolicy) -> None:
        stored = policy.hash("s3cret-passphrase")
        assert policy.verify(stored[:-10], "s3cret-passphrase") is False

    def test_non_string_password_returns_false(self, policy: PasswordPolicy) -> None:
        stored = policy.hash("s3cret-passphrase")
        assert policy.verify(stored, None) is False


class TestParameterMigration:
    def test_old_hash_verifies_under_new_policy(self, policy: PasswordPolicy) -> None:
        stored = policy.hash("s3cret-passphrase")
        stronger = PasswordPolicy(memory_cost_kib=2048, time_cost=2, parallelism=1)
        assert stronger.verify(stored, "s3cret-passphrase") is True

    def test_needs_rehash_when_parameters_change(self, policy: PasswordPolicy) -> None:
        stored = policy.hash("s3cret-passphrase")
        stronger = PasswordPolicy(memory_cost_kib=2048, time_cost=2, parallelism=1)
        assert policy.needs_rehash(stored) is False
        assert stronger.needs_rehash(stored) is True

    def test_needs_rehash_on_garbage_is_false(self, policy: PasswordPolicy) -> None:
        assert policy.needs_rehash("garbage") is False

    def test_dummy_verify_does_not_raise(self, policy: PasswordPolicy) -> None:
        policy.dummy_verify("whatever")
        policy.dummy_verify(None)
