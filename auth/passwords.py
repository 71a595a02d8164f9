"""
auth/passwords.py -- Password strength policy and argon2id hashing.

Security design decisions:
  Hashing: argon2-cffi PasswordHasher with Type.ID. Argon2id is memory-hard,
       salted and one-way. Memory cost, time cost and parallelism come from
       Settings and are embedded in the PHC output string
       ($argon2id$v=19$m=65536,t=2,p=1$salt$hash).

  Verification: PasswordHasher.verify() reads the parameters embedded in the
       stored hash, not the current policy. Changing the defaults never
       invalidates existing hashes; needs_rehash() lets the login flow upgrade
       them transparently.

  Malformed stored hashes: verify() returns False. A corrupt row is a
       credential mismatch, not a server fault.

  Timing equalization: dummy_verify() runs a verification against a hash made
       with the current parameters, so a login for an unknown phone costs the
       same as a wrong password and response time does not reveal whether a
       number is registered.

  This module and the argon2 library are the only code that sees raw
  password bytes. Nothing here logs a password.
"""

from __future__ import annotations

import logging
from functools import cached_property
from typing import TYPE_CHECKING

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHashError, VerificationError

from auth.errors import ValidationError

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("phonegate.auth")

MIN_PASSWORD_LENGTH = 8
PASSWORD_REQUIRED_MESSAGE = "Password is required"
PASSWORD_TOO_SHORT_MESSAGE = "Use 8+ characters."

_DUMMY_PASSWORD = "phonegate_timing_dummy"


class PasswordPolicy:
    """Strength validation plus argon2id hash / verify.

    Usage:
        policy = PasswordPolicy.from_settings(get_settings())
        policy.validate_strength(password)
        stored = policy.hash(password)
        policy.verify(stored, password)  # True
    """

    def __init__(self, memory_cost_kib: int = 65536, time_cost: int = 2, parallelism: int = 1) -> None:
        self._hasher = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost_kib,
            parallelism=parallelism,
            hash_len=32,
            salt_len=16,
            type=Type.ID,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> PasswordPolicy:
        return cls(
            memory_cost_kib=settings.argon2_memory_kib,
            time_cost=settings.argon2_iterations,
            parallelism=settings.argon2_parallelism,
        )

    @staticmethod
    def validate_strength(password: object) -> None:
        """Raise ValidationError unless password is a string of 8+ characters."""
        if not password or not isinstance(password, str):
            raise ValidationError(PASSWORD_REQUIRED_MESSAGE, cause="password missing or not a string")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(PASSWORD_TOO_SHORT_MESSAGE, cause="password below minimum length")

    def hash(self, password: str) -> str:
        """Return the argon2id PHC string for password.

        Raises argon2.exceptions.HashingError on library failure; the
        orchestrator treats that as an unexpected fault.
        """
        return self._hasher.hash(password)

    def verify(self, password_hash: str | bytes | None, password: object) -> bool:
        """Return True if password matches password_hash. Never raises."""
        if not password_hash or not isinstance(password, str):
            return False
        try:
            return self._hasher.verify(password_hash, password)
        except VerificationError:
            # Covers VerifyMismatchError (wrong password) and corrupted digests.
            return False
        except (InvalidHashError, ValueError, TypeError):
            logger.warning("Stored password hash is malformed; treating as mismatch")
            return False

    def needs_rehash(self, password_hash: str) -> bool:
        """Return True if password_hash was made with different cost parameters."""
        try:
            return self._hasher.check_needs_rehash(password_hash)
        except (InvalidHashError, ValueError, TypeError):
            return False

    @cached_property
    def _dummy_hash(self) -> str:
        return self._hasher.hash(_DUMMY_PASSWORD)

    def dummy_verify(self, password: object) -> None:
        """Spend one verification's worth of work without a real hash."""
        self.verify(self._dummy_hash, password if isinstance(password, str) else "")
