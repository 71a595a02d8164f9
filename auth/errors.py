"""
auth/errors.py -- Error taxonomy for the authentication core.

Every expected failure of an auth flow is one of these exceptions. Each
carries:
  kind    -- the outcome kind the HTTP layer maps to a status code.
  message -- the user-facing text. Deliberately coarse: wrong password and
             unknown phone share one AuthenticationError message.
  cause   -- the precise internal reason, for logs only. Never rendered.

The orchestrator (auth/service.py) raises these internally and converts them
into AuthOutcome results at its boundary, so they never escape as faults.
"""

from __future__ import annotations

INVALID_CREDENTIALS_MESSAGE = "Phone or password is incorrect."
INTERNAL_ERROR_MESSAGE = "Internal server error"


class AuthError(Exception):
    """Base class for expected authentication failures."""

    kind = "error"
    default_message = "Authentication failed."

    def __init__(self, message: str | None = None, cause: str | None = None) -> None:
        self.message = message or self.default_message
        self.cause = cause or self.message
        super().__init__(self.message)


class ValidationError(AuthError):
    """Malformed phone or password. User-correctable."""

    kind = "validation_error"
    default_message = "Invalid request."


class ConflictError(AuthError):
    """The phone number already has an account."""

    kind = "conflict"
    default_message = "That phone number already has an account."


class AuthenticationError(AuthError):
    """Wrong password or unknown phone. One message for both."""

    kind = "invalid_credentials"
    default_message = INVALID_CREDENTIALS_MESSAGE

    def __init__(self, cause: str | None = None) -> None:
        # The user-facing message is fixed; only the cause varies.
        super().__init__(INVALID_CREDENTIALS_MESSAGE, cause)


class LockedError(AuthError):
    """The account is inside its lockout window."""

    kind = "locked"
    default_message = "Too many attempts. Try again later."


class RateLimitedError(AuthError):
    """A fixed-window quota for this IP or phone is exhausted."""

    kind = "rate_limited"
    default_message = "Too many attempts. Please try again later."

    def __init__(self, message: str | None = None, cause: str | None = None, retry_after: int = 60) -> None:
        super().__init__(message, cause)
        self.retry_after = retry_after


class PersistenceError(AuthError):
    """Unexpected storage or hashing failure. Surfaced as a generic 500."""

    kind = "internal_error"
    default_message = INTERNAL_ERROR_MESSAGE

    def __init__(self, cause: str | None = None) -> None:
        super().__init__(INTERNAL_ERROR_MESSAGE, cause)
