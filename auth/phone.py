"""
auth/phone.py -- Phone number validation and canonicalization.

normalize_phone() turns user input into the E.164 string that is used as
the uniqueness and lookup key everywhere else. Parsing uses the phonenumbers
port of libphonenumber with no default region: callers must type the
country code (leading '+').
"""

from __future__ import annotations

import phonenumbers
from phonenumbers import NumberParseException, PhoneNumberFormat

from auth.errors import ValidationError

PHONE_REQUIRED_MESSAGE = "Phone number is required"
INVALID_PHONE_MESSAGE = (
    "Enter a valid phone number with country code (e.g., +12025550123 / +447700900123 / +919876543210)"
)


def normalize_phone(raw: object) -> str:
    """Validate raw input and return its canonical E.164 form.

    Raises ValidationError for empty or non-string input, input without a
    leading '+', unparseable input, and numbers that parse but are not valid
    for their region. Two inputs denoting the same number return the same
    string ("+44 7400 123456" and "+447400123456" both give "+447400123456").
    """
    if not raw or not isinstance(raw, str):
        raise ValidationError(PHONE_REQUIRED_MESSAGE, cause="phone missing or not a string")

    candidate = raw.strip()
    if not candidate.startswith("+"):
        raise ValidationError(INVALID_PHONE_MESSAGE, cause="phone has no international prefix")

    try:
        number = phonenumbers.parse(candidate, None)
    except NumberParseException as exc:
        raise ValidationError(INVALID_PHONE_MESSAGE, cause=f"phone parse failed: {exc.error_type}") from exc

    if not phonenumbers.is_valid_number(number):
        raise ValidationError(INVALID_PHONE_MESSAGE, cause="phone not valid for its region")

    return phonenumbers.format_number(number, PhoneNumberFormat.E164)


def country_calling_code(phone_e164: str) -> str | None:
    """Return the calling code ("44") of a canonical number, or None.

    Used only for non-identifying telemetry, so failure is never an error.
    """
    try:
        number = phonenumbers.parse(phone_e164, None)
    except (NumberParseException, TypeError):
        return None
    if not number.country_code:
        return None
    return str(number.country_code)
