"""
auth/policy.py -- Password policy and temporary password generation.

Policy: at least 8 characters, at least one ASCII uppercase letter, at least
one ASCII digit. Nothing else -- no special-character rule, no maximum.

validate_password() is a pure function so the same rule can back instant
feedback in a browser form and enforcement on the server. Only the server
call counts; every workflow operation that stores a password runs it again.

Temporary passwords (admin-created users, admin resets) are 12 characters
drawn from alphabets without look-alike characters (0 O 1 I l). The first two
picks are forced from the uppercase and digit alphabets so the result passes
the policy by construction, then the whole string is shuffled so those
characters do not sit in fixed positions.
"""

from __future__ import annotations

import re
import secrets

from auth.errors import WeakPassword

PASSWORD_MIN_LENGTH = 8
TEMP_PASSWORD_LENGTH = 12

MSG_REQUIRED = "Password is required."
MSG_TOO_SHORT = f"Password must be at least {PASSWORD_MIN_LENGTH} characters long."
MSG_NO_UPPERCASE = "Password must contain at least 1 uppercase letter."
MSG_NO_DIGIT = "Password must contain at least 1 number."

_UPPERCASE_RE = re.compile(r"[A-Z]")
_DIGIT_RE = re.compile(r"[0-9]")

_TEMP_UPPER = "ABCDEFGHJKLMNPQRSTUVWXYZ"
_TEMP_DIGITS = "23456789"
_TEMP_ALL = "23456789abcdefghjkmnpqrstuvwxyzABCDEFGHJKLMNPQRSTUVWXYZ"

_rng = secrets.SystemRandom()


def validate_password(candidate: str | None) -> str | None:
    """Return None if candidate satisfies the policy, else a user-facing message.

    Rules are checked in order (length, uppercase, digit) and the message
    names the first one that fails.
    """
    if not candidate or not isinstance(candidate, str):
        return MSG_REQUIRED
    if len(candidate) < PASSWORD_MIN_LENGTH:
        return MSG_TOO_SHORT
    if not _UPPERCASE_RE.search(candidate):
        return MSG_NO_UPPERCASE
    if not _DIGIT_RE.search(candidate):
        return MSG_NO_DIGIT
    return None


def ensure_valid_password(candidate: str | None, field: str = "password") -> str:
    """Raise WeakPassword for a policy violation; return the candidate otherwise."""
    error = validate_password(candidate)
    if error is not None:
        raise WeakPassword(error, field=field)
    return candidate  # type: ignore[return-value]


def generate_temporary_password() -> str:
    chars = [secrets.choice(_TEMP_UPPER), secrets.choice(_TEMP_DIGITS)]
    chars.extend(secrets.choice(_TEMP_ALL) for _ in range(TEMP_PASSWORD_LENGTH - 2))
    _rng.shuffle(chars)
    return "".join(chars)
