"""Unit tests for auth/policy.py -- password policy and temporary passwords.

Covers:
- validate_password() messages for each failing rule
- validate_password() agrees with the length/uppercase/digit predicate on
  a few hundred generated strings
- ensure_valid_password() raises WeakPassword with the field name
- generate_temporary_password() output always passes the policy, is 12 chars,
  and avoids look-alike characters
"""

import random
import string

import pytest

from auth.errors import WeakPassword
from auth.policy import (
    MSG_NO_DIGIT,
    MSG_NO_UPPERCASE,
    MSG_REQUIRED,
    MSG_TOO_SHORT,
    TEMP_PASSWORD_LENGTH,
    ensure_valid_password,
    generate_temporary_password,
    validate_password,
)


def _satisfies_policy(p: str) -> bool:
    return len(p) >= 8 and any(c in string.ascii_uppercase for c in p) and any(c in string.digits for c in p)


def _generated_candidates(count: int = 400) -> list[str]:
    rng = random.Random(20261018)
    alphabet = string.ascii_letters + string.digits + "!@# _-é"
    return ["".join(rng.choice(alphabet) for _ in range(rng.randint(0, 14))) for _ in range(count)]


class TestValidatePassword:
    def test_short_password_mentions_length(self):
        error = validate_password("short1")
        assert error == MSG_TOO_SHORT
        assert "8 characters" in error

    def test_missing_uppercase_and_digit(self):
        error = validate_password("longenough")
        assert error == MSG_NO_UPPERCASE
        assert "uppercase" in error

    def test_missing_digit(self):
        error = validate_password("Longenough")
        assert error == MSG_NO_DIGIT
        assert "number" in error

    def test_valid_password(self):
        assert validate_password("Longenough1") is None

    def test_exactly_eight_characters_is_enough(self):
        assert validate_password("Abcdefg1") is None

    @pytest.mark.parametrize("candidate", ["", None])
    def test_empty_input_is_required(self, candidate):
        assert validate_password(candidate) == MSG_REQUIRED

    def test_non_string_is_required(self):
        assert validate_password(12345678) == MSG_REQUIRED  # type: ignore[arg-type]

    def test_special_characters_not_required(self):
        assert validate_password("NoSymbols123") is None

    def test_no_maximum_length(self):
        assert validate_password("A1" + "x" * 500) is None

    def test_non_ascii_uppercase_does_not_count(self):
        assert validate_password("ÉÀÜéàüxx1") == MSG_NO_UPPERCASE

    @pytest.mark.parametrize("candidate", _generated_candidates())
    def test_agrees_with_policy_predicate(self, candidate):
        assert (validate_password(candidate) is None) == _satisfies_policy(candidate)


class TestEnsureValidPassword:
    def test_returns_candidate_when_valid(self):
        assert ensure_valid_password("Abcdefg1") == "Abcdefg1"

    def test_raises_weak_password_with_field(self):
        with pytest.raises(WeakPassword) as exc_info:
            ensure_valid_password("weak", field="newPassword")
        assert exc_info.value.field == "newPassword"
        assert exc_info.value.message == MSG_TOO_SHORT
        assert exc_info.value.status_code == 400


class TestGenerateTemporaryPassword:
    def test_length_and_policy(self):
        for _ in range(200):
            p = generate_temporary_password()
            assert len(p) == TEMP_PASSWORD_LENGTH == 12
            assert validate_password(p) is None

    def test_no_ambiguous_characters(self):
        for _ in range(200):
            assert not set(generate_temporary_password()) & set("0O1Il")

    def test_guaranteed_characters_are_not_pinned_to_the_front(self):
        # With the shuffle, the first character is a lowercase letter or a
        # digit in most samples; without it, it would always be uppercase.
        firsts = {generate_temporary_password()[0] for _ in range(200)}
        assert any(not c.isupper() for c in firsts)

    def test_passwords_differ(self):
        assert len({generate_temporary_password() for _ in range(50)}) == 50
