# tests/unit/models/test_passkey_name.py
"""Unit tests for passkey name validation."""

from datetime import UTC, datetime

import pytest

from passkey_auth.models.identifiers import PasskeyId
from passkey_auth.models.passkey import CredentialMaterial, Passkey
from passkey_auth.models.passkey_name import (
    MAX_NAME_LENGTH,
    NameErrorKind,
    NameValidationError,
    PasskeyName,
    find_duplicate,
)


def _passkey(name: str, credential_id: bytes) -> Passkey:
    return Passkey(
        id=PasskeyId(credential_id),
        name=PasskeyName(name),
        material=CredentialMaterial(public_key=b"pk"),
        created_at=datetime(2026, 1, 1, tzinfo=UTC),
    )


class TestValidate:
    @pytest.mark.parametrize(
        "raw",
        [
            "My Laptop",
            "YubiKey 5C NFC",
            "Bob's phone (work)",
            "iPhone_15.pro-max, backup",
            "Ordinateur de Zoë",
            "工作电脑",
            "Телефон",
            "٣",
        ],
    )
    def test_valid_names(self, raw: str) -> None:
        assert PasskeyName.validate(raw) == PasskeyName(raw)

    def test_name_is_trimmed(self) -> None:
        assert PasskeyName.validate("  Laptop \n") == PasskeyName("Laptop")

    @pytest.mark.parametrize("raw", [None, "", "   ", "\t\n"])
    def test_empty(self, raw) -> None:
        result = PasskeyName.validate(raw)

        assert result == NameValidationError(NameErrorKind.EMPTY)
        assert result.message == "Passkey name cannot be empty"

    def test_length_limit_counts_characters(self) -> None:
        """The limit is on characters, not encoded bytes."""
        at_limit = "é" * MAX_NAME_LENGTH

        assert PasskeyName.validate(at_limit) == PasskeyName(at_limit)

    def test_too_long(self) -> None:
        result = PasskeyName.validate("x" * (MAX_NAME_LENGTH + 1))

        assert isinstance(result, NameValidationError)
        assert result.kind is NameErrorKind.TOO_LONG
        assert result.message == "Passkey name must not exceed 255 characters"

    def test_length_checked_after_trimming(self) -> None:
        padded = "  " + "x" * MAX_NAME_LENGTH + "  "

        assert isinstance(PasskeyName.validate(padded), PasskeyName)

    @pytest.mark.parametrize(
        "raw", ["<script>", "name;drop", "a/b", "emoji 🔑", "x@y", "quote\"", "tab\x00"]
    )
    def test_invalid_characters(self, raw: str) -> None:
        result = PasskeyName.validate(raw)

        assert isinstance(result, NameValidationError)
        assert result.kind is NameErrorKind.INVALID_CHARACTERS
        assert result.message == "Passkey name contains invalid characters"

    def test_is_valid(self) -> None:
        assert PasskeyName.is_valid("Laptop")
        assert not PasskeyName.is_valid("")


class TestFindDuplicate:
    def test_exact_match(self) -> None:
        existing = [_passkey("Laptop", b"a"), _passkey("Phone", b"b")]

        assert find_duplicate(PasskeyName("Phone"), existing) is existing[1]

    def test_comparison_is_case_sensitive(self) -> None:
        assert find_duplicate(PasskeyName("phone"), [_passkey("Phone", b"b")]) is None

    def test_no_passkeys(self) -> None:
        assert find_duplicate(PasskeyName("Laptop"), []) is None
