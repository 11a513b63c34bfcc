# passkey_auth/models/passkey_name.py
"""User-chosen passkey labels and their validation rules."""

import unicodedata
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from passkey_auth.models.passkey import Passkey

MAX_NAME_LENGTH = 255

_ALLOWED_PUNCTUATION = frozenset("-_.,'()")


class NameErrorKind(str, Enum):
    EMPTY = "empty"
    TOO_LONG = "too_long"
    INVALID_CHARACTERS = "invalid_characters"


@dataclass(frozen=True)
class NameValidationError:
    kind: NameErrorKind
    max_length: int | None = None

    @property
    def message(self) -> str:
        if self.kind is NameErrorKind.EMPTY:
            return "Passkey name cannot be empty"
        if self.kind is NameErrorKind.TOO_LONG:
            return f"Passkey name must not exceed {self.max_length} characters"
        return "Passkey name contains invalid characters"


def _is_allowed_char(ch: str) -> bool:
    # Unicode letters (L*) and numbers (N*), whitespace, and a few punctuation marks.
    if ch in _ALLOWED_PUNCTUATION or ch.isspace():
        return True
    return unicodedata.category(ch)[0] in ("L", "N")


@dataclass(frozen=True)
class PasskeyName:
    """
    A validated passkey name.

    Only build through `validate()`; the stored value is already trimmed.
    """

    value: str

    @classmethod
    def validate(cls, raw: str | None) -> "PasskeyName | NameValidationError":
        trimmed = (raw or "").strip()
        if not trimmed:
            return NameValidationError(NameErrorKind.EMPTY)
        if len(trimmed) > MAX_NAME_LENGTH:
            return NameValidationError(NameErrorKind.TOO_LONG, max_length=MAX_NAME_LENGTH)
        if not all(_is_allowed_char(ch) for ch in trimmed):
            return NameValidationError(NameErrorKind.INVALID_CHARACTERS)
        return cls(trimmed)

    @classmethod
    def is_valid(cls, raw: str | None) -> bool:
        return isinstance(cls.validate(raw), PasskeyName)

    def __str__(self) -> str:
        return self.value


def find_duplicate(name: PasskeyName, passkeys: Iterable["Passkey"]) -> "Passkey | None":
    """Return the passkey already using `name`, if any. Comparison is exact."""
    for passkey in passkeys:
        if passkey.name == name:
            return passkey
    return None
