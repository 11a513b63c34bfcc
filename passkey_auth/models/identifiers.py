# passkey_auth/models/identifiers.py
"""
Identifier value types.

Factories return either the value or an IdentifierError so callers can decide
whether a bad identifier is a 400 or a programming error. `require()` is the
raising shortcut used at request boundaries.
"""

import binascii
import re
from dataclasses import dataclass

from webauthn.helpers import base64url_to_bytes, bytes_to_base64url

from passkey_auth.exceptions import InvalidIdentifierError

_BASE64URL_RE = re.compile(r"^[A-Za-z0-9_-]+={0,2}$")


@dataclass(frozen=True)
class IdentifierError:
    """Why an identifier was rejected."""

    message: str


@dataclass(frozen=True)
class UserId:
    """Opaque, non-empty user identifier without surrounding whitespace."""

    value: str

    @classmethod
    def parse(cls, raw: str) -> "UserId | IdentifierError":
        if not isinstance(raw, str) or not raw:
            return IdentifierError("User ID must not be empty")
        if raw != raw.strip():
            return IdentifierError("User ID must not have leading or trailing whitespace")
        return cls(raw)

    @classmethod
    def require(cls, raw: str) -> "UserId":
        parsed = cls.parse(raw)
        if isinstance(parsed, IdentifierError):
            raise InvalidIdentifierError(detail=parsed.message)
        return parsed

    def to_bytes(self) -> bytes:
        """The WebAuthn user handle."""
        return self.value.encode("utf-8")

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class PasskeyId:
    """A WebAuthn credential ID with its canonical base64url text form."""

    value: bytes

    @classmethod
    def from_bytes(cls, raw: bytes) -> "PasskeyId | IdentifierError":
        if not raw:
            return IdentifierError("Passkey ID must not be empty")
        return cls(bytes(raw))

    @classmethod
    def from_base64url(cls, text: str) -> "PasskeyId | IdentifierError":
        if not isinstance(text, str) or not _BASE64URL_RE.match(text):
            return IdentifierError("Passkey ID is not valid base64url")
        try:
            decoded = base64url_to_bytes(text.rstrip("="))
        except (binascii.Error, ValueError):
            return IdentifierError("Passkey ID is not valid base64url")
        return cls.from_bytes(decoded)

    @classmethod
    def require(cls, text: str) -> "PasskeyId":
        parsed = cls.from_base64url(text)
        if isinstance(parsed, IdentifierError):
            raise InvalidIdentifierError(detail=parsed.message)
        return parsed

    def to_base64url(self) -> str:
        return bytes_to_base64url(self.value)

    def __str__(self) -> str:
        return self.to_base64url()
