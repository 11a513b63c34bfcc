"""Error taxonomy for the passkey ceremonies.

Three families, handled differently by callers:
- PasskeyValidationError: the request was wrong; the message is safe to show.
- VerificationFailedError: the cryptographic check failed; detail stays in the logs.
- InfrastructureError: a store or backend misbehaved; detail stays in the logs.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from passkey_auth.models.passkey_name import NameValidationError


class PasskeyError(Exception):
    """Base exception for every ceremony failure."""

    user_message = "Passkey operation failed."

    def __init__(self, user_message: str | None = None, *, detail: str | None = None):
        if user_message is not None:
            self.user_message = user_message
        # Internal detail for logs; never returned to the client.
        self.detail = detail
        super().__init__(detail or self.user_message)


# --- Validation ---


class PasskeyValidationError(PasskeyError):
    """Raised when a request breaks a ceremony rule. The message is user-facing."""

    user_message = "Invalid passkey request."


class InvalidPasskeyNameError(PasskeyValidationError):
    def __init__(self, error: NameValidationError):
        self.error = error
        super().__init__(error.message)


class DuplicatePasskeyNameError(PasskeyValidationError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"A passkey with the name '{name}' already exists.")


class ChallengeNotFoundError(PasskeyValidationError):
    """Raised when no challenge is outstanding for the user and ceremony."""

    user_message = "No passkey ceremony is in progress. Please try again."


class ChallengeExpiredError(PasskeyValidationError):
    user_message = "The challenge has expired. Please try again."


class PasskeyNotFoundError(PasskeyValidationError):
    user_message = "Passkey not found."


class CredentialAlreadyRegisteredError(PasskeyValidationError):
    user_message = "This passkey is already registered."


class InvalidIdentifierError(PasskeyValidationError):
    """Raised when a user or credential identifier cannot be parsed."""

    user_message = "Invalid identifier."


# --- Verification ---


class VerificationFailedError(PasskeyError):
    """Raised when the engine rejects a response. Never carries engine detail to users."""

    user_message = "Passkey verification failed."


# --- Infrastructure ---


class InfrastructureError(PasskeyError):
    user_message = "The passkey service is temporarily unavailable."


class StoreUnavailableError(InfrastructureError):
    """Raised when a challenge or credential store fails."""

    pass
