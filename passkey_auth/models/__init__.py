from passkey_auth.models.challenge import CeremonyKind, Challenge
from passkey_auth.models.identifiers import IdentifierError, PasskeyId, UserId
from passkey_auth.models.passkey import CredentialMaterial, Passkey, PasskeyInfo
from passkey_auth.models.passkey_name import (
    MAX_NAME_LENGTH,
    NameErrorKind,
    NameValidationError,
    PasskeyName,
    find_duplicate,
)

__all__ = [
    "MAX_NAME_LENGTH",
    "CeremonyKind",
    "Challenge",
    "CredentialMaterial",
    "IdentifierError",
    "NameErrorKind",
    "NameValidationError",
    "Passkey",
    "PasskeyId",
    "PasskeyInfo",
    "PasskeyName",
    "UserId",
    "find_duplicate",
]
