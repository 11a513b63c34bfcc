# passkey_auth/models/challenge.py

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from passkey_auth.models.identifiers import UserId


class CeremonyKind(str, Enum):
    REGISTRATION = "registration"
    AUTHENTICATION = "authentication"


@dataclass(frozen=True)
class Challenge:
    """A single-use challenge issued to one user for one ceremony."""

    user_id: UserId
    kind: CeremonyKind
    value: bytes
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        # Valid up to and including expires_at.
        return now > self.expires_at
