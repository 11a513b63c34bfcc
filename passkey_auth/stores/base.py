# passkey_auth/stores/base.py
"""
Storage contracts used by the ceremony service.

Implementations must give single-key atomicity: concurrent writes to the same
(user, kind) challenge or (user, credential id) passkey must never interleave.
Backend failures are raised as StoreUnavailableError.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from passkey_auth.models.challenge import CeremonyKind, Challenge
from passkey_auth.models.identifiers import PasskeyId, UserId
from passkey_auth.models.passkey import Passkey


class ChallengeStore(ABC):
    """Holds at most one live challenge per (user, ceremony kind)."""

    @abstractmethod
    async def insert_challenge(
        self, user_id: UserId, kind: CeremonyKind, value: bytes, expires_at: datetime
    ) -> None:
        """Store a challenge, atomically replacing any existing one for the same key."""

    @abstractmethod
    async def load_challenge(self, user_id: UserId, kind: CeremonyKind) -> Challenge:
        """
        Return the outstanding challenge.

        Raises:
            ChallengeNotFoundError: nothing stored for this key.
            ChallengeExpiredError: optional; stores that track expiry may raise it.
        """

    @abstractmethod
    async def delete_challenge(self, user_id: UserId, kind: CeremonyKind) -> None:
        """Remove the challenge. Deleting a missing key is not an error."""


class CredentialStore(ABC):
    """Passkeys, always addressed by (user, credential id)."""

    @abstractmethod
    async def get_passkey(self, user_id: UserId, passkey_id: PasskeyId) -> Passkey:
        """
        Raises:
            PasskeyNotFoundError: no such passkey for this user, including when the
                credential id belongs to somebody else.
        """

    @abstractmethod
    async def list_passkeys(self, user_id: UserId) -> list[Passkey]:
        """All of the user's passkeys, oldest first."""

    @abstractmethod
    async def upsert_passkey(self, user_id: UserId, passkey: Passkey) -> None:
        """
        Insert or replace the passkey stored under (user_id, passkey.id).

        The read-modify-write of usage is the store's job: the stored sign count
        becomes max(stored, new) and last_used_at the later of the two, atomically.
        """

    @abstractmethod
    async def delete_passkey(self, user_id: UserId, passkey_id: PasskeyId) -> bool:
        """Remove the passkey. Returns False, without raising, when it did not exist."""
