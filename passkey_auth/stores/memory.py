# passkey_auth/stores/memory.py
"""
In-process stores for tests and local development.

State lives in plain dicts. Every method body runs without awaiting, so each
operation is atomic with respect to other coroutines on the same event loop.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from passkey_auth.exceptions import (
    ChallengeExpiredError,
    ChallengeNotFoundError,
    PasskeyNotFoundError,
)
from passkey_auth.models.challenge import CeremonyKind, Challenge
from passkey_auth.models.identifiers import PasskeyId, UserId
from passkey_auth.models.passkey import Passkey
from passkey_auth.stores.base import ChallengeStore, CredentialStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class InMemoryChallengeStore(ChallengeStore):
    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock
        self._challenges: dict[tuple[UserId, CeremonyKind], Challenge] = {}

    async def insert_challenge(
        self, user_id: UserId, kind: CeremonyKind, value: bytes, expires_at: datetime
    ) -> None:
        self._challenges[(user_id, kind)] = Challenge(user_id, kind, value, expires_at)

    async def load_challenge(self, user_id: UserId, kind: CeremonyKind) -> Challenge:
        challenge = self._challenges.get((user_id, kind))
        if challenge is None:
            raise ChallengeNotFoundError()
        if challenge.is_expired(self._clock()):
            del self._challenges[(user_id, kind)]
            raise ChallengeExpiredError()
        return challenge

    async def delete_challenge(self, user_id: UserId, kind: CeremonyKind) -> None:
        self._challenges.pop((user_id, kind), None)

    def purge_expired(self) -> int:
        """Drop every expired challenge. Returns how many were removed."""
        now = self._clock()
        expired = [key for key, c in self._challenges.items() if c.is_expired(now)]
        for key in expired:
            del self._challenges[key]
        if expired:
            logger.debug("Purged %d expired challenge(s)", len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._challenges)


class InMemoryCredentialStore(CredentialStore):
    def __init__(self) -> None:
        # Insertion order doubles as creation order for list_passkeys.
        self._passkeys: dict[tuple[UserId, bytes], Passkey] = {}

    async def get_passkey(self, user_id: UserId, passkey_id: PasskeyId) -> Passkey:
        passkey = self._passkeys.get((user_id, passkey_id.value))
        if passkey is None:
            raise PasskeyNotFoundError()
        return passkey

    async def list_passkeys(self, user_id: UserId) -> list[Passkey]:
        owned = [pk for (owner, _), pk in self._passkeys.items() if owner == user_id]
        return sorted(owned, key=lambda pk: pk.created_at)

    async def upsert_passkey(self, user_id: UserId, passkey: Passkey) -> None:
        key = (user_id, passkey.id.value)
        stored = self._passkeys.get(key)
        self._passkeys[key] = passkey if stored is None else passkey.merged_over(stored)

    async def delete_passkey(self, user_id: UserId, passkey_id: PasskeyId) -> bool:
        return self._passkeys.pop((user_id, passkey_id.value), None) is not None
