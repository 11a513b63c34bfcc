# passkey_auth/stores/redis_challenges.py
"""
Challenge storage in Redis.

One key per (ceremony, user); SET replaces atomically and the key TTL reaps
abandoned challenges, so no sweeper is needed.
"""

import json
import logging
import math
from collections.abc import Callable
from datetime import UTC, datetime

from redis.asyncio import Redis
from redis.exceptions import RedisError
from webauthn.helpers import base64url_to_bytes, bytes_to_base64url

from passkey_auth.core.log_utils import sanitize_for_log
from passkey_auth.exceptions import (
    ChallengeExpiredError,
    ChallengeNotFoundError,
    StoreUnavailableError,
)
from passkey_auth.models.challenge import CeremonyKind, Challenge
from passkey_auth.models.identifiers import UserId
from passkey_auth.stores.base import ChallengeStore

logger = logging.getLogger(__name__)

CHALLENGE_PREFIX = "webauthn:challenge:"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RedisChallengeStore(ChallengeStore):
    def __init__(
        self,
        redis: Redis,
        key_prefix: str = CHALLENGE_PREFIX,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._redis = redis
        self._key_prefix = key_prefix
        self._clock = clock

    def _key(self, user_id: UserId, kind: CeremonyKind) -> str:
        return f"{self._key_prefix}{kind.value}:{user_id.value}"

    async def insert_challenge(
        self, user_id: UserId, kind: CeremonyKind, value: bytes, expires_at: datetime
    ) -> None:
        payload = json.dumps(
            {"challenge": bytes_to_base64url(value), "expires_at": expires_at.isoformat()}
        )
        # Whole seconds, rounded up: the key may outlive expires_at but never the reverse.
        ttl = max(1, math.ceil((expires_at - self._clock()).total_seconds()))
        try:
            await self._redis.set(self._key(user_id, kind), payload, ex=ttl)
        except RedisError as e:
            logger.error("Failed to store %s challenge: %s", kind.value, e, exc_info=True)
            raise StoreUnavailableError(detail=f"Redis SET failed: {e}") from e
        logger.debug(
            "Stored %s challenge for user %s (ttl=%ss)",
            kind.value,
            sanitize_for_log(user_id.value),
            ttl,
        )

    async def load_challenge(self, user_id: UserId, kind: CeremonyKind) -> Challenge:
        key = self._key(user_id, kind)
        try:
            raw = await self._redis.get(key)
        except RedisError as e:
            logger.error("Failed to load %s challenge: %s", kind.value, e, exc_info=True)
            raise StoreUnavailableError(detail=f"Redis GET failed: {e}") from e

        if raw is None:
            logger.warning(
                "No %s challenge found for user %s", kind.value, sanitize_for_log(user_id.value)
            )
            raise ChallengeNotFoundError()

        try:
            data = json.loads(raw.decode() if isinstance(raw, bytes) else raw)
            challenge = Challenge(
                user_id=user_id,
                kind=kind,
                value=base64url_to_bytes(data["challenge"]),
                expires_at=datetime.fromisoformat(data["expires_at"]),
            )
        except (ValueError, KeyError, TypeError) as e:
            logger.error("Corrupt challenge payload under %s: %s", key, e)
            raise StoreUnavailableError(detail=f"Corrupt challenge payload: {e}") from e

        if challenge.is_expired(self._clock()):
            await self.delete_challenge(user_id, kind)
            raise ChallengeExpiredError()
        return challenge

    async def delete_challenge(self, user_id: UserId, kind: CeremonyKind) -> None:
        try:
            await self._redis.delete(self._key(user_id, kind))
        except RedisError as e:
            logger.error("Failed to delete %s challenge: %s", kind.value, e, exc_info=True)
            raise StoreUnavailableError(detail=f"Redis DEL failed: {e}") from e
