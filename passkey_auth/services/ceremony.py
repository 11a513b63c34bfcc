# passkey_auth/services/ceremony.py
"""
Passkey (WebAuthn) ceremony orchestration.

Runs the two ceremonies on top of the challenge and credential stores:
- Registration: options (issue challenge) then verify (store new passkey)
- Authentication: options (issue challenge) then verify (check assertion)
plus list, rename and delete of a user's passkeys.

Invariants kept here:
- No verification without a live challenge for the same user and ceremony;
  expiry is checked again here even if the store already filters it.
- A challenge is only deleted after the passkey write succeeded, so a failed
  write can be retried with the same browser response.
- Credentials are always fetched by (user, credential id); an id alone never
  identifies an owner.
- Stored sign counts never decrease. A counter that does not advance is
  tolerated but reported to the security log.
"""

import logging
import secrets
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, TypeVar

from webauthn.helpers import bytes_to_base64url

from passkey_auth.core.config import CeremonyConfig
from passkey_auth.core.log_utils import sanitize_for_log
from passkey_auth.core.security_logger import SecurityLogger
from passkey_auth.exceptions import (
    ChallengeExpiredError,
    ChallengeNotFoundError,
    CredentialAlreadyRegisteredError,
    DuplicatePasskeyNameError,
    InvalidPasskeyNameError,
    PasskeyError,
    PasskeyNotFoundError,
    StoreUnavailableError,
    VerificationFailedError,
)
from passkey_auth.models.challenge import CeremonyKind, Challenge
from passkey_auth.models.identifiers import PasskeyId, UserId
from passkey_auth.models.passkey import Passkey, PasskeyInfo
from passkey_auth.models.passkey_name import NameValidationError, PasskeyName, find_duplicate
from passkey_auth.schemas.passkey import (
    AuthenticationOptions,
    AuthenticatorSelection,
    CredentialDescriptor,
    CredentialParameter,
    RegistrationOptions,
    RelyingPartyEntity,
    UserEntity,
)
from passkey_auth.stores.base import ChallengeStore, CredentialStore
from passkey_auth.verification.base import VerificationEngine

logger = logging.getLogger(__name__)

T = TypeVar("T")

CHALLENGE_SIZE = 32


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _random_challenge() -> bytes:
    return secrets.token_bytes(CHALLENGE_SIZE)


@dataclass(frozen=True)
class CeremonyContext:
    """Everything a ceremony needs besides the stores."""

    config: CeremonyConfig
    engine: VerificationEngine
    clock: Callable[[], datetime] = field(default=_utcnow)
    challenge_factory: Callable[[], bytes] = field(default=_random_challenge)

    def now(self) -> datetime:
        return self.clock()


def _descriptor(passkey: Passkey) -> CredentialDescriptor:
    return CredentialDescriptor(
        id=passkey.id.to_base64url(),
        transports=list(passkey.material.transports) or None,
    )


class PasskeyCeremonyService:
    def __init__(
        self,
        context: CeremonyContext,
        challenges: ChallengeStore,
        credentials: CredentialStore,
        audit: SecurityLogger | None = None,
    ):
        self._ctx = context
        self._challenges = challenges
        self._credentials = credentials
        self._audit = audit

    @property
    def config(self) -> CeremonyConfig:
        return self._ctx.config

    # --- Registration ---

    async def registration_options(
        self, user_id: UserId, display_name: str, user_name: str | None = None
    ) -> RegistrationOptions:
        """
        Issue a registration challenge and build the options for
        navigator.credentials.create().

        Any registration challenge already outstanding for the user is replaced.
        """
        existing = await self._store_call("list_passkeys", self._credentials.list_passkeys(user_id))
        challenge = await self._issue_challenge(user_id, CeremonyKind.REGISTRATION)
        config = self.config

        return RegistrationOptions(
            rp=RelyingPartyEntity(id=config.rp_id, name=config.rp_name),
            user=UserEntity(
                id=bytes_to_base64url(user_id.to_bytes()),
                name=user_name or display_name,
                displayName=display_name,
            ),
            challenge=bytes_to_base64url(challenge.value),
            pubKeyCredParams=[CredentialParameter(alg=alg) for alg in config.algorithm_ids],
            timeout=config.timeout_ms,
            excludeCredentials=[_descriptor(pk) for pk in existing],
            authenticatorSelection=AuthenticatorSelection(
                residentKey=config.resident_key,
                requireResidentKey=config.resident_key == "required",
                userVerification=config.user_verification,
                authenticatorAttachment=config.authenticator_attachment,
            ),
            hints=list(config.hints) or None,
            attestation=config.attestation,
        )

    async def register(
        self, user_id: UserId, passkey_name: str | None, raw_response: Any
    ) -> Passkey:
        """
        Verify a registration response and store the new passkey.

        The name is checked before the challenge store is consulted, so a bad
        name leaves the outstanding challenge usable.

        Raises:
            InvalidPasskeyNameError, DuplicatePasskeyNameError,
            ChallengeNotFoundError, ChallengeExpiredError,
            CredentialAlreadyRegisteredError, VerificationFailedError,
            StoreUnavailableError
        """
        name = self._validated_name(user_id, passkey_name)

        existing = await self._store_call("list_passkeys", self._credentials.list_passkeys(user_id))
        # Concurrent registrations can both pass this check; the store decides then.
        if find_duplicate(name, existing) is not None:
            logger.warning(
                "Duplicate passkey name %s for user %s",
                sanitize_for_log(name.value),
                sanitize_for_log(user_id.value),
            )
            raise DuplicatePasskeyNameError(name.value)

        challenge = await self._live_challenge(user_id, CeremonyKind.REGISTRATION)
        config = self.config

        try:
            registered = await self._ctx.engine.verify_registration(
                challenge=challenge.value,
                rp_id=config.rp_id,
                origin=config.origin,
                raw_response=raw_response,
                accepted_algorithms=config.algorithm_ids,
                require_user_verification=config.user_verification_required,
            )
        except Exception as e:
            self._verification_failed(user_id, CeremonyKind.REGISTRATION, e)
            raise VerificationFailedError(detail=str(e)) from e

        if any(pk.id == registered.credential_id for pk in existing):
            logger.warning(
                "Credential %s is already registered for user %s",
                registered.credential_id.to_base64url(),
                sanitize_for_log(user_id.value),
            )
            raise CredentialAlreadyRegisteredError()

        passkey = Passkey.from_registration(
            registered.credential_id, name, registered.material, self._ctx.now()
        )
        await self._store_call("upsert_passkey", self._credentials.upsert_passkey(user_id, passkey))
        await self._store_call(
            "delete_challenge",
            self._challenges.delete_challenge(user_id, CeremonyKind.REGISTRATION),
        )

        if self._audit:
            self._audit.passkey_registered(user_id.value, passkey.id.to_base64url(), name.value)
        logger.info(
            "Passkey registered for user %s: %s",
            sanitize_for_log(user_id.value),
            passkey.id.to_base64url(),
        )
        return passkey

    # --- Authentication ---

    async def authentication_options(self, user_id: UserId) -> AuthenticationOptions:
        """
        Issue an authentication challenge and build the options for
        navigator.credentials.get(), restricted to the user's own passkeys.
        """
        existing = await self._store_call("list_passkeys", self._credentials.list_passkeys(user_id))
        challenge = await self._issue_challenge(user_id, CeremonyKind.AUTHENTICATION)
        config = self.config

        return AuthenticationOptions(
            challenge=bytes_to_base64url(challenge.value),
            timeout=config.timeout_ms,
            rpId=config.rp_id,
            allowCredentials=[_descriptor(pk) for pk in existing],
            userVerification=config.user_verification,
            hints=list(config.hints) or None,
        )

    async def authenticate(self, user_id: UserId, raw_response: Any) -> Passkey:
        """
        Verify an assertion for one of the user's passkeys.

        Returns the passkey as stored after this use.

        Raises:
            ChallengeNotFoundError, ChallengeExpiredError, PasskeyNotFoundError,
            VerificationFailedError, StoreUnavailableError
        """
        challenge = await self._live_challenge(user_id, CeremonyKind.AUTHENTICATION)
        config = self.config

        try:
            credential_id = await self._ctx.engine.parse_credential_id(raw_response)
        except Exception as e:
            self._verification_failed(user_id, CeremonyKind.AUTHENTICATION, e)
            raise VerificationFailedError(detail=f"Unreadable assertion: {e}") from e

        try:
            passkey = await self._store_call(
                "get_passkey", self._credentials.get_passkey(user_id, credential_id)
            )
        except PasskeyNotFoundError:
            logger.warning(
                "Assertion for unknown credential %s from user %s",
                credential_id.to_base64url(),
                sanitize_for_log(user_id.value),
            )
            self._audit_failure(user_id, CeremonyKind.AUTHENTICATION, "unknown_credential")
            raise

        try:
            assertion = await self._ctx.engine.verify_authentication(
                challenge=challenge.value,
                rp_id=config.rp_id,
                origin=config.origin,
                material=passkey.material,
                current_sign_count=passkey.sign_count,
                raw_response=raw_response,
                require_user_verification=config.user_verification_required,
            )
        except Exception as e:
            self._verification_failed(user_id, CeremonyKind.AUTHENTICATION, e)
            raise VerificationFailedError(detail=str(e)) from e

        if assertion.credential_id != credential_id:
            detail = "Engine verified a different credential than the one presented"
            self._verification_failed(user_id, CeremonyKind.AUTHENTICATION, detail)
            raise VerificationFailedError(detail=detail)

        if passkey.is_sign_count_regression(assertion.new_sign_count):
            logger.error(
                "Possible cloned authenticator! Passkey %s of user %s: reported=%d <= stored=%d",
                passkey.id.to_base64url(),
                sanitize_for_log(user_id.value),
                assertion.new_sign_count,
                passkey.sign_count,
            )
            if self._audit:
                self._audit.sign_count_regression(
                    user_id.value,
                    passkey.id.to_base64url(),
                    stored=passkey.sign_count,
                    reported=assertion.new_sign_count,
                )

        updated = passkey.record_authentication(assertion.new_sign_count, self._ctx.now())
        await self._store_call("upsert_passkey", self._credentials.upsert_passkey(user_id, updated))
        await self._store_call(
            "delete_challenge",
            self._challenges.delete_challenge(user_id, CeremonyKind.AUTHENTICATION),
        )

        if self._audit:
            self._audit.passkey_verified(user_id.value, updated.id.to_base64url())
        logger.info(
            "User %s authenticated with passkey %s",
            sanitize_for_log(user_id.value),
            updated.id.to_base64url(),
        )
        return updated

    # --- Management ---

    async def list_passkeys(self, user_id: UserId) -> list[PasskeyInfo]:
        """Metadata for all of the user's passkeys, oldest first."""
        passkeys = await self._store_call("list_passkeys", self._credentials.list_passkeys(user_id))
        return [pk.to_info() for pk in passkeys]

    async def rename_passkey(
        self, user_id: UserId, passkey_id: PasskeyId, new_name: str
    ) -> Passkey:
        name = self._validated_name(user_id, new_name)
        passkey = await self._store_call(
            "get_passkey", self._credentials.get_passkey(user_id, passkey_id)
        )
        if passkey.name == name:
            return passkey

        existing = await self._store_call("list_passkeys", self._credentials.list_passkeys(user_id))
        if find_duplicate(name, existing) is not None:
            raise DuplicatePasskeyNameError(name.value)

        renamed = passkey.renamed(name)
        await self._store_call("upsert_passkey", self._credentials.upsert_passkey(user_id, renamed))
        logger.info(
            "Passkey %s of user %s renamed",
            passkey_id.to_base64url(),
            sanitize_for_log(user_id.value),
        )
        return renamed

    async def delete_passkey(self, user_id: UserId, passkey_id: PasskeyId) -> PasskeyInfo:
        """
        Remove one of the user's passkeys and return what was removed.

        Raises:
            PasskeyNotFoundError: the user has no such passkey.
        """
        passkey = await self._store_call(
            "get_passkey", self._credentials.get_passkey(user_id, passkey_id)
        )
        removed = await self._store_call(
            "delete_passkey", self._credentials.delete_passkey(user_id, passkey_id)
        )
        if not removed:
            # Deleted concurrently between the two calls.
            raise PasskeyNotFoundError()

        if self._audit:
            self._audit.passkey_deleted(user_id.value, passkey_id.to_base64url())
        logger.info(
            "Passkey %s deleted for user %s",
            passkey_id.to_base64url(),
            sanitize_for_log(user_id.value),
        )
        return passkey.to_info()

    # --- Helpers ---

    async def _issue_challenge(self, user_id: UserId, kind: CeremonyKind) -> Challenge:
        challenge = Challenge(
            user_id=user_id,
            kind=kind,
            value=self._ctx.challenge_factory(),
            expires_at=self._ctx.now() + self.config.timeout,
        )
        await self._store_call(
            "insert_challenge",
            self._challenges.insert_challenge(user_id, kind, challenge.value, challenge.expires_at),
        )
        logger.debug("Issued %s challenge for user %s", kind.value, sanitize_for_log(user_id.value))
        return challenge

    async def _live_challenge(self, user_id: UserId, kind: CeremonyKind) -> Challenge:
        try:
            challenge = await self._store_call(
                "load_challenge", self._challenges.load_challenge(user_id, kind)
            )
        except ChallengeNotFoundError:
            logger.warning(
                "No %s challenge outstanding for user %s",
                kind.value,
                sanitize_for_log(user_id.value),
            )
            self._audit_failure(user_id, kind, "challenge_not_found")
            raise
        except ChallengeExpiredError:
            self._audit_failure(user_id, kind, "challenge_expired")
            raise

        if challenge.is_expired(self._ctx.now()):
            logger.warning(
                "Expired %s challenge for user %s", kind.value, sanitize_for_log(user_id.value)
            )
            self._audit_failure(user_id, kind, "challenge_expired")
            raise ChallengeExpiredError()
        return challenge

    def _validated_name(self, user_id: UserId, raw: str | None) -> PasskeyName:
        name = PasskeyName.validate(raw)
        if isinstance(name, NameValidationError):
            logger.warning(
                "Rejected passkey name for user %s: %s",
                sanitize_for_log(user_id.value),
                name.kind.value,
            )
            raise InvalidPasskeyNameError(name)
        return name

    def _verification_failed(self, user_id: UserId, kind: CeremonyKind, error: object) -> None:
        logger.warning(
            "WebAuthn %s verification failed for user %s: %s",
            kind.value,
            sanitize_for_log(user_id.value),
            sanitize_for_log(error),
        )
        self._audit_failure(user_id, kind, "verification_failed")

    def _audit_failure(self, user_id: UserId, kind: CeremonyKind, reason: str) -> None:
        if self._audit:
            self._audit.passkey_failed(user_id.value, kind.value, reason)

    async def _store_call(self, operation: str, awaitable: Awaitable[T]) -> T:
        """Await a store operation, turning unexpected failures into StoreUnavailableError."""
        try:
            return await awaitable
        except PasskeyError:
            raise
        except Exception as e:
            logger.exception("Store operation %s failed", operation)
            raise StoreUnavailableError(detail=f"{operation}: {e}") from e
