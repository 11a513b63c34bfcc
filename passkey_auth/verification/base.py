# passkey_auth/verification/base.py
"""
Contract for the cryptographic half of the ceremonies.

The ceremony service never inspects engine errors: any exception raised here
is logged and turned into VerificationFailedError.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from passkey_auth.models.identifiers import PasskeyId
from passkey_auth.models.passkey import CredentialMaterial


@dataclass(frozen=True)
class RegisteredCredential:
    credential_id: PasskeyId
    material: CredentialMaterial


@dataclass(frozen=True)
class VerifiedAssertion:
    credential_id: PasskeyId
    new_sign_count: int


class VerificationEngine(ABC):
    @abstractmethod
    async def verify_registration(
        self,
        challenge: bytes,
        rp_id: str,
        origin: str,
        raw_response: Any,
        accepted_algorithms: Sequence[int],
        require_user_verification: bool,
    ) -> RegisteredCredential:
        """Check an attestation response and extract the new credential."""

    @abstractmethod
    async def parse_credential_id(self, raw_response: Any) -> PasskeyId:
        """Read the credential id out of an assertion response, without verifying it."""

    @abstractmethod
    async def verify_authentication(
        self,
        challenge: bytes,
        rp_id: str,
        origin: str,
        material: CredentialMaterial,
        current_sign_count: int,
        raw_response: Any,
        require_user_verification: bool,
    ) -> VerifiedAssertion:
        """Check an assertion signature against the stored credential material."""
