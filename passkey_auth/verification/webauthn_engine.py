# passkey_auth/verification/webauthn_engine.py
"""
Verification engine backed by py_webauthn.

Responses arrive as the JSON produced by the browser (dict or str) and are
parsed here; the rest of the package never touches py_webauthn structs.
"""

import logging
from collections.abc import Sequence
from typing import Any

from webauthn import verify_authentication_response, verify_registration_response
from webauthn.helpers import (
    parse_authentication_credential_json,
    parse_registration_credential_json,
)
from webauthn.helpers.cose import COSEAlgorithmIdentifier

from passkey_auth.models.identifiers import IdentifierError, PasskeyId
from passkey_auth.models.passkey import CredentialMaterial
from passkey_auth.verification.base import (
    RegisteredCredential,
    VerificationEngine,
    VerifiedAssertion,
)

logger = logging.getLogger(__name__)


def _passkey_id(raw: bytes) -> PasskeyId:
    parsed = PasskeyId.from_bytes(raw)
    if isinstance(parsed, IdentifierError):
        raise ValueError(parsed.message)
    return parsed


class WebAuthnVerificationEngine(VerificationEngine):
    """
    Args:
        strict_sign_count: Let py_webauthn reject assertions whose counter did
            not advance. Off by default: the ceremony service tolerates such
            assertions and reports them to the security log instead.
    """

    def __init__(self, strict_sign_count: bool = False):
        self.strict_sign_count = strict_sign_count

    async def verify_registration(
        self,
        challenge: bytes,
        rp_id: str,
        origin: str,
        raw_response: Any,
        accepted_algorithms: Sequence[int],
        require_user_verification: bool,
    ) -> RegisteredCredential:
        credential = parse_registration_credential_json(raw_response)
        verification = verify_registration_response(
            credential=credential,
            expected_challenge=challenge,
            expected_rp_id=rp_id,
            expected_origin=origin,
            require_user_verification=require_user_verification,
            supported_pub_key_algs=[COSEAlgorithmIdentifier(alg) for alg in accepted_algorithms],
        )

        material = CredentialMaterial(
            public_key=verification.credential_public_key,
            aaguid=str(verification.aaguid) if verification.aaguid else None,
            transports=tuple(t.value for t in (credential.response.transports or [])),
            device_type=verification.credential_device_type.value,
            backed_up=verification.credential_backed_up,
            attestation_format=verification.fmt.value,
        )
        logger.debug(
            "Attestation verified (fmt=%s, device_type=%s)",
            material.attestation_format,
            material.device_type,
        )
        return RegisteredCredential(
            credential_id=_passkey_id(verification.credential_id), material=material
        )

    async def parse_credential_id(self, raw_response: Any) -> PasskeyId:
        credential = parse_authentication_credential_json(raw_response)
        return _passkey_id(credential.raw_id)

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
        credential = parse_authentication_credential_json(raw_response)
        verification = verify_authentication_response(
            credential=credential,
            expected_challenge=challenge,
            expected_rp_id=rp_id,
            expected_origin=origin,
            credential_public_key=material.public_key,
            # With 0 here py_webauthn accepts any reported counter.
            credential_current_sign_count=current_sign_count if self.strict_sign_count else 0,
            require_user_verification=require_user_verification,
        )
        return VerifiedAssertion(
            credential_id=_passkey_id(verification.credential_id),
            new_sign_count=verification.new_sign_count,
        )
