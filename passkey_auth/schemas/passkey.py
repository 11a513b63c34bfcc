# passkey_auth/schemas/passkey.py
"""
WebAuthn options payloads and HTTP request/response bodies.

Field names follow the WebAuthn JSON serialization consumed by
navigator.credentials.create() / .get(). Binary values are base64url text.
Serialize options with `model_dump(exclude_none=True)`.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from passkey_auth.models.passkey import PasskeyInfo

# --- Options payloads ---


class RelyingPartyEntity(BaseModel):
    id: str
    name: str


class UserEntity(BaseModel):
    id: str
    name: str
    displayName: str


class CredentialParameter(BaseModel):
    type: str = "public-key"
    alg: int


class CredentialDescriptor(BaseModel):
    type: str = "public-key"
    id: str
    transports: list[str] | None = None


class AuthenticatorSelection(BaseModel):
    residentKey: str
    requireResidentKey: bool
    userVerification: str
    authenticatorAttachment: str | None = None


class RegistrationOptions(BaseModel):
    """Options for navigator.credentials.create()."""

    rp: RelyingPartyEntity
    user: UserEntity
    challenge: str
    pubKeyCredParams: list[CredentialParameter]
    timeout: int
    excludeCredentials: list[CredentialDescriptor]
    authenticatorSelection: AuthenticatorSelection
    hints: list[str] | None = None
    attestation: str


class AuthenticationOptions(BaseModel):
    """Options for navigator.credentials.get()."""

    challenge: str
    timeout: int
    rpId: str
    allowCredentials: list[CredentialDescriptor]
    userVerification: str
    hints: list[str] | None = None


# --- HTTP bodies ---


class RegistrationVerifyRequest(BaseModel):
    """Request to verify a registration response."""

    credential: dict[str, Any] = Field(
        ..., description="Credential from navigator.credentials.create()"
    )
    name: str | None = Field(None, description="User-friendly name for the new passkey")


class AuthenticationVerifyRequest(BaseModel):
    """Request to verify an authentication response."""

    assertion: dict[str, Any] = Field(
        ..., description="Credential from navigator.credentials.get()"
    )


class RenameRequest(BaseModel):
    name: str


class PasskeyResponse(BaseModel):
    """Passkey information for display."""

    id: str
    name: str
    created_at: datetime
    last_used_at: datetime | None
    transports: list[str]
    backed_up: bool

    @classmethod
    def from_info(cls, info: PasskeyInfo) -> "PasskeyResponse":
        return cls(
            id=info.id.to_base64url(),
            name=info.name.value,
            created_at=info.created_at,
            last_used_at=info.last_used_at,
            transports=list(info.transports),
            backed_up=info.backed_up,
        )


class PasskeyListResponse(BaseModel):
    passkey_count: int
    passkeys: list[PasskeyResponse]
