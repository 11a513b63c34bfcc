# passkey_auth/core/config.py

import json
import logging
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Annotated, Literal
from urllib.parse import urlparse

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger(__name__)

# COSE algorithm identifiers understood by the ceremonies, keyed by their JOSE names.
COSE_ALGORITHMS: dict[str, int] = {
    "EdDSA": -8,
    "ES256": -7,
    "ES512": -36,
    "PS256": -37,
    "PS384": -38,
    "PS512": -39,
    "RS256": -257,
    "RS384": -258,
    "RS512": -259,
}

ResidentKeyPreference = Literal["discouraged", "preferred", "required"]
AttestationPreference = Literal["none", "indirect", "direct", "enterprise"]
AuthenticatorAttachment = Literal["platform", "cross-platform"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", case_sensitive=False
    )

    # --- Environment & Logging ---
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    SECURITY_LOG_PATH: Path | None = Field(
        default=None,
        description="Rotating file for security audit events. Unset keeps them in the root logger.",
        validation_alias="SECURITY_LOG_PATH",
    )

    # --- Relying Party ---
    APP_NAME: str = Field(default="Passkey Auth", validation_alias="APP_NAME")
    FRONTEND_URL: str = Field(
        default="https://localhost:8443",
        description="Public URL of the frontend; used to derive the RP ID and origin.",
        validation_alias="FRONTEND_URL",
    )
    WEBAUTHN_RP_ID: str | None = Field(default=None, validation_alias="WEBAUTHN_RP_ID")
    WEBAUTHN_RP_NAME: str | None = Field(default=None, validation_alias="WEBAUTHN_RP_NAME")
    WEBAUTHN_ORIGIN: str | None = Field(default=None, validation_alias="WEBAUTHN_ORIGIN")

    # --- Ceremony Preferences ---
    WEBAUTHN_TIMEOUT_SECONDS: int = Field(
        default=60,
        gt=0,
        description="Lifetime of an issued challenge and the browser-side ceremony timeout.",
        validation_alias=AliasChoices("WEBAUTHN_TIMEOUT_SECONDS", "WEBAUTHN_CHALLENGE_TTL_SECONDS"),
    )
    WEBAUTHN_USER_VERIFICATION_REQUIRED: bool = Field(
        default=True, validation_alias="WEBAUTHN_USER_VERIFICATION_REQUIRED"
    )
    WEBAUTHN_ACCEPTED_ALGORITHMS: Annotated[list[str], NoDecode] = Field(
        default=["EdDSA", "ES256", "RS256"], validation_alias="WEBAUTHN_ACCEPTED_ALGORITHMS"
    )
    WEBAUTHN_RESIDENT_KEY: ResidentKeyPreference = Field(
        default="discouraged", validation_alias="WEBAUTHN_RESIDENT_KEY"
    )
    WEBAUTHN_ATTESTATION: AttestationPreference = Field(
        default="direct", validation_alias="WEBAUTHN_ATTESTATION"
    )
    WEBAUTHN_AUTHENTICATOR_ATTACHMENT: AuthenticatorAttachment | None = Field(
        default=None, validation_alias="WEBAUTHN_AUTHENTICATOR_ATTACHMENT"
    )
    WEBAUTHN_HINTS: Annotated[list[str], NoDecode] = Field(
        default=["client-device", "security-key", "hybrid"], validation_alias="WEBAUTHN_HINTS"
    )

    # --- Storage ---
    REDIS_HOST: str = Field(default="redis", validation_alias="REDIS_HOST")
    REDIS_PORT: int = Field(default=6379, validation_alias="REDIS_PORT")
    REDIS_CHALLENGE_DB: int = Field(default=3, validation_alias="REDIS_CHALLENGE_DB")
    DATABASE_URL: str | None = Field(default=None, validation_alias="DATABASE_URL")
    DB_ECHO: bool = Field(default=False, validation_alias="DB_ECHO")

    @field_validator("WEBAUTHN_ACCEPTED_ALGORITHMS", "WEBAUTHN_HINTS", mode="before")
    @classmethod
    def parse_json_list(cls, v: str | list | None) -> list[str] | None:
        """Parse JSON array strings (or comma-separated values) from env vars into lists."""
        if v is None or isinstance(v, list):
            return v
        if isinstance(v, str):
            try:
                parsed = json.loads(v)
                if isinstance(parsed, list):
                    return [str(item).strip() for item in parsed if str(item).strip()]
            except json.JSONDecodeError:
                pass
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("WEBAUTHN_ACCEPTED_ALGORITHMS")
    @classmethod
    def check_algorithms(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("At least one accepted algorithm is required")
        unknown = [name for name in v if name not in COSE_ALGORITHMS]
        if unknown:
            raise ValueError(f"Unsupported algorithms: {', '.join(unknown)}")
        return v

    @property
    def rp_id(self) -> str:
        """Relying Party ID from settings, or the host of FRONTEND_URL."""
        if self.WEBAUTHN_RP_ID:
            return self.WEBAUTHN_RP_ID
        return urlparse(self.FRONTEND_URL).hostname or "localhost"

    @property
    def rp_name(self) -> str:
        return self.WEBAUTHN_RP_NAME or self.APP_NAME

    @property
    def origin(self) -> str:
        """Expected origin for WebAuthn verification."""
        if self.WEBAUTHN_ORIGIN:
            return self.WEBAUTHN_ORIGIN
        return self.FRONTEND_URL.rstrip("/")

    @property
    def REDIS_URL(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_CHALLENGE_DB}"


@dataclass(frozen=True)
class CeremonyConfig:
    """
    Immutable ceremony configuration handed to the orchestrator.

    Everything here is pass-through data for the options payloads and the
    verification engine; none of it is computed per ceremony.
    """

    rp_id: str
    rp_name: str
    origin: str
    timeout: timedelta = timedelta(seconds=60)
    user_verification_required: bool = True
    accepted_algorithms: tuple[str, ...] = ("EdDSA", "ES256", "RS256")
    resident_key: ResidentKeyPreference = "discouraged"
    attestation: AttestationPreference = "direct"
    authenticator_attachment: AuthenticatorAttachment | None = None
    hints: tuple[str, ...] = ("client-device", "security-key", "hybrid")

    def __post_init__(self) -> None:
        if not self.rp_name.strip():
            raise ValueError("Relying party name must not be empty")
        if self.timeout <= timedelta(0):
            raise ValueError("Timeout must be positive")
        unknown = [name for name in self.accepted_algorithms if name not in COSE_ALGORITHMS]
        if unknown or not self.accepted_algorithms:
            raise ValueError(f"Unsupported accepted algorithms: {list(self.accepted_algorithms)}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "CeremonyConfig":
        return cls(
            rp_id=settings.rp_id,
            rp_name=settings.rp_name,
            origin=settings.origin,
            timeout=timedelta(seconds=settings.WEBAUTHN_TIMEOUT_SECONDS),
            user_verification_required=settings.WEBAUTHN_USER_VERIFICATION_REQUIRED,
            accepted_algorithms=tuple(settings.WEBAUTHN_ACCEPTED_ALGORITHMS),
            resident_key=settings.WEBAUTHN_RESIDENT_KEY,
            attestation=settings.WEBAUTHN_ATTESTATION,
            authenticator_attachment=settings.WEBAUTHN_AUTHENTICATOR_ATTACHMENT,
            hints=tuple(settings.WEBAUTHN_HINTS),
        )

    @property
    def timeout_ms(self) -> int:
        return int(self.timeout.total_seconds() * 1000)

    @property
    def user_verification(self) -> str:
        """The userVerification preference sent to the browser."""
        return "required" if self.user_verification_required else "preferred"

    @property
    def algorithm_ids(self) -> list[int]:
        return [COSE_ALGORITHMS[name] for name in self.accepted_algorithms]


settings = Settings()
