# passkey_auth/models/passkey.py
"""
Passkey aggregate.

A Passkey is owned by exactly one user; ownership lives in the stores, which
always key passkeys by (user, credential id).
"""

from dataclasses import dataclass, field, replace
from datetime import datetime

from passkey_auth.models.identifiers import PasskeyId
from passkey_auth.models.passkey_name import PasskeyName


@dataclass(frozen=True)
class CredentialMaterial:
    """
    What the verification engine needs to check later assertions.

    Opaque to the ceremony logic; only the engine and the stores look inside.
    """

    public_key: bytes
    aaguid: str | None = None
    transports: tuple[str, ...] = ()
    device_type: str | None = None
    backed_up: bool = False
    attestation_format: str | None = None


@dataclass(frozen=True)
class PasskeyInfo:
    """Metadata view of a passkey, safe to send to clients."""

    id: PasskeyId
    name: PasskeyName
    created_at: datetime
    last_used_at: datetime | None
    transports: tuple[str, ...] = ()
    backed_up: bool = False


def later_use(a: datetime | None, b: datetime | None) -> datetime | None:
    if a is None or b is None:
        return a or b
    return max(a, b)


@dataclass(frozen=True)
class Passkey:
    id: PasskeyId
    name: PasskeyName
    material: CredentialMaterial = field(repr=False)
    created_at: datetime
    last_used_at: datetime | None = None
    sign_count: int = 0

    @classmethod
    def from_registration(
        cls,
        id: PasskeyId,  # noqa: A002
        name: PasskeyName,
        material: CredentialMaterial,
        now: datetime,
    ) -> "Passkey":
        return cls(
            id=id,
            name=name,
            material=material,
            created_at=now,
            last_used_at=None,
            sign_count=0,
        )

    def record_authentication(self, new_sign_count: int, now: datetime) -> "Passkey":
        """Return a copy stamped with this use. The stored counter never decreases."""
        return replace(
            self,
            last_used_at=now,
            sign_count=max(self.sign_count, new_sign_count),
        )

    def is_sign_count_regression(self, reported: int) -> bool:
        """
        True when the authenticator reported a counter that did not advance.

        Authenticators that do not implement counters report 0 forever, so a
        pair of zeros is not a regression.
        """
        if self.sign_count == 0 and reported == 0:
            return False
        return reported <= self.sign_count

    def merged_over(self, stored: "Passkey") -> "Passkey":
        """
        This passkey as written over the `stored` copy of the same credential.

        Writers may hold stale copies, so usage never moves backwards: the
        higher counter and the later use win.
        """
        return replace(
            self,
            sign_count=max(self.sign_count, stored.sign_count),
            last_used_at=later_use(self.last_used_at, stored.last_used_at),
        )

    def renamed(self, name: PasskeyName) -> "Passkey":
        return replace(self, name=name)

    def to_info(self) -> PasskeyInfo:
        return PasskeyInfo(
            id=self.id,
            name=self.name,
            created_at=self.created_at,
            last_used_at=self.last_used_at,
            transports=self.material.transports,
            backed_up=self.material.backed_up,
        )
