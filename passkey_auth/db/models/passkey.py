# passkey_auth/db/models/passkey.py
"""
Table for WebAuthn/Passkey credentials.

Rows are unique per (user_id, credential_id) and per (user_id, name). The
second constraint is what finally rejects two concurrent registrations that
picked the same name.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    LargeBinary,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from passkey_auth.db.base_class import Base


class PasskeyRecord(Base):
    __tablename__ = "user_passkeys"
    __table_args__ = (
        UniqueConstraint("user_id", "credential_id"),
        UniqueConstraint("user_id", "name"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Opaque identifier from the host application, which owns the users table
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    # WebAuthn credential ID as returned by the authenticator
    credential_id: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)

    # COSE-encoded public key
    public_key: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)

    # Signature counter; only ever increases
    sign_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Transport hints (e.g. ["usb", "internal", "hybrid"])
    transports: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)

    aaguid: Mapped[str | None] = mapped_column(String(36), nullable=True)

    # "single_device" or "multi_device"
    device_type: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # BS flag: credential is synced
    backed_up: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    attestation_format: Mapped[str | None] = mapped_column(String(32), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<PasskeyRecord(id={self.id}, user_id={self.user_id}, "
            f"name={self.name}, sign_count={self.sign_count})>"
        )
