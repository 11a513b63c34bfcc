# passkey_auth/stores/sqlalchemy_credentials.py
"""
Credential storage on SQLAlchemy 2.x (async).

Each method runs in its own short session. Upserts lock the existing row with
SELECT ... FOR UPDATE and merge the sign count and last use into it, so two
assertions racing on one credential can never move the counter backwards.
The (user_id, name) unique constraint closes the duplicate-name race between
concurrent registrations.
"""

import logging

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from passkey_auth.core.log_utils import sanitize_for_log
from passkey_auth.db.models.passkey import PasskeyRecord
from passkey_auth.exceptions import (
    CredentialAlreadyRegisteredError,
    DuplicatePasskeyNameError,
    PasskeyNotFoundError,
    StoreUnavailableError,
)
from passkey_auth.models.identifiers import PasskeyId, UserId
from passkey_auth.models.passkey import CredentialMaterial, Passkey, later_use
from passkey_auth.models.passkey_name import PasskeyName
from passkey_auth.stores.base import CredentialStore

logger = logging.getLogger(__name__)

# Postgres reports the constraint name, SQLite the offending columns.
NAME_CLASH_MARKERS = ("uq_user_passkeys_user_id_name", "user_passkeys.name")
CREDENTIAL_CLASH_MARKERS = (
    "uq_user_passkeys_user_id_credential_id",
    "user_passkeys.credential_id",
)


def _to_passkey(record: PasskeyRecord) -> Passkey:
    return Passkey(
        id=PasskeyId(record.credential_id),
        # Names were validated on the way in.
        name=PasskeyName(record.name),
        material=CredentialMaterial(
            public_key=record.public_key,
            aaguid=record.aaguid,
            transports=tuple(record.transports or ()),
            device_type=record.device_type,
            backed_up=record.backed_up,
            attestation_format=record.attestation_format,
        ),
        created_at=record.created_at,
        last_used_at=record.last_used_at,
        sign_count=record.sign_count,
    )


def _apply(record: PasskeyRecord, passkey: Passkey) -> None:
    record.name = passkey.name.value
    record.public_key = passkey.material.public_key
    record.aaguid = passkey.material.aaguid
    record.transports = list(passkey.material.transports)
    record.device_type = passkey.material.device_type
    record.backed_up = passkey.material.backed_up
    record.attestation_format = passkey.material.attestation_format
    record.created_at = passkey.created_at
    # Concurrent assertions may carry stale counters; the row only moves forward.
    record.last_used_at = later_use(record.last_used_at, passkey.last_used_at)
    record.sign_count = max(record.sign_count or 0, passkey.sign_count)


class SqlAlchemyCredentialStore(CredentialStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_passkey(self, user_id: UserId, passkey_id: PasskeyId) -> Passkey:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(PasskeyRecord).where(
                        PasskeyRecord.user_id == user_id.value,
                        PasskeyRecord.credential_id == passkey_id.value,
                    )
                )
                record = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Failed to load passkey: %s", e, exc_info=True)
            raise StoreUnavailableError(detail=str(e)) from e

        if record is None:
            raise PasskeyNotFoundError()
        return _to_passkey(record)

    async def list_passkeys(self, user_id: UserId) -> list[Passkey]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(PasskeyRecord)
                    .where(PasskeyRecord.user_id == user_id.value)
                    .order_by(PasskeyRecord.created_at)
                )
                records = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("Failed to list passkeys: %s", e, exc_info=True)
            raise StoreUnavailableError(detail=str(e)) from e
        return [_to_passkey(record) for record in records]

    async def upsert_passkey(self, user_id: UserId, passkey: Passkey) -> None:
        async with self._session_factory() as session:
            try:
                result = await session.execute(
                    select(PasskeyRecord)
                    .where(
                        PasskeyRecord.user_id == user_id.value,
                        PasskeyRecord.credential_id == passkey.id.value,
                    )
                    .with_for_update()
                )
                record = result.scalar_one_or_none()
                if record is None:
                    record = PasskeyRecord(user_id=user_id.value, credential_id=passkey.id.value)
                    session.add(record)
                _apply(record, passkey)
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                message = str(e.orig)
                if any(marker in message for marker in NAME_CLASH_MARKERS):
                    logger.info(
                        "Name clash on upsert for user %s", sanitize_for_log(user_id.value)
                    )
                    raise DuplicatePasskeyNameError(passkey.name.value) from e
                if any(marker in message for marker in CREDENTIAL_CLASH_MARKERS):
                    raise CredentialAlreadyRegisteredError() from e
                logger.error("Integrity error on passkey upsert: %s", e, exc_info=True)
                raise StoreUnavailableError(detail=str(e)) from e
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error("Failed to upsert passkey: %s", e, exc_info=True)
                raise StoreUnavailableError(detail=str(e)) from e

    async def delete_passkey(self, user_id: UserId, passkey_id: PasskeyId) -> bool:
        async with self._session_factory() as session:
            try:
                result = await session.execute(
                    delete(PasskeyRecord).where(
                        PasskeyRecord.user_id == user_id.value,
                        PasskeyRecord.credential_id == passkey_id.value,
                    )
                )
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error("Failed to delete passkey: %s", e, exc_info=True)
                raise StoreUnavailableError(detail=str(e)) from e
        return bool(result.rowcount and result.rowcount > 0)  # type: ignore[attr-defined]
