# tests/unit/stores/test_memory_stores.py
"""Unit tests for the in-memory challenge and credential stores."""

from datetime import timedelta

import pytest

from passkey_auth.exceptions import (
    ChallengeExpiredError,
    ChallengeNotFoundError,
    PasskeyNotFoundError,
)
from passkey_auth.models.challenge import CeremonyKind
from passkey_auth.models.identifiers import PasskeyId, UserId
from passkey_auth.models.passkey import CredentialMaterial, Passkey
from passkey_auth.models.passkey_name import PasskeyName

REG = CeremonyKind.REGISTRATION
AUTH = CeremonyKind.AUTHENTICATION


def make_passkey(credential_id: bytes, name: str, created_at) -> Passkey:
    return Passkey.from_registration(
        PasskeyId(credential_id),
        PasskeyName(name),
        CredentialMaterial(public_key=b"pk-" + credential_id),
        created_at,
    )


# --- Challenges ---


@pytest.mark.asyncio
async def test_insert_and_load_challenge(challenge_store, clock, alice):
    expires_at = clock.now + timedelta(seconds=60)
    await challenge_store.insert_challenge(alice, REG, b"a" * 32, expires_at)

    challenge = await challenge_store.load_challenge(alice, REG)

    assert challenge.value == b"a" * 32
    assert challenge.expires_at == expires_at
    assert challenge.user_id == alice
    assert challenge.kind is REG


@pytest.mark.asyncio
async def test_insert_replaces_existing(challenge_store, clock, alice):
    expires_at = clock.now + timedelta(seconds=60)
    await challenge_store.insert_challenge(alice, REG, b"first", expires_at)
    await challenge_store.insert_challenge(alice, REG, b"second", expires_at)

    assert (await challenge_store.load_challenge(alice, REG)).value == b"second"
    assert len(challenge_store) == 1


@pytest.mark.asyncio
async def test_challenges_isolated_by_user_and_kind(challenge_store, clock, alice, bob):
    expires_at = clock.now + timedelta(seconds=60)
    await challenge_store.insert_challenge(alice, REG, b"alice-reg", expires_at)
    await challenge_store.insert_challenge(alice, AUTH, b"alice-auth", expires_at)

    assert (await challenge_store.load_challenge(alice, AUTH)).value == b"alice-auth"
    with pytest.raises(ChallengeNotFoundError):
        await challenge_store.load_challenge(bob, REG)


@pytest.mark.asyncio
async def test_expired_challenge_is_reaped_on_load(challenge_store, clock, alice):
    await challenge_store.insert_challenge(alice, REG, b"c", clock.now + timedelta(seconds=60))
    clock.advance(seconds=61)

    with pytest.raises(ChallengeExpiredError):
        await challenge_store.load_challenge(alice, REG)
    with pytest.raises(ChallengeNotFoundError):
        await challenge_store.load_challenge(alice, REG)


@pytest.mark.asyncio
async def test_delete_challenge_is_idempotent(challenge_store, clock, alice):
    await challenge_store.insert_challenge(alice, REG, b"c", clock.now + timedelta(seconds=60))

    await challenge_store.delete_challenge(alice, REG)
    await challenge_store.delete_challenge(alice, REG)

    with pytest.raises(ChallengeNotFoundError):
        await challenge_store.load_challenge(alice, REG)


@pytest.mark.asyncio
async def test_purge_expired(challenge_store, clock, alice, bob):
    await challenge_store.insert_challenge(alice, REG, b"short", clock.now + timedelta(seconds=10))
    await challenge_store.insert_challenge(bob, REG, b"long", clock.now + timedelta(seconds=120))
    clock.advance(seconds=30)

    assert challenge_store.purge_expired() == 1
    assert len(challenge_store) == 1
    assert (await challenge_store.load_challenge(bob, REG)).value == b"long"


# --- Credentials ---


@pytest.mark.asyncio
async def test_upsert_and_get_passkey(credential_store, clock, alice):
    passkey = make_passkey(b"c1", "Laptop", clock.now)
    await credential_store.upsert_passkey(alice, passkey)

    assert await credential_store.get_passkey(alice, PasskeyId(b"c1")) == passkey


@pytest.mark.asyncio
async def test_upsert_replaces_same_credential(credential_store, clock, alice):
    passkey = make_passkey(b"c1", "Laptop", clock.now)
    await credential_store.upsert_passkey(alice, passkey)
    await credential_store.upsert_passkey(alice, passkey.record_authentication(3, clock.now))

    passkeys = await credential_store.list_passkeys(alice)
    assert len(passkeys) == 1
    assert passkeys[0].sign_count == 3


@pytest.mark.asyncio
async def test_stale_upsert_never_lowers_usage(credential_store, clock, alice):
    """Two writers read the same copy; the one finishing last carries the lower counter."""
    passkey = make_passkey(b"c1", "Laptop", clock.now)
    await credential_store.upsert_passkey(alice, passkey.record_authentication(5, clock.now))
    read_a = await credential_store.get_passkey(alice, PasskeyId(b"c1"))
    read_b = await credential_store.get_passkey(alice, PasskeyId(b"c1"))
    later = clock.now + timedelta(seconds=5)

    await credential_store.upsert_passkey(alice, read_a.record_authentication(10, later))
    await credential_store.upsert_passkey(alice, read_b.record_authentication(7, clock.now))

    stored = await credential_store.get_passkey(alice, PasskeyId(b"c1"))
    assert stored.sign_count == 10
    assert stored.last_used_at == later


@pytest.mark.asyncio
async def test_rename_with_stale_copy_keeps_counter(credential_store, clock, alice):
    passkey = make_passkey(b"c1", "Laptop", clock.now)
    await credential_store.upsert_passkey(alice, passkey)
    await credential_store.upsert_passkey(alice, passkey.record_authentication(4, clock.now))

    await credential_store.upsert_passkey(alice, passkey.renamed(PasskeyName("Desk")))

    stored = await credential_store.get_passkey(alice, PasskeyId(b"c1"))
    assert stored.name == PasskeyName("Desk")
    assert stored.sign_count == 4
    assert stored.last_used_at == clock.now


@pytest.mark.asyncio
async def test_get_passkey_scoped_to_owner(credential_store, clock, alice, bob):
    await credential_store.upsert_passkey(alice, make_passkey(b"c1", "Laptop", clock.now))

    with pytest.raises(PasskeyNotFoundError):
        await credential_store.get_passkey(bob, PasskeyId(b"c1"))


@pytest.mark.asyncio
async def test_list_passkeys_oldest_first(credential_store, clock, alice, bob):
    newer = make_passkey(b"c2", "Phone", clock.now + timedelta(minutes=5))
    older = make_passkey(b"c1", "Laptop", clock.now)
    await credential_store.upsert_passkey(alice, newer)
    await credential_store.upsert_passkey(alice, older)
    await credential_store.upsert_passkey(bob, make_passkey(b"c3", "Key", clock.now))

    assert await credential_store.list_passkeys(alice) == [older, newer]
    assert await credential_store.list_passkeys(UserId("carol")) == []


@pytest.mark.asyncio
async def test_delete_passkey_reports_whether_removed(credential_store, clock, alice, bob):
    await credential_store.upsert_passkey(alice, make_passkey(b"c1", "Laptop", clock.now))

    assert await credential_store.delete_passkey(bob, PasskeyId(b"c1")) is False
    assert await credential_store.delete_passkey(alice, PasskeyId(b"c1")) is True
    assert await credential_store.delete_passkey(alice, PasskeyId(b"c1")) is False
