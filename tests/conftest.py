# tests/conftest.py
from unittest.mock import MagicMock

import pytest

from passkey_auth.core.config import CeremonyConfig
from passkey_auth.core.security_logger import SecurityLogger
from passkey_auth.models.identifiers import UserId
from passkey_auth.services.ceremony import CeremonyContext, PasskeyCeremonyService
from passkey_auth.stores.memory import InMemoryChallengeStore, InMemoryCredentialStore
from tests.fakes import FakeClock, FakeVerificationEngine


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine() -> FakeVerificationEngine:
    return FakeVerificationEngine()


@pytest.fixture
def ceremony_config() -> CeremonyConfig:
    return CeremonyConfig(
        rp_id="example.com",
        rp_name="Example App",
        origin="https://example.com",
    )


@pytest.fixture
def challenge_store(clock) -> InMemoryChallengeStore:
    return InMemoryChallengeStore(clock=clock)


@pytest.fixture
def credential_store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def audit() -> MagicMock:
    return MagicMock(spec=SecurityLogger)


@pytest.fixture
def challenge_values():
    """Predictable challenges: 32 bytes of 0x01, then 0x02, ..."""
    counter = {"n": 0}

    def factory() -> bytes:
        counter["n"] += 1
        return bytes([counter["n"]]) * 32

    return factory


@pytest.fixture
def service(
    ceremony_config, engine, clock, challenge_values, challenge_store, credential_store, audit
) -> PasskeyCeremonyService:
    context = CeremonyContext(
        config=ceremony_config,
        engine=engine,
        clock=clock,
        challenge_factory=challenge_values,
    )
    return PasskeyCeremonyService(context, challenge_store, credential_store, audit=audit)


@pytest.fixture
def alice() -> UserId:
    return UserId("alice")


@pytest.fixture
def bob() -> UserId:
    return UserId("bob")
