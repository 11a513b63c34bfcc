from passkey_auth.stores.base import ChallengeStore, CredentialStore
from passkey_auth.stores.memory import InMemoryChallengeStore, InMemoryCredentialStore

__all__ = [
    "ChallengeStore",
    "CredentialStore",
    "InMemoryChallengeStore",
    "InMemoryCredentialStore",
]
