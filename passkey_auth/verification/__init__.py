from passkey_auth.verification.base import (
    RegisteredCredential,
    VerificationEngine,
    VerifiedAssertion,
)

__all__ = ["RegisteredCredential", "VerificationEngine", "VerifiedAssertion"]
