# passkey_auth/api/dependencies.py
"""
FastAPI dependencies that let a host application guard its own endpoints
with a fresh passkey assertion.

Usage:
    passkey_verified = require_passkey(get_ceremony_service, user_mapping)

    @router.post("/account/transfer")
    async def transfer(passkey: Annotated[Passkey, Depends(passkey_verified)]):
        ...

The client first calls /login/options, signs the challenge, and sends the
assertion alongside the action's own payload. The endpoint body only runs
once the assertion has been verified.
"""

from collections.abc import Awaitable, Callable
from typing import Annotated

from fastapi import Depends, Request

from passkey_auth.api.pipeline import (
    CeremonyCall,
    CeremonyPipeline,
    PasskeyUserMapping,
    extract_json_field,
    extract_user,
    run_ceremony,
)
from passkey_auth.models.passkey import Passkey
from passkey_auth.services.ceremony import PasskeyCeremonyService


def require_passkey(
    get_service: Callable[..., PasskeyCeremonyService],
    user_mapping: PasskeyUserMapping,
    assertion_field: str = "assertion",
) -> Callable[..., Awaitable[Passkey]]:
    """
    Build a dependency that verifies the caller's passkey assertion.

    Args:
        get_service: FastAPI dependency returning the ceremony service.
        user_mapping: How to find the current user on a request.
        assertion_field: Top-level JSON field carrying the get() result.

    Returns:
        A dependency resolving to the verified Passkey, as stored after this use.
        Failures are raised as HTTPException with the same status codes and
        messages as /login/verify.
    """

    async def authenticate(call: CeremonyCall) -> Passkey:
        return await call.service.authenticate(call.values["user"], call.values["assertion"])

    pipeline = CeremonyPipeline(
        "require_passkey",
        [
            ("user", extract_user(user_mapping)),
            ("assertion", extract_json_field(assertion_field)),
            ("passkey", run_ceremony(authenticate)),
        ],
    )

    async def verified_passkey(
        request: Request,
        service: Annotated[PasskeyCeremonyService, Depends(get_service)],
    ) -> Passkey:
        return await pipeline.run(CeremonyCall(request=request, service=service))

    return verified_passkey
