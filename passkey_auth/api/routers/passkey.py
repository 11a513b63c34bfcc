# passkey_auth/api/routers/passkey.py
"""
Passkey (WebAuthn) API endpoints.

Provides endpoints for:
- Registering new passkeys
- Verifying the caller with one of their passkeys
- Managing passkeys (list, rename, delete)

How the caller was authenticated before reaching these endpoints is up to
the host application; it plugs in through PasskeyUserMapping.
"""

from collections.abc import Callable
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel

from passkey_auth.api.pipeline import (
    CeremonyCall,
    CeremonyPipeline,
    Failure,
    PasskeyUserMapping,
    StepResult,
    Success,
    extract_display_name,
    extract_json_field,
    extract_user,
    run_ceremony,
)
from passkey_auth.models.identifiers import IdentifierError, PasskeyId
from passkey_auth.schemas.passkey import (
    AuthenticationVerifyRequest,
    PasskeyListResponse,
    PasskeyResponse,
    RegistrationVerifyRequest,
    RenameRequest,
)
from passkey_auth.services.ceremony import PasskeyCeremonyService


def _json_body(model: type[BaseModel]) -> dict[str, Any]:
    """OpenAPI request body for endpoints whose JSON is read by the pipeline."""
    return {
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": model.model_json_schema()}},
        }
    }


async def _path_passkey_id(call: CeremonyCall) -> StepResult:
    parsed = PasskeyId.from_base64url(call.request.path_params.get("passkey_id", ""))
    if isinstance(parsed, IdentifierError):
        return Failure(status.HTTP_400_BAD_REQUEST, "Invalid passkey ID.")
    return Success(parsed)


def build_pipelines(mapping: PasskeyUserMapping) -> dict[str, CeremonyPipeline]:
    """One pipeline per endpoint, keyed by endpoint name."""
    user = ("user", extract_user(mapping))

    async def registration_options(call: CeremonyCall) -> dict[str, Any]:
        options = await call.service.registration_options(
            call.values["user"], call.values["display_name"]
        )
        return options.model_dump(exclude_none=True)

    async def register(call: CeremonyCall) -> dict[str, Any]:
        passkey = await call.service.register(
            call.values["user"], call.values["name"], call.values["credential"]
        )
        return PasskeyResponse.from_info(passkey.to_info()).model_dump(mode="json")

    async def authentication_options(call: CeremonyCall) -> dict[str, Any]:
        options = await call.service.authentication_options(call.values["user"])
        return options.model_dump(exclude_none=True)

    async def authenticate(call: CeremonyCall) -> dict[str, Any]:
        passkey = await call.service.authenticate(call.values["user"], call.values["assertion"])
        return {
            "status": "verified",
            "passkey": PasskeyResponse.from_info(passkey.to_info()).model_dump(mode="json"),
        }

    async def list_passkeys(call: CeremonyCall) -> dict[str, Any]:
        infos = await call.service.list_passkeys(call.values["user"])
        return PasskeyListResponse(
            passkey_count=len(infos),
            passkeys=[PasskeyResponse.from_info(info) for info in infos],
        ).model_dump(mode="json")

    async def rename(call: CeremonyCall) -> dict[str, Any]:
        passkey = await call.service.rename_passkey(
            call.values["user"], call.values["passkey_id"], call.values["name"]
        )
        return {"status": "renamed", "name": passkey.name.value}

    async def delete(call: CeremonyCall) -> dict[str, Any]:
        info = await call.service.delete_passkey(call.values["user"], call.values["passkey_id"])
        return {
            "status": "deleted",
            "message": f"Passkey '{info.name.value}' was successfully deleted",
        }

    return {
        "registration_options": CeremonyPipeline(
            "registration_options",
            [
                user,
                ("display_name", extract_display_name(mapping)),
                ("options", run_ceremony(registration_options)),
            ],
        ),
        "register": CeremonyPipeline(
            "register",
            [
                user,
                ("credential", extract_json_field("credential")),
                ("name", extract_json_field("name", required=False)),
                ("passkey", run_ceremony(register)),
            ],
        ),
        "authentication_options": CeremonyPipeline(
            "authentication_options",
            [user, ("options", run_ceremony(authentication_options))],
        ),
        "authenticate": CeremonyPipeline(
            "authenticate",
            [
                user,
                ("assertion", extract_json_field("assertion")),
                ("result", run_ceremony(authenticate)),
            ],
        ),
        "list": CeremonyPipeline("list", [user, ("passkeys", run_ceremony(list_passkeys))]),
        "rename": CeremonyPipeline(
            "rename",
            [
                user,
                ("passkey_id", _path_passkey_id),
                ("name", extract_json_field("name", required=False)),
                ("result", run_ceremony(rename)),
            ],
        ),
        "delete": CeremonyPipeline(
            "delete",
            [user, ("passkey_id", _path_passkey_id), ("result", run_ceremony(delete))],
        ),
    }


def create_passkey_router(
    get_service: Callable[..., PasskeyCeremonyService],
    user_mapping: PasskeyUserMapping,
    prefix: str = "/auth/passkey",
) -> APIRouter:
    """
    Build the passkey router.

    Args:
        get_service: FastAPI dependency returning the ceremony service.
        user_mapping: How to find the current user on a request.
        prefix: Mount point for the endpoints.
    """
    router = APIRouter(prefix=prefix, tags=["Passkey - WebAuthn"])
    pipelines = build_pipelines(user_mapping)
    Service = Annotated[PasskeyCeremonyService, Depends(get_service)]

    async def run(name: str, request: Request, service: PasskeyCeremonyService) -> Any:
        return await pipelines[name].run(CeremonyCall(request=request, service=service))

    # --- Registration ---

    @router.post("/register/options", summary="Get passkey registration options")
    async def get_registration_options(request: Request, service: Service) -> dict:
        """Options to pass to navigator.credentials.create()."""
        return await run("registration_options", request, service)

    @router.post(
        "/register/verify",
        response_model=PasskeyResponse,
        summary="Verify and complete passkey registration",
        openapi_extra=_json_body(RegistrationVerifyRequest),
    )
    async def verify_registration(request: Request, service: Service) -> dict:
        """Body: {"credential": <create() result>, "name": "..."}."""
        return await run("register", request, service)

    # --- Authentication ---

    @router.post("/login/options", summary="Get passkey authentication options")
    async def get_authentication_options(request: Request, service: Service) -> dict:
        """Options to pass to navigator.credentials.get()."""
        return await run("authentication_options", request, service)

    @router.post(
        "/login/verify",
        summary="Verify a passkey assertion",
        openapi_extra=_json_body(AuthenticationVerifyRequest),
    )
    async def verify_authentication(request: Request, service: Service) -> dict:
        """Body: {"assertion": <get() result>}."""
        return await run("authenticate", request, service)

    # --- Management ---

    @router.get("/list", response_model=PasskeyListResponse, summary="List user's passkeys")
    async def list_passkeys(request: Request, service: Service) -> dict:
        return await run("list", request, service)

    @router.put(
        "/{passkey_id}/name",
        summary="Rename a passkey",
        openapi_extra=_json_body(RenameRequest),
    )
    async def rename_passkey(
        passkey_id: str,  # noqa: ARG001 - documented path parameter, read by the pipeline
        request: Request,
        service: Service,
    ) -> dict:
        return await run("rename", request, service)

    @router.delete("/{passkey_id}", summary="Delete a passkey")
    async def delete_passkey(
        passkey_id: str,  # noqa: ARG001 - documented path parameter, read by the pipeline
        request: Request,
        service: Service,
    ) -> dict:
        return await run("delete", request, service)

    return router
