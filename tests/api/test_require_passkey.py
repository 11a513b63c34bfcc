# tests/api/test_require_passkey.py
"""
API tests for guarding a host endpoint with require_passkey.

The host route only runs after the caller's assertion has been verified.
"""

from collections.abc import AsyncIterator
from typing import Annotated
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from fastapi import Depends, FastAPI, Request, status
from httpx import ASGITransport, AsyncClient
from webauthn.helpers import bytes_to_base64url

from passkey_auth.api.dependencies import require_passkey
from passkey_auth.api.pipeline import PasskeyUserMapping
from passkey_auth.models.identifiers import PasskeyId
from passkey_auth.models.passkey import Passkey
from tests.fakes import assertion_response, registration_response

ALICE = {"X-User": "alice"}


@pytest.fixture
def handled() -> list[dict]:
    return []


@pytest.fixture
def app(service, handled) -> FastAPI:
    mapping = PasskeyUserMapping(user_id=lambda request: request.headers.get("X-User"))
    passkey_verified = require_passkey(lambda: service, mapping)
    app = FastAPI()

    @app.post("/account/transfer")
    async def transfer(
        request: Request, passkey: Annotated[Passkey, Depends(passkey_verified)]
    ) -> dict:
        body = await request.json()
        handled.append(body)
        return {
            "amount": body["amount"],
            "passkey": passkey.name.value,
            "sign_count": passkey.sign_count,
        }

    return app


@pytest_asyncio.fixture(scope="function")
async def client(app) -> AsyncIterator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture(scope="function")
async def registered(service, alice) -> None:
    options = await service.registration_options(alice, "Alice")
    await service.register(alice, "Laptop", registration_response(options.challenge, b"cred-1"))


async def signed_assertion(service, user_id, sign_count=1, **extra) -> dict:
    options = await service.authentication_options(user_id)
    return assertion_response(options.challenge, b"cred-1", sign_count, **extra)


@pytest.mark.asyncio
async def test_verified_passkey_reaches_endpoint(
    client, service, alice, registered, handled, credential_store
):
    assertion = await signed_assertion(service, alice, sign_count=4)

    response = await client.post(
        "/account/transfer", headers=ALICE, json={"assertion": assertion, "amount": 25}
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"amount": 25, "passkey": "Laptop", "sign_count": 4}
    assert len(handled) == 1
    stored = await credential_store.get_passkey(alice, PasskeyId(b"cred-1"))
    assert stored.sign_count == 4
    assert stored.last_used_at is not None


@pytest.mark.asyncio
async def test_challenge_is_single_use(client, service, alice, registered, handled):
    assertion = await signed_assertion(service, alice)
    body = {"assertion": assertion, "amount": 25}

    first = await client.post("/account/transfer", headers=ALICE, json=body)
    replay = await client.post("/account/transfer", headers=ALICE, json=body)

    assert first.status_code == status.HTTP_200_OK
    assert replay.status_code == status.HTTP_400_BAD_REQUEST
    assert replay.json()["detail"] == "No passkey ceremony is in progress. Please try again."
    assert len(handled) == 1


@pytest.mark.asyncio
async def test_anonymous_caller_rejected(client, handled):
    response = await client.post("/account/transfer", json={"assertion": {}, "amount": 25})

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json() == {"detail": "Not authenticated."}
    assert handled == []


@pytest.mark.asyncio
async def test_missing_assertion(client, handled):
    response = await client.post("/account/transfer", headers=ALICE, json={"amount": 25})

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["detail"] == "Missing 'assertion' in request."
    assert handled == []


@pytest.mark.asyncio
async def test_bad_signature_is_generic(client, service, alice, registered, handled):
    assertion = await signed_assertion(service, alice, fail="signature does not verify")

    response = await client.post(
        "/account/transfer", headers=ALICE, json={"assertion": assertion, "amount": 25}
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["detail"] == "Passkey verification failed."
    assert "signature" not in response.text
    assert handled == []


@pytest.mark.asyncio
async def test_unknown_credential(client, service, alice, handled):
    options = await service.authentication_options(alice)
    assertion = assertion_response(options.challenge, b"never-registered", 1)

    response = await client.post(
        "/account/transfer", headers=ALICE, json={"assertion": assertion, "amount": 25}
    )

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["detail"] == "Passkey not found."
    assert handled == []


@pytest.mark.asyncio
async def test_store_outage_is_server_error(
    client, service, alice, registered, handled, credential_store, monkeypatch
):
    assertion = await signed_assertion(service, alice)
    monkeypatch.setattr(
        credential_store, "get_passkey", AsyncMock(side_effect=RuntimeError("db down"))
    )

    response = await client.post(
        "/account/transfer", headers=ALICE, json={"assertion": assertion, "amount": 25}
    )

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert "db down" not in response.text
    assert handled == []


@pytest.mark.asyncio
async def test_custom_assertion_field(service, alice, registered):
    mapping = PasskeyUserMapping(user_id=lambda request: request.headers.get("X-User"))
    app = FastAPI()

    @app.post("/danger")
    async def danger(
        passkey: Annotated[
            Passkey, Depends(require_passkey(lambda: service, mapping, assertion_field="webauthn"))
        ],
    ) -> dict:
        return {"id": passkey.id.to_base64url()}

    assertion = await signed_assertion(service, alice)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        response = await ac.post("/danger", headers=ALICE, json={"webauthn": assertion})

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"id": bytes_to_base64url(b"cred-1")}
