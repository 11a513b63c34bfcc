# tests/unit/test_app.py
"""Unit tests for the standalone application wiring."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from passkey_auth.api.pipeline import PasskeyUserMapping
from passkey_auth.core.config import Settings
from passkey_auth import main
from passkey_auth.db import session as db_session
from passkey_auth.main import create_app, get_ceremony_service


def test_create_app_mounts_passkey_routes():
    app = create_app(
        PasskeyUserMapping(user_id=lambda request: None),
        Settings(_env_file=None, APP_NAME="Test App"),
    )

    paths = set(app.openapi()["paths"])
    assert app.title == "Test App"
    assert {
        "/auth/passkey/register/options",
        "/auth/passkey/register/verify",
        "/auth/passkey/login/options",
        "/auth/passkey/login/verify",
        "/auth/passkey/list",
        "/auth/passkey/{passkey_id}/name",
        "/auth/passkey/{passkey_id}",
    } <= paths


def test_openapi_documents_request_bodies():
    """Bodies are read by the pipeline, so their schemas are attached by hand."""
    app = create_app(PasskeyUserMapping(user_id=lambda request: None), Settings(_env_file=None))

    paths = app.openapi()["paths"]
    register_body = paths["/auth/passkey/register/verify"]["post"]["requestBody"]
    rename_body = paths["/auth/passkey/{passkey_id}/name"]["put"]["requestBody"]

    register_schema = register_body["content"]["application/json"]["schema"]
    assert register_schema["required"] == ["credential"]
    assert set(register_schema["properties"]) == {"credential", "name"}
    assert rename_body["content"]["application/json"]["schema"]["title"] == "RenameRequest"


def test_get_ceremony_service_reads_app_state():
    request = MagicMock()

    assert get_ceremony_service(request) is request.app.state.passkey_service


def test_initialize_db_resources_requires_url(monkeypatch):
    monkeypatch.setattr(db_session, "SessionLocal", None)
    monkeypatch.setattr(db_session.settings, "DATABASE_URL", None)

    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        db_session.initialize_db_resources()


@pytest.mark.asyncio
async def test_dispose_without_engine_is_noop(monkeypatch):
    monkeypatch.setattr(db_session, "async_engine", None)

    await db_session.dispose_db_resources()

    assert db_session.async_engine is None


@pytest.mark.asyncio
async def test_lifespan_uses_security_log_path_from_app_settings(monkeypatch):
    redis_cls = MagicMock()
    redis_cls.from_url.return_value.aclose = AsyncMock()
    configure = MagicMock()
    monkeypatch.setattr(main, "Redis", redis_cls)
    monkeypatch.setattr(main, "initialize_db_resources", MagicMock(return_value=MagicMock()))
    monkeypatch.setattr(main, "dispose_db_resources", AsyncMock())
    monkeypatch.setattr(main.security_log, "configure", configure)
    app_settings = Settings(
        _env_file=None,
        SECURITY_LOG_PATH="/var/log/custom/security.log",
        DATABASE_URL="postgresql+asyncpg://db/passkeys",
    )
    app = create_app(PasskeyUserMapping(user_id=lambda request: None), app_settings)

    async with app.router.lifespan_context(app):
        assert app.state.passkey_service is not None

    configure.assert_called_once_with(Path("/var/log/custom/security.log"))
    main.dispose_db_resources.assert_awaited_once()
