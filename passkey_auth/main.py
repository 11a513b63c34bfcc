# passkey_auth/main.py
"""
Standalone FastAPI application wiring the production adapters:
Redis for challenges, SQLAlchemy for credentials, py_webauthn for verification.

Host applications that already run FastAPI can instead mount
`create_passkey_router` on their own app.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis

from passkey_auth.api.pipeline import PasskeyUserMapping
from passkey_auth.api.routers.passkey import create_passkey_router
from passkey_auth.core.config import CeremonyConfig, Settings
from passkey_auth.core.config import settings as default_settings
from passkey_auth.core.security_logger import security_log
from passkey_auth.db.session import dispose_db_resources, initialize_db_resources
from passkey_auth.services.ceremony import CeremonyContext, PasskeyCeremonyService
from passkey_auth.stores.redis_challenges import RedisChallengeStore
from passkey_auth.stores.sqlalchemy_credentials import SqlAlchemyCredentialStore
from passkey_auth.verification.webauthn_engine import WebAuthnVerificationEngine

logger = logging.getLogger(__name__)


def get_ceremony_service(request: Request) -> PasskeyCeremonyService:
    return request.app.state.passkey_service


def create_app(user_mapping: PasskeyUserMapping, app_settings: Settings | None = None) -> FastAPI:
    app_settings = app_settings or default_settings

    logging.basicConfig(
        level=app_settings.LOG_LEVEL.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    @asynccontextmanager
    async def lifespan(app_instance: FastAPI):
        logger.info("Starting %s passkey service...", app_settings.rp_name)
        config = CeremonyConfig.from_settings(app_settings)
        security_log.configure(app_settings.SECURITY_LOG_PATH)
        redis = Redis.from_url(app_settings.REDIS_URL, decode_responses=False)
        session_factory = initialize_db_resources(app_settings.DATABASE_URL)

        app_instance.state.passkey_service = PasskeyCeremonyService(
            context=CeremonyContext(config=config, engine=WebAuthnVerificationEngine()),
            challenges=RedisChallengeStore(redis),
            credentials=SqlAlchemyCredentialStore(session_factory),
            audit=security_log,
        )
        logger.info("Passkey ceremonies ready (rp_id=%s, origin=%s)", config.rp_id, config.origin)

        yield

        logger.info("Shutting down passkey service...")
        await redis.aclose()
        await dispose_db_resources()

    app = FastAPI(title=app_settings.APP_NAME, lifespan=lifespan)
    app.include_router(create_passkey_router(get_ceremony_service, user_mapping))

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception during request: %s %s",
            request.method,
            request.url.path,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "An unexpected internal server error occurred."},
        )

    return app
