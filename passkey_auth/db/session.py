# passkey_auth/db/session.py
import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from passkey_auth.core.config import settings

logger = logging.getLogger(__name__)

async_engine: AsyncEngine | None = None
SessionLocal: async_sessionmaker[AsyncSession] | None = None


def initialize_db_resources(database_url: str | None = None) -> async_sessionmaker[AsyncSession]:
    """
    Create the async engine and session maker once per process.

    Called from the application lifespan. Returns the session maker so callers
    can hand it straight to SqlAlchemyCredentialStore.
    """
    global async_engine, SessionLocal

    if SessionLocal is not None:
        logger.info("Database resources already initialized.")
        return SessionLocal

    url = database_url or settings.DATABASE_URL
    if not url:
        logger.critical("DATABASE_URL is not configured.")
        raise RuntimeError("DATABASE_URL is not configured; cannot create the credential store.")

    logger.info("Initializing asynchronous database engine (%s).", url.split("://")[0])
    engine = create_async_engine(url, pool_pre_ping=True, echo=settings.DB_ECHO)
    SessionLocal = async_sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
        class_=AsyncSession,
    )
    async_engine = engine
    return SessionLocal


async def dispose_db_resources() -> None:
    global async_engine, SessionLocal
    if async_engine is None:
        logger.info("No database engine to dispose.")
        return
    logger.info("Disposing asynchronous database engine.")
    await async_engine.dispose()
    async_engine = None
    SessionLocal = None
