"""
Database configuration and session factories.

Session factories produced here stamp audit fields on commit, for both the
blocking and the asyncio engine.
"""

from typing import Generator, Optional

import structlog
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.orm import sessionmaker

from .audit import AuditedAsyncSession, AuditedSession, AuditStamper
from .core.config import settings

logger = structlog.get_logger(__name__)


def _safe_url(db_url: str) -> str:
    if "@" in db_url:
        return db_url.split("@")[0] + "@..."
    return db_url


def get_connect_args(db_url: str) -> dict:
    """
    Get database-specific connection arguments.

    Args:
        db_url: Database connection URL

    Returns:
        Connection arguments dict
    """
    if "sqlite" in db_url:
        return {"check_same_thread": False}
    return {}


def create_session_factory(
    database_url: Optional[str] = None, stamper: Optional[AuditStamper] = None
) -> "sessionmaker[AuditedSession]":
    """
    Create a blocking session factory with audit stamping.

    Args:
        database_url: Database URL, defaults to settings.DATABASE_URL
        stamper: Stamper shared by all sessions of the factory

    Returns:
        sessionmaker producing AuditedSession instances
    """
    db_url = database_url or settings.DATABASE_URL
    logger.info("Creating session factory", database=_safe_url(db_url))

    engine = create_engine(db_url, connect_args=get_connect_args(db_url), pool_pre_ping=True)
    return sessionmaker(
        bind=engine,
        class_=AuditedSession,
        autoflush=False,
        audit_stamper=stamper or AuditStamper(),
    )


def create_async_session_factory(
    database_url: Optional[str] = None, stamper: Optional[AuditStamper] = None
) -> "async_sessionmaker[AuditedAsyncSession]":
    """
    Create an asyncio session factory with audit stamping.

    Args:
        database_url: Async database URL, defaults to settings.ASYNC_DATABASE_URL
        stamper: Stamper shared by all sessions of the factory

    Returns:
        async_sessionmaker producing AuditedAsyncSession instances
    """
    db_url = database_url or settings.ASYNC_DATABASE_URL
    logger.info("Creating async session factory", database=_safe_url(db_url))

    engine = create_async_engine(db_url, pool_pre_ping=True)
    return async_sessionmaker(
        bind=engine,
        class_=AuditedAsyncSession,
        autoflush=False,
        expire_on_commit=False,
        audit_stamper=stamper or AuditStamper(),
    )


# Created on first use so importing this module opens no engine
_session_factory: Optional["sessionmaker[AuditedSession]"] = None


def get_session_factory() -> "sessionmaker[AuditedSession]":
    """
    Get the default session factory, creating it on first call.

    Returns:
        sessionmaker bound to settings.DATABASE_URL
    """
    global _session_factory
    if _session_factory is None:
        _session_factory = create_session_factory()
    return _session_factory


def get_db() -> Generator[AuditedSession, None, None]:
    """
    Get database session for dependency injection.

    Yields:
        Audited SQLAlchemy session
    """
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()
