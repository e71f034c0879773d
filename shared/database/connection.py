"""
Database connection management.
"""
from functools import lru_cache
from typing import Optional
from sqlalchemy import create_engine, Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from shared.configs.config import get_settings


def get_engine(database_url: Optional[str] = None) -> Engine:
    """
    Create a database engine.

    SQLite URLs get check_same_thread disabled so scanner worker threads can
    share the engine; in-memory SQLite additionally uses a single static
    connection so every session sees the same database.

    Args:
        database_url: Database URL (uses settings if None)

    Returns:
        SQLAlchemy engine
    """
    settings = get_settings()
    url = database_url or settings.database_url

    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=settings.database_echo, **kwargs)

    return create_engine(
        url,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
        echo=settings.database_echo
    )


@lru_cache()
def get_default_engine() -> Engine:
    """Engine for the configured database URL, created on first use."""
    return get_engine()


def get_session(engine: Optional[Engine] = None) -> Session:
    """
    Get database session from engine.

    Args:
        engine: SQLAlchemy engine (default engine if None)

    Returns:
        Database session
    """
    SessionFactory = sessionmaker(autocommit=False, autoflush=False, bind=engine or get_default_engine())
    return SessionFactory()


def init_db(engine: Optional[Engine] = None) -> None:
    """Create all tables that do not exist yet."""
    from shared.database.models import Base
    Base.metadata.create_all(bind=engine or get_default_engine())
