"""
Database configuration and session management.

This module sets up the SQLAlchemy engine and session factory. PostgreSQL
in production, SQLite for local development and tests.
"""

from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import get_settings

settings = get_settings()

# Create SQLAlchemy engine
# - pool_pre_ping: Verify connections are alive before using them
# - pool_size / max_overflow: only meaningful for server databases
engine_kwargs: dict = {"echo": settings.sql_debug}
if settings.is_sqlite:
    engine_kwargs["connect_args"] = {"check_same_thread": False}
else:
    engine_kwargs.update(pool_pre_ping=True, pool_size=5, max_overflow=10)

engine = create_engine(settings.database_url, **engine_kwargs)

# Create session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

# Base class for declarative models
Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """
    Dependency that provides a database session.

    Usage in FastAPI:
        @app.get("/items")
        def get_items(db: Session = Depends(get_db)):
            ...

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> sessionmaker:
    """
    Dependency that provides the session factory.

    Background work outlives the request-scoped session and opens its own.
    """
    return SessionLocal


def init_db() -> None:
    """
    Initialize the database by creating all tables.

    Note: In production, manage the schema with migrations instead.
    """
    # Import models to ensure they are registered with Base
    from . import models_db  # noqa: F401

    Base.metadata.create_all(bind=engine)
