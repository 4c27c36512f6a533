"""Database configuration and session management.

This module initializes the SQLAlchemy engine, session factory,
and declarative base, and provides a database session dependency
for FastAPI routes.
"""

from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from .core import get_settings


settings = get_settings()


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


def configure_sqlite(target: Engine) -> None:
    """
    Prepare every SQLite connection of an engine.

    Turns on foreign key enforcement, which SQLite ignores unless the
    pragma is set per connection, and replaces the ASCII-only ``lower()``
    SQL function with Python's Unicode-aware ``str.lower``. Other
    backends are left untouched.

    Args:
        target (Engine): Engine to configure.
    """
    if target.dialect.name != "sqlite":
        return

    @event.listens_for(target, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
        dbapi_connection.create_function(
            "lower", 1, _unicode_lower, deterministic=True
        )


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        return {
            "check_same_thread": False,
            "timeout": settings.SQLITE_BUSY_TIMEOUT_SECONDS,
        }
    return {}


engine = create_engine(
    settings.DATABASE_URL,
    connect_args=_connect_args(settings.DATABASE_URL),
    future=True,
)
"""SQLAlchemy engine bound to the configured database URL."""

configure_sqlite(engine)


SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    future=True,
)
"""Factory for database sessions."""


Base = declarative_base()
"""Declarative base class for SQLAlchemy models."""


def get_db():
    """
    Provide a SQLAlchemy database session.

    This function is used as a FastAPI dependency.
    It yields a database session and ensures it is
    properly closed after the request is completed.
    """

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(db: Session):
    """
    Run a block as one logical write.

    The outermost ``atomic`` block commits on success and rolls back on
    any exception; nested blocks join the enclosing transaction, so
    services can call each other without committing halfway.

    Args:
        db (Session): Session to operate on.
    """
    depth = db.info.get("atomic_depth", 0)
    db.info["atomic_depth"] = depth + 1
    try:
        yield db
        if depth == 0:
            db.commit()
    except Exception:
        if depth == 0:
            db.rollback()
        raise
    finally:
        db.info["atomic_depth"] = depth
