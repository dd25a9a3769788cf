"""SQLAlchemy engine and session factory.

The engine is built once in the application lifespan and stored on
``app.state``; request handlers obtain sessions through :func:`get_db`.
"""

import os
from collections.abc import Iterator

from fastapi import Request
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from nexus.core.logging import get_logger

logger = get_logger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all models."""


def make_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine with dialect-specific configuration.

    - PostgreSQL: connection pooling with pre-ping
    - SQLite: check_same_thread=False, parent directory created on demand
    """
    connect_args: dict = {}
    kwargs: dict = {"echo": echo, "pool_pre_ping": True}

    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        _ensure_sqlite_dir(database_url)
    elif database_url.startswith("postgresql"):
        kwargs["pool_size"] = 10
        kwargs["max_overflow"] = 20

    kwargs["connect_args"] = connect_args
    return create_engine(database_url, **kwargs)


def _ensure_sqlite_dir(database_url: str) -> None:
    path = database_url.split("///", 1)[-1]
    if path and path != ":memory:":
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


def verify_database_connection(engine: Engine) -> bool:
    """Check that the database answers a trivial query."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as exc:
        logger.error("Database connection failed", data={"error": str(exc)})
        return False


def get_db(request: Request) -> Iterator[Session]:
    """FastAPI dependency yielding a session from the app's session factory."""
    session_factory: sessionmaker[Session] = request.app.state.session_factory
    db = session_factory()
    try:
        yield db
    finally:
        db.close()
