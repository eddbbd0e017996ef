"""Engine and session factory for the messaging store.

SQLite is the default backend; any SQLAlchemy URL works through
``DATABASE_URL``.
"""

from __future__ import annotations

from collections.abc import Generator
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from murmur.core.settings import settings


class Base(DeclarativeBase):
    """Declarative base shared by all ORM models."""


# Registers the ORM tables on Base.metadata.
import murmur.models  # noqa: E402,F401

_connect_args: dict[str, Any] = {}
if settings.effective_database_url.startswith("sqlite"):
    # Socket handlers run storage work on worker threads.
    _connect_args["check_same_thread"] = False

engine = create_engine(
    settings.effective_database_url,
    pool_pre_ping=True,
    echo=settings.sql_debug,
    connect_args=_connect_args,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Yield a session scoped to one request or socket."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables() -> None:
    """Create the messaging tables if they do not exist."""
    Base.metadata.create_all(bind=engine)
