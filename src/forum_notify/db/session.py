"""Database session configuration."""

from __future__ import annotations

from collections.abc import Generator, Iterator
from contextlib import contextmanager

from sqlalchemy import Connection, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from forum_notify.core.settings import settings


class Base(DeclarativeBase):
    """Declarative base shared by all forum models."""


# Ensure model modules are imported so that metadata is populated for Alembic.
import forum_notify.models  # noqa: E402,F401

engine = create_engine(
    settings.effective_database_url,
    pool_pre_ping=True,
    echo=settings.sql_debug,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Yield a database session for dependency injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def rolled_back_session(connection: Connection) -> Iterator[Session]:
    """Yield a session on ``connection`` whose work is discarded on exit.

    Commits made through the session only release savepoints inside an outer
    savepoint that is rolled back when the block ends.
    """
    scope = connection.begin_nested()
    db = Session(bind=connection, autoflush=False, join_transaction_mode="create_savepoint")
    try:
        yield db
    finally:
        db.close()
        scope.rollback()
