"""
SQLAlchemy engine and session management for the SQL snapshot backend.
"""

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from vocab_srs.constants import DB_NAME

DEFAULT_DB_URL = f"sqlite:///{DB_NAME}"


def create_db_engine(url: Optional[str] = None) -> Engine:
    """Create an engine for the given URL (defaults to the local SQLite file).

    Persistence calls run on a worker thread, so SQLite connections are
    opened with check_same_thread disabled. In-memory SQLite URLs share one
    connection, otherwise every thread would see its own empty database.
    """
    url = url or DEFAULT_DB_URL
    if not url.startswith("sqlite"):
        return create_engine(url)

    if url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url, connect_args={"check_same_thread": False})


@contextmanager
def session_scope(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Session context manager for database operations.

    Usage:
        with session_scope(factory) as session:
            session.add(obj)
            # commit happens automatically on successful exit
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
