"""Database session management for the session index.

SQLite engines are cached per resolved path and configured for use from
FastAPI request threads and the worker alike.
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from replica.core.config import get_settings
from replica.db.schema import Base

# Module-level caches keyed by resolved db path
_engine_cache: dict[str, Engine] = {}
_session_factory_cache: dict[str, sessionmaker] = {}


def _resolve_db_path(db_path: Path | None) -> Path:
    """Explicit path, else REPLICA_DB_PATH, else data/replica.db."""
    return Path(db_path) if db_path is not None else get_settings().db_path


def get_engine(db_path: Path | None = None) -> Engine:
    """Get the (cached) SQLAlchemy engine for a database file.

    Uses StaticPool and check_same_thread=False so one SQLite connection
    can be shared by API request threads.

    Args:
        db_path: SQLite file. Defaults to the configured index path.

    Returns:
        SQLAlchemy engine instance.
    """
    db_path = _resolve_db_path(db_path)
    cache_key = str(db_path.resolve())

    if cache_key in _engine_cache:
        return _engine_cache[cache_key]

    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(
        f"sqlite:///{db_path}",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    _engine_cache[cache_key] = engine
    return engine


def _get_session_factory(db_path: Path | None = None) -> sessionmaker:
    db_path = _resolve_db_path(db_path)
    cache_key = str(db_path.resolve())

    if cache_key not in _session_factory_cache:
        _session_factory_cache[cache_key] = sessionmaker(bind=get_engine(db_path))
    return _session_factory_cache[cache_key]


def get_session(db_path: Path | None = None) -> Session:
    """Get a database session; the caller closes it.

    Prefer get_db_session() for automatic cleanup.
    """
    return _get_session_factory(db_path)()


@contextmanager
def get_db_session(db_path: Path | None = None) -> Generator[Session, None, None]:
    """Context manager for database sessions.

    Commits on successful exit, rolls back on exception, always closes.

    Example:
        with get_db_session() as session:
            repo.create_session(session, entity)
    """
    session = get_session(db_path)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(db_path: Path | None = None) -> None:
    """Create index tables if they do not exist."""
    Base.metadata.create_all(get_engine(db_path))
