"""Shared pytest fixtures for replica tests."""

from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from replica.adapter.image import write_png
from replica.db.schema import Base
from tests.images import solid_rgba


@pytest.fixture
def engine():
    """Create an in-memory SQLite engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def session(engine):
    """Create a database session for testing."""
    Session = sessionmaker(bind=engine)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def white_png(tmp_path: Path) -> Path:
    """A 20x10 white PNG on disk."""
    return write_png(tmp_path / "white.png", solid_rgba(20, 10))
