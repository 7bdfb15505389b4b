"""Shared fixtures for backend tests."""

import os
import tempfile

# Keep the module-level engine away from the project database; must run
# before cityweather.config is imported.
os.environ.setdefault(
    "CITYWEATHER_DB_PATH",
    os.path.join(tempfile.mkdtemp(prefix="cityweather-test-"), "test.db"),
)

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from cityweather.models.database import init_database  # noqa: E402
from cityweather.services.history_repository import HistoryRepository  # noqa: E402


@pytest.fixture
def session_factory():
    """Session factory bound to a fresh in-memory SQLite database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_database(engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.fixture
def repository(session_factory):
    return HistoryRepository(session_factory)
