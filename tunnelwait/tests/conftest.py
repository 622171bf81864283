"""
Shared fixtures for tunnelwait unit tests.
Uses SQLite in-memory for DB tests to avoid requiring a real PostgreSQL connection.
TomTom calls are replaced by helpers.FakeClient.

The root conftest.py adds tunnelwait/ to sys.path so bare imports work.
"""

import pytest
from sqlalchemy import create_engine


@pytest.fixture(autouse=True)
def no_database_url(monkeypatch):
    """Ensure DATABASE_URL is unset so store code uses the no-DB fallback path."""
    monkeypatch.delenv("DATABASE_URL", raising=False)


@pytest.fixture()
def sqlite_engine():
    """In-memory SQLite engine with all tunnelwait tables created."""
    from db import Base
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()
