"""
Unit tests for db_maintenance.py using SQLite in-memory databases.
"""

import pytest
from datetime import datetime, timezone, timedelta
from sqlalchemy import create_engine, inspect, text

from db_maintenance import enforce_retention_policy, ensure_indexes


@pytest.fixture()
def engine():
    """Bare SQLite in-memory engine (no ORM tables)."""
    eng = create_engine("sqlite:///:memory:")
    yield eng
    eng.dispose()


def _insert(engine, table, observed_at):
    with engine.connect() as conn:
        conn.execute(text(f"INSERT INTO {table} (observed_at) VALUES (:ts)"), {"ts": observed_at})
        conn.commit()


def _count(engine, table):
    with engine.connect() as conn:
        return conn.execute(text(f"SELECT COUNT(*) FROM {table}")).scalar()


@pytest.fixture()
def engine_with_tables(engine):
    with engine.connect() as conn:
        for table in ("queue_readings", "manual_measurements"):
            conn.execute(text(f"""
                CREATE TABLE {table} (
                    id INTEGER PRIMARY KEY,
                    tunnel TEXT,
                    observed_at DATETIME
                )
            """))
        conn.commit()
    return engine


class TestRetention:
    def test_old_rows_deleted(self, engine_with_tables):
        now = datetime.now(timezone.utc)
        _insert(engine_with_tables, "queue_readings", now - timedelta(days=120))
        _insert(engine_with_tables, "queue_readings", now - timedelta(days=1))
        _insert(engine_with_tables, "manual_measurements", now - timedelta(days=100))

        deleted = enforce_retention_policy(engine_with_tables, days=90)

        assert deleted == 2
        assert _count(engine_with_tables, "queue_readings") == 1
        assert _count(engine_with_tables, "manual_measurements") == 0

    def test_shorter_window(self, engine_with_tables):
        now = datetime.now(timezone.utc)
        _insert(engine_with_tables, "queue_readings", now - timedelta(days=10))
        assert enforce_retention_policy(engine_with_tables, days=7) == 1

    def test_missing_tables_do_not_raise(self, engine):
        assert enforce_retention_policy(engine) == 0

    def test_no_engine_is_noop(self):
        assert enforce_retention_policy() == 0


class TestIndexes:
    def test_indexes_created(self, engine_with_tables):
        ensure_indexes(engine_with_tables)
        names = {ix["name"] for ix in inspect(engine_with_tables).get_indexes("queue_readings")}
        assert "idx_queue_readings_tunnel_observed" in names

    def test_missing_tables_do_not_raise(self, engine):
        ensure_indexes(engine)
