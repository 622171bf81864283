"""
Database Maintenance Utilities

- Enforce retention policy on readings and manual measurements
- Ensure indexes used by the forecaster's history query
"""

import logging
import os
from datetime import datetime, timezone, timedelta

from sqlalchemy import create_engine, text

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 90


def get_engine():
    url = os.getenv("DATABASE_URL")
    if not url:
        return None
    return create_engine(url, pool_pre_ping=True)


def enforce_retention_policy(engine=None, days: int = DEFAULT_RETENTION_DAYS) -> int:
    """
    Delete readings and manual measurements older than `days`.

    Returns the number of rows deleted. Missing tables are logged and skipped.
    """
    engine = engine or get_engine()
    if engine is None:
        return 0

    cutoff = datetime.now(timezone.utc) - timedelta(days=days)
    deleted = 0
    with engine.connect() as conn:
        for table in ("queue_readings", "manual_measurements"):
            try:
                result = conn.execute(
                    text(f"DELETE FROM {table} WHERE observed_at < :cutoff"),
                    {"cutoff": cutoff},
                )
                if result.rowcount > 0:
                    logger.info(f"Retention: deleted {result.rowcount} rows from {table} (>{days} days)")
                    deleted += result.rowcount
            except Exception as e:
                logger.warning(f"Retention cleanup failed for {table}: {e}")
        conn.commit()
    return deleted


def ensure_indexes(engine=None):
    """Create the composite indexes behind the history query."""
    engine = engine or get_engine()
    if engine is None:
        return

    indexes = [
        ("idx_queue_readings_tunnel_observed", "queue_readings", "tunnel, observed_at"),
        ("idx_manual_measurements_tunnel_observed", "manual_measurements", "tunnel, observed_at"),
    ]
    with engine.connect() as conn:
        for name, table, cols in indexes:
            try:
                conn.execute(text(f"CREATE INDEX IF NOT EXISTS {name} ON {table} ({cols})"))
                logger.info(f"Index ensured: {name}")
            except Exception as e:
                logger.warning(f"Could not create index {name}: {e}")
        conn.commit()


def run_full_maintenance(days: int = DEFAULT_RETENTION_DAYS):
    """Run all maintenance tasks."""
    engine = get_engine()
    if engine is None:
        logger.error("DATABASE_URL not set, skipping maintenance")
        return

    logger.info("Running database maintenance...")
    enforce_retention_policy(engine, days)
    ensure_indexes(engine)
    logger.info("Database maintenance complete")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")
    from dotenv import load_dotenv
    load_dotenv()
    run_full_maintenance(int(os.getenv("RETENTION_DAYS", str(DEFAULT_RETENTION_DAYS))))
