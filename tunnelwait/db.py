"""
Database models and utilities for tunnel wait persistence.
Requires DATABASE_URL environment variable; without it every function is a
no-op so the sampler can still run and log estimates.
"""

from sqlalchemy import (
    create_engine, Column, Integer, String, Float, DateTime, Text, JSON, UniqueConstraint,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from datetime import datetime, timezone, timedelta
from typing import List, Optional
import os
import logging

from corridors import canonical_tunnel, to_compass
from forecast import WaitObservation
from measurements import validate_measurement

logger = logging.getLogger(__name__)

Base = declarative_base()

# Upper bound on the history window served to the forecaster
MAX_HISTORY_HOURS = 24 * 14


class QueueReading(Base):
    """A wait reading produced by the sampler (fused estimate, flow chain or scrape)."""
    __tablename__ = 'queue_readings'
    __table_args__ = (
        UniqueConstraint('observed_at', 'tunnel', 'direction', 'source', name='uq_queue_reading'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    observed_at = Column(DateTime(timezone=True), index=True, nullable=False)
    tunnel = Column(String(20), index=True, nullable=False)   # canonical tunnel id
    location = Column(String(50))                              # display name
    lane = Column(String(20), nullable=True)                   # road label (A2, T4, ...)
    direction = Column(String(10), nullable=False)             # N2S / S2N / W2E / E2W
    wait_minutes = Column(Integer, nullable=False)
    source = Column(String(20), nullable=False)                # tomtom / tomtom-fused / operator
    method = Column(String(40), nullable=True)                 # estimator method tag
    confidence = Column(Float, nullable=True)
    raw_payload = Column(JSON, nullable=True)


class ManualMeasurement(Base):
    """A wait reported by a person at the tunnel."""
    __tablename__ = 'manual_measurements'

    id = Column(Integer, primary_key=True, autoincrement=True)
    tunnel = Column(String(20), index=True, nullable=False)
    direction = Column(String(12), nullable=False)             # northbound / southbound / N / S ...
    wait_minutes = Column(Integer, nullable=False)
    lanes_open = Column(Integer, nullable=True)
    note = Column(Text, nullable=True)
    observed_at = Column(DateTime(timezone=True), index=True, nullable=False)
    lat = Column(Float, nullable=True)
    lon = Column(Float, nullable=True)
    source = Column(String(20), default='manual')
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))


# Database connection
_engine = None
_SessionLocal = None


def get_db_engine():
    """Get or create database engine."""
    global _engine
    if _engine is None:
        database_url = os.getenv('DATABASE_URL')
        if not database_url:
            return None

        _engine = create_engine(database_url, pool_pre_ping=True)

        # Create tables if they don't exist
        Base.metadata.create_all(_engine)
        logger.info("Database connected and tables created")

    return _engine


def get_session(engine=None):
    """Get a database session, bound to `engine` when one is given."""
    global _SessionLocal
    if engine is not None:
        return sessionmaker(bind=engine)()

    engine = get_db_engine()
    if engine is None:
        return None

    if _SessionLocal is None:
        _SessionLocal = sessionmaker(bind=engine)

    return _SessionLocal()


def _as_utc(dt: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def save_readings(readings: list, engine=None) -> int:
    """
    Save sampler readings. Rows already stored for the same
    (observed_at, tunnel, direction, source) are skipped. Returns count saved.
    """
    session = get_session(engine)
    if session is None:
        return 0

    try:
        existing = set()
        stamps = list({r["observed_at"] for r in readings})
        if stamps:
            rows = session.query(
                QueueReading.observed_at, QueueReading.tunnel,
                QueueReading.direction, QueueReading.source,
            ).filter(QueueReading.observed_at.in_(stamps))
            existing = {(_as_utc(o), t, d, s) for o, t, d, s in rows}

        objects = []
        for r in readings:
            key = (_as_utc(r['observed_at']), r['tunnel'], r['direction'], r['source'])
            if key in existing:
                continue
            existing.add(key)
            objects.append(QueueReading(
                observed_at=r['observed_at'],
                tunnel=r['tunnel'],
                location=r.get('location'),
                lane=r.get('lane'),
                direction=r['direction'],
                wait_minutes=int(r['wait_minutes']),
                source=r['source'],
                method=r.get('method'),
                confidence=r.get('confidence'),
                raw_payload=r.get('raw_payload'),
            ))

        session.bulk_save_objects(objects)
        session.commit()
        return len(objects)
    except SQLAlchemyError as e:
        logger.error(f"Error saving readings to DB: {e}")
        session.rollback()
        return 0
    finally:
        session.close()


def save_manual_measurement(measurement: dict, engine=None) -> Optional[int]:
    """Save one validated manual measurement. Returns the new row id or None."""
    session = get_session(engine)
    if session is None:
        return None

    try:
        row = ManualMeasurement(
            tunnel=measurement['tunnel'],
            direction=measurement['direction'],
            wait_minutes=measurement['wait_minutes'],
            lanes_open=measurement.get('lanes_open'),
            note=measurement.get('note'),
            observed_at=measurement.get('observed_at') or datetime.now(timezone.utc),
            lat=measurement.get('lat'),
            lon=measurement.get('lon'),
            source=measurement.get('source', 'manual'),
        )
        session.add(row)
        session.commit()
        return row.id
    except SQLAlchemyError as e:
        logger.error(f"Error saving manual measurement to DB: {e}")
        session.rollback()
        return None
    finally:
        session.close()


def record_manual_measurement(payload: dict, engine=None) -> Optional[int]:
    """
    Validate a manual report and store it. Returns the new row id, or None
    when there is no database or the insert failed.

    Raises InvalidMeasurement before touching the store.
    """
    measurement = validate_measurement(payload)
    row_id = save_manual_measurement(measurement, engine)
    if row_id is not None:
        logger.info(
            f"Manual measurement {row_id}: {measurement['tunnel']}/{measurement['direction']} "
            f"{measurement['wait_minutes']} min"
        )
    return row_id


def get_observations(hours: int = MAX_HISTORY_HOURS, tunnel: Optional[str] = None,
                     engine=None) -> List[WaitObservation]:
    """
    Readings and manual measurements from the last `hours` (1..14 days),
    normalised to compass directions for the forecaster.
    """
    session = get_session(engine)
    if session is None:
        return []

    hours = max(1, min(MAX_HISTORY_HOURS, int(hours or 24)))
    cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)

    try:
        readings = session.query(QueueReading).filter(QueueReading.observed_at >= cutoff)
        manual = session.query(ManualMeasurement).filter(ManualMeasurement.observed_at >= cutoff)
        if tunnel:
            readings = readings.filter(QueueReading.tunnel == tunnel)
            manual = manual.filter(ManualMeasurement.tunnel == tunnel)

        observations = []
        skipped = 0
        for row in list(readings.order_by(QueueReading.observed_at)) + list(manual.order_by(ManualMeasurement.observed_at)):
            tunnel_id = canonical_tunnel(row.tunnel)
            compass = to_compass(tunnel_id, row.direction) if tunnel_id else None
            if compass is None:
                skipped += 1
                continue
            observations.append(WaitObservation(
                tunnel=tunnel_id,
                direction=compass,
                minutes=row.wait_minutes,
                noted_at=_as_utc(row.observed_at),
                source=row.source,
            ))

        if skipped:
            logger.warning(f"Skipped {skipped} rows with an unknown tunnel/direction")
        return observations
    except SQLAlchemyError as e:
        logger.error(f"Error fetching observations: {e}")
        return []
    finally:
        session.close()
