"""
Validation of manually reported waits.

Reports come from people queueing at a portal, typed in on a phone, so
everything is checked before it reaches the store or the forecaster.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from corridors import canonical_tunnel, to_compass
from forecast import WaitObservation, parse_timestamp

logger = logging.getLogger(__name__)

MAX_WAIT_MINUTES = 720
MAX_LANES = 8
MAX_NOTE_LENGTH = 1000


class InvalidMeasurement(ValueError):
    """A manual report failed validation."""


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _parse_timestamp(value: str) -> datetime:
    dt = parse_timestamp(value)
    if dt is None:
        raise InvalidMeasurement(f"observed_at is not an ISO timestamp: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def validate_measurement(payload: Any) -> Dict[str, Any]:
    """
    Check a manual report and return it normalised.

    The tunnel becomes its canonical id, the direction a compass letter valid
    for the tunnel's axis, and observed_at an aware datetime (now if absent).
    Raises InvalidMeasurement on the first problem found.
    """
    if not isinstance(payload, dict):
        raise InvalidMeasurement("payload must be an object")

    tunnel = canonical_tunnel(payload.get("tunnel"))
    if tunnel is None:
        raise InvalidMeasurement(f"unknown tunnel: {payload.get('tunnel')!r}")

    direction = payload.get("direction")
    compass = to_compass(tunnel, direction) if isinstance(direction, str) else None
    if compass is None:
        raise InvalidMeasurement(f"direction {direction!r} is not valid for {tunnel}")

    wait = payload.get("wait_minutes")
    if not _is_int(wait) or wait < 0 or wait > MAX_WAIT_MINUTES:
        raise InvalidMeasurement(f"wait_minutes must be an integer in 0..{MAX_WAIT_MINUTES}")

    lanes = payload.get("lanes_open")
    if lanes is not None and (not _is_int(lanes) or lanes < 0 or lanes > MAX_LANES):
        raise InvalidMeasurement(f"lanes_open must be an integer in 0..{MAX_LANES}")

    note = payload.get("note")
    if note is not None and (not isinstance(note, str) or len(note) > MAX_NOTE_LENGTH):
        raise InvalidMeasurement(f"note must be text of at most {MAX_NOTE_LENGTH} characters")

    observed_at = payload.get("observed_at")
    if observed_at is None:
        observed_at = datetime.now(timezone.utc)
    elif isinstance(observed_at, str):
        observed_at = _parse_timestamp(observed_at)
    else:
        raise InvalidMeasurement("observed_at must be an ISO timestamp string")

    lat = payload.get("lat")
    if lat is not None and (not _is_number(lat) or not -90 <= lat <= 90):
        raise InvalidMeasurement("lat must be within -90..90")

    lon = payload.get("lon")
    if lon is not None and (not _is_number(lon) or not -180 <= lon <= 180):
        raise InvalidMeasurement("lon must be within -180..180")

    return {
        "tunnel": tunnel,
        "direction": compass,
        "wait_minutes": wait,
        "lanes_open": lanes,
        "note": note,
        "observed_at": observed_at,
        "lat": lat,
        "lon": lon,
        "source": "manual",
    }


def to_observation(measurement: Dict[str, Any]) -> WaitObservation:
    """Turn a validated measurement into a forecaster observation."""
    return WaitObservation(
        tunnel=measurement["tunnel"],
        direction=measurement["direction"],
        minutes=measurement["wait_minutes"],
        noted_at=measurement["observed_at"],
        source=measurement.get("source", "manual"),
    )
