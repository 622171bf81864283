"""
Tunnel Wait Sampler

Runs on a schedule, producing wait readings for every tunnel and direction:

1. Fused estimate: routing delay + flow chain, worst-of (source "tomtom-fused")
2. Trimmed flow: per-point flow delays along the corridor, trimmed sum
   (source "tomtom")
3. Operator pages: optional scrape adapters, injected as callables
   fn(tunnel) -> {direction: minutes} | None

Readings are handed to a save callback (the database by default) and feed
the time-of-week forecaster.
"""

import os
import time
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from dotenv import load_dotenv

from aggregator import round_half_up, summarize_extras
from corridors import TUNNELS, directions_for, reading_direction, resolve_corridor, to_compass
from tomtom_client import TomTomClient
from tomtom_flow import sample_flow_extras
from traffic_estimator import estimate_wait

load_dotenv()

TOMTOM_API_KEY = os.getenv('TOMTOM_API_KEY')
SAMPLE_INTERVAL = int(os.getenv('SAMPLE_INTERVAL', '300'))
FLOW_POINTS = int(os.getenv('FLOW_POINTS', '8'))
RETENTION_DAYS = int(os.getenv('RETENTION_DAYS', '90'))
# Run retention once every this many cycles
MAINTENANCE_EVERY = int(os.getenv('MAINTENANCE_EVERY', '288'))

# Readings above this are treated as provider noise and capped
MAX_WAIT_MINUTES = 600
FLOW_CONFIDENCE = 0.7

logger = logging.getLogger(__name__)

Scraper = Callable[[str], Optional[Dict[str, float]]]


def _reading(tunnel: str, compass: str, minutes: int, source: str, observed_at: datetime,
             method: Optional[str] = None, confidence: Optional[float] = None,
             raw_payload=None) -> dict:
    corridor = TUNNELS[tunnel]
    return {
        'observed_at': observed_at,
        'tunnel': tunnel,
        'location': corridor.name,
        'lane': corridor.lane,
        'direction': reading_direction(tunnel, compass),
        'wait_minutes': minutes,
        'source': source,
        'method': method,
        'confidence': confidence,
        'raw_payload': raw_payload,
    }


def sample_flow_direction(tunnel: str, compass: str, client: TomTomClient,
                          observed_at: datetime, n_points: int = FLOW_POINTS) -> Optional[dict]:
    """Trimmed-sum flow reading for one direction, None if no point answered."""
    route = resolve_corridor(tunnel, compass, n_points)
    if route is None:
        return None

    flows, extras = sample_flow_extras(route.points, client)
    if not extras:
        logger.warning(f"Flow sampling {tunnel}/{compass}: no point returned segment data")
        return None

    minutes = min(MAX_WAIT_MINUTES, round_half_up(summarize_extras(extras) / 60))
    return _reading(
        tunnel, compass, minutes, 'tomtom', observed_at,
        method='trimmed-flow', confidence=FLOW_CONFIDENCE,
        raw_payload={
            'provider': 'tomtom',
            'points': [{'lat': p.lat, 'lon': p.lon} for p in route.points],
            'flows': flows,
        },
    )


def sample_tunnel(tunnel: str, client: TomTomClient, observed_at: Optional[datetime] = None,
                  n_points: int = FLOW_POINTS) -> List[dict]:
    """Fused and trimmed-flow readings for both directions of one tunnel."""
    observed_at = observed_at or datetime.now(timezone.utc)
    readings = []

    for compass in directions_for(tunnel):
        estimation = estimate_wait(tunnel, compass, client)
        if estimation is not None and estimation.wait_minutes is not None:
            readings.append(_reading(
                tunnel, compass, min(MAX_WAIT_MINUTES, estimation.wait_minutes),
                'tomtom-fused', observed_at,
                method=estimation.method,
                raw_payload={'components': estimation.components, **estimation.raw},
            ))

        flow_reading = sample_flow_direction(tunnel, compass, client, observed_at, n_points)
        if flow_reading is not None:
            readings.append(flow_reading)

    return readings


def scrape_readings(tunnel: str, scrapers: Dict[str, Scraper],
                    observed_at: Optional[datetime] = None) -> List[dict]:
    """Readings from operator-page adapters; adapter failures are logged and skipped."""
    observed_at = observed_at or datetime.now(timezone.utc)
    readings = []

    for source, scrape in scrapers.items():
        try:
            waits = scrape(tunnel)
        except Exception as e:
            logger.warning(f"Scraper {source} failed for {tunnel}: {e}")
            continue
        if not waits:
            continue

        for direction, minutes in waits.items():
            compass = to_compass(tunnel, direction)
            if compass is None or minutes is None or minutes < 0:
                logger.debug(f"Scraper {source}: ignoring {tunnel}/{direction}={minutes}")
                continue
            readings.append(_reading(
                tunnel, compass, min(MAX_WAIT_MINUTES, round_half_up(minutes)),
                source, observed_at, method='scrape',
            ))

    return readings


def collect_readings(client: TomTomClient, save_fn,
                     tunnels: Optional[Iterable[str]] = None,
                     scrapers: Optional[Dict[str, Scraper]] = None,
                     n_points: int = FLOW_POINTS) -> dict:
    """
    Single sampling cycle over the given tunnels (all by default).

    Args:
        client:   TomTom client shared across cycles
        save_fn:  callable(readings: list[dict]) -> int (count saved)
        scrapers: optional {source: fn(tunnel) -> {direction: minutes}}

    Returns dict with counts for logging.
    """
    observed_at = datetime.now(timezone.utc)
    result = {'readings': 0, 'saved': 0, 'failed_tunnels': 0}
    all_readings = []

    for tunnel in tunnels or TUNNELS.keys():
        try:
            rows = sample_tunnel(tunnel, client, observed_at, n_points)
            if scrapers:
                rows.extend(scrape_readings(tunnel, scrapers, observed_at))
        except Exception as e:
            logger.error(f"Sampling {tunnel} failed: {e}")
            result['failed_tunnels'] += 1
            continue
        all_readings.extend(rows)

    result['readings'] = len(all_readings)
    if not all_readings:
        logger.warning("Sampling cycle produced no readings")
        return result

    result['saved'] = save_fn(all_readings)
    logger.info(f"Sampling cycle: {result['readings']} readings, {result['saved']} saved")
    return result


def run_sampler():
    """Main loop for scheduled sampling."""
    from db import get_db_engine, save_readings
    from db_maintenance import enforce_retention_policy, ensure_indexes

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    if not TOMTOM_API_KEY:
        logger.error("TOMTOM_API_KEY not set")
        return

    engine = get_db_engine()
    if engine is None:
        logger.warning("DATABASE_URL not set - readings will only be logged")
    else:
        ensure_indexes(engine)

    client = TomTomClient(TOMTOM_API_KEY)
    logger.info(f"Sampler started, every {SAMPLE_INTERVAL}s, {FLOW_POINTS} flow points per corridor")

    cycles = 0
    consecutive_errors = 0
    try:
        while True:
            try:
                collect_readings(client, save_readings)
                cycles += 1
                consecutive_errors = 0
                if cycles % MAINTENANCE_EVERY == 0:
                    enforce_retention_policy(engine, RETENTION_DAYS)
                time.sleep(SAMPLE_INTERVAL)
            except KeyboardInterrupt:
                logger.info("Sampler stopped")
                break
            except Exception as e:
                consecutive_errors += 1
                backoff = min(SAMPLE_INTERVAL, 30 * consecutive_errors)
                logger.error(f"Sampling error (attempt {consecutive_errors}, backoff {backoff}s): {e}")
                time.sleep(backoff)
    finally:
        client.close()


if __name__ == "__main__":
    run_sampler()
