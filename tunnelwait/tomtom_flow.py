"""
Flow-signal fetcher.

Samples TomTom Flow Segment Data at points along a corridor. A point that
fails on every attempt is skipped; it never aborts the rest of the chain.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from aggregator import round_half_up
from geo import Coordinate
from tomtom_client import ProviderError, TomTomClient

logger = logging.getLogger(__name__)

MAX_FLOW_WORKERS = 8


@dataclass
class FlowChain:
    direction: str
    travel_seconds: int
    raw: List[Dict[str, Any]] = field(default_factory=list)
    extras: List[int] = field(default_factory=list)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def extra_seconds(flow: Optional[Dict[str, Any]]) -> Optional[int]:
    """
    Extra travel time over free flow for one flow response.

    None when the response has no segment data, 0 when the segment is
    running at or faster than free flow.
    """
    seg = (flow or {}).get("flowSegmentData")
    if not seg:
        return None
    current = seg.get("currentTravelTime")
    free = seg.get("freeFlowTravelTime")
    if _is_number(current) and _is_number(free) and current >= free:
        return current - free
    return 0


def get_flow_chain(points: Sequence[Coordinate], client: TomTomClient, direction: str) -> FlowChain:
    """
    Fetch flow data for every point and total the current travel times.

    travel_seconds is the sum of `currentTravelTime` over the points that
    answered, not a delay. The per-point delays are kept in `extras`.
    """
    raw = []
    extras = []
    total = 0

    for point in points:
        try:
            data = client.flow_segment(point)
        except ProviderError as e:
            logger.warning(f"Flow point {point.as_param()} skipped: {e}")
            continue

        raw.append(data)
        seg = (data or {}).get("flowSegmentData") or {}
        current = seg.get("currentTravelTime")
        if _is_number(current):
            total += current

        extra = extra_seconds(data)
        if extra is not None:
            extras.append(extra)

    return FlowChain(direction=direction, travel_seconds=round_half_up(total), raw=raw, extras=extras)


def sample_flow_extras(points: Sequence[Coordinate],
                       client: TomTomClient) -> Tuple[List[Optional[Dict[str, Any]]], List[int]]:
    """
    Fetch all points concurrently.

    Returns (flows, extras): `flows` is aligned with `points`, holding None
    where a point failed; `extras` holds the extra seconds of the points that
    returned segment data.
    """
    def fetch(point):
        try:
            return client.flow_segment(point)
        except ProviderError as e:
            logger.warning(f"Flow point {point.as_param()} skipped: {e}")
            return None

    if not points:
        return [], []

    with ThreadPoolExecutor(max_workers=min(MAX_FLOW_WORKERS, len(points))) as pool:
        flows = list(pool.map(fetch, points))

    extras = [x for x in (extra_seconds(f) for f in flows) if x is not None]
    return flows, extras
