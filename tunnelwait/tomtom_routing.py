"""Route-delay fetcher: live-traffic minus traffic-free travel time for one path."""

import logging
from dataclasses import dataclass
from typing import Any, Dict

from aggregator import round_half_up
from geo import Coordinate
from tomtom_client import TomTomClient

logger = logging.getLogger(__name__)


@dataclass
class RouteDelay:
    direction: str
    delay_seconds: int
    raw: Dict[str, Any]


def get_route_delay(origin: Coordinate, destination: Coordinate,
                    client: TomTomClient, direction: str) -> RouteDelay:
    """
    Delay on origin -> destination, floored at zero.

    Raises ProviderError when the routing call fails on every attempt.
    """
    summary = client.route_summary(origin, destination)
    no_traffic = float(summary.get("noTrafficTravelTimeInSeconds") or 0)
    live = float(summary.get("liveTrafficIncidentsTravelTimeInSeconds") or 0)
    delay = max(0, round_half_up(live - no_traffic))
    logger.debug(f"Route delay {direction}: live={live:.0f}s no_traffic={no_traffic:.0f}s -> {delay}s")
    return RouteDelay(direction=direction, delay_seconds=delay, raw={"summary": summary})
