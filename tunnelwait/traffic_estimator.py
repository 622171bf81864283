"""
Fused wait-time estimator.

For one tunnel + direction, the routing delay of the portal-to-portal path
and the flow chain sampled along the corridor are fetched concurrently and
combined with a worst-of (max) rule, since either signal alone tends to
undercount. Provider failures only remove a source; when both are gone the
estimate is None.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from aggregator import round_half_up
from corridors import DEFAULT_SAMPLE_POINTS, resolve_corridor
from tomtom_client import TomTomClient
from tomtom_flow import FlowChain, get_flow_chain
from tomtom_routing import RouteDelay, get_route_delay

logger = logging.getLogger(__name__)

METHOD_ROUTING = "routing"
METHOD_FLOW = "flow"
METHOD_FUSED = "max(routeDelta, flowChain)"


@dataclass
class Estimation:
    direction: str
    wait_minutes: Optional[int]
    components: Dict[str, Optional[int]]
    method: str
    raw: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        """Shape handed to the result sink."""
        return {
            "direction": self.direction,
            "waitMinutes": self.wait_minutes,
            "components": dict(self.components),
            "method": self.method,
            "raw": self.raw,
        }


def _result(future, label: str, tunnel: str, direction: str):
    try:
        return future.result()
    except Exception as e:
        logger.warning(f"{label} unavailable for {tunnel}/{direction}: {e}")
        return None


def estimate_wait(tunnel: str, direction: str, client: TomTomClient,
                  n_points: int = DEFAULT_SAMPLE_POINTS) -> Optional[Estimation]:
    """
    Estimate the current wait in minutes for one tunnel direction.

    Returns None when the tunnel/direction pair does not resolve to a
    corridor or when neither source produced data.
    """
    route_cfg = resolve_corridor(tunnel, direction, n_points)
    if route_cfg is None:
        logger.warning(f"No corridor for {tunnel}/{direction}")
        return None
    compass = route_cfg.direction

    with ThreadPoolExecutor(max_workers=2) as pool:
        route_future = pool.submit(get_route_delay, route_cfg.origin, route_cfg.destination, client, compass)
        flow_future = pool.submit(get_flow_chain, route_cfg.points, client, compass)
        route: Optional[RouteDelay] = _result(route_future, "Route delay", tunnel, compass)
        flow: Optional[FlowChain] = _result(flow_future, "Flow chain", tunnel, compass)

    # a chain where no point answered carries no signal
    if flow is not None and not flow.raw:
        logger.warning(f"Flow chain unavailable for {tunnel}/{compass}: no point answered")
        flow = None

    if route is None and flow is None:
        logger.warning(f"No traffic source available for {tunnel}/{compass}")
        return None

    route_delta = route.delay_seconds if route else 0
    flow_chain = flow.travel_seconds if flow else 0
    fused_seconds = max(route_delta, flow_chain)

    if route and flow:
        method = METHOD_FUSED
    elif route:
        method = METHOD_ROUTING
    else:
        method = METHOD_FLOW

    estimation = Estimation(
        direction=compass,
        wait_minutes=round_half_up(fused_seconds / 60),
        components={
            "routeDeltaSec": route.delay_seconds if route else None,
            "flowChainSec": flow.travel_seconds if flow else None,
        },
        method=method,
        raw={
            "route": route.raw if route else None,
            "flow": flow.raw if flow else None,
        },
    )
    logger.info(
        f"Estimate {tunnel}/{compass}: {estimation.wait_minutes} min "
        f"(route={estimation.components['routeDeltaSec']}s, "
        f"flow={estimation.components['flowChainSec']}s, method={method})"
    )
    return estimation
