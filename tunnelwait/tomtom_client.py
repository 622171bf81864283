"""
TomTom API client.

One client (and one requests.Session) is built per process and passed to the
fetchers. Every call gets a per-attempt timeout and a bounded number of
attempts; when all attempts fail a ProviderError is raised and the caller
decides whether that source is simply absent.
"""

import logging
from typing import Any, Dict, Optional

import requests

from geo import Coordinate

logger = logging.getLogger(__name__)

API_BASE = "https://api.tomtom.com"
FLOW_PATH = "/traffic/services/4/flowSegmentData/absolute/10/json"
ROUTING_PATH = "/routing/1/calculateRoute"

FETCH_ATTEMPTS = 2
FETCH_TIMEOUT = 4.0  # seconds, per attempt

USER_AGENT = "TunnelWait/1.0"


class ProviderError(RuntimeError):
    """A provider call failed on every attempt."""


class TomTomClient:
    def __init__(self, api_key: str, base_url: str = API_BASE,
                 attempts: int = FETCH_ATTEMPTS, timeout: float = FETCH_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.attempts = max(1, attempts)
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        })

    def fetch_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET a JSON document, retrying up to `attempts` times."""
        query = {"key": self.api_key}
        query.update(params or {})
        url = f"{self.base_url}{path}"

        last_error: Optional[Exception] = None
        for attempt in range(1, self.attempts + 1):
            try:
                resp = self.session.get(url, params=query, timeout=self.timeout)
                resp.raise_for_status()
                return resp.json()
            except (requests.RequestException, ValueError) as e:
                last_error = e
                logger.debug(f"TomTom {path} attempt {attempt}/{self.attempts} failed: {e}")

        raise ProviderError(f"TomTom {path} failed after {self.attempts} attempts: {last_error}")

    def flow_segment(self, point: Coordinate) -> Dict[str, Any]:
        """Flow Segment Data for the road segment nearest to `point`."""
        return self.fetch_json(FLOW_PATH, {"point": point.as_param()})

    def route_summary(self, origin: Coordinate, destination: Coordinate) -> Dict[str, Any]:
        """
        Route summary with both traffic-free and live travel times.

        Raises ProviderError if the response carries no route.
        """
        path = f"{ROUTING_PATH}/{origin.as_param()}:{destination.as_param()}/json"
        data = self.fetch_json(path, {
            "traffic": "true",
            "computeTravelTimeFor": "all",
            "routeType": "fastest",
        })
        try:
            return data["routes"][0]["summary"]
        except (KeyError, IndexError, TypeError):
            raise ProviderError(f"TomTom routing returned no route for {origin.as_param()} -> {destination.as_param()}")

    def close(self):
        self.session.close()
