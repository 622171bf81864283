"""Test doubles for the TomTom client and payload builders."""

from tomtom_client import ProviderError


class FakeClient:
    """
    Stands in for TomTomClient.

    flow: callable(point) -> dict, or a list of per-call results where an
          Exception instance is raised instead of returned
    route: dict summary, or an Exception instance to raise
    """

    def __init__(self, flow=None, route=None):
        self._flow = flow
        self._route = route
        self.flow_calls = []
        self.route_calls = []

    def flow_segment(self, point):
        self.flow_calls.append(point)
        if self._flow is None:
            raise ProviderError("no flow configured")
        if callable(self._flow):
            return self._flow(point)
        result = self._flow[(len(self.flow_calls) - 1) % len(self._flow)]
        if isinstance(result, Exception):
            raise result
        return result

    def route_summary(self, origin, destination):
        self.route_calls.append((origin, destination))
        if self._route is None:
            raise ProviderError("no route configured")
        if isinstance(self._route, Exception):
            raise self._route
        return self._route


def flow_payload(current, free):
    return {"flowSegmentData": {"currentTravelTime": current, "freeFlowTravelTime": free}}


def route_payload(no_traffic, live):
    return {
        "noTrafficTravelTimeInSeconds": no_traffic,
        "liveTrafficIncidentsTravelTimeInSeconds": live,
    }


