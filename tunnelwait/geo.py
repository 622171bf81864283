"""
Geo helpers for corridor sampling.

Traffic-flow providers answer for the road segment nearest to a point, so a
tunnel corridor is covered by sampling evenly spaced points between its two
portals.
"""

from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class Coordinate:
    """A WGS84 (lat, lon) pair."""
    lat: float
    lon: float

    def as_param(self) -> str:
        """Render as the `lat,lon` string the TomTom endpoints expect."""
        return f"{self.lat},{self.lon}"


def _lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def interpolate(a: Coordinate, b: Coordinate, n: int = 3) -> List[Coordinate]:
    """
    Return n points linearly spaced from a to b.

    Both endpoints are included when n >= 2; n == 1 yields [a].
    """
    points = []
    for i in range(n):
        t = 0.0 if n == 1 else i / (n - 1)
        points.append(Coordinate(lat=_lerp(a.lat, b.lat, t), lon=_lerp(a.lon, b.lon, t)))
    return points
