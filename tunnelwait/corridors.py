"""
Tunnel corridor configuration and direction conventions.

Each tunnel has an axis (north-south or east-west) and two portals:
  a = north portal (NS axis) or west portal (EW axis)
  b = south portal (NS axis) or east portal (EW axis)

Directions are compass letters naming where traffic is heading, so on the
Gotthard "S" is the southbound bore entered at Göschenen and left at Airolo.
Other layers label directions differently (N2S/S2N/E2W/W2E for sampled
readings, northbound/southbound for manual reports); to_compass() is the
single place those labels are translated.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from geo import Coordinate, interpolate

# Points sampled along a corridor by the live estimator
DEFAULT_SAMPLE_POINTS = 3


@dataclass(frozen=True)
class TunnelCorridor:
    """Static corridor definition for one tunnel."""
    name: str
    axis: str                # "NS" or "EW"
    a: Coordinate            # north / west portal
    b: Coordinate            # south / east portal
    lane: Optional[str] = None


@dataclass(frozen=True)
class CorridorRoute:
    """An origin -> destination path plus the flow sampling points along it."""
    tunnel: str
    direction: str
    origin: Coordinate
    destination: Coordinate
    points: List[Coordinate]


TUNNELS: Dict[str, TunnelCorridor] = {
    # Göschenen / Airolo
    "gotthard": TunnelCorridor(
        name="Gotthard", axis="NS", lane="A2",
        a=Coordinate(46.6680, 8.5869), b=Coordinate(46.5280, 8.6080),
    ),
    # Chamonix (FR) / Courmayeur (IT)
    "monte_bianco": TunnelCorridor(
        name="Mont Blanc", axis="EW", lane="RN205",
        a=Coordinate(45.9286, 6.8639), b=Coordinate(45.8206, 6.9727),
    ),
    "frejus": TunnelCorridor(
        name="Fréjus", axis="EW", lane="T4",
        a=Coordinate(45.1234, 6.7032), b=Coordinate(45.0865, 6.7237),
    ),
    "brenner": TunnelCorridor(
        name="Brenner", axis="NS", lane="A22",
        a=Coordinate(47.0027, 11.5056), b=Coordinate(46.8988, 11.4828),
    ),
}

TUNNEL_ALIASES = {
    "gottardo": "gotthard",
    "san_gottardo": "gotthard",
    "monte-bianco": "monte_bianco",
    "mont_blanc": "monte_bianco",
    "mont-blanc": "monte_bianco",
    "brennero": "brenner",
    "frejus": "frejus",
    "fréjus": "frejus",
}

AXIS_DIRECTIONS = {
    "NS": ("N", "S"),
    "EW": ("E", "W"),
}

# Heading -> (entry portal, exit portal)
_PORTALS_BY_HEADING = {
    "S": ("a", "b"),
    "N": ("b", "a"),
    "E": ("a", "b"),
    "W": ("b", "a"),
}

# Every direction label used outside the core, mapped to the compass heading
_DIRECTION_LABELS = {
    "N": "N", "S": "S", "E": "E", "W": "W",
    "N2S": "S", "S2N": "N", "W2E": "E", "E2W": "W",
    "NORTHBOUND": "N", "SOUTHBOUND": "S",
    "EASTBOUND": "E", "WESTBOUND": "W",
}

# Compass heading -> label stored on sampled readings
_READING_LABELS = {"S": "N2S", "N": "S2N", "E": "W2E", "W": "E2W"}


def canonical_tunnel(tunnel: Optional[str]) -> Optional[str]:
    """Return the canonical tunnel id for a name or alias, or None."""
    if not tunnel:
        return None
    key = tunnel.strip().lower()
    if key in TUNNELS:
        return key
    return TUNNEL_ALIASES.get(key)


def directions_for(tunnel: str) -> Tuple[str, ...]:
    """Compass directions valid on a tunnel's axis (empty for unknown tunnels)."""
    corridor = TUNNELS.get(tunnel)
    if corridor is None:
        return ()
    return AXIS_DIRECTIONS[corridor.axis]


def to_compass(tunnel: str, direction: Optional[str]) -> Optional[str]:
    """
    Normalise any direction label to a compass letter valid for the tunnel.

    Returns None when the label is unknown or belongs to the other axis
    (e.g. "E" on the Gotthard).
    """
    if not direction:
        return None
    compass = _DIRECTION_LABELS.get(direction.strip().upper())
    if compass is None or compass not in directions_for(tunnel):
        return None
    return compass


def reading_direction(tunnel: str, direction: str) -> Optional[str]:
    """Label (N2S/S2N/W2E/E2W) used when storing a sampled reading."""
    compass = to_compass(tunnel, direction)
    return _READING_LABELS[compass] if compass else None


def resolve_corridor(tunnel: str, direction: str,
                     n_points: int = DEFAULT_SAMPLE_POINTS) -> Optional[CorridorRoute]:
    """
    Map tunnel + direction to the routed path and flow sampling points.

    Unknown tunnels and directions off the tunnel's axis resolve to None.
    """
    corridor = TUNNELS.get(tunnel)
    compass = to_compass(tunnel, direction)
    if corridor is None or compass is None:
        return None

    entry, exit_ = _PORTALS_BY_HEADING[compass]
    origin = getattr(corridor, entry)
    destination = getattr(corridor, exit_)
    return CorridorRoute(
        tunnel=tunnel,
        direction=compass,
        origin=origin,
        destination=destination,
        points=interpolate(origin, destination, n_points),
    )
