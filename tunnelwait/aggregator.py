"""
Robust aggregation of per-point flow delays.

Single flow points are noisy (congestion confined to one sub-segment, stale
provider cache), so the tails of the per-point delay distribution are
trimmed before the delays are summed along the corridor.
"""

import math
from typing import Iterable

TRIM_FRACTION = 0.15


def round_half_up(x: float) -> int:
    """Round to the nearest integer, halves away from zero for positives (2.5 -> 3)."""
    return int(math.floor(x + 0.5))


def _is_valid(x) -> bool:
    if isinstance(x, bool) or not isinstance(x, (int, float)):
        return False
    return math.isfinite(x) and x >= 0


def summarize_extras(extras: Iterable[float]) -> int:
    """
    Trimmed sum of the extra-delay samples, in seconds.

    Invalid entries (non-numeric, non-finite, negative) are dropped and the
    lowest and highest 15% are cut before summing. This is a sum, not a
    mean: delay accumulates over the sampled corridor length.
    """
    values = sorted(x for x in extras if _is_valid(x))
    if not values:
        return 0

    n = len(values)
    cut = math.floor(n * TRIM_FRACTION)
    # keep everything if the cut would leave nothing
    trimmed = values[cut:n - cut] or values

    return max(0, round_half_up(sum(trimmed)))
