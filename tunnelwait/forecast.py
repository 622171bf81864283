"""
Time-of-week wait forecasting.

Logged wait observations are bucketed into 15-minute bins (96 per day) per
(tunnel, direction, weekday) and per (tunnel, direction, "all"), and each bin
keeps the median and the sample count. Predictions prefer the same weekday
and bin, then nearby bins, then the best-populated bin of the day, and only
then the weekday-agnostic profile.

Profiles are rebuilt from the full observation set on every request; they
are a pure function of that set.
"""

import logging
import math
import numbers
import os
from dataclasses import dataclass
from datetime import date as date_cls, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union
from zoneinfo import ZoneInfo

import numpy as np
import pandas as pd

from aggregator import round_half_up
from corridors import canonical_tunnel, to_compass

logger = logging.getLogger(__name__)

BINS_PER_DAY = 96           # 24h * 4
BIN_MINUTES = 15
MIN_SAMPLES = 3             # a bin needs this many samples to be used as-is
SEARCH_RADIUS = 4           # neighbouring bins tried on each side
HIGH_CONFIDENCE_COUNT = 12
MEDIUM_CONFIDENCE_COUNT = 6

ALL_DAYS = "all"

# Observations are binned in the tunnels' local time
FORECAST_TZ = ZoneInfo(os.getenv("FORECAST_TZ", "Europe/Zurich"))


@dataclass(frozen=True)
class WaitObservation:
    """One logged wait (manual report, fused estimate or scrape)."""
    tunnel: str
    direction: str
    minutes: float
    noted_at: datetime
    source: str = "manual"


@dataclass
class DayProfile:
    median: np.ndarray  # float, NaN where no data
    count: np.ndarray   # int

    def usable(self, i: int) -> bool:
        return self.count[i] >= MIN_SAMPLES and not math.isnan(self.median[i])


@dataclass(frozen=True)
class PredictionResult:
    minutes: int
    bin_used: int
    count: int
    confidence: str  # "low" | "medium" | "high"


@dataclass(frozen=True)
class WindowResult:
    best_bin: int
    result: PredictionResult


@dataclass(frozen=True)
class TripPlan:
    depart_bin: int
    depart_time: str
    arrive_bin: int
    arrive_time: str
    expected: PredictionResult


Profiles = Dict[str, DayProfile]


def _local(dt: datetime) -> datetime:
    """Convert aware datetimes to forecast local time; naive ones are already local."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(FORECAST_TZ)


def to_weekday(dt: datetime) -> int:
    """0 = Sunday .. 6 = Saturday."""
    return (_local(dt).weekday() + 1) % 7


def to_bin_index(dt: datetime) -> int:
    local = _local(dt)
    return (local.hour * 60 + local.minute) // BIN_MINUTES


def bin_label(i: int) -> str:
    total = (i % BINS_PER_DAY) * BIN_MINUTES
    return f"{total // 60:02d}:{total % 60:02d}"


def time_to_bin(hhmm: str) -> int:
    """Bin for an "HH:MM" string, clamped to the day."""
    parts = (hhmm or "").split(":")
    try:
        hh = int(parts[0]) if parts[0] else 0
        mm = int(parts[1]) if len(parts) > 1 and parts[1] else 0
    except ValueError:
        hh, mm = 0, 0
    return max(0, min(BINS_PER_DAY - 1, (hh * 60 + mm) // BIN_MINUTES))


def confidence_for(count: int) -> str:
    if count >= HIGH_CONFIDENCE_COUNT:
        return "high"
    if count >= MEDIUM_CONFIDENCE_COUNT:
        return "medium"
    return "low"


def profile_key(tunnel: str, direction: str, weekday: Union[int, str]) -> str:
    return f"{tunnel}|{direction}|{weekday}"


def _normalise(tunnel: str, direction: str) -> Tuple[str, str]:
    canonical = canonical_tunnel(tunnel) or tunnel
    return canonical, to_compass(canonical, direction) or direction


def parse_timestamp(value: str) -> Optional[datetime]:
    """ISO 8601 string to datetime, None when it cannot be read."""
    try:
        ts = pd.to_datetime(value, format="ISO8601")
    except (ValueError, TypeError):
        return None
    if pd.isna(ts):
        return None
    return ts.to_pydatetime()


def _empty_profile() -> DayProfile:
    return DayProfile(
        median=np.full(BINS_PER_DAY, np.nan, dtype=float),
        count=np.zeros(BINS_PER_DAY, dtype=int),
    )


def _get(obs: Any, name: str, alt: Optional[str] = None):
    if isinstance(obs, dict):
        return obs.get(name, obs.get(alt) if alt else None)
    return getattr(obs, name)


def build_profiles(observations: Iterable[Union[WaitObservation, Dict[str, Any]]]) -> Profiles:
    """
    Build per-weekday and all-days median/count profiles.

    Observations with a negative or non-finite `minutes`, or without a
    readable timestamp, are ignored.
    """
    rows = []
    skipped = 0
    for obs in observations:
        minutes = _get(obs, "minutes")
        noted_at = _get(obs, "noted_at", "notedAt")
        if isinstance(noted_at, str):
            noted_at = parse_timestamp(noted_at)
        if (not isinstance(minutes, numbers.Real) or isinstance(minutes, bool)
                or not math.isfinite(minutes)
                or minutes < 0 or not isinstance(noted_at, datetime)):
            skipped += 1
            continue

        tunnel, direction = _normalise(_get(obs, "tunnel"), _get(obs, "direction"))
        bin_idx = to_bin_index(noted_at)
        rows.append((profile_key(tunnel, direction, to_weekday(noted_at)), bin_idx, float(minutes)))
        rows.append((profile_key(tunnel, direction, ALL_DAYS), bin_idx, float(minutes)))

    if skipped:
        logger.debug(f"Profile builder: skipped {skipped} invalid observations")
    if not rows:
        return {}

    df = pd.DataFrame(rows, columns=["key", "bin", "minutes"])
    stats = df.groupby(["key", "bin"])["minutes"].agg(["median", "count"])

    profiles: Profiles = {}
    for (key, bin_idx), row in stats.iterrows():
        prof = profiles.get(key)
        if prof is None:
            prof = profiles[key] = _empty_profile()
        prof.median[bin_idx] = row["median"]
        prof.count[bin_idx] = row["count"]

    logger.debug(f"Profile builder: {len(rows) // 2} observations -> {len(profiles)} profiles")
    return profiles


def _nearest_with_data(prof: DayProfile, bin_idx: int, radius: int = SEARCH_RADIUS) -> int:
    """
    Closest usable bin within +-radius (wrapping), else the best-populated
    bin with a median, else -1.
    """
    for r in range(1, radius + 1):
        for candidate in (bin_idx - r, bin_idx + r):
            i = candidate % BINS_PER_DAY
            if prof.usable(i):
                return i

    best, best_count = -1, 0
    for i in range(BINS_PER_DAY):
        if prof.count[i] > best_count and not math.isnan(prof.median[i]):
            best, best_count = i, prof.count[i]
    return best


def _pick_bin(prof: Optional[DayProfile], bin_idx: int) -> int:
    if prof is None:
        return -1
    if prof.usable(bin_idx):
        return bin_idx
    return _nearest_with_data(prof, bin_idx)


def predict_wait(profiles: Profiles, tunnel: str, direction: str, at: datetime) -> Optional[PredictionResult]:
    """
    Expected wait at `at`, or None when no history exists for the pair.

    The same-weekday profile is tried first, then the all-days profile.
    """
    tunnel, direction = _normalise(tunnel, direction)
    bin_idx = to_bin_index(at)

    for weekday in (to_weekday(at), ALL_DAYS):
        prof = profiles.get(profile_key(tunnel, direction, weekday))
        used = _pick_bin(prof, bin_idx)
        if used < 0:
            continue
        count = int(prof.count[used])
        return PredictionResult(
            minutes=round_half_up(float(prof.median[used])),
            bin_used=used,
            count=count,
            confidence=confidence_for(count),
        )
    return None


def window_bins(start_bin: int, end_bin: int) -> List[int]:
    """Bins of the inclusive circular window [start_bin, end_bin]."""
    start = start_bin % BINS_PER_DAY
    length = (end_bin - start_bin) % BINS_PER_DAY + 1
    return [(start + k) % BINS_PER_DAY for k in range(length)]


def _day_start(day: Union[date_cls, datetime]) -> datetime:
    if isinstance(day, datetime):
        day = _local(day).date()
    return datetime(day.year, day.month, day.day)


def find_min_in_window(profiles: Profiles, tunnel: str, direction: str,
                       day: Union[date_cls, datetime], start_bin: int, end_bin: int) -> Optional[WindowResult]:
    """
    Bin with the lowest predicted wait inside the window on `day`.

    The window may cross midnight (start_bin > end_bin). Bins without a
    prediction are skipped; on ties the earliest bin of the window wins.
    """
    midnight = _day_start(day)
    best: Optional[WindowResult] = None
    for b in window_bins(start_bin, end_bin):
        result = predict_wait(profiles, tunnel, direction, midnight + timedelta(minutes=b * BIN_MINUTES))
        if result is None:
            continue
        if best is None or result.minutes < best.result.minutes:
            best = WindowResult(best_bin=b, result=result)
    return best


def plan_departure(profiles: Profiles, tunnel: str, direction: str, day: Union[date_cls, datetime],
                   window_start: str, window_end: str, travel_minutes: int) -> Optional[TripPlan]:
    """Best arrival bin in an "HH:MM" window and the matching departure time."""
    best = find_min_in_window(profiles, tunnel, direction, day,
                              time_to_bin(window_start), time_to_bin(window_end))
    if best is None:
        return None

    arrive_minutes = best.best_bin * BIN_MINUTES
    depart_minutes = max(0, arrive_minutes - max(0, travel_minutes or 0))
    depart_bin = depart_minutes // BIN_MINUTES
    return TripPlan(
        depart_bin=depart_bin,
        depart_time=bin_label(depart_bin),
        arrive_bin=best.best_bin,
        arrive_time=bin_label(best.best_bin),
        expected=best.result,
    )


def day_series(profiles: Profiles, tunnel: str, direction: str,
               day: Union[date_cls, datetime]) -> List[Tuple[str, Optional[int]]]:
    """Predicted minutes for every bin of `day`, None where nothing is known."""
    midnight = _day_start(day)
    series = []
    for b in range(BINS_PER_DAY):
        r = predict_wait(profiles, tunnel, direction, midnight + timedelta(minutes=b * BIN_MINUTES))
        series.append((bin_label(b), r.minutes if r else None))
    return series
