"""
Best-arrival planner

Loads the logged wait history, builds the time-of-week profiles and answers:
  - when, inside an arrival window, is the expected queue shortest
    (and when to leave given the drive time)
  - what wait to expect when arriving at a given time

Defaults to planning for tomorrow.
"""

import argparse
import logging
from datetime import date, datetime, timedelta

from dotenv import load_dotenv

from corridors import canonical_tunnel, to_compass
from db import MAX_HISTORY_HOURS, get_observations
from forecast import BIN_MINUTES, bin_label, build_profiles, plan_departure, predict_wait, time_to_bin

logger = logging.getLogger(__name__)


def expected_at(profiles, tunnel: str, direction: str, day: date, hhmm: str):
    """Prediction for arriving at "HH:MM" on `day`, snapped to its bin."""
    b = time_to_bin(hhmm)
    at = datetime(day.year, day.month, day.day) + timedelta(minutes=b * BIN_MINUTES)
    return b, predict_wait(profiles, tunnel, direction, at)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description='Plan the best time to reach an alpine tunnel')
    parser.add_argument('--tunnel', required=True, help='gotthard, monte_bianco, frejus or brenner')
    parser.add_argument('--direction', required=True, help='Compass heading (N/S/E/W) or label (N2S, southbound, ...)')
    parser.add_argument('--date', type=date.fromisoformat, default=None, help='Travel day, YYYY-MM-DD (default tomorrow)')
    parser.add_argument('--from', dest='window_start', default='08:00', help='Arrival window start, HH:MM')
    parser.add_argument('--to', dest='window_end', default='18:00', help='Arrival window end, HH:MM')
    parser.add_argument('--travel', type=int, default=90, help='Drive time to the portal, minutes')
    parser.add_argument('--at', default=None, help='Also report the expected wait when arriving at HH:MM')
    parser.add_argument('--hours', type=int, default=MAX_HISTORY_HOURS, help='History to use, hours')
    args = parser.parse_args(argv)

    tunnel = canonical_tunnel(args.tunnel)
    direction = to_compass(tunnel, args.direction) if tunnel else None
    if direction is None:
        logger.error(f"Unknown tunnel/direction: {args.tunnel}/{args.direction}")
        return 2

    day = args.date or (date.today() + timedelta(days=1))
    observations = get_observations(args.hours, tunnel=tunnel)
    logger.info(f"Loaded {len(observations)} observations for {tunnel}")
    profiles = build_profiles(observations)

    plan = plan_departure(profiles, tunnel, direction, day, args.window_start, args.window_end, args.travel)
    if plan is None:
        logger.info(f"No history for {tunnel}/{direction} - nothing to plan")
    else:
        logger.info(
            f"{day.isoformat()} {tunnel}/{direction}: arrive {plan.arrive_time} "
            f"(~{plan.expected.minutes} min wait, {plan.expected.confidence} confidence, "
            f"n={plan.expected.count}), leave at {plan.depart_time}"
        )

    if args.at:
        b, result = expected_at(profiles, tunnel, direction, day, args.at)
        if result is None:
            logger.info(f"Arriving {bin_label(b)}: no estimate")
        else:
            logger.info(f"Arriving {bin_label(b)}: ~{result.minutes} min ({result.confidence} confidence)")

    return 0


def run() -> int:
    """Console entry point: configure logging and .env, then plan."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    load_dotenv()
    return main()


if __name__ == "__main__":
    raise SystemExit(run())
