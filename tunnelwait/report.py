"""
Manual wait report

Records a wait observed at a tunnel portal so the forecaster can learn from
it, e.g.

    tunnelwait-report --tunnel gotthard --direction southbound --wait 35 --lanes 1
"""

import argparse
import logging

from dotenv import load_dotenv

from db import record_manual_measurement
from measurements import InvalidMeasurement

logger = logging.getLogger(__name__)


def build_payload(args) -> dict:
    payload = {
        'tunnel': args.tunnel,
        'direction': args.direction,
        'wait_minutes': args.wait,
    }
    for key, value in (('lanes_open', args.lanes), ('note', args.note), ('observed_at', args.at),
                       ('lat', args.lat), ('lon', args.lon)):
        if value is not None:
            payload[key] = value
    return payload


def main(argv=None, engine=None) -> int:
    parser = argparse.ArgumentParser(description='Report the wait at an alpine tunnel portal')
    parser.add_argument('--tunnel', required=True, help='gotthard, monte_bianco, frejus or brenner')
    parser.add_argument('--direction', required=True, help='Compass heading (N/S/E/W) or label (N2S, southbound, ...)')
    parser.add_argument('--wait', type=int, required=True, help='Wait in minutes')
    parser.add_argument('--lanes', type=int, default=None, help='Lanes open')
    parser.add_argument('--note', default=None)
    parser.add_argument('--at', default=None, help='When it was observed, ISO 8601 (default now)')
    parser.add_argument('--lat', type=float, default=None)
    parser.add_argument('--lon', type=float, default=None)
    args = parser.parse_args(argv)

    try:
        row_id = record_manual_measurement(build_payload(args), engine=engine)
    except InvalidMeasurement as e:
        logger.error(f"Rejected report: {e}")
        return 2

    if row_id is None:
        logger.error("Report not stored (DATABASE_URL not set or insert failed)")
        return 1
    return 0


def run() -> int:
    """Console entry point: configure logging and .env, then record."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    load_dotenv()
    return main()


if __name__ == "__main__":
    raise SystemExit(run())
