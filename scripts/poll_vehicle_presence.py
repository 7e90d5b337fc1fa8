"""
Record vehicle presence snapshots from the GPS vendor feed.

Usage:
  python scripts/poll_vehicle_presence.py              # one snapshot
  python scripts/poll_vehicle_presence.py --every 300  # loop, seconds between polls

Requires GPS_GROUP_ID, GPS_USERNAME and GPS_PASSWORD.
"""
import argparse
import sys
import os
import time

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from deplasari.db import SessionLocal
from deplasari.logging import setup_logging, structlog
from deplasari.services.gps_client import GpsClient, GpsError
from deplasari.services.vehicle_tracking import record_presence_snapshot


logger = structlog.get_logger("poll_vehicle_presence")


def poll_once(gps: GpsClient) -> int:
    db = SessionLocal()
    try:
        return record_presence_snapshot(db, gps.vehicles())
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--every", type=int, default=0, help="seconds between polls; 0 polls once")
    args = parser.parse_args()

    setup_logging()
    gps = GpsClient()
    while True:
        try:
            count = poll_once(gps)
            print(f"[OK] Recorded {count} vehicles")
        except GpsError as e:
            logger.error("presence_poll_failed", error=str(e))
            if not args.every:
                sys.exit(1)
        if not args.every:
            break
        time.sleep(args.every)


if __name__ == "__main__":
    main()
