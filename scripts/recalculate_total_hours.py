"""
Recompute users.total_hours from finalized assignments.

Usage:
  python scripts/recalculate_total_hours.py          # recalculate
  python scripts/recalculate_total_hours.py --reset  # zero everyone first
"""
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from deplasari.db import SessionLocal
from deplasari.logging import setup_logging
from deplasari.models.models import User
from deplasari.services.hours import recalculate_all_users_total_hours, reset_all_users_total_hours


def main(reset: bool = False):
    setup_logging()
    db = SessionLocal()
    try:
        if reset:
            reset_all_users_total_hours(db)
            print("[OK] Total hours reset")
        count = recalculate_all_users_total_hours(db)
        print(f"[OK] Recalculated {count} users")
        for user in db.query(User).order_by(User.total_hours.desc()).all():
            print(f"  {user.name:<30} {user.total_hours:>8.0f} h")
    finally:
        db.close()


if __name__ == "__main__":
    main(reset="--reset" in sys.argv[1:])
