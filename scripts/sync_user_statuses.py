"""
Rebuild every user's status from the open assignments.

Usage:
  python scripts/sync_user_statuses.py
"""
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from deplasari.db import SessionLocal
from deplasari.logging import setup_logging
from deplasari.services.user_status import check_user_statuses, sync_user_statuses


def main():
    setup_logging()
    db = SessionLocal()
    try:
        applied = sync_user_statuses(db)
        print(f"[OK] Applied {applied} open assignments")
        busy = check_user_statuses(db)
        print(f"{len(busy)} users are not free:")
        for user in busy:
            print(f"  - {user.name}: {user.status} ({user.current_assignment or '-'})")
    finally:
        db.close()


if __name__ == "__main__":
    main()
