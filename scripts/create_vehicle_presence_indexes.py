"""
Create the vehicle_presence indexes used by the departure/return lookups.

Usage:
  python scripts/create_vehicle_presence_indexes.py

Safe to run repeatedly: every index is created with IF NOT EXISTS.
"""
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from deplasari.db import SessionLocal
from deplasari.services.admin import (
    create_vehicle_presence_indexes,
    list_indexes,
    presence_table_exists,
)


def main() -> int:
    print("=" * 60)
    print("Creating vehicle_presence indexes")
    print("=" * 60)
    db = SessionLocal()
    try:
        if not presence_table_exists(db):
            print("[ERROR] Table vehicle_presence does not exist")
            return 1
        failed = 0
        for result in create_vehicle_presence_indexes(db):
            if "error" in result:
                failed += 1
                print(f"[FAIL] {result['index']}: {result['error']}")
            else:
                print(f"[OK] {result['index']}: {result['result']}")
        print()
        print("Indexes now present:")
        for idx in list_indexes(db):
            print(f"  - {idx['index_name']} ({', '.join(idx['columns'])})")
        return 1 if failed else 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
