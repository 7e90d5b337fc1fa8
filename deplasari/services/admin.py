"""
Maintenance operations: vehicle presence indexes, health and configuration checks.
"""
from typing import Any, Dict, List

import structlog
from sqlalchemy import inspect, text
from sqlalchemy.orm import Session

from ..config import settings
from .time_rules import utcnow


logger = structlog.get_logger(__name__)

PRESENCE_TABLE = "vehicle_presence"

PRESENCE_INDEXES = (
    ("idx_presence_car_plate_detected", "car_plate, detected_at"),
    ("idx_vehicle_departure", "car_plate, detected_at, was_near_chitila"),
    ("idx_vehicle_distance", "car_plate, detected_at, distance_from_chitila"),
)


def presence_table_exists(db: Session) -> bool:
    return inspect(db.get_bind()).has_table(PRESENCE_TABLE)


def create_vehicle_presence_indexes(db: Session) -> List[Dict[str, Any]]:
    """Idempotent; each index reports its own outcome."""
    results = []
    for name, columns in PRESENCE_INDEXES:
        try:
            db.execute(text(f"CREATE INDEX IF NOT EXISTS {name} ON {PRESENCE_TABLE} ({columns})"))
            db.commit()
            results.append({"index": name, "result": "Created or already exists"})
        except Exception as e:
            db.rollback()
            logger.error("index_create_failed", index=name, error=str(e))
            results.append({"index": name, "error": str(e)})
    logger.info("presence_indexes_ensured", results=len(results))
    return results


def list_indexes(db: Session) -> List[Dict[str, Any]]:
    indexes = inspect(db.get_bind()).get_indexes(PRESENCE_TABLE)
    return sorted(
        (
            {
                "index_name": idx["name"],
                "columns": list(idx.get("column_names") or []),
                "is_unique": bool(idx.get("unique")),
            }
            for idx in indexes
        ),
        key=lambda i: i["index_name"] or "",
    )


def check_indexes(db: Session) -> Dict[str, Any]:
    """
    Indexes before and after a creation attempt.

    Raises:
        LookupError: the presence table does not exist
    """
    if not presence_table_exists(db):
        raise LookupError(f"Table '{PRESENCE_TABLE}' does not exist")
    before = list_indexes(db)
    attempts = create_vehicle_presence_indexes(db)
    after = list_indexes(db)
    return {
        "success": True,
        "table_exists": True,
        "before_creation": before,
        "creation_attempts": attempts,
        "after_creation": after,
    }


def health(db: Session) -> Dict[str, Any]:
    """Raises whatever the database driver raises when the ping fails."""
    db.execute(text("SELECT 1"))
    return {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "database": "connected",
        "environment": settings.environment,
    }


def verify_config() -> Dict[str, Any]:
    """Which integrations are configured; values themselves are never returned."""
    return {
        "status": "ok",
        "environment": settings.environment,
        "timestamp": utcnow().isoformat(),
        "checks": {
            "has_google_maps_key": bool(settings.google_maps_api_key),
            "has_mapbox_token": bool(settings.mapbox_access_token),
            "has_gps_credentials": bool(settings.gps_group_id and settings.gps_username and settings.gps_password),
            "has_delete_password": bool(settings.pass_delete),
            "is_production": settings.environment == "production",
        },
    }
