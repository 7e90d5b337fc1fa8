"""
Vehicle presence service.

Infers when a car really left the depot and when it came back by reading the
``vehicle_presence`` snapshots recorded for its plate. A snapshot counts as
"back at depot" when the tracker flagged it near the depot or when its
recorded distance is under the return radius.
"""
import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

import structlog
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import Assignment, VehiclePresence, STATUS_IN_PROGRESS
from .geofence import distance_from_depot
from .time_rules import ensure_utc, gps_display_time, utcnow


logger = structlog.get_logger(__name__)

_NON_NUMERIC = re.compile(r"[^0-9.]")
_PLAIN_NUMBER = re.compile(r"^\d+(\.\d+)?$")


def parse_distance_km(text: Optional[str]) -> Optional[float]:
    """Lenient parse: keep digits and dots only ("12.5 km" -> 12.5)."""
    if text is None:
        return None
    cleaned = _NON_NUMERIC.sub("", str(text))
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def strict_distance_km(text: Optional[str]) -> Optional[float]:
    """Only plain numbers ("4.2") count; anything else defers to the near-depot flag."""
    if text is None or not _PLAIN_NUMBER.match(str(text).strip()):
        return None
    return float(str(text).strip())


def is_back_at_depot(row: VehiclePresence, strict: bool = False) -> bool:
    radius = settings.return_radius_km
    if strict:
        distance = strict_distance_km(row.distance_from_chitila)
        if distance is not None:
            return distance < radius
        return bool(row.was_near_chitila)
    distance = parse_distance_km(row.distance_from_chitila)
    return bool(row.was_near_chitila) or (distance is not None and distance < radius)


def get_vehicle_timestamps(
    db: Session,
    car_plate: Optional[str],
    anchor: Optional[datetime],
) -> Tuple[Optional[datetime], Optional[datetime]]:
    """
    Real departure and return times of a car after an assignment was created.

    Args:
        db: Database session
        car_plate: Plate of the car used for the assignment
        anchor: Assignment creation (or start) time; only later snapshots count

    Returns:
        Tuple of (real_start, real_completion) as UTC datetimes.
        real_start is the first snapshot away from the depot after ``anchor``;
        real_completion is the first snapshot back at the depot after that
        departure. Both are None when no departure is found.
    """
    if not car_plate or anchor is None:
        return None, None
    anchor = ensure_utc(anchor)
    try:
        departure = (
            db.query(VehiclePresence)
            .filter(
                VehiclePresence.car_plate == car_plate,
                VehiclePresence.detected_at > anchor,
                VehiclePresence.was_near_chitila.is_(False),
            )
            .order_by(VehiclePresence.detected_at.asc())
            .first()
        )
        if departure is None:
            logger.info("vehicle_no_departure", car_plate=car_plate, anchor=anchor.isoformat())
            return None, None

        real_start = ensure_utc(departure.detected_at)
        candidates = (
            db.query(VehiclePresence)
            .filter(
                VehiclePresence.car_plate == car_plate,
                VehiclePresence.detected_at > real_start,
            )
            .order_by(VehiclePresence.detected_at.asc())
        )
        real_completion = None
        for row in candidates:
            if is_back_at_depot(row):
                real_completion = ensure_utc(row.detected_at)
                break

        logger.info(
            "vehicle_timestamps",
            car_plate=car_plate,
            departure=real_start.isoformat(),
            returned=real_completion.isoformat() if real_completion else None,
        )
        return real_start, real_completion
    except Exception as e:
        logger.error("vehicle_timestamps_failed", car_plate=car_plate, error=str(e))
        return None, None


def _latest_returns(db: Session, car_plate: str, limit: int) -> List[VehiclePresence]:
    # Newest first; the near-depot test needs Python-side parsing of free-text distances
    rows = (
        db.query(VehiclePresence)
        .filter(VehiclePresence.car_plate == car_plate)
        .order_by(VehiclePresence.detected_at.desc())
    )
    found = []
    for row in rows:
        if is_back_at_depot(row, strict=True):
            found.append(row)
            if len(found) >= limit:
                break
    return found


def _iso(dt: Optional[datetime]) -> Optional[str]:
    value = ensure_utc(dt)
    return value.isoformat() if value else None


def debug_vehicle_data(db: Session, car_plate: Optional[str] = None) -> Dict[str, Any]:
    """Latest assignment, last presence snapshots and last detected returns for one car."""
    car_plate = car_plate or settings.default_tracked_car
    assignment = (
        db.query(Assignment)
        .filter(Assignment.car_plate == car_plate)
        .order_by(Assignment.created_at.desc())
        .first()
    )
    presence = (
        db.query(VehiclePresence)
        .filter(VehiclePresence.car_plate == car_plate)
        .order_by(VehiclePresence.detected_at.desc())
        .limit(10)
        .all()
    )
    returns = _latest_returns(db, car_plate, 5)
    logger.info("vehicle_debug", car_plate=car_plate, presence=len(presence), returns=len(returns))

    return {
        "car_plate": car_plate,
        "assignment": {
            "id": assignment.id,
            "car_plate": assignment.car_plate,
            "created_at": _iso(assignment.created_at),
            "start_date": _iso(assignment.start_date),
            "gps_start_date": _iso(assignment.gps_start_date),
            "return_time": _iso(assignment.return_time),
            "status": assignment.status,
        } if assignment else None,
        "presence_data": [
            {
                "detected_at": _iso(p.detected_at),
                "distance": p.distance_from_chitila,
                "was_near_chitila": bool(p.was_near_chitila),
            }
            for p in presence
        ],
        "return_data": [
            {
                "detected_at": _iso(r.detected_at),
                "distance": r.distance_from_chitila,
                "adjusted": _iso(gps_display_time(r.detected_at)),
            }
            for r in returns
        ],
    }


def force_update_return_time(db: Session, car_plate: Optional[str] = None) -> Dict[str, Any]:
    """
    Stamp the latest detected return of a car on all of its in-progress assignments.

    The stored value is shifted by the GPS display offset, matching what
    operators see on the assignments board.
    """
    car_plate = car_plate or settings.default_tracked_car
    returns = _latest_returns(db, car_plate, 1)
    if not returns:
        logger.info("force_return_no_data", car_plate=car_plate)
        return {"success": False, "message": "No return data found"}

    return_time = gps_display_time(returns[0].detected_at)
    active = (
        db.query(Assignment)
        .filter(Assignment.car_plate == car_plate, Assignment.status == STATUS_IN_PROGRESS)
        .all()
    )
    for assignment in active:
        assignment.return_time = return_time
        assignment.updated_at = utcnow()
    db.commit()

    logger.info("force_return_updated", car_plate=car_plate, updated=len(active), return_time=return_time.isoformat())
    return {
        "success": True,
        "message": f"Updated return time for {car_plate} to {return_time.isoformat()}",
        "updated_count": len(active),
        "return_time": return_time.isoformat(),
    }


def get_available_cars(db: Session) -> List[str]:
    """Distinct non-empty plates seen on assignments or in presence data."""
    plates = set()
    for (plate,) in db.query(Assignment.car_plate).filter(Assignment.car_plate.isnot(None)).distinct():
        if plate and plate.strip():
            plates.add(plate)
    for (plate,) in db.query(VehiclePresence.car_plate).distinct():
        if plate and plate.strip():
            plates.add(plate)
    return sorted(plates)


def record_presence_snapshot(db: Session, vehicles: Iterable[Dict[str, Any]]) -> int:
    """
    Store one presence row per tracked vehicle from the combined GPS feed.

    Each vehicle dict is the shape returned by ``gps_client.combine_positions``;
    the device name is the car plate.
    """
    created = 0
    for vehicle in vehicles:
        position = vehicle.get("position") or {}
        lat, lng = position.get("latitude"), position.get("longitude")
        plate = (vehicle.get("name") or "").strip()
        if not plate or lat is None or lng is None:
            continue
        distance = distance_from_depot(float(lat), float(lng))
        detected = vehicle.get("last_update")
        if isinstance(detected, str):
            detected = datetime.fromisoformat(detected.replace("Z", "+00:00"))
        db.add(VehiclePresence(
            car_plate=plate,
            detected_at=ensure_utc(detected) or utcnow(),
            was_near_chitila=distance < settings.return_radius_km,
            distance_from_chitila=f"{distance:.1f}",
            latitude=float(lat),
            longitude=float(lng),
        ))
        created += 1
    db.commit()
    logger.info("presence_snapshot_recorded", vehicles=created)
    return created

