"""
Assignment lifecycle.

Creation, update, finalization and deletion of assignments, keeping team
statuses, work logs and the stores catalogue consistent. Every public
operation commits once; finalization and deletion roll back as a whole.
"""
import math
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import structlog
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import (
    Assignment,
    Store,
    User,
    WorkLog,
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    USER_FREE,
)
from ..schemas.assignments import AssignmentCreate, AssignmentUpdate
from .maps_client import GoogleMapsClient, MapboxClient
from .route_calculator import load_stores, route_distance
from .time_rules import ensure_utc, utcnow
from .user_status import set_team_status, team_names
from .vehicle_tracking import get_vehicle_timestamps


logger = structlog.get_logger(__name__)

LEAD_LOG_DESCRIPTION = "Finalizare deplasare (team lead)"
MEMBER_LOG_DESCRIPTION = "Finalizare deplasare (team member)"


def get_assignment(db: Session, assignment_id: int) -> Assignment:
    assignment = db.query(Assignment).filter(Assignment.id == assignment_id).first()
    if assignment is None:
        raise LookupError("Assignment not found")
    return assignment


def list_assignments(
    db: Session,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    only_completed: bool = False,
    skip_gps: bool = False,
) -> List[Assignment]:
    """
    Active (or completed) assignments, refreshing GPS-derived times.

    For each assignment with a car plate the departure/return times are
    looked up once per (plate, anchor) pair and persisted when they changed.
    A failure on one assignment is logged and does not affect the others.
    """
    query = db.query(Assignment)
    if only_completed:
        query = query.filter(Assignment.status == STATUS_COMPLETED)
    else:
        query = query.filter(Assignment.status != STATUS_COMPLETED)
    if start and end:
        query = query.filter(Assignment.start_date >= start, Assignment.start_date <= end)
    assignments = query.order_by(Assignment.start_date.desc(), Assignment.id.desc()).all()

    if skip_gps:
        return assignments

    cache: Dict[Tuple[str, Any], Tuple[Optional[datetime], Optional[datetime]]] = {}
    changed = 0
    for assignment in assignments:
        if not assignment.car_plate:
            continue
        anchor = assignment.created_at or assignment.start_date
        key = (assignment.car_plate, anchor)
        try:
            if key not in cache:
                cache[key] = get_vehicle_timestamps(db, assignment.car_plate, anchor)
            real_start, real_return = cache[key]
            start_changed = real_start is not None and real_start != ensure_utc(assignment.gps_start_date)
            return_changed = real_return is not None and real_return != ensure_utc(assignment.return_time)
            if start_changed or return_changed:
                assignment.gps_start_date = real_start
                assignment.return_time = real_return
                changed += 1
        except Exception as e:
            logger.error("assignment_gps_refresh_failed", assignment_id=assignment.id, error=str(e))
    if changed:
        db.commit()
        logger.info("assignment_gps_refreshed", updated=changed)
    return assignments


def get_assignments_by_type(db: Session, assignment_type: str, start: datetime, end: datetime) -> List[Assignment]:
    return (
        db.query(Assignment)
        .filter(
            Assignment.type.ilike(assignment_type),
            Assignment.start_date >= start,
            Assignment.start_date < end,
        )
        .order_by(Assignment.start_date.desc())
        .all()
    )


def ensure_store(db: Session, store_number: Optional[str], city: Optional[str], county: Optional[str]) -> Optional[Store]:
    """Register a store the first time an assignment mentions it."""
    if not (store_number and city and county):
        return None
    store = db.query(Store).filter(Store.store_id == store_number).first()
    if store is None:
        store = Store(
            store_id=store_number,
            city=city,
            county=county,
            description=f"Magazin {store_number} - {city}, {county}",
            address=f"{city}, {county}",
        )
        db.add(store)
        logger.info("store_created_from_assignment", store_id=store_number)
    return store


def create_assignment(db: Session, payload: AssignmentCreate) -> Assignment:
    data = payload.model_dump()
    data["status"] = payload.status.value
    data["end_location"] = data.get("end_location") or settings.depot_short_name

    ensure_store(db, data["store_number"], data["city"], data["county"])
    assignment = Assignment(**data, created_at=utcnow())
    db.add(assignment)
    db.flush()

    if assignment.status == STATUS_IN_PROGRESS:
        set_team_status(
            db,
            team_names(assignment.team_lead, assignment.members),
            STATUS_IN_PROGRESS,
            str(assignment.id),
        )
    db.commit()
    db.refresh(assignment)
    logger.info("assignment_created", assignment_id=assignment.id, status=assignment.status)
    return assignment


def update_assignment(db: Session, assignment_id: int, payload: AssignmentUpdate) -> Assignment:
    assignment = get_assignment(db, assignment_id)
    previous_team = team_names(assignment.team_lead, assignment.members)

    data = payload.model_dump(exclude_unset=True)
    if payload.status is not None:
        data["status"] = payload.status.value
    if "end_location" in data and not data["end_location"]:
        data["end_location"] = settings.depot_short_name
    try:
        for field, value in data.items():
            setattr(assignment, field, value)
        assignment.updated_at = utcnow()

        ensure_store(db, assignment.store_number, assignment.city, assignment.county)

        team = team_names(assignment.team_lead, assignment.members)
        if assignment.status == STATUS_IN_PROGRESS:
            # People dropped from the team are released
            released = [name for name in previous_team if name not in team]
            set_team_status(db, released, USER_FREE)
            set_team_status(db, team, STATUS_IN_PROGRESS, str(assignment.id))
        elif assignment.status == STATUS_COMPLETED:
            set_team_status(db, set(previous_team) | set(team), USER_FREE)

        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(assignment)
    logger.info("assignment_updated", assignment_id=assignment.id, status=assignment.status)
    return assignment


def delete_assignment(db: Session, assignment_id: int, password: Optional[str]) -> None:
    """
    Delete an assignment, its work logs and release its team.

    Raises:
        PermissionError: wrong or unconfigured deletion password
        LookupError: unknown assignment
    """
    if not settings.pass_delete or password != settings.pass_delete:
        logger.warning("assignment_delete_denied", assignment_id=assignment_id)
        raise PermissionError("Invalid password. Deletion not authorized.")
    assignment = get_assignment(db, assignment_id)
    try:
        set_team_status(db, team_names(assignment.team_lead, assignment.members), USER_FREE)
        db.query(WorkLog).filter(WorkLog.assignment_id == assignment_id).delete(synchronize_session=False)
        db.delete(assignment)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("assignment_deleted", assignment_id=assignment_id)


def _billable_hours(start: Optional[datetime], end: Optional[datetime]) -> int:
    """Whole hours rounded up, never less than one."""
    if start is None or end is None:
        return 1
    duration = (ensure_utc(end) - ensure_utc(start)).total_seconds() / 3600
    return max(1, math.ceil(duration))


def finalize_assignment(
    db: Session,
    assignment_id: int,
    completion_date: Optional[datetime] = None,
    end_location: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Close an assignment and credit its team.

    Real departure/return times from the car's GPS trail take precedence
    over the planned dates. One work log is written per known team user
    unless the assignment already has work logs, in which case only the
    status and dates are updated. The team is released in both cases.

    Raises:
        LookupError: unknown assignment
    """
    assignment = get_assignment(db, assignment_id)
    if assignment.status == STATUS_COMPLETED:
        return {"success": True, "message": "Assignment already finalized"}

    real_start, real_completion = None, None
    if assignment.car_plate:
        anchor = assignment.created_at or assignment.start_date
        real_start, real_completion = get_vehicle_timestamps(db, assignment.car_plate, anchor)

    now = utcnow()
    team = team_names(assignment.team_lead, assignment.members)
    try:
        has_logs = db.query(WorkLog).filter(WorkLog.assignment_id == assignment_id).count() > 0
        if has_logs:
            assignment.status = STATUS_COMPLETED
            assignment.start_date = real_start or assignment.start_date
            assignment.completion_date = real_completion or completion_date or now
            assignment.updated_at = now
            set_team_status(db, team, USER_FREE)
            db.commit()
            logger.info("assignment_finalized_existing_logs", assignment_id=assignment_id)
            return {
                "success": True,
                "message": "Assignment already had work logs, status updated with real timestamps",
            }

        if real_start and real_completion:
            hours = _billable_hours(real_start, real_completion)
        else:
            hours = _billable_hours(assignment.start_date, completion_date or assignment.completion_date or now)
        km = float(assignment.km or 0)
        driving_time = float(assignment.driving_time or 0)
        final_start = real_start or assignment.start_date
        final_completion = real_completion or completion_date or now

        assignment.status = STATUS_COMPLETED
        assignment.start_date = final_start
        assignment.completion_date = final_completion
        assignment.end_location = end_location or assignment.end_location or settings.depot_short_name
        assignment.hours = hours
        assignment.updated_at = now

        for name in team:
            user = db.query(User).filter(User.name == name).first()
            if user is None:
                logger.warning("work_log_user_missing", assignment_id=assignment_id, name=name)
                continue
            db.add(WorkLog(
                user_id=user.id,
                assignment_id=assignment_id,
                work_date=final_completion,
                hours=hours,
                kilometers=km,
                description=LEAD_LOG_DESCRIPTION if name == assignment.team_lead else MEMBER_LOG_DESCRIPTION,
            ))
        set_team_status(db, team, USER_FREE)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("assignment_finalized", assignment_id=assignment_id, hours=hours, km=km)
    return {
        "success": True,
        "km": km,
        "driving_time": driving_time,
        "hours": hours,
        "real_start_date": real_start,
        "real_completion_date": real_completion,
    }


def update_assignment_route(db: Session, assignment_id: int, store_ids: List[str]) -> Assignment:
    """Attach an ordered store list; distance must be recalculated afterwards."""
    assignment = get_assignment(db, assignment_id)
    assignment.store_points = list(store_ids)
    assignment.route_updated = True
    assignment.km = 0
    assignment.driving_time = 0
    assignment.start_location = settings.depot_short_name
    assignment.end_location = settings.depot_short_name
    assignment.updated_at = utcnow()
    db.commit()
    db.refresh(assignment)
    logger.info("assignment_route_updated", assignment_id=assignment_id, stores=len(store_ids))
    return assignment


def save_route_result(
    db: Session,
    assignment_id: int,
    store_ids: List[str],
    distance: float,
    duration: Optional[float] = None,
) -> Assignment:
    assignment = get_assignment(db, assignment_id)
    assignment.store_points = list(store_ids)
    assignment.km = distance
    if duration is not None:
        assignment.driving_time = duration
    assignment.updated_at = utcnow()
    db.commit()
    db.refresh(assignment)
    return assignment


def recalculate_distance(
    db: Session,
    assignment_id: int,
    google: Optional[GoogleMapsClient] = None,
    mapbox: Optional[MapboxClient] = None,
) -> Dict[str, Any]:
    """
    Recompute km and driving time of a depot round trip.

    Uses the attached stores when there are any, otherwise the assignment's
    city and county.

    Raises:
        LookupError: unknown assignment
        ValueError: no stores and no city/county to route to
        MapsError: no provider could compute the route
    """
    assignment = get_assignment(db, assignment_id)
    store_ids = [str(s) for s in (assignment.store_points or [])]
    if store_ids:
        locations = [
            ", ".join(p for p in [s.address, s.city, s.county] if p)
            for s in load_stores(db, store_ids)
        ]
    else:
        if not assignment.city or not assignment.county:
            raise ValueError("City and county are required for distance calculation")
        locations = [f"{assignment.city}, {assignment.county}, Romania"]

    result = route_distance(locations, google=google, mapbox=mapbox)
    assignment.km = result["distance"]
    assignment.driving_time = result["duration"]
    assignment.updated_at = utcnow()
    db.commit()
    logger.info("assignment_distance_recalculated", assignment_id=assignment_id, km=result["distance"], method=result["method"])
    return {"success": True, "km": result["distance"], "driving_time": result["duration"], "method": result["method"]}
