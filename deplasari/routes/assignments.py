from datetime import date
from typing import List, Optional

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..schemas.assignments import (
    AssignmentCreate,
    AssignmentUpdate,
    AssignmentResponse,
    AssignmentCreated,
    AssignmentDeleteRequest,
    FinalizeRequest,
    FinalizeResponse,
    RouteUpdateRequest,
    RouteResultRequest,
    DistanceResponse,
    MessageResponse,
)
from ..services import assignment_service
from ..services.maps_client import GoogleMapsClient, MapboxClient, MapsError
from ..services.time_rules import day_range, resolve_range
from .deps import parse_id, get_google_client, get_mapbox_client


router = APIRouter(prefix="/api/assignments", tags=["assignments"])
logger = structlog.get_logger(__name__)


# ---------- LIST ----------
@router.get("", response_model=List[AssignmentResponse])
def list_assignments(
    tab: Optional[str] = Query(None, description="'completed' lists finalized assignments"),
    start: Optional[date] = None,
    end: Optional[date] = None,
    db: Session = Depends(get_db),
):
    """Active assignments with fresh GPS times, or completed ones as stored"""
    start_dt, end_dt = day_range(start, end) if start and end else (None, None)
    completed = tab == "completed"
    return assignment_service.list_assignments(
        db,
        start=start_dt,
        end=end_dt,
        only_completed=completed,
        skip_gps=completed,
    )


@router.get("/by-type/{assignment_type}", response_model=List[AssignmentResponse])
def list_assignments_by_type(
    assignment_type: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
    db: Session = Depends(get_db),
):
    start_dt, end_dt = resolve_range(start, end)
    return assignment_service.get_assignments_by_type(db, assignment_type, start_dt, end_dt)


# ---------- CRUD ----------
@router.get("/{assignment_id}", response_model=AssignmentResponse)
def get_assignment(assignment_id: str, db: Session = Depends(get_db)):
    aid = parse_id(assignment_id, "assignment ID")
    try:
        return assignment_service.get_assignment(db, aid)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("", response_model=AssignmentCreated)
def create_assignment(payload: AssignmentCreate, db: Session = Depends(get_db)):
    assignment = assignment_service.create_assignment(db, payload)
    return AssignmentCreated(id=assignment.id)


@router.put("/{assignment_id}", response_model=AssignmentResponse)
def update_assignment(assignment_id: str, payload: AssignmentUpdate, db: Session = Depends(get_db)):
    aid = parse_id(assignment_id, "assignment ID")
    try:
        return assignment_service.update_assignment(db, aid, payload)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.delete("/{assignment_id}", response_model=MessageResponse)
def delete_assignment(
    assignment_id: str,
    payload: AssignmentDeleteRequest = Body(...),
    db: Session = Depends(get_db),
):
    aid = parse_id(assignment_id, "assignment ID")
    try:
        assignment_service.delete_assignment(db, aid, payload.password)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return MessageResponse(success=True, message="Assignment deleted")


# ---------- LIFECYCLE ----------
@router.post("/{assignment_id}/finalize", response_model=FinalizeResponse)
def finalize_assignment(
    assignment_id: str,
    payload: Optional[FinalizeRequest] = Body(None),
    db: Session = Depends(get_db),
):
    aid = parse_id(assignment_id, "assignment ID")
    payload = payload or FinalizeRequest()
    try:
        result = assignment_service.finalize_assignment(
            db,
            aid,
            completion_date=payload.completion_date,
            end_location=payload.end_location,
        )
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error("finalize_failed", assignment_id=aid, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to finalize assignment")
    return FinalizeResponse(**result)


# ---------- ROUTE ----------
@router.put("/{assignment_id}/route", response_model=AssignmentResponse)
def update_route(assignment_id: str, payload: RouteUpdateRequest, db: Session = Depends(get_db)):
    aid = parse_id(assignment_id, "assignment ID")
    try:
        return assignment_service.update_assignment_route(db, aid, payload.store_ids)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{assignment_id}/route-result", response_model=AssignmentResponse)
def save_route_result(assignment_id: str, payload: RouteResultRequest, db: Session = Depends(get_db)):
    aid = parse_id(assignment_id, "assignment ID")
    try:
        return assignment_service.save_route_result(db, aid, payload.store_ids, payload.distance, payload.duration)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{assignment_id}/recalculate", response_model=DistanceResponse)
def recalculate_distance(
    assignment_id: str,
    db: Session = Depends(get_db),
    google: Optional[GoogleMapsClient] = Depends(get_google_client),
    mapbox: Optional[MapboxClient] = Depends(get_mapbox_client),
):
    aid = parse_id(assignment_id, "assignment ID")
    try:
        result = assignment_service.recalculate_distance(db, aid, google=google, mapbox=mapbox)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except MapsError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return DistanceResponse(**result)
