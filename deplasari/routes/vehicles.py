from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..auth.security import require_admin
from ..db import get_db
from ..services import vehicle_tracking
from ..services.gps_client import GpsClient, GpsError
from .deps import get_gps_client


router = APIRouter(prefix="/api", tags=["vehicles"])
logger = structlog.get_logger(__name__)


# ---------- GPS FEED ----------
@router.get("/gps")
def gps_positions(gps: Optional[GpsClient] = Depends(get_gps_client)):
    """Live position of every tracked vehicle"""
    if gps is None:
        raise HTTPException(status_code=500, detail="GPS vendor credentials are not configured")
    try:
        return gps.vehicles()
    except GpsError as e:
        raise HTTPException(status_code=500, detail=str(e))


# ---------- PRESENCE ----------
@router.get("/cars", response_model=List[str])
def available_cars(db: Session = Depends(get_db)):
    return vehicle_tracking.get_available_cars(db)


@router.get("/debug-vehicle-data")
def debug_vehicle_data(car: Optional[str] = Query(None), db: Session = Depends(get_db)):
    return vehicle_tracking.debug_vehicle_data(db, car)


@router.get("/force-update-return-time")
def force_update_return_time(
    car: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    _=Depends(require_admin),
):
    return vehicle_tracking.force_update_return_time(db, car)
