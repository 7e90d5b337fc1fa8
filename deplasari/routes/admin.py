from typing import List

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import require_admin
from ..schemas.assignments import MessageResponse
from ..schemas.users import UserResponse
from ..services import admin
from ..services.hours import recalculate_all_users_total_hours, reset_all_users_total_hours
from ..services.user_status import check_user_statuses, sync_user_statuses


router = APIRouter(prefix="/api", tags=["admin"])
logger = structlog.get_logger(__name__)


# ---------- INDEXES ----------
@router.post("/admin/create-indexes")
def create_indexes(db: Session = Depends(get_db), _=Depends(require_admin)):
    return {"success": True, "results": admin.create_vehicle_presence_indexes(db)}


@router.get("/admin/list-indexes")
def list_indexes(db: Session = Depends(get_db), _=Depends(require_admin)):
    if not admin.presence_table_exists(db):
        raise HTTPException(status_code=404, detail="Table 'vehicle_presence' does not exist")
    return {"success": True, "indexes": admin.list_indexes(db)}


@router.get("/admin/check-indexes")
def check_indexes(db: Session = Depends(get_db), _=Depends(require_admin)):
    try:
        return admin.check_indexes(db)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


# ---------- HEALTH ----------
@router.get("/health")
def health(db: Session = Depends(get_db)):
    try:
        return admin.health(db)
    except Exception as e:
        logger.error("health_check_failed", error=str(e))
        raise HTTPException(status_code=500, detail="unhealthy")


@router.get("/verify-config")
def verify_config():
    return admin.verify_config()


# ---------- MAINTENANCE ----------
@router.post("/sync-statuses", response_model=MessageResponse)
def sync_statuses(db: Session = Depends(get_db), _=Depends(require_admin)):
    applied = sync_user_statuses(db)
    return MessageResponse(success=True, message=f"Synchronized statuses from {applied} open assignments")


@router.get("/check-user-statuses", response_model=List[UserResponse])
def busy_users(db: Session = Depends(get_db)):
    return check_user_statuses(db)


@router.post("/recalculate-total-hours", response_model=MessageResponse)
def recalculate_total_hours(db: Session = Depends(get_db), _=Depends(require_admin)):
    count = recalculate_all_users_total_hours(db)
    return MessageResponse(success=True, message=f"Recalculated total hours for {count} users")


@router.post("/reset-total-hours", response_model=MessageResponse)
def reset_total_hours(db: Session = Depends(get_db), _=Depends(require_admin)):
    reset_all_users_total_hours(db)
    return MessageResponse(success=True, message="Total hours reset for all users")
