from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import get_password_hash
from ..models.models import User, USER_FREE
from ..schemas.users import (
    UserCreate,
    UserUpdate,
    UserResponse,
    UserWithStats,
    UserStatusUpdate,
    UserStatsResponse,
    AvailabilityResponse,
)
from ..schemas.assignments import MessageResponse
from ..services import stats
from ..services.time_rules import utcnow
from ..services.user_status import (
    check_user_availability,
    get_available_users,
    reset_user_status,
    update_user_status,
)
from .deps import parse_id


router = APIRouter(prefix="/api/users", tags=["users"])
logger = structlog.get_logger(__name__)


def _get_user_or_404(db: Session, user_id: str) -> User:
    uid = parse_id(user_id, "user ID")
    user = db.query(User).filter(User.id == uid).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


# ---------- LIST ----------
@router.get("", response_model=List[UserWithStats])
def list_users(db: Session = Depends(get_db)):
    """Every user with this month's hours and assignment counts"""
    return stats.users_with_month_stats(db)


@router.get("/available", response_model=List[UserResponse])
def list_available_users(db: Session = Depends(get_db)):
    return get_available_users(db)


# ---------- CRUD ----------
@router.get("/{user_id}", response_model=UserResponse)
def get_user(user_id: str, db: Session = Depends(get_db)):
    return _get_user_or_404(db, user_id)


@router.post("", response_model=UserResponse)
def create_user(payload: UserCreate, db: Session = Depends(get_db)):
    if db.query(User).filter(User.name == payload.name).first():
        raise HTTPException(status_code=400, detail="A user with this name already exists")
    if payload.username and db.query(User).filter(User.username == payload.username).first():
        raise HTTPException(status_code=400, detail="Username already taken")
    user = User(
        name=payload.name,
        email=payload.email,
        role=payload.role,
        username=payload.username,
        password_hash=get_password_hash(payload.password) if payload.password else None,
        profile_photo=payload.profile_photo,
        status=USER_FREE,
        total_hours=0,
        created_at=utcnow(),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("user_created", user_id=user.id, name=user.name)
    return user


@router.put("/{user_id}", response_model=UserResponse)
def update_user(user_id: str, payload: UserUpdate, db: Session = Depends(get_db)):
    user = _get_user_or_404(db, user_id)
    data = payload.model_dump(exclude_unset=True)
    if "name" in data and data["name"] != user.name:
        if db.query(User).filter(User.name == data["name"]).first():
            raise HTTPException(status_code=400, detail="A user with this name already exists")
    password = data.pop("password", None)
    if password:
        user.password_hash = get_password_hash(password)
    if "status" in data and data["status"] is not None:
        data["status"] = data["status"].value
    try:
        for k, v in data.items():
            setattr(user, k, v)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(user)
    return user


@router.delete("/{user_id}", response_model=MessageResponse)
def delete_user(user_id: str, db: Session = Depends(get_db)):
    user = _get_user_or_404(db, user_id)
    db.delete(user)
    db.commit()
    logger.info("user_deleted", user_id=user.id)
    return MessageResponse(success=True, message="User deleted")


# ---------- STATUS ----------
@router.get("/{user_id}/availability", response_model=AvailabilityResponse)
def user_availability(user_id: str, db: Session = Depends(get_db)):
    user = _get_user_or_404(db, user_id)
    return AvailabilityResponse(name=user.name, available=check_user_availability(db, user.name))


@router.put("/{user_id}/status", response_model=UserResponse)
def set_user_status(user_id: str, payload: UserStatusUpdate, db: Session = Depends(get_db)):
    uid = parse_id(user_id, "user ID")
    try:
        return update_user_status(db, uid, payload.status.value, payload.assignment_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{user_id}/reset-status", response_model=UserResponse)
def reset_status(user_id: str, db: Session = Depends(get_db)):
    uid = parse_id(user_id, "user ID")
    try:
        return reset_user_status(db, uid)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


# ---------- STATS ----------
@router.get("/{user_id}/stats", response_model=UserStatsResponse)
def user_stats(user_id: str, month: Optional[str] = Query(None, description="YYYY-MM"), db: Session = Depends(get_db)):
    uid = parse_id(user_id, "user ID")
    month = month or utcnow().strftime("%Y-%m")
    try:
        return stats.user_stats(db, uid, month)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/{user_id}/work-logs")
def user_work_logs(user_id: str, db: Session = Depends(get_db)):
    user = _get_user_or_404(db, user_id)
    return stats.user_work_logs(db, user.id)


@router.get("/{user_id}/totals")
def user_totals(user_id: str, db: Session = Depends(get_db)):
    uid = parse_id(user_id, "user ID")
    result = stats.top_worker_by_id(db, uid)
    if result is None:
        raise HTTPException(status_code=404, detail="User not found")
    return result
