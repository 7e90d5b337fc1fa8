import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import User
from ..schemas.auth import LoginRequest, TokenResponse, MeResponse
from .security import verify_password, create_access_token, get_current_user


router = APIRouter(prefix="/auth", tags=["auth"])
logger = structlog.get_logger(__name__)


@router.post("/login", response_model=TokenResponse)
def login(req: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(
        (User.username == req.identifier) | (User.email == req.identifier)
    ).first()
    if not user or not verify_password(req.password, user.password_hash):
        logger.info("login_failed", identifier=req.identifier)
        raise HTTPException(status_code=401, detail="Invalid credentials")
    access = create_access_token(str(user.id), roles=[user.role] if user.role else [])
    logger.info("login_ok", user_id=user.id)
    return TokenResponse(access_token=access)


@router.get("/me", response_model=MeResponse)
def me(user: User = Depends(get_current_user)):
    return MeResponse(
        id=user.id,
        name=user.name,
        username=user.username,
        email=user.email,
        role=user.role,
    )
