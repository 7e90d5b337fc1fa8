"""
Hours accounting.

Two different measures coexist: dashboard hours are computed live from
assignment timestamps (local-time offset applied, in-progress trips counted
up to a grace period before now), while ``users.total_hours`` accumulates
whole hours of finalized assignments.
"""
from datetime import datetime, timedelta
from typing import Dict, Iterable, Optional

import structlog
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import (
    Assignment,
    User,
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    WORK_TYPES,
)
from .time_rules import ensure_utc, in_range, utcnow, whole_hours_between
from .user_status import is_team_member


logger = structlog.get_logger(__name__)


def assignment_hours(assignment: Assignment, now: Optional[datetime] = None) -> float:
    """
    Live hours of one assignment.

    Finalized trips run from start to completion; trips still in progress
    run until ``now`` minus the grace period. Start and completion are
    shifted by the local-time offset. Other statuses, missing dates and
    negative ranges contribute nothing.
    """
    if assignment.start_date is None:
        return 0.0
    offset = timedelta(hours=settings.romania_offset_hours)
    start = ensure_utc(assignment.start_date) + offset
    if assignment.status == STATUS_COMPLETED and assignment.completion_date:
        end = ensure_utc(assignment.completion_date) + offset
    elif assignment.status == STATUS_IN_PROGRESS:
        end = ensure_utc(now or utcnow()) - timedelta(minutes=settings.in_progress_grace_min)
    else:
        return 0.0

    if end < start:
        logger.warning("invalid_assignment_range", assignment_id=assignment.id)
        return 0.0
    minutes = int((end - start).total_seconds() // 60)
    return max(minutes / 60, 0.0)


def calculate_total_hours(
    assignments: Iterable[Assignment],
    date_from: datetime,
    date_to: datetime,
    now: Optional[datetime] = None,
) -> float:
    total = 0.0
    for assignment in assignments:
        if not in_range(assignment.start_date, date_from, date_to):
            continue
        total += assignment_hours(assignment, now=now)
    return total


def calculate_hours_by_type(
    assignments: Iterable[Assignment],
    date_from: datetime,
    date_to: datetime,
    now: Optional[datetime] = None,
) -> Dict[str, float]:
    by_type = {t: 0.0 for t in WORK_TYPES}
    for assignment in assignments:
        if not in_range(assignment.start_date, date_from, date_to):
            continue
        key = (assignment.type or "").lower()
        if key not in by_type:
            logger.warning("unknown_assignment_type", assignment_id=assignment.id, type=assignment.type)
            continue
        by_type[key] += assignment_hours(assignment, now=now)
    return by_type


def update_user_total_hours(db: Session, user_id: int) -> int:
    """
    Recompute ``total_hours`` of one user from their finalized assignments.

    Raises:
        LookupError: if the user does not exist
    """
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise LookupError(f"User not found with ID: {user_id}")
    finalized = db.query(Assignment).filter(Assignment.status == STATUS_COMPLETED).all()
    total = 0
    for assignment in finalized:
        if not is_team_member(assignment, user.name):
            continue
        if assignment.start_date and assignment.completion_date:
            total += whole_hours_between(assignment.start_date, assignment.completion_date)
    user.total_hours = total
    db.commit()
    logger.info("user_total_hours_updated", user=user.name, total_hours=total)
    return total


def recalculate_all_users_total_hours(db: Session) -> int:
    user_ids = [uid for (uid,) in db.query(User.id).all()]
    for uid in user_ids:
        update_user_total_hours(db, uid)
    logger.info("all_total_hours_recalculated", users=len(user_ids))
    return len(user_ids)


def reset_all_users_total_hours(db: Session) -> None:
    db.query(User).update({User.total_hours: 0}, synchronize_session=False)
    db.commit()
    logger.info("all_total_hours_reset")
