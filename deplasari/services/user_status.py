"""
User availability tracking.

A user's status mirrors their most recent active assignment: ``Asigned`` or
``In Deplasare`` while an assignment is open, ``Liber`` otherwise. Helpers
prefixed ``set_`` only stage changes on the session; the caller commits.
"""
import json
from typing import Iterable, List, Optional

import structlog
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..models.models import (
    Assignment,
    User,
    STATUS_ASSIGNED,
    STATUS_IN_PROGRESS,
    STATUS_COMPLETED,
    USER_FREE,
)


logger = structlog.get_logger(__name__)

ACTIVE_STATUSES = (STATUS_ASSIGNED, STATUS_IN_PROGRESS)


def normalize_members(value) -> List[str]:
    """Members arrive as a list, a JSON-encoded list, or a single name."""
    if value is None or value == "":
        return []
    if isinstance(value, str):
        try:
            decoded = json.loads(value)
        except ValueError:
            return [value.strip()] if value.strip() else []
        value = decoded if isinstance(decoded, list) else [decoded]
    return [str(m).strip() for m in value if m is not None and str(m).strip()]


def team_names(team_lead: Optional[str], members: Optional[Iterable[str]]) -> List[str]:
    """Lead first, then members; blanks and the "None" placeholder are skipped."""
    names = []
    for name in [team_lead] + list(members or []):
        if not name or name == "None" or name in names:
            continue
        names.append(name)
    return names


def is_team_member(assignment: Assignment, user_name: str) -> bool:
    return assignment.team_lead == user_name or user_name in (assignment.members or [])


def status_for_assignment(assignment_status: Optional[str]) -> str:
    if assignment_status in ACTIVE_STATUSES:
        return assignment_status
    return USER_FREE


def set_team_status(
    db: Session,
    names: Iterable[str],
    status: str,
    current_assignment: Optional[str] = None,
) -> List[User]:
    """Stage a status change for every named user that exists."""
    updated = []
    for name in names:
        user = db.query(User).filter(User.name == name).first()
        if user is None:
            logger.info("team_member_not_found", name=name)
            continue
        user.status = status
        user.current_assignment = current_assignment if status != USER_FREE else None
        updated.append(user)
    return updated


def set_team_status_from_assignment(db: Session, assignment: Assignment) -> List[User]:
    """Apply an assignment's lifecycle to its whole team."""
    names = team_names(assignment.team_lead, assignment.members)
    status = status_for_assignment(assignment.status)
    label = f"{assignment.type} - {assignment.location}" if status != USER_FREE else None
    return set_team_status(db, names, status, label)


def update_user_status_from_assignment(
    db: Session,
    user_name: str,
    assignment_type: str,
    assignment_status: str,
    assignment_location: Optional[str],
) -> Optional[User]:
    status = status_for_assignment(assignment_status)
    label = f"{assignment_type} - {assignment_location}" if status != USER_FREE else None
    updated = set_team_status(db, [user_name], status, label)
    db.commit()
    logger.info("user_status_updated", name=user_name, status=status)
    return updated[0] if updated else None


def update_team_status(
    db: Session,
    team_lead: str,
    members: Iterable[str],
    assignment_type: str,
    assignment_status: str,
    assignment_location: Optional[str],
) -> List[User]:
    names = team_names(team_lead, members)
    status = status_for_assignment(assignment_status)
    label = f"{assignment_type} - {assignment_location}" if status != USER_FREE else None
    updated = set_team_status(db, names, status, label)
    db.commit()
    return updated


def update_team_statuses(
    db: Session,
    team_lead: str,
    members: Iterable[str],
    assignment_id: Optional[int],
    status: str,
) -> List[User]:
    """Point the whole team at one assignment by id; unknown names are skipped."""
    names = team_names(team_lead, members)
    current = str(assignment_id) if assignment_id and status != USER_FREE else None
    updated = set_team_status(db, names, status, current)
    db.commit()
    logger.info("team_statuses_updated", assignment_id=assignment_id, status=status, users=len(updated))
    return updated


def update_user_status(
    db: Session,
    user_id: int,
    status: str,
    assignment_id: Optional[int] = None,
) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise LookupError("User not found")
    user.status = status
    # current_assignment is a free-text column; ids are stored as strings
    user.current_assignment = str(assignment_id) if assignment_id else None
    db.commit()
    db.refresh(user)
    logger.info("user_status_set", user_id=user_id, status=status, assignment_id=assignment_id)
    return user


def reset_user_status(db: Session, user_id: int) -> User:
    return update_user_status(db, user_id, USER_FREE, None)


def sync_user_statuses(db: Session) -> int:
    """
    Rebuild every user's status from the open assignments.

    Everyone is reset to ``Liber`` first; then each non-finalized assignment
    is applied in creation order, so the newest assignment wins.

    Returns:
        Number of open assignments applied
    """
    db.query(User).update({User.status: USER_FREE, User.current_assignment: None}, synchronize_session=False)
    db.expire_all()
    open_assignments = (
        db.query(Assignment)
        .filter(Assignment.status != STATUS_COMPLETED)
        .order_by(Assignment.created_at.asc(), Assignment.id.asc())
        .all()
    )
    for assignment in open_assignments:
        set_team_status_from_assignment(db, assignment)
    db.commit()
    logger.info("user_statuses_synced", assignments=len(open_assignments))
    return len(open_assignments)


def check_user_statuses(db: Session) -> List[User]:
    """Users currently marked busy or still holding an assignment reference."""
    return (
        db.query(User)
        .filter(or_(User.status != USER_FREE, User.current_assignment.isnot(None)))
        .order_by(User.name.asc())
        .all()
    )


def get_available_users(db: Session) -> List[User]:
    return (
        db.query(User)
        .filter(or_(User.status == USER_FREE, User.status.is_(None)))
        .order_by(User.name.asc())
        .all()
    )


def check_user_availability(db: Session, user_name: str) -> bool:
    """Unknown users count as available."""
    user = db.query(User).filter(User.name == user_name).first()
    if user is None:
        return True
    return user.status != STATUS_IN_PROGRESS
