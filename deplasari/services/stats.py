"""
Dashboard statistics.

Aggregations over assignments and work logs. Ranges are half-open UTC
intervals [start, end); when omitted they default to the current month.
A user takes part in an assignment as its team lead or as a member.
"""
import csv
import io
from collections import OrderedDict, defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy.orm import Session

from ..models.models import (
    Assignment,
    User,
    WorkLog,
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    WORK_TYPES,
)
from .time_rules import ensure_utc, hours_between, in_range, month_range, utcnow
from .user_status import is_team_member


logger = structlog.get_logger(__name__)

CSV_HEADER = [
    "ID", "Type", "Location", "Team Lead", "Members", "Start Date", "Due Date",
    "Completion Date", "Status", "Hours", "Store Number", "County", "City",
    "Magazin", "County Code",
]


def _range(start: Optional[datetime], end: Optional[datetime]):
    if start is None or end is None:
        return month_range()
    return ensure_utc(start), ensure_utc(end)


def _assignments_in_range(db: Session, start, end, status: Optional[str] = None) -> List[Assignment]:
    query = db.query(Assignment).filter(Assignment.start_date >= start, Assignment.start_date < end)
    if status:
        query = query.filter(Assignment.status == status)
    return query.all()


def _worker_ranking(db: Session, start, end, metric: str) -> List[Dict[str, Any]]:
    """Per-user totals of ``metric`` ("hours" or "km") over finalized assignments."""
    finalized = _assignments_in_range(db, start, end, STATUS_COMPLETED)
    total_key = "total_hours" if metric == "hours" else "total_kilometers"
    rows = []
    for user in db.query(User).all():
        mine = [a for a in finalized if is_team_member(a, user.name)]
        rows.append({
            "id": user.id,
            "name": user.name,
            "profile_photo": user.profile_photo,
            total_key: sum(float(getattr(a, metric) or 0) for a in mine),
            "assignment_count": len(mine),
            "store_count": len({a.store_number for a in mine if a.store_number}),
            "assignments": [
                {"id": a.id, "type": a.type, metric: getattr(a, metric), "store_number": a.store_number}
                for a in mine
            ],
        })
    rows.sort(key=lambda r: r[total_key], reverse=True)
    return rows


def _limit(rows: List[Dict[str, Any]], limit: int) -> List[Dict[str, Any]]:
    return rows[:limit] if limit > 0 else rows


def top_workers_by_hours(db: Session, limit: int = 5, start=None, end=None) -> List[Dict[str, Any]]:
    start, end = _range(start, end)
    return _limit(_worker_ranking(db, start, end, "hours"), limit)


def top_workers_by_kilometers(db: Session, limit: int = 5, start=None, end=None) -> List[Dict[str, Any]]:
    start, end = _range(start, end)
    return _limit(_worker_ranking(db, start, end, "km"), limit)


def top_riders_by_kilometers(db: Session, limit: int = 5, start=None, end=None) -> List[Dict[str, Any]]:
    start, end = _range(start, end)
    rows = [r for r in _worker_ranking(db, start, end, "km") if r["total_kilometers"] > 0]
    return _limit(rows, limit)


def work_distribution_by_type(db: Session, start=None, end=None) -> List[Dict[str, Any]]:
    start, end = _range(start, end)
    groups: Dict[str, List[Assignment]] = defaultdict(list)
    for assignment in _assignments_in_range(db, start, end):
        groups[assignment.type].append(assignment)
    rows = []
    for type_name, items in groups.items():
        stores = sorted({a.store_number for a in items if a.store_number})
        rows.append({
            "type": type_name,
            "total_hours": sum(float(a.hours or 0) for a in items),
            "assignment_count": len(items),
            "store_count": len(stores),
            "unique_store_ids": stores,
        })
    rows.sort(key=lambda r: r["total_hours"], reverse=True)
    return rows


def total_hours_in_range(db: Session, start=None, end=None) -> float:
    start, end = _range(start, end)
    return sum(float(a.hours or 0) for a in _assignments_in_range(db, start, end))


def total_kilometers_in_range(db: Session, start=None, end=None) -> float:
    start, end = _range(start, end)
    return sum(float(a.km or 0) for a in _assignments_in_range(db, start, end))


def _csv_value(value) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return ensure_utc(value).isoformat()
    if isinstance(value, list):
        return ";".join(str(v) for v in value)
    return str(value)


def export_work_logs_csv(db: Session, start=None, end=None) -> str:
    start, end = _range(start, end)
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for a in sorted(_assignments_in_range(db, start, end), key=lambda a: a.id):
        writer.writerow([_csv_value(v) for v in (
            a.id, a.type, a.location, a.team_lead, a.members, a.start_date,
            a.due_date, a.completion_date, a.status, a.hours, a.store_number,
            a.county, a.city, a.magazin, a.county_code,
        )])
    return buffer.getvalue()


def work_distribution(db: Session, start: datetime, end: datetime) -> Dict[str, int]:
    """Hours per work type of assignments finalized inside the range."""
    totals = OrderedDict((t, 0.0) for t in WORK_TYPES)
    finalized = (
        db.query(Assignment)
        .filter(
            Assignment.status == STATUS_COMPLETED,
            Assignment.completion_date >= start,
            Assignment.completion_date < end,
        )
        .all()
    )
    for assignment in finalized:
        key = (assignment.type or "").lower()
        totals[key] = totals.get(key, 0.0) + float(assignment.hours or 0)
    return {k: int(v) for k, v in totals.items()}


def _logs_in_range(db: Session, start, end, user_id: Optional[int] = None):
    query = (
        db.query(WorkLog, Assignment)
        .join(Assignment, WorkLog.assignment_id == Assignment.id)
        .filter(WorkLog.work_date >= start, WorkLog.work_date < end)
    )
    if user_id is not None:
        query = query.filter(WorkLog.user_id == user_id)
    return query.order_by(WorkLog.work_date.desc()).all()


def user_hours(db: Session, start: datetime, end: datetime, limit: int = 10) -> List[Dict[str, Any]]:
    """Top users by logged hours, with assignment count and kilometers."""
    per_user: Dict[int, Dict[str, Any]] = {}
    for user in db.query(User).all():
        per_user[user.id] = {
            "user_id": user.id,
            "name": user.name,
            "total_hours": 0.0,
            "assignments": set(),
            "total_kilometers": 0.0,
        }
    for log, _assignment in _logs_in_range(db, start, end):
        row = per_user.get(log.user_id)
        if row is None:
            continue
        row["total_hours"] += float(log.hours or 0)
        row["total_kilometers"] += float(log.kilometers or 0)
        row["assignments"].add(log.assignment_id)
    rows = []
    for row in per_user.values():
        row["assignment_count"] = len(row.pop("assignments"))
        rows.append(row)
    rows.sort(key=lambda r: r["total_hours"], reverse=True)
    return rows[:limit]


def _log_entry(log: WorkLog, assignment: Assignment, user_name: Optional[str] = None) -> Dict[str, Any]:
    entry = {
        "id": log.id,
        "work_date": ensure_utc(log.work_date),
        "type": assignment.type,
        "location": assignment.location,
        "store_number": assignment.store_number,
        "county": assignment.county,
        "city": assignment.city,
        "hours": float(log.hours or 0),
        "km": float(assignment.km or 0),
        "status": assignment.status,
        "team_lead": assignment.team_lead,
        "store_points": [str(s) for s in (assignment.store_points or [])],
    }
    if user_name is not None:
        entry["user_name"] = user_name
    return entry


def user_work_logs(db: Session, user_id: int) -> List[Dict[str, Any]]:
    rows = (
        db.query(WorkLog, Assignment, User)
        .join(Assignment, WorkLog.assignment_id == Assignment.id)
        .join(User, WorkLog.user_id == User.id)
        .filter(WorkLog.user_id == user_id)
        .order_by(WorkLog.work_date.desc())
        .all()
    )
    return [_log_entry(log, assignment, user.name) for log, assignment, user in rows]


def _timeline_location(assignment: Assignment) -> str:
    location = f"{assignment.city or ''}, {assignment.county or ''}"
    if assignment.store_number:
        location += f" (Nr. {assignment.store_number})"
    location = location.strip()
    return location if location.strip(", ") else "Unknown location"


def user_stats(db: Session, user_id: int, month: str) -> Dict[str, Any]:
    """
    Monthly profile of one user built from their work logs.

    Raises:
        ValueError: malformed month
        LookupError: unknown user
    """
    start, end = month_range(month)
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise LookupError(f"User with ID {user_id} not found in database")
    logs = _logs_in_range(db, start, end, user_id=user_id)

    total_hours = sum(float(log.hours or 0) for log, _ in logs)
    total_km = sum(float(a.km or 0) for _, a in logs)
    locations = set()
    store_count = 0
    hours_by_type: Dict[str, float] = OrderedDict()
    timeline = []
    for log, assignment in logs:
        if assignment.location:
            locations.add(assignment.location)
        points = [str(s) for s in (assignment.store_points or [])]
        store_count += len(points)
        locations.update(points)
        type_name = assignment.type or "Unknown"
        hours_by_type[type_name] = hours_by_type.get(type_name, 0.0) + float(log.hours or 0)
        description = assignment.status or "Worked"
        if assignment.team_lead:
            description += f" ({assignment.team_lead})"
        timeline.append({
            "id": log.id,
            "date": ensure_utc(log.work_date).strftime("%Y-%m-%d") if log.work_date else "Unknown date",
            "type": type_name,
            "location": _timeline_location(assignment),
            "hours": float(log.hours or 0),
            "kilometers": float(assignment.km or 0),
            "description": description,
            "store_points": [{"id": p} for p in points],
            "county": assignment.county,
            "city": assignment.city,
            "store_number": assignment.store_number,
        })

    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "total_kilometers": total_km,
        "total_hours": total_hours,
        "work_logs": len(logs),
        "locations": len(locations) or store_count or len(logs),
        "hours_by_type": [{"type": t, "hours": h} for t, h in hours_by_type.items()],
        "timeline": timeline,
    }


def top_worker_by_id(db: Session, user_id: int) -> Optional[Dict[str, Any]]:
    """Lifetime totals of one user over every assignment they took part in."""
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        return None
    mine = [a for a in db.query(Assignment).all() if is_team_member(a, user.name)]
    return {
        "id": user.id,
        "name": user.name,
        "profile_photo": user.profile_photo,
        "total_hours": sum(float(a.hours or 0) for a in mine),
        "total_kilometers": sum(float(a.km or 0) for a in mine),
        "assignment_count": len(mine),
        "store_count": len({a.store_number for a in mine if a.store_number}),
        "assignments": [
            {
                "id": a.id,
                "type": a.type,
                "hours": a.hours,
                "km": a.km,
                "store_number": a.store_number,
                "start_date": ensure_utc(a.start_date),
                "completion_date": ensure_utc(a.completion_date),
                "location": a.location,
            }
            for a in mine
        ],
    }


def work_type_details(db: Session, type_name: str, start: datetime, end: datetime) -> List[Dict[str, Any]]:
    """Assignments of one type with the hours logged against them in the range."""
    per_assignment: Dict[int, Dict[str, Any]] = OrderedDict()
    for log, assignment in _logs_in_range(db, start, end):
        if (assignment.type or "").lower() != type_name.lower():
            continue
        row = per_assignment.setdefault(assignment.id, {
            "id": assignment.id,
            "location": assignment.location,
            "date": ensure_utc(assignment.created_at),
            "hours": 0.0,
            "stores": len(assignment.store_points or []),
        })
        row["hours"] += float(log.hours or 0)
    rows = list(per_assignment.values())
    rows.sort(key=lambda r: r["date"] or datetime.min.replace(tzinfo=start.tzinfo), reverse=True)
    return rows


def daily_hours_by_type(db: Session, type_name: str, start: datetime, end: datetime) -> List[Dict[str, Any]]:
    per_day: Dict[str, float] = defaultdict(float)
    for log, assignment in _logs_in_range(db, start, end):
        if (assignment.type or "").lower() != type_name.lower():
            continue
        per_day[ensure_utc(log.work_date).strftime("%Y-%m-%d")] += float(log.hours or 0)
    return [{"date": day, "hours": hours} for day, hours in sorted(per_day.items())]


def users_with_month_stats(db: Session, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """
    Every user with this month's activity.

    Hours come from the start/completion timestamps when both are present,
    otherwise from the stored hours. ``in_deplasare_hours`` counts open trips
    up to now.
    """
    now = ensure_utc(now) if now else utcnow()
    start, end = month_range(now=now)
    assignments = db.query(Assignment).all()
    rows = []
    for user in db.query(User).all():
        mine = [a for a in assignments if is_team_member(a, user.name)]
        in_month = [a for a in mine if in_range(a.start_date, start, end)]
        total = 0.0
        liber = 0.0
        travelling = 0.0
        for a in in_month:
            if a.start_date and a.completion_date:
                hours = hours_between(a.start_date, a.completion_date)
            else:
                hours = float(a.hours or 0)
            total += hours
            if a.status == STATUS_COMPLETED:
                liber += hours
            elif a.status == STATUS_IN_PROGRESS and a.start_date:
                travelling += hours_between(a.start_date, now)
        completions = [ensure_utc(a.completion_date) for a in in_month if a.completion_date]
        open_starts = [ensure_utc(a.start_date) for a in mine if a.status == STATUS_IN_PROGRESS and a.start_date]
        rows.append({
            "id": user.id,
            "name": user.name,
            "email": user.email,
            "role": user.role,
            "status": user.status,
            "current_assignment": user.current_assignment,
            "profile_photo": user.profile_photo,
            "total_hours": total,
            "assignment_count": len(in_month),
            "store_count": len({a.store_number for a in in_month if a.store_number}),
            "last_completion_date": max(completions) if completions else None,
            "current_assignment_start": min(open_starts) if open_starts else None,
            "liber_hours": liber,
            "in_deplasare_hours": travelling,
        })
    rows.sort(key=lambda r: r["total_hours"], reverse=True)
    return rows
