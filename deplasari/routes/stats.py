from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import Assignment
from ..services import stats
from ..services.hours import calculate_hours_by_type, calculate_total_hours
from ..services.time_rules import day_range, resolve_range, utcnow


router = APIRouter(prefix="/api", tags=["stats"])


# ---------- WORK DISTRIBUTION ----------
@router.get("/work-distribution")
def work_distribution(
    from_date: Optional[date] = Query(None, alias="from"),
    to_date: Optional[date] = Query(None, alias="to"),
    db: Session = Depends(get_db),
):
    if not from_date or not to_date:
        raise HTTPException(status_code=400, detail="Missing date range parameters")
    start, end = day_range(from_date, to_date)
    return stats.work_distribution(db, start, end)


@router.get("/user-hours")
def user_hours(
    startDate: Optional[date] = None,
    endDate: Optional[date] = None,
    db: Session = Depends(get_db),
):
    """Top users by logged hours; both bounds default to today"""
    today = utcnow().date()
    start, end = day_range(startDate or today, endDate or today)
    return stats.user_hours(db, start, end)


@router.get("/export/work-logs")
def export_work_logs(
    start: Optional[date] = None,
    end: Optional[date] = None,
    db: Session = Depends(get_db),
):
    start_dt, end_dt = resolve_range(start, end)
    content = stats.export_work_logs_csv(db, start_dt, end_dt)
    filename = f"work-logs-{start_dt.strftime('%Y-%m-%d')}.csv"
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ---------- DASHBOARD ----------
@router.get("/stats/top-workers")
def top_workers(
    metric: str = Query("hours", pattern="^(hours|km)$"),
    limit: int = 5,
    start: Optional[date] = None,
    end: Optional[date] = None,
    db: Session = Depends(get_db),
):
    start_dt, end_dt = resolve_range(start, end)
    if metric == "km":
        return stats.top_workers_by_kilometers(db, limit, start_dt, end_dt)
    return stats.top_workers_by_hours(db, limit, start_dt, end_dt)


@router.get("/stats/top-riders")
def top_riders(
    limit: int = 5,
    start: Optional[date] = None,
    end: Optional[date] = None,
    db: Session = Depends(get_db),
):
    start_dt, end_dt = resolve_range(start, end)
    return stats.top_riders_by_kilometers(db, limit, start_dt, end_dt)


@router.get("/stats/work-types")
def work_types(
    start: Optional[date] = None,
    end: Optional[date] = None,
    db: Session = Depends(get_db),
):
    start_dt, end_dt = resolve_range(start, end)
    return stats.work_distribution_by_type(db, start_dt, end_dt)


@router.get("/stats/work-types/{type_name}")
def work_type_details(
    type_name: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
    db: Session = Depends(get_db),
):
    start_dt, end_dt = resolve_range(start, end)
    return {
        "type": type_name,
        "assignments": stats.work_type_details(db, type_name, start_dt, end_dt),
        "daily_hours": stats.daily_hours_by_type(db, type_name, start_dt, end_dt),
    }


@router.get("/stats/totals")
def totals(
    start: Optional[date] = None,
    end: Optional[date] = None,
    db: Session = Depends(get_db),
):
    """Stored totals plus live hours of trips started in the range"""
    start_dt, end_dt = resolve_range(start, end)
    assignments = db.query(Assignment).filter(
        Assignment.start_date >= start_dt,
        Assignment.start_date < end_dt,
    ).all()
    return {
        "start": start_dt,
        "end": end_dt,
        "total_hours": stats.total_hours_in_range(db, start_dt, end_dt),
        "total_kilometers": stats.total_kilometers_in_range(db, start_dt, end_dt),
        "live_hours": calculate_total_hours(assignments, start_dt, end_dt),
        "live_hours_by_type": calculate_hours_by_type(assignments, start_dt, end_dt),
    }
