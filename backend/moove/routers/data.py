from datetime import date, datetime, timedelta
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from sqlalchemy import func, and_

from moove.database import get_db
from moove import models

router = APIRouter(tags=["data"])

DEFAULT_RANGE_DAYS = 30


# ─── Helper ───────────────────────────────────────────────────

def _date_range(start: Optional[str], end: Optional[str]):
    """Parse start/end query params, defaulting to the last 30 days."""
    try:
        end_date = date.fromisoformat(end) if end else date.today()
        start_date = (
            date.fromisoformat(start) if start
            else end_date - timedelta(days=DEFAULT_RANGE_DAYS)
        )
    except ValueError:
        raise HTTPException(status_code=400, detail="Dates must be YYYY-MM-DD")
    return start_date, end_date


def _dt_range(start_date: date, end_date: date):
    """Convert a date range to a datetime range for timestamp columns."""
    return datetime.combine(start_date, datetime.min.time()), \
           datetime.combine(end_date + timedelta(days=1), datetime.min.time())


# ─── Metrics Info ─────────────────────────────────────────────

@router.get("/metrics")
def get_metrics(db: Session = Depends(get_db)):
    """List stored record categories with their date ranges."""
    metrics = []

    metric_configs = [
        ("workouts", "Workouts", "", models.WorkoutSession, "started_at"),
        ("body_metrics", "Body Measurements", "lb", models.BodyMetric, "date"),
        ("activity_days", "Activity", "kcal", models.ActivityDay, "date"),
    ]

    for name, label, unit, model, date_col in metric_configs:
        col = getattr(model, date_col)
        result = db.query(func.min(col), func.max(col), func.count()).first()
        if result and result[2] > 0:
            start = result[0]
            end = result[1]
            if isinstance(start, datetime):
                start = start.date()
            if isinstance(end, datetime):
                end = end.date()
            metrics.append({
                "name": name,
                "label": label,
                "unit": unit,
                "startDate": str(start),
                "endDate": str(end),
                "count": result[2],
            })

    return {"metrics": metrics}


# ─── Workouts ─────────────────────────────────────────────────

@router.get("/data/workouts")
def get_workouts(
    start: Optional[str] = None,
    end: Optional[str] = None,
    db: Session = Depends(get_db),
):
    start_date, end_date = _date_range(start, end)
    start_dt, end_dt = _dt_range(start_date, end_date)

    rows = db.query(models.WorkoutSession).filter(
        and_(
            models.WorkoutSession.started_at >= start_dt,
            models.WorkoutSession.started_at < end_dt,
        )
    ).order_by(models.WorkoutSession.started_at).all()

    blocks_by_session: dict[str, list] = {}
    if rows:
        blocks = db.query(models.WorkoutBlock).filter(
            models.WorkoutBlock.session_id.in_([r.id for r in rows])
        ).order_by(models.WorkoutBlock.position).all()
        for b in blocks:
            blocks_by_session.setdefault(b.session_id, []).append(
                {"id": b.id, "type": b.type, "name": b.name}
            )

    return {
        "data": [
            {
                "id": r.id,
                "name": r.name,
                "blocks": blocks_by_session.get(r.id, []),
                "startedAt": r.started_at.isoformat(),
                "completedAt": r.completed_at.isoformat() if r.completed_at else None,
                "totalDuration": r.total_duration,
                "overallEffort": r.overall_effort,
                "cardioType": r.cardio_type,
                "distance": r.distance,
                "source": r.source,
            }
            for r in rows
        ]
    }


# ─── Body Metrics ─────────────────────────────────────────────

@router.get("/data/body-metrics")
def get_body_metrics(
    start: Optional[str] = None,
    end: Optional[str] = None,
    db: Session = Depends(get_db),
):
    start_date, end_date = _date_range(start, end)

    rows = db.query(models.BodyMetric).filter(
        and_(models.BodyMetric.date >= start_date, models.BodyMetric.date <= end_date)
    ).order_by(models.BodyMetric.date).all()

    return {
        "data": [
            {"date": str(r.date), "weight": r.weight, "bodyFat": r.body_fat, "source": r.source}
            for r in rows
        ]
    }


# ─── Activity ─────────────────────────────────────────────────

@router.get("/data/activity-days")
def get_activity_days(
    start: Optional[str] = None,
    end: Optional[str] = None,
    db: Session = Depends(get_db),
):
    start_date, end_date = _date_range(start, end)

    rows = db.query(models.ActivityDay).filter(
        and_(models.ActivityDay.date >= start_date, models.ActivityDay.date <= end_date)
    ).order_by(models.ActivityDay.date).all()

    return {
        "data": [
            {
                "date": str(r.date),
                "activeEnergy": r.active_energy,
                "exerciseMinutes": r.exercise_minutes,
                "standHours": r.stand_hours,
            }
            for r in rows
        ]
    }
