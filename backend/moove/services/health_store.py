"""
SQLAlchemy-backed store for imported health records.

Provides the lookups the merge step needs to decide what is already saved
(workout start times, body-metric dates, activity dates) and bulk inserts for
each category. Each insert commits on its own so one category failing does
not undo the others.
"""

import logging
from datetime import date, datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from moove.errors import StoreWriteError
from moove.models import ActivityDay, BodyMetric, WorkoutBlock, WorkoutSession
from moove.parsers.records import (
    ExtractedActivityDay,
    ExtractedBodyMetric,
    ExtractedWorkout,
)

logger = logging.getLogger(__name__)


def to_naive_utc(value: datetime) -> datetime:
    """Normalise a datetime to the naive-UTC form stored in the database."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class HealthStore:
    def __init__(self, db: Session):
        self.db = db

    def _commit(self, category: str, objects: list) -> int:
        try:
            self.db.add_all(objects)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreWriteError(category, f"Failed to save {category}: {exc}")
        return len(objects)

    # -- workouts ----------------------------------------------------------

    def existing_workout_start_times(self) -> set[datetime]:
        rows = self.db.query(WorkoutSession.started_at).all()
        return {to_naive_utc(started_at) for (started_at,) in rows}

    def insert_workouts(self, workouts: list[ExtractedWorkout]) -> int:
        objects = []
        for workout in workouts:
            objects.append(WorkoutSession(
                id=workout.id,
                name=workout.name,
                started_at=to_naive_utc(workout.started_at),
                completed_at=to_naive_utc(workout.completed_at),
                total_duration=workout.total_duration,
                overall_effort=workout.overall_effort,
                cardio_type=workout.cardio_type,
                distance=workout.distance,
                source=workout.source,
            ))
            for position, block in enumerate(workout.blocks):
                objects.append(WorkoutBlock(
                    id=block.id,
                    session_id=workout.id,
                    position=position,
                    type=block.type,
                    name=block.name,
                ))
        self._commit("workouts", objects)
        return len(workouts)

    # -- body metrics ------------------------------------------------------

    def existing_body_metric_dates(self) -> set[str]:
        rows = self.db.query(BodyMetric.date).all()
        return {d.isoformat() for (d,) in rows}

    def insert_body_metrics(self, metrics: list[ExtractedBodyMetric]) -> int:
        return self._commit("body_metrics", [
            BodyMetric(
                date=date.fromisoformat(m.date),
                weight=m.weight,
                body_fat=m.body_fat,
                source=m.source,
            )
            for m in metrics
        ])

    # -- activity days -----------------------------------------------------

    def existing_activity_dates(self) -> set[str]:
        rows = self.db.query(ActivityDay.date).all()
        return {d.isoformat() for (d,) in rows}

    def insert_activity_days(self, days: list[ExtractedActivityDay]) -> int:
        return self._commit("activity_days", [
            ActivityDay(
                date=date.fromisoformat(d.date),
                active_energy=d.active_energy,
                exercise_minutes=d.exercise_minutes,
                stand_hours=d.stand_hours,
            )
            for d in days
        ])
