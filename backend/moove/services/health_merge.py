"""
Merge parsed Apple Health data into stored history.

Each category is merged on its own identity key and only new records are
inserted, so importing the same export twice adds nothing the second time:

- workouts: exact start instant (no fuzzy matching for clock skew)
- body metrics: date; an existing date is skipped, never field-merged
- activity days: date
"""

import logging
from dataclasses import dataclass, field

from moove.errors import StoreWriteError
from moove.parsers.records import (
    ExtractedActivityDay,
    ExtractedBodyMetric,
    ExtractedWorkout,
    HealthImportResult,
)
from moove.services.health_store import HealthStore, to_naive_utc

logger = logging.getLogger(__name__)

CATEGORY_LABELS = {
    "workouts": ("workout", "workouts"),
    "body_metrics": ("body measurement", "body measurements"),
    "activity_days": ("activity day", "activity days"),
}


@dataclass
class ImportSummary:
    workouts: int = 0
    body_metrics: int = 0
    activity_days: int = 0
    failed: dict[str, str] = field(default_factory=dict)  # category -> error

    @property
    def ok(self) -> bool:
        return not self.failed

    def counts(self) -> dict[str, int]:
        return {
            "workouts": self.workouts,
            "body_metrics": self.body_metrics,
            "activity_days": self.activity_days,
        }

    def message(self) -> str:
        """One line for the user describing what was imported."""
        parts = []
        for category, count in self.counts().items():
            if count:
                singular, plural = CATEGORY_LABELS[category]
                parts.append(f"{count} new {singular if count == 1 else plural}")
        if parts:
            text = ", ".join(parts) + " imported."
        else:
            text = "No new data to import (all entries already exist)."
        if self.failed:
            failed = ", ".join(CATEGORY_LABELS[c][1] for c in self.failed)
            text += f" Failed to save {failed}."
        return text


def import_workout_sessions(store: HealthStore, workouts: list[ExtractedWorkout]) -> int:
    """Insert workouts whose start instant is not already stored."""
    seen = store.existing_workout_start_times()
    new = []
    for workout in workouts:
        key = to_naive_utc(workout.started_at)
        if key in seen:
            continue
        seen.add(key)
        new.append(workout)
    if not new:
        return 0
    return store.insert_workouts(new)


def import_body_metrics(store: HealthStore, metrics: list[ExtractedBodyMetric]) -> int:
    seen = store.existing_body_metric_dates()
    new = []
    for metric in metrics:
        if metric.date in seen:
            continue
        seen.add(metric.date)
        new.append(metric)
    if not new:
        return 0
    return store.insert_body_metrics(new)


def import_activity_days(store: HealthStore, days: list[ExtractedActivityDay]) -> int:
    seen = store.existing_activity_dates()
    new = []
    for day in days:
        if day.date in seen:
            continue
        seen.add(day.date)
        new.append(day)
    if not new:
        return 0
    return store.insert_activity_days(new)


def import_health_result(store: HealthStore, result: HealthImportResult) -> ImportSummary:
    """Merge all three categories, recording failures per category."""
    summary = ImportSummary()
    steps = (
        ("workouts", import_workout_sessions, result.workouts),
        ("body_metrics", import_body_metrics, result.body_metrics),
        ("activity_days", import_activity_days, result.activity_days),
    )
    for category, merge, records in steps:
        try:
            added = merge(store, records)
        except StoreWriteError as exc:
            logger.warning("Import of %s failed: %s", category, exc)
            summary.failed[category] = str(exc)
            continue
        setattr(summary, category, added)
        logger.info("Imported %d new %s (%d found)", added, category, len(records))
    return summary
