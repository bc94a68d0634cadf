"""
Value types produced by the Apple Health export parser.

The extractors fill an ``ImportAccumulator`` fragment by fragment; once the
whole document has been scanned it is finalized into a sorted
``HealthImportResult`` that is handed to the merge step.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

APPLE_HEALTH_SOURCE = "apple_health"


@dataclass
class ExtractedBlock:
    """The single synthetic block attached to an imported workout."""
    id: str
    type: str  # cardio, strength, conditioning, cooldown
    name: str


@dataclass
class ExtractedWorkout:
    id: str
    name: str
    blocks: list[ExtractedBlock]
    started_at: datetime  # aware, UTC
    completed_at: datetime
    total_duration: int  # seconds
    overall_effort: Optional[int] = None
    cardio_type: Optional[str] = None
    distance: Optional[float] = None  # miles
    source: str = APPLE_HEALTH_SOURCE


@dataclass
class ExtractedBodyMetric:
    date: str  # YYYY-MM-DD
    weight: Optional[float] = None  # lb
    body_fat: Optional[float] = None  # percent
    source: str = APPLE_HEALTH_SOURCE


@dataclass
class ExtractedActivityDay:
    date: str
    active_energy: int
    exercise_minutes: int
    stand_hours: int


@dataclass
class HealthImportResult:
    workouts: list[ExtractedWorkout] = field(default_factory=list)
    body_metrics: list[ExtractedBodyMetric] = field(default_factory=list)
    activity_days: list[ExtractedActivityDay] = field(default_factory=list)

    def counts(self) -> dict[str, int]:
        return {
            "workouts": len(self.workouts),
            "body_metrics": len(self.body_metrics),
            "activity_days": len(self.activity_days),
        }


@dataclass
class ImportProgress:
    phase: str  # "parsing" or "done"
    percent: int
    detail: str


@dataclass
class ImportAccumulator:
    """Mutable state shared by the extractors during one import."""
    workouts: list[ExtractedWorkout] = field(default_factory=list)
    body_metrics: dict[str, ExtractedBodyMetric] = field(default_factory=dict)
    activity_days: list[ExtractedActivityDay] = field(default_factory=list)

    def describe(self) -> str:
        return (
            f"{len(self.workouts)} workouts, "
            f"{len(self.body_metrics)} measurements, "
            f"{len(self.activity_days)} activity days"
        )

    def finalize(self) -> HealthImportResult:
        """Sort everything and collapse body metrics into a date-ordered list."""
        return HealthImportResult(
            workouts=sorted(self.workouts, key=lambda w: w.started_at),
            body_metrics=sorted(self.body_metrics.values(), key=lambda m: m.date),
            activity_days=sorted(self.activity_days, key=lambda d: d.date),
        )
