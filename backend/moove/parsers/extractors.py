"""
Pattern-based record extractors for Apple Health ``export.xml`` fragments.

Fragments handed in by the scanner are cut at element boundaries but are not
well-formed XML documents, so each extractor finds the opening tags it cares
about with a regular expression and then parses that tag's attributes into a
dict. Attribute order inside a tag does not matter.

Each extractor takes one fragment plus the accumulator it fills and returns
the number of records it added or updated. A record whose fields cannot be
converted is logged at DEBUG and skipped; it never aborts the import.
"""

import logging
import math
import re
import uuid
from datetime import date, datetime, timezone
from typing import NamedTuple, Optional

from moove.errors import MalformedRecordError
from moove.parsers.records import (
    ExtractedActivityDay,
    ExtractedBlock,
    ExtractedBodyMetric,
    ExtractedWorkout,
)
from moove.parsers.units import (
    estimate_effort,
    kilocalories_from_energy,
    miles_from_distance,
    pounds_from_mass,
    seconds_from_duration,
)

logger = logging.getLogger(__name__)

# Apple Health date format, e.g. "2024-01-15 08:30:00 -0500"
APPLE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S %z"

WORKOUT_CLOSE = "</Workout>"
ACTIVITY_TYPE_PREFIX = "HKWorkoutActivityType"

DISTANCE_TYPES = (
    "HKQuantityTypeIdentifierDistanceWalkingRunning",
    "HKQuantityTypeIdentifierDistanceCycling",
    "HKQuantityTypeIdentifierDistanceSwimming",
)
ACTIVE_ENERGY_TYPE = "HKQuantityTypeIdentifierActiveEnergyBurned"
BODY_MASS_TYPE = "HKQuantityTypeIdentifierBodyMass"
BODY_FAT_TYPE = "HKQuantityTypeIdentifierBodyFatPercentage"

WORKOUT_REQUIRED = {"workoutActivityType", "duration", "durationUnit", "startDate", "endDate"}
BODY_MASS_REQUIRED = {"value", "unit", "startDate"}
BODY_FAT_REQUIRED = {"value", "startDate"}
ACTIVITY_SUMMARY_REQUIRED = {
    "dateComponents",
    "activeEnergyBurned",
    "appleExerciseTime",
    "appleStandHours",
}


class WorkoutType(NamedTuple):
    name: str
    block_type: str
    cardio_type: Optional[str] = None


WORKOUT_TYPES = {
    "HKWorkoutActivityTypeRunning": WorkoutType("Run", "cardio", "run"),
    "HKWorkoutActivityTypeWalking": WorkoutType("Walk", "cardio", "walk"),
    "HKWorkoutActivityTypeHiking": WorkoutType("Hike", "cardio", "hike"),
    "HKWorkoutActivityTypeCycling": WorkoutType("Cycling", "cardio"),
    "HKWorkoutActivityTypeTraditionalStrengthTraining": WorkoutType("Strength Training", "strength"),
    "HKWorkoutActivityTypeFunctionalStrengthTraining": WorkoutType("Functional Training", "strength"),
    "HKWorkoutActivityTypeYoga": WorkoutType("Yoga", "cooldown"),
    "HKWorkoutActivityTypeHighIntensityIntervalTraining": WorkoutType("HIIT", "conditioning"),
    "HKWorkoutActivityTypeRowing": WorkoutType("Rowing", "cardio"),
    "HKWorkoutActivityTypeCoreTraining": WorkoutType("Core Training", "strength"),
    "HKWorkoutActivityTypeFlexibility": WorkoutType("Flexibility", "cooldown"),
    "HKWorkoutActivityTypePilates": WorkoutType("Pilates", "strength"),
    "HKWorkoutActivityTypeElliptical": WorkoutType("Elliptical", "cardio"),
    "HKWorkoutActivityTypeStairClimbing": WorkoutType("Stair Climbing", "cardio"),
    "HKWorkoutActivityTypeCrossTraining": WorkoutType("Cross Training", "conditioning"),
    "HKWorkoutActivityTypeMixedCardio": WorkoutType("Mixed Cardio", "cardio"),
    "HKWorkoutActivityTypeSwimming": WorkoutType("Swimming", "cardio"),
    "HKWorkoutActivityTypeDance": WorkoutType("Dance", "conditioning"),
    "HKWorkoutActivityTypeCooldown": WorkoutType("Cooldown", "cooldown"),
    "HKWorkoutActivityTypeTrailRunning": WorkoutType("Trail Run", "cardio", "trail-run"),
}
DEFAULT_BLOCK_TYPE = "conditioning"

_ATTRIBUTE_RE = re.compile(r'([\w:.-]+)\s*=\s*"([^"]*)"')
_ELEMENT_RE = re.compile(r"<(?P<tag>[\w:]+)\s(?P<attrs>[^>]*?)/?>")
WORKOUT_TAG_RE = re.compile(r"<Workout\s(?P<attrs>[^>]*?)(?P<self_closing>/?)>")
ACTIVITY_SUMMARY_RE = re.compile(r"<ActivitySummary\s(?P<attrs>[^>]*?)/?>")


def _record_tag_pattern(type_identifier: str) -> re.Pattern:
    """Match ``<Record ...>`` tags carrying the given ``type`` attribute anywhere."""
    return re.compile(
        r'<Record\s(?P<attrs>(?:[^>]*?\s)?type="%s"[^>]*?)/?>' % re.escape(type_identifier)
    )


BODY_MASS_RE = _record_tag_pattern(BODY_MASS_TYPE)
BODY_FAT_RE = _record_tag_pattern(BODY_FAT_TYPE)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _parse_attributes(raw: str) -> dict[str, str]:
    return dict(_ATTRIBUTE_RE.findall(raw))


def _to_float(raw: str, field_name: str) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise MalformedRecordError(f"{field_name} is not a number: {raw!r}")
    if not math.isfinite(value):
        raise MalformedRecordError(f"{field_name} is not finite: {raw!r}")
    return value


def _whole(value: float) -> int:
    """Round half up to an int."""
    return int(math.floor(value + 0.5))


def _parse_timestamp(raw: str) -> datetime:
    """Parse an export timestamp into an aware datetime in its own offset.

    Handles the export's native "2024-01-15 08:30:00 -0500" as well as ISO-8601.
    Naive values are taken as UTC.
    """
    raw = raw.strip()
    try:
        return datetime.strptime(raw, APPLE_DATE_FORMAT)
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        raise MalformedRecordError(f"Unable to parse timestamp: {raw!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _record_date(raw: str) -> str:
    """UTC calendar date of a record timestamp."""
    return _parse_timestamp(raw).astimezone(timezone.utc).date().isoformat()


def format_activity_type(activity_type: str) -> str:
    """Turn an unmapped type tag into a display name.

    "HKWorkoutActivityTypeMartialArts" becomes "Martial Arts".
    """
    name = activity_type.replace(ACTIVITY_TYPE_PREFIX, "")
    name = re.sub(r"([A-Z])", r" \1", name).strip()
    return name or "Workout"


def resolve_workout_type(activity_type: str) -> WorkoutType:
    mapping = WORKOUT_TYPES.get(activity_type)
    if mapping is None:
        mapping = WorkoutType(format_activity_type(activity_type), DEFAULT_BLOCK_TYPE)
    return mapping


def _workout_context(fragment: str, match: re.Match) -> str:
    """Text from a workout's opening tag through its ``</Workout>``."""
    if match.group("self_closing"):
        return match.group(0)
    close = fragment.find(WORKOUT_CLOSE, match.end())
    if close < 0:
        return match.group(0)
    return fragment[match.start():close + len(WORKOUT_CLOSE)]


def _find_statistic(context: str, type_identifiers: tuple[str, ...]) -> Optional[tuple[float, str]]:
    """First ``sum`` (else ``quantity``) reported for the identifiers, in order."""
    children = [_parse_attributes(m.group("attrs")) for m in _ELEMENT_RE.finditer(context)]
    for identifier in type_identifiers:
        for key in ("sum", "quantity"):
            for attrs in children:
                if attrs.get("type") == identifier and key in attrs:
                    return _to_float(attrs[key], identifier), attrs.get("unit", "")
    return None


def _workout_statistic(
    context: str,
    workout_attrs: dict[str, str],
    type_identifiers: tuple[str, ...],
    legacy_attr: str,
) -> Optional[tuple[float, str]]:
    """Statistic from child elements, falling back to legacy ``total*`` attributes.

    An unreadable auxiliary value counts as absent; the workout itself is kept.
    """
    try:
        found = _find_statistic(context, type_identifiers)
        if found is None and legacy_attr in workout_attrs:
            found = (
                _to_float(workout_attrs[legacy_attr], legacy_attr),
                workout_attrs.get(legacy_attr + "Unit", ""),
            )
    except MalformedRecordError as exc:
        logger.debug("Ignoring workout statistic: %s", exc)
        return None
    return found


# ---------------------------------------------------------------------------
# Workouts
# ---------------------------------------------------------------------------


def _build_workout(attrs: dict[str, str], context: str) -> ExtractedWorkout:
    mapping = resolve_workout_type(attrs["workoutActivityType"])

    duration_seconds = seconds_from_duration(
        _to_float(attrs["duration"], "duration"), attrs["durationUnit"]
    )
    if duration_seconds < 0:
        raise MalformedRecordError(f"Negative duration: {attrs['duration']!r}")

    started_at = _parse_timestamp(attrs["startDate"]).astimezone(timezone.utc)
    completed_at = _parse_timestamp(attrs["endDate"]).astimezone(timezone.utc)
    if completed_at < started_at:
        raise MalformedRecordError(
            f"Workout ends before it starts: {attrs['startDate']!r} > {attrs['endDate']!r}"
        )

    distance_miles = None
    distance = _workout_statistic(context, attrs, DISTANCE_TYPES, "totalDistance")
    if distance is not None:
        distance_miles = round(miles_from_distance(*distance), 2) or None

    effort = None
    energy = _workout_statistic(context, attrs, (ACTIVE_ENERGY_TYPE,), "totalEnergyBurned")
    if energy is not None and duration_seconds > 0:
        kcal = kilocalories_from_energy(*energy)
        if kcal > 0:
            effort = estimate_effort(kcal, duration_seconds)

    return ExtractedWorkout(
        id=str(uuid.uuid4()),
        name=mapping.name,
        blocks=[
            ExtractedBlock(id=str(uuid.uuid4()), type=mapping.block_type, name=mapping.name)
        ],
        started_at=started_at,
        completed_at=completed_at,
        total_duration=_whole(duration_seconds),
        overall_effort=effort,
        cardio_type=mapping.cardio_type,
        distance=distance_miles,
    )


def extract_workouts(fragment: str, workouts: list[ExtractedWorkout]) -> int:
    """Append every ``<Workout>`` in *fragment* to *workouts*."""
    added = 0
    for match in WORKOUT_TAG_RE.finditer(fragment):
        attrs = _parse_attributes(match.group("attrs"))
        if not WORKOUT_REQUIRED.issubset(attrs):
            continue
        try:
            workout = _build_workout(attrs, _workout_context(fragment, match))
        except MalformedRecordError as exc:
            logger.debug("Skipping workout record: %s", exc)
            continue
        workouts.append(workout)
        added += 1
    return added


# ---------------------------------------------------------------------------
# Body metrics
# ---------------------------------------------------------------------------


def _metric_for(metrics: dict[str, ExtractedBodyMetric], day: str) -> ExtractedBodyMetric:
    metric = metrics.get(day)
    if metric is None:
        metric = metrics[day] = ExtractedBodyMetric(date=day)
    return metric


def extract_body_metrics(fragment: str, metrics: dict[str, ExtractedBodyMetric]) -> int:
    """Fold body-mass and body-fat records into the date-keyed *metrics* map.

    Each record only sets its own field, so a weight and a body-fat reading on
    the same day end up in one entry. A later reading of the same kind on the
    same day overwrites the earlier one.
    """
    updated = 0

    for match in BODY_MASS_RE.finditer(fragment):
        attrs = _parse_attributes(match.group("attrs"))
        if not BODY_MASS_REQUIRED.issubset(attrs):
            continue
        try:
            weight = pounds_from_mass(_to_float(attrs["value"], "value"), attrs["unit"])
            day = _record_date(attrs["startDate"])
        except MalformedRecordError as exc:
            logger.debug("Skipping body mass record: %s", exc)
            continue
        _metric_for(metrics, day).weight = round(weight, 1)
        updated += 1

    for match in BODY_FAT_RE.finditer(fragment):
        attrs = _parse_attributes(match.group("attrs"))
        if not BODY_FAT_REQUIRED.issubset(attrs):
            continue
        try:
            body_fat = _to_float(attrs["value"], "value") * 100
            day = _record_date(attrs["startDate"])
        except MalformedRecordError as exc:
            logger.debug("Skipping body fat record: %s", exc)
            continue
        _metric_for(metrics, day).body_fat = round(body_fat, 1)
        updated += 1

    return updated


# ---------------------------------------------------------------------------
# Activity summaries
# ---------------------------------------------------------------------------


def extract_activity_days(fragment: str, days: list[ExtractedActivityDay]) -> int:
    """Append one entry per ``<ActivitySummary>``; same-date repeats are kept."""
    added = 0
    for match in ACTIVITY_SUMMARY_RE.finditer(fragment):
        attrs = _parse_attributes(match.group("attrs"))
        if not ACTIVITY_SUMMARY_REQUIRED.issubset(attrs):
            continue
        try:
            try:
                day = date.fromisoformat(attrs["dateComponents"].strip()).isoformat()
            except ValueError:
                raise MalformedRecordError(
                    f"Unable to parse date: {attrs['dateComponents']!r}"
                )
            entry = ExtractedActivityDay(
                date=day,
                active_energy=_whole(_to_float(attrs["activeEnergyBurned"], "activeEnergyBurned")),
                exercise_minutes=_whole(_to_float(attrs["appleExerciseTime"], "appleExerciseTime")),
                stand_hours=_whole(_to_float(attrs["appleStandHours"], "appleStandHours")),
            )
        except MalformedRecordError as exc:
            logger.debug("Skipping activity summary: %s", exc)
            continue
        days.append(entry)
        added += 1
    return added
