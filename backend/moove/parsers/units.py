"""
Unit conversions and derived metrics for imported health data.

Apple Health reports mass in kg, distance in km and durations in a mix of
units; the app stores pounds, miles and seconds.
"""

KG_TO_LB = 2.20462
KM_TO_MI = 0.621371

DURATION_FACTORS = {
    "sec": 1,
    "min": 60,
    "hr": 3600,
}

# (kcal per minute upper bound, effort score), checked in order
EFFORT_THRESHOLDS = (
    (3, 2),
    (5, 3),
    (7, 4),
    (9, 5),
    (11, 6),
    (13, 7),
    (15, 8),
    (18, 9),
)
MAX_EFFORT = 10


def pounds_from_kilograms(kg: float) -> float:
    return kg * KG_TO_LB


def miles_from_kilometers(km: float) -> float:
    return km * KM_TO_MI


def seconds_from_duration(value: float, unit: str) -> float:
    """Convert a duration to seconds. Unrecognised units are taken as seconds."""
    return value * DURATION_FACTORS.get(unit, 1)


def pounds_from_mass(value: float, unit: str) -> float:
    """Convert a body-mass reading in *unit* to pounds (``lb`` passes through)."""
    if unit == "kg":
        return pounds_from_kilograms(value)
    if unit == "g":
        return pounds_from_kilograms(value / 1000)
    return value


def miles_from_distance(value: float, unit: str) -> float:
    """Convert a distance in *unit* to miles. Unknown units are taken as km."""
    if unit == "mi":
        return value
    if unit == "m":
        return miles_from_kilometers(value / 1000)
    return miles_from_kilometers(value)


def estimate_effort(active_energy_kcal: float, duration_seconds: float) -> int:
    """Rough 1-10 effort score from the active-energy burn rate.

    This is a coarse lookup on kcal/minute, not a physiological model. The
    floor is 2: a workout that recorded energy at all is assumed to be at
    least mildly effortful. Callers without energy data should not call this.
    """
    if duration_seconds <= 0:
        raise ValueError(f"Duration must be positive, got {duration_seconds}")

    kcal_per_minute = active_energy_kcal / (duration_seconds / 60)
    for upper_bound, effort in EFFORT_THRESHOLDS:
        if kcal_per_minute < upper_bound:
            return effort
    return MAX_EFFORT


def kilocalories_from_energy(value: float, unit: str) -> float:
    """Convert an energy reading to kcal (``kJ`` converted, anything else kept)."""
    if unit == "kJ":
        return value / 4.184
    return value
