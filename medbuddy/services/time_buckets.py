"""Time-of-day buckets for medication schedules."""

import re
from enum import Enum


class TimeOfDay(str, Enum):
    """Coarse schedule granularity; a medication has at most one time per bucket."""

    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"


BUCKET_ORDER = (
    TimeOfDay.MORNING,
    TimeOfDay.AFTERNOON,
    TimeOfDay.EVENING,
    TimeOfDay.NIGHT,
)

DEFAULT_TIMES = {
    TimeOfDay.MORNING: "08:00",
    TimeOfDay.AFTERNOON: "14:00",
    TimeOfDay.EVENING: "18:00",
    TimeOfDay.NIGHT: "22:00",
}

BUCKET_LABELS = {
    TimeOfDay.MORNING: "Morning",
    TimeOfDay.AFTERNOON: "Afternoon",
    TimeOfDay.EVENING: "Evening",
    TimeOfDay.NIGHT: "Night",
}

_TIME_RE = re.compile(r"(\d{2}):(\d{2})")


def parse_hhmm(value: str) -> tuple[int, int]:
    """Split an HH:MM string into (hour, minute).

    Raises:
        ValueError: If the value is not a legal 24-hour time
    """
    match = _TIME_RE.fullmatch(value) if isinstance(value, str) else None
    if match is None:
        raise ValueError(f"Invalid time format: {value!r} (expected HH:MM)")

    hour, minute = int(match.group(1)), int(match.group(2))
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Time out of range: {value!r}")
    return hour, minute


def is_valid_time(value: str) -> bool:
    """Return True if value is a legal HH:MM time."""
    try:
        parse_hhmm(value)
    except ValueError:
        return False
    return True


def classify(time: str) -> TimeOfDay:
    """Map a time of day to its schedule bucket.

    Only the hour matters. The four ranges partition the clock, so every
    legal time lands in exactly one bucket:

        [04, 12) morning, [12, 17) afternoon, [17, 21) evening,
        [21, 24) and [00, 04) night

    Args:
        time: Time in "HH:MM" format

    Returns:
        TimeOfDay bucket

    Raises:
        ValueError: If time is not a legal HH:MM value

    Examples:
        >>> classify("03:59")
        <TimeOfDay.NIGHT: 'night'>
        >>> classify("12:00")
        <TimeOfDay.AFTERNOON: 'afternoon'>
    """
    hour, _ = parse_hhmm(time)

    if 4 <= hour < 12:
        return TimeOfDay.MORNING
    if 12 <= hour < 17:
        return TimeOfDay.AFTERNOON
    if 17 <= hour < 21:
        return TimeOfDay.EVENING
    return TimeOfDay.NIGHT
