"""Monthly adherence calendar for the medication tracker."""

import calendar
from collections import Counter
from enum import Enum
from typing import Iterable, Mapping

from loguru import logger

from medbuddy.data.models import DoseLogEntry
from medbuddy.data.storage import DataManager
from medbuddy.services.schedule_manager import count_enabled_slots
from medbuddy.utils.timezone import Clock


class DayStatus(str, Enum):
    FULL = "full"
    PARTIAL = "partial"
    MISSED = "missed"
    FUTURE = "future"


def month_bounds(year: int, month: int) -> tuple[str, str, int]:
    """First date, last date (YYYY-MM-DD) and number of days of a month."""
    days = calendar.monthrange(year, month)[1]
    return f"{year:04d}-{month:02d}-01", f"{year:04d}-{month:02d}-{days:02d}", days


def count_taken_by_date(entries: Iterable[DoseLogEntry]) -> Counter:
    return Counter(entry.date for entry in entries if entry.taken)


def classify_month(
    year: int,
    month: int,
    taken_by_date: Mapping[str, int],
    expected: int,
    today: str,
) -> dict[int, DayStatus]:
    """Classify every day of a month.

    A day after today is future; otherwise no dose taken is missed, at
    least the expected number of doses is full, and anything else is
    partial. With expected == 0 a past day without doses is still reported
    as missed.

    Args:
        year: Calendar year
        month: Calendar month (1-12)
        taken_by_date: Taken doses per YYYY-MM-DD date
        expected: Scheduled doses per day
        today: Local date (YYYY-MM-DD)

    Returns:
        Mapping of day of month to DayStatus
    """
    _, _, days = month_bounds(year, month)
    stats = {}

    for day in range(1, days + 1):
        day_str = f"{year:04d}-{month:02d}-{day:02d}"

        if day_str > today:
            stats[day] = DayStatus.FUTURE
            continue

        taken = taken_by_date.get(day_str, 0)
        if taken == 0:
            stats[day] = DayStatus.MISSED
        elif expected > 0 and taken >= expected:
            stats[day] = DayStatus.FULL
        else:
            stats[day] = DayStatus.PARTIAL

    return stats


class MonthlyAggregator:
    """Builds the per-day adherence status shown on the calendar.

    The expected dose count is today's schedule applied to the whole month;
    schedule changes are not replayed for past days.
    """

    def __init__(self, data_manager: DataManager, user_id: str, clock: Clock):
        self.data_manager = data_manager
        self.user_id = user_id
        self.clock = clock

    async def monthly_status(self, year: int, month: int) -> dict[int, DayStatus]:
        """Per-day status for a calendar month.

        Raises:
            ValueError: If month is not in 1..12
            StorageError: If log entries or medications cannot be read
        """
        if not 1 <= month <= 12:
            raise ValueError(f"Invalid month: {month}")

        start, end, _ = month_bounds(year, month)
        entries = await self.data_manager.get_log_entries(self.user_id, start=start, end=end)
        medications = await self.data_manager.get_medications(self.user_id)

        expected = count_enabled_slots(medications)
        taken_by_date = count_taken_by_date(entries)

        logger.debug(
            f"Calendar {year}-{month:02d} for user {self.user_id}: "
            f"{sum(taken_by_date.values())} dose(s) taken, {expected} expected per day"
        )
        return classify_month(year, month, taken_by_date, expected, self.clock.today())
