"""Timezone and local-date utilities for the medication tracker."""

from datetime import date, datetime, timedelta, timezone
from typing import Protocol

from loguru import logger


def parse_timezone_offset(offset_str: str) -> timedelta:
    """Parse timezone offset string to timedelta.

    Args:
        offset_str: Timezone offset in format "+03:00" or "-05:00"

    Returns:
        timedelta representing the offset

    Raises:
        ValueError: If offset string format is invalid

    Examples:
        >>> parse_timezone_offset("+03:00")
        datetime.timedelta(seconds=10800)
    """
    try:
        offset_str = offset_str.strip()

        if len(offset_str) != 6 or offset_str[0] not in ['+', '-']:
            raise ValueError(f"Invalid timezone offset format: {offset_str}")

        sign = 1 if offset_str[0] == '+' else -1

        hours_str, minutes_str = offset_str[1:].split(':')
        hours = int(hours_str)
        minutes = int(minutes_str)

        if not (0 <= hours <= 14):
            raise ValueError(f"Hours out of range: {hours}")
        if not (0 <= minutes <= 59):
            raise ValueError(f"Minutes out of range: {minutes}")

        total_minutes = sign * (hours * 60 + minutes)
        return timedelta(minutes=total_minutes)

    except (ValueError, IndexError) as e:
        logger.error(f"Failed to parse timezone offset '{offset_str}': {e}")
        raise ValueError(f"Invalid timezone offset format: {offset_str}") from e


def get_user_current_time(timezone_offset: str) -> datetime:
    """Get current wall-clock time in the user's timezone.

    Args:
        timezone_offset: User's timezone offset (e.g., "+03:00", "-05:00")

    Returns:
        Current datetime in user's timezone (naive datetime)
    """
    offset = parse_timezone_offset(timezone_offset)
    utc_now = datetime.now(timezone.utc).replace(tzinfo=None)
    return utc_now + offset


def format_date(value: date) -> str:
    """Render a calendar date as YYYY-MM-DD."""
    return value.strftime("%Y-%m-%d")


def utc_timestamp() -> str:
    """Current UTC instant as an ISO-8601 string (used for audit fields)."""
    return datetime.now(timezone.utc).isoformat()


class Clock(Protocol):
    """Anything that can tell the reader's local date."""

    def today(self) -> str: ...


class LocalClock:
    """Clock that reports the reader's local calendar date.

    The ledger and the calendar take a clock instead of reading the wall
    clock directly, so tests can substitute a fixed date.
    """

    def __init__(self, timezone_offset: str = "+00:00"):
        """Initialize clock.

        Args:
            timezone_offset: Reader's UTC offset (e.g., "+03:00")

        Raises:
            ValueError: If the offset is malformed
        """
        parse_timezone_offset(timezone_offset)
        self.timezone_offset = timezone_offset

    def now(self) -> datetime:
        """Current local time (naive)."""
        return get_user_current_time(self.timezone_offset)

    def today(self) -> str:
        """Current local date as YYYY-MM-DD."""
        return format_date(self.now().date())


class FixedClock:
    """Clock pinned to a given local date; handy for tests and backfills."""

    def __init__(self, today: str):
        self._today = today

    def set(self, today: str) -> None:
        self._today = today

    def today(self) -> str:
        return self._today
