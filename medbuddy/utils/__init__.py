"""Utility functions for the medication tracker."""

from .error_handler import (
    ExplanationUnavailableError,
    ScheduleValidationError,
    StorageError,
    log_operation,
    log_performance,
    sanitize_log_data,
)
from .logger import logger, setup_logger
from .timezone import (
    FixedClock,
    LocalClock,
    format_date,
    get_user_current_time,
    parse_timezone_offset,
    utc_timestamp,
)

__all__ = [
    # Timezone utilities
    "parse_timezone_offset",
    "get_user_current_time",
    "format_date",
    "utc_timestamp",
    "LocalClock",
    "FixedClock",
    # Logger utilities
    "setup_logger",
    "logger",
    # Error handling utilities
    "ScheduleValidationError",
    "StorageError",
    "ExplanationUnavailableError",
    "log_operation",
    "log_performance",
    "sanitize_log_data",
]
