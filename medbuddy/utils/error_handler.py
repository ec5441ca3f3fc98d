"""Error types and structured logging helpers for the medication tracker."""

from typing import Optional

from loguru import logger


class ScheduleValidationError(ValueError):
    """Raised when a medication cannot be saved because of invalid input.

    Raised before any store call, so no side effect has happened.

    Attributes:
        field: Name of the offending field ("name", "dosage", "times", "amount")
        message: User-facing explanation
    """

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message

    def to_dict(self) -> dict:
        """Structured form for API callers."""
        return {"error": "validation", "field": self.field, "message": self.message}


class StorageError(Exception):
    """Raised when a store read, write or subscription fails."""

    user_message = "Operation failed, data may be stale."


class ExplanationUnavailableError(Exception):
    """Raised when no explanation text could be produced at all."""

    user_message = "Explanation temporarily unavailable. Please try again later."


def log_operation(
    operation_name: str,
    user_id: Optional[str] = None,
    medication_id: Optional[str] = None,
    **extra_context,
) -> None:
    """Log an operation with structured context.

    Args:
        operation_name: Name of the operation being performed
        user_id: User ID (if applicable)
        medication_id: Medication ID (if applicable)
        **extra_context: Additional context to include in log
    """
    context = {
        "operation": operation_name,
    }

    if user_id is not None:
        context["user_id"] = user_id

    if medication_id is not None:
        context["medication_id"] = medication_id

    context.update(extra_context)

    logger.bind(**sanitize_log_data(context)).info(f"Operation: {operation_name}")


def log_performance(
    operation_name: str,
    duration_ms: float,
    **extra_context,
) -> None:
    """Log performance metrics for an operation.

    Operations slower than one second are logged as warnings.

    Args:
        operation_name: Name of the operation
        duration_ms: Duration in milliseconds
        **extra_context: Additional context to include in log
    """
    context = {
        "operation": operation_name,
        "duration_ms": duration_ms,
    }
    context.update(extra_context)

    bound = logger.bind(**context)
    if duration_ms > 1000:
        bound.warning(f"Slow operation: {operation_name} took {duration_ms:.2f}ms")
    else:
        bound.debug(f"Performance: {operation_name} took {duration_ms:.2f}ms")


def sanitize_log_data(data: dict) -> dict:
    """Remove sensitive data from log entries.

    Args:
        data: Dictionary that may contain sensitive data

    Returns:
        Sanitized dictionary safe for logging
    """
    sensitive_keys = {
        "token",
        "api_key",
        "password",
        "secret",
        "authorization",
        "bearer",
    }

    sanitized = {}
    for key, value in data.items():
        if any(sensitive in key.lower() for sensitive in sensitive_keys):
            sanitized[key] = "***REDACTED***"
        elif isinstance(value, dict):
            sanitized[key] = sanitize_log_data(value)
        elif isinstance(value, list):
            sanitized[key] = [
                sanitize_log_data(item) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            sanitized[key] = value

    return sanitized


__all__ = [
    "ScheduleValidationError",
    "StorageError",
    "ExplanationUnavailableError",
    "log_operation",
    "log_performance",
    "sanitize_log_data",
]
