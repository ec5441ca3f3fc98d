"""Loguru sinks for a tracker session."""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from medbuddy.config import settings

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

# Bound context (user_id, medication_id, operation, ...) goes to the file only.
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{name}:{function}:{line} | {message} | {extra}"
)


def setup_logger(
    console_level: Optional[str] = None,
    file_level: str = "DEBUG",
    logs_dir: Optional[Path] = None,
    retention: str = "30 days",
) -> list[int]:
    """Replace loguru's default sink with a console sink and a dated log file.

    The file rolls over at local midnight and old files are zipped.

    Args:
        console_level: Console threshold (default: LOG_LEVEL setting)
        file_level: File threshold
        logs_dir: Directory for log files (default: DATA_DIR/logs)
        retention: How long rotated files are kept

    Returns:
        Handler ids of the added sinks
    """
    console_level = console_level or settings.log_level
    logs_dir = Path(logs_dir) if logs_dir is not None else settings.data_dir / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)

    logger.remove()
    handler_ids = [
        logger.add(
            sys.stderr,
            format=CONSOLE_FORMAT,
            level=console_level,
            colorize=True,
            backtrace=True,
            diagnose=False,
        ),
        logger.add(
            logs_dir / "medbuddy_{time:YYYY-MM-DD}.log",
            format=FILE_FORMAT,
            level=file_level,
            rotation="00:00",
            retention=retention,
            compression="zip",
            backtrace=True,
            diagnose=True,
            enqueue=True,
        ),
    ]

    logger.debug(
        f"Logging to console at {console_level} and to {logs_dir} at {file_level}"
    )
    return handler_ids


__all__ = ["setup_logger", "logger"]
