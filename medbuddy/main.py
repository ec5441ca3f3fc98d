"""Main entry point for a medication tracker session."""

import asyncio
import signal
import sys

from medbuddy.config import settings
from medbuddy.tracker import MedicationTracker
from medbuddy.utils import logger, setup_logger


async def main():
    """Run a tracker session until SIGINT/SIGTERM."""
    setup_logger()

    logger.info("=" * 60)
    logger.info("Starting MedBuddy tracker")
    logger.info("=" * 60)

    logger.info(f"Data directory: {settings.data_dir}")
    logger.info(f"Timezone: {settings.default_timezone_offset}")
    logger.info(f"Date check interval: {settings.date_check_interval_seconds}s")

    shutdown_event = asyncio.Event()

    def signal_handler(sig, frame):
        """Handle shutdown signals."""
        logger.info(f"Received signal {sig}, initiating graceful shutdown...")
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    async with MedicationTracker(settings.user_id) as tracker:
        for dose in await tracker.today_doses():
            mark = "x" if dose.taken else " "
            logger.info(
                f"[{mark}] {dose.slot.label} {dose.slot.resolved_time} "
                f"{dose.medication.name} {dose.medication.dosage}"
            )

        for medication in await tracker.low_stock():
            logger.warning(f"Low stock: {medication.name} - only {medication.stock} pills left")

        await shutdown_event.wait()
        logger.info("Shutdown signal received, stopping services...")

    logger.info("=" * 60)
    logger.info("MedBuddy tracker stopped")
    logger.info("=" * 60)


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Received KeyboardInterrupt, exiting...")
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()
