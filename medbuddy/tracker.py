"""Service wiring for one user's tracker session."""

from typing import Optional

from loguru import logger

from medbuddy.config import settings
from medbuddy.data.models import ExplanationRecord, Medication, TimeSlot
from medbuddy.data.storage import DataManager
from medbuddy.llm import GroqClient
from medbuddy.reference import OpenFDAClient
from medbuddy.services.adherence import AdherenceLedger, DoseStatus
from medbuddy.services.date_watcher import LocalDateWatcher
from medbuddy.services.explanations import ExplanationCache
from medbuddy.services.monthly import DayStatus, MonthlyAggregator
from medbuddy.services.schedule_manager import (
    ScheduleManager,
    build_schedule_slots,
    resolve_times,
)
from medbuddy.services.time_buckets import TimeOfDay
from medbuddy.utils.timezone import Clock, LocalClock


class MedicationTracker:
    """Entry point for callers (UI or API layer) acting on behalf of one user.

    Owns the user's ledger and date watcher; start() opens today's live
    view and stop() releases it. Use as an async context manager to make
    sure the release happens on every exit path.
    """

    def __init__(
        self,
        user_id: str,
        data_manager: Optional[DataManager] = None,
        clock: Optional[Clock] = None,
        explanation_cache: Optional[ExplanationCache] = None,
        date_check_interval: Optional[float] = None,
    ):
        """Initialize tracker, building default collaborators from settings.

        Args:
            user_id: User this session acts for
            data_manager: Document store (default: DataManager(settings.data_dir))
            clock: Local date source (default: LocalClock(settings.default_timezone_offset))
            explanation_cache: Explanation service (default: openFDA + Groq)
            date_check_interval: Seconds between local date checks
        """
        self.user_id = user_id
        self.data_manager = data_manager or DataManager(str(settings.data_dir))
        self.clock = clock or LocalClock(settings.default_timezone_offset)
        self.explanations = explanation_cache or ExplanationCache(
            self.data_manager, OpenFDAClient(), GroqClient()
        )

        self.schedule = ScheduleManager(self.data_manager, self.explanations)
        self.ledger = AdherenceLedger(self.data_manager, user_id, self.clock)
        self.calendar = MonthlyAggregator(self.data_manager, user_id, self.clock)
        self.watcher = LocalDateWatcher(self.ledger, date_check_interval)

        logger.debug(f"MedicationTracker initialized for user {user_id}")

    async def start(self) -> None:
        await self.ledger.start()
        await self.watcher.start()
        logger.info(f"Tracker session started for user {self.user_id} on {self.ledger.current_date}")

    async def stop(self) -> None:
        if self.watcher.running:
            await self.watcher.stop()
        await self.ledger.stop()
        await self.schedule.wait_background_tasks()
        logger.info(f"Tracker session stopped for user {self.user_id}")

    async def __aenter__(self) -> "MedicationTracker":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    async def toggle_dose(self, medication_id: str, bucket: TimeOfDay) -> bool:
        """Mark or unmark today's dose; returns True if it is now taken."""
        return await self.ledger.toggle_dose(medication_id, bucket)

    async def monthly_status(self, year: int, month: int) -> dict[int, DayStatus]:
        return await self.calendar.monthly_status(year, month)

    async def explanation_for(self, medication_name: str) -> ExplanationRecord:
        return await self.explanations.explanation_for(medication_name)

    async def today_doses(self) -> list[DoseStatus]:
        return await self.ledger.today_doses()

    async def low_stock(self) -> list[Medication]:
        return await self.schedule.get_low_stock_medications(self.user_id)

    @staticmethod
    def build_schedule_slots(times: list[str]) -> list[TimeSlot]:
        return build_schedule_slots(times)

    @staticmethod
    def resolve_times(slots: list[TimeSlot]) -> list[str]:
        return resolve_times(slots)
