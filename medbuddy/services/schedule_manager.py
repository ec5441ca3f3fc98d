"""Schedule manager for the medication tracker."""

import asyncio
from typing import TYPE_CHECKING, Iterable, Optional

from loguru import logger

from medbuddy.data.models import (
    DEFAULT_LOW_STOCK_THRESHOLD,
    DEFAULT_STOCK,
    Medication,
    TimeSlot,
)
from medbuddy.data.storage import DataManager
from medbuddy.services.time_buckets import (
    BUCKET_LABELS,
    BUCKET_ORDER,
    DEFAULT_TIMES,
    TimeOfDay,
    classify,
    is_valid_time,
)
from medbuddy.utils import ScheduleValidationError

if TYPE_CHECKING:
    from medbuddy.services.explanations import ExplanationCache


def scheduled_time_for(times: Iterable[str], bucket: TimeOfDay) -> Optional[str]:
    """Return the first time in the list that falls into bucket, or None."""
    for time in times:
        if is_valid_time(time) and classify(time) == bucket:
            return time
    return None


def build_schedule_slots(times: Iterable[str]) -> list[TimeSlot]:
    """Build the four schedule slots from a medication's time list.

    For each bucket the first matching time enables the slot as its custom
    time; a bucket with no match stays disabled at its default time. Extra
    times in an already filled bucket are dropped, malformed times ignored.

    Args:
        times: Raw list of HH:MM strings

    Returns:
        Four TimeSlot instances in morning, afternoon, evening, night order
    """
    times = list(times)
    for time in times:
        if not is_valid_time(time):
            logger.warning(f"Ignoring malformed schedule time: {time!r}")

    slots = []
    for bucket in BUCKET_ORDER:
        match = scheduled_time_for(times, bucket)
        slots.append(
            TimeSlot(
                id=bucket,
                label=BUCKET_LABELS[bucket],
                default_time=DEFAULT_TIMES[bucket],
                enabled=match is not None,
                custom_time=match,
            )
        )
    return slots


def resolve_times(slots: Iterable[TimeSlot]) -> list[str]:
    """Turn enabled slots back into a sorted time list.

    Each enabled slot contributes its custom time, or its default time when
    the custom time is blank.
    """
    return sorted(slot.resolved_time for slot in slots if slot.enabled)


def count_enabled_slots(medications: Iterable[Medication]) -> int:
    """Number of scheduled doses per day across all medications."""
    return sum(
        1
        for medication in medications
        for slot in build_schedule_slots(medication.times)
        if slot.enabled
    )


def validate_medication(name: str, dosage: str, slots: Iterable[TimeSlot]) -> None:
    """Check a medication form before anything is persisted.

    Raises:
        ScheduleValidationError: With the offending field and a user-facing message
    """
    if not name or not name.strip():
        raise ScheduleValidationError("name", "Please enter the medication name.")
    if not dosage or not dosage.strip():
        raise ScheduleValidationError("dosage", "Please enter the dosage.")

    enabled = [slot for slot in slots if slot.enabled]
    if not enabled:
        raise ScheduleValidationError(
            "times", "Please select at least one time to take this medication."
        )

    for slot in enabled:
        time = slot.resolved_time
        if not is_valid_time(time):
            raise ScheduleValidationError(
                "times", f"{slot.label} time must be in HH:MM format, got {time!r}."
            )
        if classify(time) != slot.id:
            raise ScheduleValidationError(
                "times",
                f"{time} is not a {slot.label.lower()} time; "
                f"choose a time in the {slot.label.lower()} range.",
            )


class ScheduleManager:
    """Manager for medication schedule CRUD operations.

    Handles all operations related to medication schedules:
    - Saving (creating or editing) medications from schedule slots
    - Deleting medications
    - Refilling stock and listing low-stock medications
    - Retrieving schedules

    When an ExplanationCache is supplied, saving a medication warms its
    explanation in the background.
    """

    def __init__(
        self,
        data_manager: DataManager,
        explanation_cache: Optional["ExplanationCache"] = None,
    ):
        """Initialize schedule manager.

        Args:
            data_manager: DataManager instance for persistence
            explanation_cache: Optional cache to warm after saves
        """
        self.data_manager = data_manager
        self.explanation_cache = explanation_cache
        self._background_tasks: set[asyncio.Task] = set()
        logger.debug("ScheduleManager initialized")

    async def save_medication(
        self,
        user_id: str,
        name: str,
        dosage: str,
        slots: list[TimeSlot],
        stock: Optional[int] = None,
        low_stock_threshold: Optional[int] = None,
        special_instructions: Optional[str] = None,
        medication_id: Optional[str] = None,
    ) -> Medication:
        """Create or update a medication from its schedule slots.

        On create, fields left as None get their defaults. On update they
        keep their stored values; in particular the stock count is only
        overwritten when a stock is given, so doses marked meanwhile are
        not lost.

        Args:
            user_id: Owner of the medication
            name: Medication name
            dosage: Dosage text
            slots: The four schedule slots as edited by the user
            stock: Stock count (negative values are stored as 0)
            low_stock_threshold: Alert threshold
            special_instructions: Optional instructions
            medication_id: Id of the medication to update, None to create

        Returns:
            The saved Medication

        Raises:
            ScheduleValidationError: If the form is invalid (nothing is saved)
            ValueError: If medication_id does not exist
        """
        validate_medication(name, dosage, slots)

        changes = {
            "name": name.strip(),
            "dosage": dosage.strip(),
            "times": resolve_times(slots),
        }
        if stock is not None:
            changes["stock"] = max(0, stock)
        if low_stock_threshold is not None:
            changes["low_stock_threshold"] = low_stock_threshold
        if special_instructions is not None:
            changes["special_instructions"] = special_instructions

        if medication_id is None:
            medication = await self.data_manager.add_medication(
                user_id,
                Medication(
                    id=None,
                    name=changes["name"],
                    dosage=changes["dosage"],
                    times=changes["times"],
                    stock=changes.get("stock", DEFAULT_STOCK),
                    low_stock_threshold=changes.get(
                        "low_stock_threshold", DEFAULT_LOW_STOCK_THRESHOLD
                    ),
                    special_instructions=changes.get("special_instructions", ""),
                ),
            )
            logger.info(
                f"Added medication for user {user_id}: {medication.name} "
                f"at {', '.join(medication.times)} (dosage: {medication.dosage})"
            )
        else:
            medication = await self.data_manager.update_medication(
                user_id, medication_id, **changes
            )
            if medication is None:
                raise ValueError(f"Medication {medication_id} not found")
            logger.info(
                f"Updated medication {medication_id} for user {user_id}: "
                f"{medication.name} at {', '.join(medication.times)}"
            )

        self._warm_explanation(medication.name)
        return medication

    async def add_medication(
        self,
        user_id: str,
        name: str,
        dosage: str,
        times: list[str],
        **kwargs,
    ) -> Medication:
        """Create a medication from a raw time list.

        Times are mapped onto schedule slots first, so two times in the same
        bucket keep only the first one.
        """
        return await self.save_medication(
            user_id, name, dosage, build_schedule_slots(times), **kwargs
        )

    async def delete_medication(self, user_id: str, medication_id: str) -> bool:
        """Delete a medication; deleting a missing one is not an error.

        Returns:
            True if a medication was deleted, False if it did not exist
        """
        deleted = await self.data_manager.delete_medication(user_id, medication_id)
        if deleted:
            logger.info(f"Deleted medication {medication_id} for user {user_id}")
        else:
            logger.warning(f"Medication {medication_id} not found for user {user_id}")
        return deleted

    async def refill_stock(self, user_id: str, medication_id: str, amount: int) -> int:
        """Add pills to a medication's stock.

        Returns:
            New stock value

        Raises:
            ScheduleValidationError: If amount is less than 1
            ValueError: If the medication does not exist
        """
        if amount < 1:
            raise ScheduleValidationError("amount", "Refill amount must be at least 1.")

        new_stock = await self.data_manager.adjust_stock(user_id, medication_id, amount)
        if new_stock is None:
            raise ValueError(f"Medication {medication_id} not found")

        logger.info(f"Refilled medication {medication_id} by {amount}: stock {new_stock}")
        return new_stock

    async def get_user_schedule(self, user_id: str) -> list[Medication]:
        """All medications of a user, ordered by name."""
        return await self.data_manager.get_medications(user_id)

    async def get_schedule_slots(self, user_id: str, medication_id: str) -> list[TimeSlot]:
        """Schedule slots of an existing medication, for editing.

        Raises:
            ValueError: If the medication does not exist
        """
        medication = await self.data_manager.get_medication(user_id, medication_id)
        if medication is None:
            raise ValueError(f"Medication {medication_id} not found")
        return build_schedule_slots(medication.times)

    async def get_low_stock_medications(self, user_id: str) -> list[Medication]:
        """Medications whose stock is at or below their alert threshold."""
        medications = await self.data_manager.get_medications(user_id)
        low = [med for med in medications if med.is_low_stock]
        logger.debug(f"Found {len(low)} low-stock medication(s) for user {user_id}")
        return low

    def _warm_explanation(self, name: str) -> None:
        if self.explanation_cache is None:
            return
        task = asyncio.create_task(self._generate_explanation(name))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _generate_explanation(self, name: str) -> None:
        try:
            await self.explanation_cache.explanation_for(name)
        except Exception as e:
            logger.error(f"Background explanation generation failed for {name}: {e}")

    async def wait_background_tasks(self) -> None:
        """Wait for pending explanation warm-ups (used at shutdown and in tests)."""
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
