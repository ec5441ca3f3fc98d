"""Dose take/untake ledger for the medication tracker."""

import asyncio
from collections import defaultdict
from dataclasses import dataclass
from typing import Optional

from loguru import logger

from medbuddy.data.models import DoseLogEntry, Medication, TimeSlot, dose_key
from medbuddy.data.storage import DataManager
from medbuddy.services.schedule_manager import build_schedule_slots, scheduled_time_for
from medbuddy.services.time_buckets import BUCKET_ORDER, TimeOfDay
from medbuddy.utils import StorageError, log_operation, utc_timestamp
from medbuddy.utils.timezone import Clock


@dataclass
class DoseStatus:
    """One scheduled dose of today, as shown on the home checklist."""

    medication: Medication
    slot: TimeSlot
    taken: bool


class AdherenceLedger:
    """Marks doses taken or pending for the current local date.

    A dose (medication, bucket, date) is taken iff a DoseLogEntry exists for
    it. Marking creates the entry and takes one pill off the stock (never
    below zero); unmarking deletes the entry and puts the pill back. Both are
    no-ops when the dose is already in the requested state, so repeating a
    call is always safe.

    Toggles for the same medication run one at a time through a
    per-medication lock. The ledger also keeps a live logbook of today's
    entries fed by a store subscription, which is re-opened whenever the
    local date changes.
    """

    def __init__(
        self,
        data_manager: DataManager,
        user_id: str,
        clock: Clock,
        resubscribe_delay: float = 5.0,
    ):
        """Initialize ledger.

        Args:
            data_manager: Document store
            user_id: User whose doses are tracked
            clock: Source of the local calendar date
            resubscribe_delay: Seconds to wait before re-opening a failed subscription
        """
        self.data_manager = data_manager
        self.user_id = user_id
        self.clock = clock
        self.resubscribe_delay = resubscribe_delay

        self.current_date: str = clock.today()
        self.logbook: dict[str, str] = {}

        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._listener: Optional[asyncio.Task] = None
        self._synced = asyncio.Event()
        self._date_lock = asyncio.Lock()

        logger.debug(f"AdherenceLedger initialized for user {user_id} on {self.current_date}")

    # Live view

    async def start(self) -> None:
        """Re-read the clock and open the live subscription for that date."""
        async with self._date_lock:
            if self._listener is not None:
                logger.warning("Ledger subscription already running")
                return

            today = self.clock.today()
            if today != self.current_date:
                logger.info(
                    f"Ledger for user {self.user_id} starts on {today} (built on {self.current_date})"
                )
                self.current_date = today
                self.logbook = {}
            self._subscribe()

    async def stop(self) -> None:
        """Release the live subscription."""
        await self._unsubscribe()

    async def wait_synced(self, timeout: Optional[float] = None) -> None:
        """Wait until the logbook reflects the current date's first snapshot."""
        await asyncio.wait_for(self._synced.wait(), timeout)

    async def refresh_date(self) -> bool:
        """Re-read the clock and move the live view if the date changed.

        The old subscription is released before the new one is opened.
        Entries of the old date stay in the store; they just leave the view.

        Returns:
            True if the date changed
        """
        async with self._date_lock:
            today = self.clock.today()
            if today == self.current_date:
                return False

            logger.info(
                f"Local date changed for user {self.user_id}: {self.current_date} -> {today}"
            )
            was_running = self._listener is not None
            await self._unsubscribe()

            self.current_date = today
            self.logbook = {}

            if was_running:
                self._subscribe()
            return True

    def _subscribe(self) -> None:
        self._synced.clear()
        self._listener = asyncio.create_task(self._listen(self.current_date))

    async def _unsubscribe(self) -> None:
        task, self._listener = self._listener, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _listen(self, date: str) -> None:
        while True:
            try:
                async with await self.data_manager.subscribe_logs(self.user_id, date) as subscription:
                    async for snapshot in subscription:
                        self._apply_snapshot(date, snapshot)
                return
            except StorageError as e:
                logger.warning(
                    f"Log subscription for {date} failed: {e}. "
                    f"Retrying in {self.resubscribe_delay}s"
                )
                await asyncio.sleep(self.resubscribe_delay)

    def _apply_snapshot(self, date: str, snapshot: list[DoseLogEntry]) -> None:
        if date != self.current_date:
            return
        self.logbook = {entry.key: entry.id for entry in snapshot if entry.taken}
        self._synced.set()
        logger.debug(f"Logbook updated for {date}: {len(self.logbook)} dose(s) taken")

    # Queries

    def is_taken(self, medication_id: str, bucket: TimeOfDay) -> bool:
        """Whether the dose is checked off in today's logbook."""
        return dose_key(medication_id, bucket, self.current_date) in self.logbook

    async def today_doses(self) -> list[DoseStatus]:
        """Every enabled dose of today with its taken flag, in bucket order."""
        medications = await self.data_manager.get_medications(self.user_id)
        doses = []
        for medication in medications:
            for slot in build_schedule_slots(medication.times):
                if slot.enabled:
                    doses.append(
                        DoseStatus(
                            medication=medication,
                            slot=slot,
                            taken=self.is_taken(medication.id, slot.id),
                        )
                    )
        order = {bucket: i for i, bucket in enumerate(BUCKET_ORDER)}
        doses.sort(key=lambda d: order[d.slot.id])
        return doses

    # Mutations

    async def toggle_dose(self, medication_id: str, bucket: TimeOfDay) -> bool:
        """Mark the dose if pending, unmark it if taken.

        Returns:
            True if the dose is taken after the call
        """
        bucket = TimeOfDay(bucket)
        await self.refresh_date()

        async with self._locks[medication_id]:
            date = self.current_date
            existing = await self._find_entry(medication_id, bucket, date)
            if existing is None:
                return await self._mark(medication_id, bucket, date)
            await self._unmark(medication_id, bucket, existing)
            return False

    async def mark(self, medication_id: str, bucket: TimeOfDay) -> bool:
        """Record the dose as taken.

        Returns:
            True if an entry was created, False if nothing changed
        """
        bucket = TimeOfDay(bucket)
        await self.refresh_date()

        async with self._locks[medication_id]:
            date = self.current_date
            existing = await self._find_entry(medication_id, bucket, date)
            if existing is not None:
                logger.debug(f"Dose {existing.key} already taken")
                return False
            return await self._mark(medication_id, bucket, date)

    async def unmark(self, medication_id: str, bucket: TimeOfDay) -> bool:
        """Return the dose to pending.

        Returns:
            True if an entry was removed, False if nothing changed
        """
        bucket = TimeOfDay(bucket)
        await self.refresh_date()

        async with self._locks[medication_id]:
            date = self.current_date
            existing = await self._find_entry(medication_id, bucket, date)
            if existing is None:
                logger.debug(f"Dose {dose_key(medication_id, bucket, date)} not taken")
                return False
            return await self._unmark(medication_id, bucket, existing)

    def _note(self, key: str, date: str, entry_id: Optional[str]) -> None:
        # The logbook only holds entries of the current date.
        if date != self.current_date:
            return
        if entry_id is None:
            self.logbook.pop(key, None)
        else:
            self.logbook[key] = entry_id

    async def _find_entry(
        self,
        medication_id: str,
        bucket: TimeOfDay,
        date: str,
    ) -> Optional[DoseLogEntry]:
        entry = await self.data_manager.find_log_entry(self.user_id, medication_id, bucket, date)
        self._note(dose_key(medication_id, bucket, date), date, entry.id if entry else None)
        return entry

    async def _mark(self, medication_id: str, bucket: TimeOfDay, date: str) -> bool:
        medication = await self.data_manager.get_medication(self.user_id, medication_id)
        if medication is None:
            logger.warning(f"Cannot mark dose: medication {medication_id} not found")
            return False

        scheduled = scheduled_time_for(medication.times, bucket)
        if scheduled is None:
            logger.warning(f"Medication {medication_id} has no {bucket.value} dose")
            return False

        entry = DoseLogEntry(
            id=None,
            medication_id=medication_id,
            medication_name=medication.name,
            bucket=bucket,
            date=date,
            scheduled_time=f"{date}T{scheduled}:00",
            actual_time=utc_timestamp(),
        )
        await self.data_manager.add_log_entry(self.user_id, entry)
        self._note(entry.key, date, entry.id)

        # The entry is what the user sees; it stands even if the decrement fails.
        try:
            stock = await self.data_manager.adjust_stock(
                self.user_id, medication_id, -1, floor=0
            )
        except StorageError as e:
            logger.error(f"Dose {entry.key} recorded but stock decrement failed: {e}")
            stock = None

        log_operation(
            "dose_marked",
            user_id=self.user_id,
            medication_id=medication_id,
            bucket=bucket.value,
            date=date,
            stock=stock,
        )
        return True

    async def _unmark(
        self,
        medication_id: str,
        bucket: TimeOfDay,
        entry: DoseLogEntry,
    ) -> bool:
        deleted = await self.data_manager.delete_log_entry(self.user_id, entry.id)
        self._note(entry.key, entry.date, None)
        if not deleted:
            logger.debug(f"Log entry {entry.id} was already gone; skipping stock increment")
            return False

        try:
            stock = await self.data_manager.adjust_stock(self.user_id, medication_id, 1)
        except StorageError as e:
            logger.error(f"Dose {entry.key} removed but stock increment failed: {e}")
            stock = None

        log_operation(
            "dose_unmarked",
            user_id=self.user_id,
            medication_id=medication_id,
            bucket=bucket.value,
            date=entry.date,
            stock=stock,
        )
        return True
