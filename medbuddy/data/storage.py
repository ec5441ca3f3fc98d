"""Data storage manager for the medication tracker."""

import asyncio
import json
import uuid
from collections import defaultdict
from pathlib import Path
from typing import Optional

import aiofiles

from medbuddy.utils import StorageError, log_operation, logger

from .models import DoseLogEntry, ExplanationRecord, Medication

MEDICATIONS = "medications"
MEDICATION_LOGS = "medicationLogs"
EXPLANATIONS = "medicationExplanations"


class LogSubscription:
    """Live view of one user's dose log entries for a single date.

    Iterating yields snapshots (the full list of matching entries) in the
    order they were produced, starting with the state at subscription time.
    Must be closed; use it as an async context manager to guarantee that.
    """

    _CLOSED = object()

    def __init__(self, manager: "DataManager", user_id: str, date: str):
        self.manager = manager
        self.user_id = user_id
        self.date = date
        self.closed = False
        self._queue: asyncio.Queue = asyncio.Queue()

    def push(self, snapshot: list[DoseLogEntry]) -> None:
        if not self.closed:
            self._queue.put_nowait(snapshot)

    def close(self) -> None:
        """Stop delivery and detach from the store. Safe to call twice."""
        if self.closed:
            return
        self.closed = True
        self.manager._detach(self)
        self._queue.put_nowait(self._CLOSED)
        logger.debug(f"Closed log subscription for user {self.user_id} on {self.date}")

    def __aiter__(self):
        return self

    async def __anext__(self) -> list[DoseLogEntry]:
        item = await self._queue.get()
        if item is self._CLOSED:
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> "LogSubscription":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()


class DataManager:
    """Document store for medications, dose logs and explanations.

    Layout on disk:
        {data_dir}/users/{user_id}/medications.json
        {data_dir}/users/{user_id}/medicationLogs.json
        {data_dir}/medicationExplanations.json

    Each file holds a JSON object mapping document id to document. Writes
    use the atomic write pattern (write to temp file, then rename) and are
    serialized per file with an asyncio lock, so read-modify-write updates
    such as stock adjustments never lose an update.
    """

    def __init__(self, data_dir: str = "data"):
        """Initialize data manager.

        Args:
            data_dir: Root directory for stored documents
        """
        self.data_dir = Path(data_dir)
        self._locks: dict[Path, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._subscriptions: dict[str, set[LogSubscription]] = defaultdict(set)
        self._ensure_data_dir()

    def _ensure_data_dir(self) -> None:
        """Ensure data directory exists."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Data directory ensured: {self.data_dir}")

    def _collection_path(self, collection: str, user_id: Optional[str] = None) -> Path:
        if user_id is None:
            return self.data_dir / f"{collection}.json"
        return self.data_dir / "users" / str(user_id) / f"{collection}.json"

    async def _read(self, path: Path) -> dict:
        """Load a collection file.

        A missing file is an empty collection. A corrupted file is moved
        aside to *.corrupt and treated as empty.

        Raises:
            StorageError: If the file cannot be read
        """
        if not path.exists():
            return {}

        try:
            async with aiofiles.open(path, mode="r", encoding="utf-8") as f:
                content = await f.read()
            return json.loads(content)

        except json.JSONDecodeError as e:
            logger.error(f"Corrupted JSON file {path}: {e}. Starting with empty collection.")
            try:
                path.replace(path.with_suffix(".corrupt"))
                log_operation("corrupted_file_moved", file_path=str(path))
            except OSError as move_error:
                logger.error(f"Failed to move corrupted file {path}: {move_error}")
            return {}

        except OSError as e:
            logger.error(f"Error reading {path}: {type(e).__name__}: {e}")
            raise StorageError(f"Failed to read {path.name}: {e}") from e

    async def _write(self, path: Path, documents: dict) -> None:
        """Save a collection file with atomic write.

        Raises:
            StorageError: If the write fails (temp file is cleaned up)
        """
        temp_path = path.with_suffix(".json.tmp")

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            json_content = json.dumps(documents, ensure_ascii=False, indent=2)

            async with aiofiles.open(temp_path, mode="w", encoding="utf-8") as f:
                await f.write(json_content)

            temp_path.replace(path)
            logger.debug(f"Saved {len(documents)} document(s) to {path}")

        except OSError as e:
            logger.error(f"Error writing {path}: {type(e).__name__}: {e}")
            if temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError as unlink_error:
                    logger.error(f"Failed to remove temp file {temp_path}: {unlink_error}")
            raise StorageError(f"Failed to write {path.name}: {e}") from e

    @staticmethod
    def _new_id() -> str:
        return uuid.uuid4().hex

    # Medications

    async def get_medications(self, user_id: str) -> list[Medication]:
        """Load all medications of a user, ordered by name."""
        documents = await self._read(self._collection_path(MEDICATIONS, user_id))
        medications = [Medication.from_dict(doc) for doc in documents.values()]
        medications.sort(key=lambda m: m.name.lower())
        return medications

    async def get_medication(self, user_id: str, medication_id: str) -> Optional[Medication]:
        """Point read of one medication.

        Returns:
            Medication instance or None if not found
        """
        documents = await self._read(self._collection_path(MEDICATIONS, user_id))
        document = documents.get(medication_id)
        if document is None:
            logger.debug(f"Medication {medication_id} not found for user {user_id}")
            return None
        return Medication.from_dict(document)

    async def add_medication(self, user_id: str, medication: Medication) -> Medication:
        """Create a medication and assign its id.

        Returns:
            The stored medication (with id)
        """
        path = self._collection_path(MEDICATIONS, user_id)
        async with self._locks[path]:
            documents = await self._read(path)
            medication.id = self._new_id()
            documents[medication.id] = medication.to_dict()
            await self._write(path, documents)

        log_operation("medication_added", user_id=user_id, medication_id=medication.id)
        return medication

    async def update_medication(
        self,
        user_id: str,
        medication_id: str,
        **changes,
    ) -> Optional[Medication]:
        """Apply changes to an existing medication.

        Only the given Medication fields are replaced; everything else,
        including a stock count adjusted in the meantime, is kept as stored.
        The read and the write happen under the collection lock.

        Args:
            user_id: Owner of the medication
            medication_id: Medication to update
            **changes: Medication attribute values (name, dosage, times, stock, ...)

        Returns:
            The updated medication, or None if it does not exist
        """
        path = self._collection_path(MEDICATIONS, user_id)
        async with self._locks[path]:
            documents = await self._read(path)
            document = documents.get(medication_id)
            if document is None:
                logger.warning(f"Cannot update missing medication {medication_id} for user {user_id}")
                return None

            medication = Medication.from_dict(document)
            for field_name, value in changes.items():
                if not hasattr(medication, field_name) or field_name == "id":
                    raise AttributeError(f"Unknown medication field: {field_name}")
                setattr(medication, field_name, value)
            documents[medication_id] = medication.to_dict()
            await self._write(path, documents)

        log_operation(
            "medication_updated",
            user_id=user_id,
            medication_id=medication_id,
            fields=sorted(changes),
        )
        return medication

    async def delete_medication(self, user_id: str, medication_id: str) -> bool:
        """Delete a medication.

        Returns:
            True if deleted, False if it was already gone
        """
        path = self._collection_path(MEDICATIONS, user_id)
        async with self._locks[path]:
            documents = await self._read(path)
            if documents.pop(medication_id, None) is None:
                logger.debug(f"Medication {medication_id} already deleted for user {user_id}")
                return False
            await self._write(path, documents)

        log_operation("medication_deleted", user_id=user_id, medication_id=medication_id)
        return True

    async def adjust_stock(
        self,
        user_id: str,
        medication_id: str,
        delta: int,
        floor: Optional[int] = None,
    ) -> Optional[int]:
        """Atomically add delta to a medication's stock.

        The read and the write happen under the collection lock, so
        concurrent adjustments are applied one after another.

        Args:
            user_id: Owner of the medication
            medication_id: Medication to update
            delta: Amount to add (negative to subtract)
            floor: Lower bound for the resulting stock, if any

        Returns:
            New stock value, or None if the medication does not exist
        """
        path = self._collection_path(MEDICATIONS, user_id)
        async with self._locks[path]:
            documents = await self._read(path)
            document = documents.get(medication_id)
            if document is None:
                logger.warning(f"Cannot adjust stock of missing medication {medication_id}")
                return None

            new_stock = int(document.get("stockcount", 0)) + delta
            if floor is not None:
                new_stock = max(floor, new_stock)
            document["stockcount"] = new_stock
            await self._write(path, documents)

        logger.debug(f"Stock of {medication_id} adjusted by {delta}: now {new_stock}")
        return new_stock

    # Dose logs

    async def get_log_entries(
        self,
        user_id: str,
        date: Optional[str] = None,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> list[DoseLogEntry]:
        """Query dose log entries by exact date or inclusive date range."""
        documents = await self._read(self._collection_path(MEDICATION_LOGS, user_id))
        return self._filter_entries(documents, date=date, start=start, end=end)

    @staticmethod
    def _filter_entries(
        documents: dict,
        date: Optional[str] = None,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> list[DoseLogEntry]:
        entries = []
        for document in documents.values():
            entry_date = document.get("date", "")
            if date is not None and entry_date != date:
                continue
            if start is not None and entry_date < start:
                continue
            if end is not None and entry_date > end:
                continue
            entries.append(DoseLogEntry.from_dict(document))
        entries.sort(key=lambda e: e.scheduled_time)
        return entries

    async def find_log_entry(
        self,
        user_id: str,
        medication_id: str,
        bucket: str,
        date: str,
    ) -> Optional[DoseLogEntry]:
        """Find the log entry for a dose key, if any."""
        for entry in await self.get_log_entries(user_id, date=date):
            if entry.medication_id == medication_id and entry.bucket == bucket:
                return entry
        return None

    async def add_log_entry(self, user_id: str, entry: DoseLogEntry) -> DoseLogEntry:
        """Create a dose log entry and notify live subscriptions."""
        path = self._collection_path(MEDICATION_LOGS, user_id)
        async with self._locks[path]:
            documents = await self._read(path)
            entry.id = self._new_id()
            documents[entry.id] = entry.to_dict()
            await self._write(path, documents)
            self._publish(user_id, documents)

        return entry

    async def delete_log_entry(self, user_id: str, entry_id: str) -> bool:
        """Delete a dose log entry.

        Returns:
            True if deleted, False if it was already gone (not an error)
        """
        path = self._collection_path(MEDICATION_LOGS, user_id)
        async with self._locks[path]:
            documents = await self._read(path)
            if documents.pop(entry_id, None) is None:
                logger.debug(f"Log entry {entry_id} already deleted for user {user_id}")
                return False
            await self._write(path, documents)
            self._publish(user_id, documents)

        return True

    async def subscribe_logs(self, user_id: str, date: str) -> LogSubscription:
        """Open a live subscription to a user's log entries for one date.

        The first snapshot delivered is the current state.

        Raises:
            StorageError: If the current state cannot be read
        """
        path = self._collection_path(MEDICATION_LOGS, user_id)
        async with self._locks[path]:
            documents = await self._read(path)
            subscription = LogSubscription(self, user_id, date)
            self._subscriptions[user_id].add(subscription)
            subscription.push(self._filter_entries(documents, date=date))

        logger.debug(f"Opened log subscription for user {user_id} on {date}")
        return subscription

    def _publish(self, user_id: str, documents: dict) -> None:
        for subscription in list(self._subscriptions.get(user_id, ())):
            subscription.push(self._filter_entries(documents, date=subscription.date))

    def _detach(self, subscription: LogSubscription) -> None:
        listeners = self._subscriptions.get(subscription.user_id)
        if listeners is not None:
            listeners.discard(subscription)
            if not listeners:
                del self._subscriptions[subscription.user_id]

    def active_subscriptions(self, user_id: str) -> int:
        """Number of open log subscriptions for a user."""
        return len(self._subscriptions.get(user_id, ()))

    # Explanations

    async def get_explanation(self, name: str) -> Optional[ExplanationRecord]:
        """Point read of a cached explanation by exact key."""
        documents = await self._read(self._collection_path(EXPLANATIONS))
        document = documents.get(name)
        if document is None:
            return None
        return ExplanationRecord.from_dict(document)

    async def save_explanation(self, record: ExplanationRecord) -> None:
        """Create or overwrite the explanation stored under record.name."""
        path = self._collection_path(EXPLANATIONS)
        async with self._locks[path]:
            documents = await self._read(path)
            documents[record.name] = record.to_dict()
            await self._write(path, documents)

        log_operation("explanation_saved", medication_name=record.name)

    async def delete_explanation(self, name: str) -> bool:
        """Delete a cached explanation.

        Returns:
            True if deleted, False if it was already gone (not an error)
        """
        path = self._collection_path(EXPLANATIONS)
        async with self._locks[path]:
            documents = await self._read(path)
            if documents.pop(name, None) is None:
                return False
            await self._write(path, documents)

        return True
