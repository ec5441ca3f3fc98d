"""Data models for the medication tracker."""

from dataclasses import dataclass, field
from typing import Optional

from medbuddy.services.time_buckets import TimeOfDay, classify

DEFAULT_STOCK = 30
DEFAULT_LOW_STOCK_THRESHOLD = 10

WHAT_IT_DOES_DEFAULT = "Information currently unavailable."
HOW_IT_HELPS_DEFAULT = "Please consult your doctor."
IMPORTANT_NOTES_DEFAULT = "Always follow your prescription."


def dose_key(medication_id: str, bucket: TimeOfDay, date: str) -> str:
    """Identity key of a dose: one log entry at most per key."""
    return f"{medication_id}_{TimeOfDay(bucket).value}_{date}"


@dataclass
class TimeSlot:
    """One of the four schedule slots shown when editing a medication.

    Derived from Medication.times on demand and never persisted.

    Attributes:
        id: Bucket this slot represents
        label: Human readable bucket name
        default_time: Time used when the slot is enabled without a custom time
        enabled: Whether the medication is taken in this bucket
        custom_time: Time chosen by the user (HH:MM) or None
    """

    id: TimeOfDay
    label: str
    default_time: str
    enabled: bool = False
    custom_time: Optional[str] = None

    @property
    def resolved_time(self) -> str:
        """Custom time if set and non-blank, otherwise the default."""
        if self.custom_time and self.custom_time.strip():
            return self.custom_time.strip()
        return self.default_time


@dataclass
class Medication:
    """Medication data model.

    Attributes:
        id: Store-assigned identifier (None until persisted)
        name: Name of the medication
        dosage: Dosage information (e.g., "500 mg")
        times: Scheduled times in HH:MM format, sorted, one per bucket at most
        stock: Pills left, never negative
        low_stock_threshold: Stock level at or below which a refill is due
        special_instructions: Free text instructions (e.g., "with food")
        prescribed_by: Prescribing doctor, may be empty
    """

    id: Optional[str]
    name: str
    dosage: str
    times: list[str] = field(default_factory=list)
    stock: int = DEFAULT_STOCK
    low_stock_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD
    special_instructions: str = ""
    prescribed_by: str = ""

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.low_stock_threshold

    def to_dict(self) -> dict:
        """Convert medication to its stored document form.

        Stock and threshold keep the field names already used by stored
        documents ("stockcount", "alertThreshhold").

        Returns:
            Dictionary representation of the medication
        """
        return {
            "id": self.id,
            "name": self.name,
            "dosage": self.dosage,
            "times": list(self.times),
            "stockcount": self.stock,
            "alertThreshhold": self.low_stock_threshold,
            "specialInstructions": self.special_instructions,
            "prescribedBy": self.prescribed_by,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Medication":
        """Create medication from a stored document.

        Args:
            data: Dictionary with medication data

        Returns:
            Medication instance
        """
        return cls(
            id=data.get("id"),
            name=data["name"],
            dosage=data.get("dosage", ""),
            times=list(data.get("times") or []),
            stock=int(data.get("stockcount", DEFAULT_STOCK)),
            low_stock_threshold=int(
                data.get("alertThreshhold", DEFAULT_LOW_STOCK_THRESHOLD)
            ),
            special_instructions=data.get("specialInstructions") or "",
            prescribed_by=data.get("prescribedBy") or "",
        )


@dataclass
class DoseLogEntry:
    """Record of a dose taken.

    Created by marking a dose, deleted by unmarking it, never edited.

    Attributes:
        id: Store-assigned identifier (None until persisted)
        medication_id: Medication the dose belongs to
        medication_name: Medication name at the time of logging
        bucket: Schedule bucket of the dose
        date: Local calendar date (YYYY-MM-DD)
        scheduled_time: Local date plus the bucket's time (YYYY-MM-DDTHH:MM:00)
        actual_time: UTC instant the dose was marked (ISO-8601)
        taken: Always True for entries written by the ledger
        skipped: Reserved, always False
    """

    id: Optional[str]
    medication_id: str
    medication_name: str
    bucket: TimeOfDay
    date: str
    scheduled_time: str
    actual_time: str
    taken: bool = True
    skipped: bool = False

    @property
    def key(self) -> str:
        return dose_key(self.medication_id, self.bucket, self.date)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "medicationID": self.medication_id,
            "medicationName": self.medication_name,
            "bucket": TimeOfDay(self.bucket).value,
            "date": self.date,
            "scheduledTime": self.scheduled_time,
            "actualTime": self.actual_time,
            "taken": self.taken,
            "skipped": self.skipped,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DoseLogEntry":
        """Create log entry from a stored document.

        Older documents carry no "bucket" field; the bucket is then derived
        from the time part of "scheduledTime".
        """
        bucket = data.get("bucket")
        if bucket is None:
            bucket = classify(data["scheduledTime"].split("T")[1][:5])

        return cls(
            id=data.get("id"),
            medication_id=data["medicationID"],
            medication_name=data.get("medicationName", ""),
            bucket=TimeOfDay(bucket),
            date=data["date"],
            scheduled_time=data["scheduledTime"],
            actual_time=data.get("actualTime", ""),
            taken=bool(data.get("taken", True)),
            skipped=bool(data.get("skipped", False)),
        )


@dataclass
class ExplanationRecord:
    """Plain-language explanation of a medication.

    A section holds either generated text or its fixed default. Only the
    first section decides whether a cached record is usable.

    Attributes:
        name: Lookup key (trimmed medication name, case preserved)
        what_it_does: Section 1
        how_it_helps: Section 2
        important_notes: Section 3
        fda_data_fetched: When reference data was fetched (UTC ISO-8601)
        last_updated: When the record was generated (UTC ISO-8601)
    """

    name: str
    what_it_does: str = WHAT_IT_DOES_DEFAULT
    how_it_helps: str = HOW_IT_HELPS_DEFAULT
    important_notes: str = IMPORTANT_NOTES_DEFAULT
    fda_data_fetched: Optional[str] = None
    last_updated: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        # TODO: decide with product whether sections 2 and 3 should also be checked
        return self.what_it_does != WHAT_IT_DOES_DEFAULT

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "Detailedsections": {
                "whatitDoes": self.what_it_does,
                "howithelps": self.how_it_helps,
                "impnotes": self.important_notes,
            },
            "fdaDataFetched": self.fda_data_fetched,
            "lastUpdated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ExplanationRecord":
        sections = data.get("Detailedsections") or {}
        return cls(
            name=data["name"],
            what_it_does=sections.get("whatitDoes", WHAT_IT_DOES_DEFAULT),
            how_it_helps=sections.get("howithelps", HOW_IT_HELPS_DEFAULT),
            important_notes=sections.get("impnotes", IMPORTANT_NOTES_DEFAULT),
            fda_data_fetched=data.get("fdaDataFetched"),
            last_updated=data.get("lastUpdated"),
        )
