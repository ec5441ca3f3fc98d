"""Data layer for the medication tracker.

This module provides data models and storage management for user data.
"""

from .models import DoseLogEntry, ExplanationRecord, Medication, TimeSlot
from .storage import DataManager, LogSubscription

__all__ = [
    "Medication",
    "DoseLogEntry",
    "ExplanationRecord",
    "TimeSlot",
    "DataManager",
    "LogSubscription",
]
