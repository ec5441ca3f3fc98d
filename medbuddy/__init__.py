"""MedBuddy adherence core: dose schedule, ledger, calendar and explanations."""

__version__ = "0.1.0"
