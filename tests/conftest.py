"""Shared fixtures for tests."""

import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from medbuddy.data.models import Medication
from medbuddy.data.storage import DataManager
from medbuddy.services.adherence import AdherenceLedger
from medbuddy.services.explanations import ExplanationCache
from medbuddy.services.monthly import MonthlyAggregator
from medbuddy.services.schedule_manager import ScheduleManager
from medbuddy.utils.timezone import FixedClock

USER_ID = "user-1"
TODAY = "2025-06-01"

SAMPLE_EXPLANATION = (
    "SECTION 1: What This Medication Does\n"
    "Metformin lowers the amount of sugar in your blood.\n\n"
    "SECTION 2: How It Helps You\n"
    "It keeps your diabetes under control.\n\n"
    "SECTION 3: Important Things to Know\n"
    "Take it with meals to avoid an upset stomach."
)

SAMPLE_LABEL = {
    "indications_and_usage": ["Metformin is indicated as an adjunct to diet and exercise."],
    "purpose": ["Blood glucose control"],
    "dosage_and_administration": ["500 mg twice a day with meals."],
}


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data.

    Yields:
        Path: Path to temporary directory
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def data_manager(temp_data_dir):
    """Create DataManager with temp directory."""
    return DataManager(data_dir=str(temp_data_dir))


@pytest.fixture
def user_id():
    return USER_ID


@pytest.fixture
def clock():
    """Clock pinned to 2025-06-01; call clock.set() to move it."""
    return FixedClock(TODAY)


@pytest.fixture
def mock_reference_lookup():
    """Reference lookup that finds a label for any query."""
    lookup = MagicMock()
    lookup.fetch = AsyncMock(return_value=SAMPLE_LABEL)
    return lookup


@pytest.fixture
def mock_text_generator():
    """Text generator returning a well-formed three-section explanation."""
    generator = MagicMock()
    generator.generate = AsyncMock(return_value=SAMPLE_EXPLANATION)
    return generator


@pytest.fixture
def explanation_cache(data_manager, mock_reference_lookup, mock_text_generator):
    return ExplanationCache(data_manager, mock_reference_lookup, mock_text_generator)


@pytest.fixture
def schedule_manager(data_manager):
    """ScheduleManager without background explanation warm-up."""
    return ScheduleManager(data_manager)


@pytest.fixture
def ledger(data_manager, clock):
    """Ledger for USER_ID with a short re-subscribe delay."""
    return AdherenceLedger(data_manager, USER_ID, clock, resubscribe_delay=0.01)


@pytest.fixture
def aggregator(data_manager, clock):
    return MonthlyAggregator(data_manager, USER_ID, clock)


@pytest_asyncio.fixture
async def metformin(data_manager):
    """Metformin taken in the morning, 30 pills in stock."""
    return await data_manager.add_medication(
        USER_ID,
        Medication(id=None, name="Metformin", dosage="500 mg", times=["08:00"], stock=30),
    )


@pytest_asyncio.fixture
async def lisinopril(data_manager):
    """Lisinopril taken morning and night, 5 pills in stock."""
    return await data_manager.add_medication(
        USER_ID,
        Medication(
            id=None,
            name="Lisinopril",
            dosage="10 mg",
            times=["07:30", "22:00"],
            stock=5,
            low_stock_threshold=10,
        ),
    )
