"""Integration tests for a tracker session.

These tests drive MedicationTracker end to end against a real on-disk
store with mocked reference and generation services. They verify that:
1. Saving a schedule, toggling doses and the calendar agree with each other
2. Stock follows mark/unmark exactly
3. Crossing midnight moves the live view without losing stored history
4. Explanations are generated once and then served from the store
"""

import asyncio

import pytest

from medbuddy.services.monthly import DayStatus
from medbuddy.services.time_buckets import TimeOfDay
from medbuddy.tracker import MedicationTracker


@pytest.fixture
def tracker(data_manager, clock, explanation_cache, user_id):
    return MedicationTracker(
        user_id,
        data_manager=data_manager,
        clock=clock,
        explanation_cache=explanation_cache,
        date_check_interval=0.01,
    )


async def wait_until(predicate, attempts=200):
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition not reached")


# TC-INT-FLOW-001: Schedule, Toggle, Calendar
@pytest.mark.asyncio
@pytest.mark.timeout(10)
async def test_schedule_toggle_and_calendar(tracker, data_manager, user_id):
    """Test a full day with two medications.

    Scenario:
    - User saves Metformin (08:30, 20:00) and Lisinopril (22:00)
    - User checks off two of three doses on 2025-06-01
    - Calendar shows the day as partial, then full after the third dose
    """
    async with tracker:
        # Given: Two medications saved through slots
        metformin = await tracker.schedule.save_medication(
            user_id, "Metformin", "500 mg", tracker.build_schedule_slots(["20:00", "08:30"])
        )
        lisinopril = await tracker.schedule.add_medication(
            user_id, "Lisinopril", "10 mg", ["22:00"], stock=5
        )
        await tracker.schedule.wait_background_tasks()
        assert metformin.times == ["08:30", "20:00"]

        # When: Checking off the morning and evening Metformin doses
        assert await tracker.toggle_dose(metformin.id, TimeOfDay.MORNING) is True
        assert await tracker.toggle_dose(metformin.id, TimeOfDay.EVENING) is True

        # Then: Today's checklist reflects it
        doses = await tracker.today_doses()
        assert [(d.medication.name, d.slot.id, d.taken) for d in doses] == [
            ("Metformin", TimeOfDay.MORNING, True),
            ("Metformin", TimeOfDay.EVENING, True),
            ("Lisinopril", TimeOfDay.NIGHT, False),
        ]
        assert (await data_manager.get_medication(user_id, metformin.id)).stock == 28

        # And: The calendar shows a partial day
        stats = await tracker.monthly_status(2025, 6)
        assert stats[1] == DayStatus.PARTIAL
        assert stats[2] == DayStatus.FUTURE

        # When: The last dose is taken
        await tracker.toggle_dose(lisinopril.id, TimeOfDay.NIGHT)

        # Then: The day is full and Lisinopril is low on stock
        stats = await tracker.monthly_status(2025, 6)
        assert stats[1] == DayStatus.FULL
        assert [med.name for med in await tracker.low_stock()] == ["Lisinopril"]

        # When: A dose is unchecked again
        assert await tracker.toggle_dose(metformin.id, TimeOfDay.EVENING) is False

        # Then: Stock and calendar follow
        assert (await data_manager.get_medication(user_id, metformin.id)).stock == 29
        assert (await tracker.monthly_status(2025, 6))[1] == DayStatus.PARTIAL

    assert data_manager.active_subscriptions(user_id) == 0


# TC-INT-FLOW-002: Midnight Rollover Through The Watcher
@pytest.mark.asyncio
@pytest.mark.timeout(10)
async def test_watcher_moves_view_to_next_day(tracker, data_manager, clock, metformin, user_id):
    """Test that the date watcher picks up a date change on its own."""
    async with tracker:
        await tracker.ledger.wait_synced(timeout=1)
        await tracker.toggle_dose(metformin.id, TimeOfDay.MORNING)
        assert tracker.ledger.is_taken(metformin.id, TimeOfDay.MORNING)

        # When: The clock passes midnight
        clock.set("2025-06-02")
        await wait_until(lambda: tracker.ledger.current_date == "2025-06-02")
        await tracker.ledger.wait_synced(timeout=1)

        # Then: The new day starts empty over a single live subscription
        assert not tracker.ledger.is_taken(metformin.id, TimeOfDay.MORNING)
        assert data_manager.active_subscriptions(user_id) == 1

        # And: The calendar keeps yesterday
        stats = await tracker.monthly_status(2025, 6)
        assert stats[1] == DayStatus.FULL
        assert stats[2] == DayStatus.MISSED

    assert not tracker.watcher.running
    assert data_manager.active_subscriptions(user_id) == 0


# TC-INT-FLOW-003: Explanation Warm-up
@pytest.mark.asyncio
@pytest.mark.timeout(10)
async def test_saved_medication_explanation_is_cached(
    tracker, mock_reference_lookup, mock_text_generator, user_id
):
    """Test that saving a medication prepares its explanation."""
    async with tracker:
        await tracker.schedule.add_medication(user_id, "Metformin", "500 mg", ["08:00"])
        await tracker.schedule.wait_background_tasks()
        assert mock_text_generator.generate.await_count == 1

        record = await tracker.explanation_for("Metformin")

    assert record.is_valid
    assert mock_reference_lookup.fetch.await_count == 1
    assert mock_text_generator.generate.await_count == 1
