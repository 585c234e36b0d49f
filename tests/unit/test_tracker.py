import json

import pytest

from marketsense.contracts import StepStatus
from marketsense.errors import StorageError
from marketsense.store import InMemoryProgressStore
from marketsense.store.base import ProgressStore
from marketsense.tracker import ProgressTracker


class FailingStore(ProgressStore):
    """Store whose every operation fails, like a full or revoked storage."""

    async def get(self, key):
        raise StorageError("quota exceeded")

    async def set(self, key, value):
        raise StorageError("quota exceeded")

    async def remove(self, key):
        raise StorageError("quota exceeded")


def _statuses(tracker):
    return [step.status.value for step in tracker.steps]


@pytest.mark.asyncio
async def test_default_steps():
    tracker = ProgressTracker("REQ-1", InMemoryProgressStore())

    assert [step.name for step in tracker.steps] == [
        "Generating search queries",
        "Searching the web",
        "Scraping content",
        "Summarizing research",
        "Creating market analysis",
    ]
    assert [step.total for step in tracker.steps] == [None, 5, 9, 9, None]
    assert _statuses(tracker) == ["pending"] * 5
    assert tracker.current_step_index == 0
    assert tracker.in_progress is False


@pytest.mark.asyncio
async def test_reset_is_idempotent_and_clears_store():
    store = InMemoryProgressStore()
    tracker = ProgressTracker("REQ-1", store)
    await tracker.start_run()
    await tracker.update_step_status(0, StepStatus.COMPLETED)
    await tracker.update_step_status(1, StepStatus.PROCESSING, 3, 6)
    await tracker.set_current_step(1)
    assert len(store.keys()) == 3

    await tracker.reset_progress()
    first = tracker.progress.model_copy(deep=True)
    await tracker.reset_progress()

    assert tracker.progress == first
    assert _statuses(tracker) == ["pending"] * 5
    assert tracker.current_step_index == 0
    assert tracker.in_progress is False
    # totals survive a reset, counters go back to zero
    assert tracker.steps[1].total == 6
    assert tracker.steps[1].current == 0
    assert tracker.steps[0].current is None
    assert store.keys() == []


@pytest.mark.asyncio
async def test_status_never_regresses_from_terminal():
    tracker = ProgressTracker("REQ-1", InMemoryProgressStore())

    await tracker.update_step_status(0, StepStatus.PROCESSING)
    await tracker.update_step_status(0, StepStatus.COMPLETED)
    await tracker.update_step_status(0, StepStatus.PENDING)
    assert tracker.steps[0].status == StepStatus.COMPLETED
    await tracker.update_step_status(0, StepStatus.PROCESSING)
    assert tracker.steps[0].status == StepStatus.COMPLETED
    await tracker.update_step_status(0, StepStatus.FAILED)
    assert tracker.steps[0].status == StepStatus.COMPLETED

    await tracker.update_step_status(2, StepStatus.FAILED)
    await tracker.update_step_status(2, StepStatus.COMPLETED)
    assert tracker.steps[2].status == StepStatus.FAILED

    await tracker.update_step_status(1, StepStatus.PROCESSING)
    await tracker.update_step_status(1, StepStatus.PENDING)
    assert tracker.steps[1].status == StepStatus.PROCESSING


@pytest.mark.asyncio
async def test_current_is_clamped_to_total():
    tracker = ProgressTracker("REQ-1", InMemoryProgressStore())

    await tracker.update_step_status(3, StepStatus.PROCESSING, 12, 9)
    assert tracker.steps[3].current == 9
    assert tracker.steps[3].total == 9

    await tracker.update_step_status(3, StepStatus.PROCESSING, -2)
    assert tracker.steps[3].current == 0

    # lowering the total pulls an existing counter down with it
    await tracker.update_step_status(3, StepStatus.PROCESSING, 7)
    await tracker.update_step_status(3, StepStatus.PROCESSING, total=4)
    assert tracker.steps[3].current == 4


@pytest.mark.asyncio
async def test_update_only_overwrites_supplied_counters():
    tracker = ProgressTracker("REQ-1", InMemoryProgressStore())

    await tracker.update_step_status(2, StepStatus.PROCESSING, 4, 8)
    await tracker.update_step_status(2, StepStatus.PROCESSING)
    assert tracker.steps[2].current == 4
    assert tracker.steps[2].total == 8
    assert tracker.steps[2].name == "Scraping content"


@pytest.mark.asyncio
async def test_update_rejects_bad_index_and_status():
    tracker = ProgressTracker("REQ-1", InMemoryProgressStore())

    with pytest.raises(IndexError):
        await tracker.update_step_status(5, StepStatus.PROCESSING)
    with pytest.raises(IndexError):
        await tracker.set_current_step(6)
    with pytest.raises(ValueError):
        await tracker.update_step_status(0, "running")


@pytest.mark.asyncio
async def test_every_mutation_is_written_through():
    store = InMemoryProgressStore()
    tracker = ProgressTracker("REQ-1", store)

    await tracker.update_step_status(1, "processing", 2, 5)
    saved = json.loads(await store.get("market_analysis:steps:REQ-1"))
    assert saved[1] == {
        "name": "Searching the web",
        "status": "processing",
        "current": 2,
        "total": 5,
    }
    # unset counters are omitted from the stored JSON
    assert "current" not in saved[0]

    await tracker.set_current_step(1)
    assert await store.get("market_analysis:current_step:REQ-1") == "1"


@pytest.mark.asyncio
async def test_persist_and_restore_round_trip(tmp_path):
    from marketsense.store import SQLiteProgressStore

    store = SQLiteProgressStore(tmp_path / "progress.db")
    tracker = ProgressTracker("REQ-1", store)
    await tracker.start_run()
    await tracker.update_step_status(0, StepStatus.COMPLETED)
    await tracker.update_step_status(1, StepStatus.COMPLETED, 5, 5)
    await tracker.update_step_status(2, StepStatus.PROCESSING, 4, 9)
    await tracker.set_current_step(2)
    await tracker.persist()

    restored = ProgressTracker("REQ-1", store)
    assert await restored.restore_if_present() is True
    assert restored.progress == tracker.progress
    assert restored.in_progress is True
    assert restored.current_step_index == 2


@pytest.mark.asyncio
async def test_restore_requires_all_keys():
    store = InMemoryProgressStore()
    tracker = ProgressTracker("REQ-1", store)
    await tracker.update_step_status(0, StepStatus.PROCESSING)

    other = ProgressTracker("REQ-1", store)
    assert await other.restore_if_present() is False
    assert _statuses(other) == ["pending"] * 5


@pytest.mark.asyncio
async def test_restore_ignores_corrupt_data():
    store = InMemoryProgressStore()
    await store.set("market_analysis:status:REQ-1", "true")
    await store.set("market_analysis:steps:REQ-1", "{not json")
    await store.set("market_analysis:current_step:REQ-1", "1")

    tracker = ProgressTracker("REQ-1", store)
    assert await tracker.restore_if_present() is False
    assert tracker.in_progress is False

    await store.set("market_analysis:steps:REQ-1", '[{"name": "a", "status": "done"}]')
    assert await tracker.restore_if_present() is False

    await store.set("market_analysis:steps:REQ-1", '[{"name": "a"}]')
    await store.set("market_analysis:current_step:REQ-1", "7")
    assert await tracker.restore_if_present() is False

    await store.set("market_analysis:current_step:REQ-1", "one")
    assert await tracker.restore_if_present() is False


@pytest.mark.asyncio
async def test_storage_failures_are_swallowed():
    tracker = ProgressTracker("REQ-1", FailingStore())

    await tracker.start_run()
    await tracker.update_step_status(0, StepStatus.PROCESSING)
    await tracker.set_current_step(0)
    await tracker.reset_progress()

    assert tracker.steps[0].status == StepStatus.PENDING
    assert await tracker.restore_if_present() is False


@pytest.mark.asyncio
async def test_finish_run_after_failure_keeps_steps_but_not_flag():
    store = InMemoryProgressStore()
    tracker = ProgressTracker("REQ-1", store)
    await tracker.start_run()
    assert await store.get("market_analysis:status:REQ-1") == "true"

    await tracker.update_step_status(0, StepStatus.FAILED)
    await tracker.finish_run(failed=True)

    assert tracker.in_progress is False
    assert await store.get("market_analysis:status:REQ-1") == "false"
    restored = ProgressTracker("REQ-1", store)
    assert await restored.restore_if_present() is True
    assert restored.in_progress is False
    assert restored.steps[0].status == StepStatus.FAILED


@pytest.mark.asyncio
async def test_mark_all_completed_fills_counters():
    tracker = ProgressTracker("REQ-1", InMemoryProgressStore())
    await tracker.update_step_status(2, StepStatus.FAILED, 3, 9)

    await tracker.mark_all_completed()

    assert _statuses(tracker) == ["completed"] * 5
    assert [step.current for step in tracker.steps] == [None, 5, 9, 9, None]
    assert tracker.current_step_index == 5


@pytest.mark.asyncio
async def test_only_one_step_processes_at_a_time():
    tracker = ProgressTracker("REQ-1", InMemoryProgressStore())

    await tracker.update_step_status(0, StepStatus.PROCESSING)
    await tracker.update_step_status(3, StepStatus.PROCESSING)

    assert _statuses(tracker) == ["processing", "pending", "pending", "pending", "pending"]

    await tracker.update_step_status(0, StepStatus.COMPLETED)
    await tracker.update_step_status(3, StepStatus.PROCESSING)
    assert tracker.progress.processing_index() == 3


async def _store_progress(store, steps, current_step="1"):
    await store.set("market_analysis:status:REQ-1", "true")
    await store.set("market_analysis:steps:REQ-1", json.dumps(steps))
    await store.set("market_analysis:current_step:REQ-1", current_step)


def _valid_steps():
    return [
        {"name": "Generating search queries", "status": "completed"},
        {"name": "Searching the web", "status": "processing", "current": 2, "total": 5},
        {"name": "Scraping content", "status": "pending", "current": 0, "total": 9},
        {"name": "Summarizing research", "status": "pending", "current": 0, "total": 9},
        {"name": "Creating market analysis", "status": "pending"},
    ]


@pytest.mark.asyncio
async def test_restore_accepts_valid_progress():
    store = InMemoryProgressStore()
    await _store_progress(store, _valid_steps())

    tracker = ProgressTracker("REQ-1", store)
    assert await tracker.restore_if_present() is True
    assert tracker.steps[1].current == 2


@pytest.mark.asyncio
async def test_restore_rejects_wrong_step_count():
    store = InMemoryProgressStore()
    await _store_progress(
        store,
        [
            {"name": "a", "status": "processing"},
            {"name": "b", "status": "pending", "current": 2, "total": 9},
        ],
    )

    tracker = ProgressTracker("REQ-1", store)
    assert await tracker.restore_if_present() is False
    assert len(tracker.steps) == 5
    assert tracker.in_progress is False


@pytest.mark.asyncio
async def test_restore_rejects_several_processing_steps():
    store = InMemoryProgressStore()
    steps = _valid_steps()
    steps[3]["status"] = "processing"
    await _store_progress(store, steps)

    tracker = ProgressTracker("REQ-1", store)
    assert await tracker.restore_if_present() is False
    assert _statuses(tracker) == ["pending"] * 5


@pytest.mark.asyncio
async def test_restore_rejects_counter_above_total():
    store = InMemoryProgressStore()
    steps = _valid_steps()
    steps[1]["current"] = 12
    await _store_progress(store, steps)

    tracker = ProgressTracker("REQ-1", store)
    assert await tracker.restore_if_present() is False
    assert tracker.steps[1].current == 0

    steps[1]["current"] = -1
    await _store_progress(store, steps)
    assert await tracker.restore_if_present() is False


def test_workflow_id_is_required():
    with pytest.raises(ValueError):
        ProgressTracker("", InMemoryProgressStore())
