from __future__ import annotations

import pytest

from paybot.services.idempotency import IdempotencyTracker


class ManualClock:
    def __init__(self, now: int = 0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


def test_marked_ids_are_processed() -> None:
    tracker = IdempotencyTracker()
    assert not tracker.has_processed("m1")
    tracker.mark_processed("m1")
    assert tracker.has_processed("m1")
    assert "m1" in tracker
    assert len(tracker) == 1


def test_skipped_flag_and_empty_ids() -> None:
    tracker = IdempotencyTracker()
    tracker.mark_processed("m1", skipped=True)
    tracker.mark_processed("")
    record = tracker.record("m1")
    assert record is not None and record.skipped is True
    assert len(tracker) == 1


def test_remark_keeps_first_timestamp() -> None:
    clock = ManualClock(10)
    tracker = IdempotencyTracker(clock=clock)
    tracker.mark_processed("m1")
    clock.now = 20
    tracker.mark_processed("m1", skipped=True)
    record = tracker.record("m1")
    assert record is not None
    assert record.processed_at_ms == 10
    assert record.skipped is False


@pytest.mark.parametrize("step", [1, 0])
def test_eviction_drops_oldest_fifth(step: int) -> None:
    clock = ManualClock()
    tracker = IdempotencyTracker(max_entries=10, clock=clock)
    for i in range(13):
        clock.now += step
        tracker.mark_processed(f"m{i}")
    assert len(tracker) <= 10
    assert not tracker.has_processed("m0")
    assert not tracker.has_processed("m1")
    assert tracker.has_processed("m12")


def test_overflow_by_one_drops_exactly_the_oldest_fifth() -> None:
    clock = ManualClock()
    tracker = IdempotencyTracker(max_entries=10, clock=clock)
    ids = [f"m{i}" for i in range(11)]
    for mention_id in ids:
        clock.now += 1
        tracker.mark_processed(mention_id)

    assert len(tracker) == 9
    assert [i for i in ids if not tracker.has_processed(i)] == ["m0", "m1"]
    assert all(tracker.has_processed(i) for i in ids[2:])


def test_lookup_never_mutates() -> None:
    tracker = IdempotencyTracker(max_entries=3)
    for i in range(3):
        tracker.mark_processed(f"m{i}")
    for _ in range(5):
        tracker.has_processed("missing")
        tracker.has_processed("m0")
    assert len(tracker) == 3


def test_ttl_expiry_runs_on_insert() -> None:
    clock = ManualClock(0)
    tracker = IdempotencyTracker(ttl_seconds=1, clock=clock)
    tracker.mark_processed("a")
    clock.now = 500
    assert tracker.has_processed("a")
    clock.now = 1500
    assert not tracker.has_processed("a")
    assert len(tracker) == 1
    tracker.mark_processed("b")
    assert len(tracker) == 1
    assert tracker.has_processed("b")


def test_force_reprocess() -> None:
    tracker = IdempotencyTracker()
    tracker.mark_processed("m1")
    assert tracker.force_reprocess("m1") is True
    assert tracker.force_reprocess("m1") is False
    assert not tracker.has_processed("m1")


def test_rejects_non_positive_bound() -> None:
    with pytest.raises(ValueError):
        IdempotencyTracker(max_entries=0)
