"""
Unit Tests - Ordered Aggregate
"""
import random
import threading

import pytest

from fleetops.aggregation import (
    AggregateEntry,
    AggregateOp,
    Bounds,
    InvalidBounds,
    InvalidKey,
    KeyShape,
    NotFound,
    NUMBER,
    OrderedAggregate,
    STRING,
)
from fleetops.aggregation.tree import INSERT, REMOVE
from fleetops.metrics.dashboard import window_bounds
from fleetops.metrics.windows import DAY_MS, current_and_previous_windows

T = 1_700_000_000_000


@pytest.fixture
def bookings() -> OrderedAggregate:
    return OrderedAggregate("bookings", KeyShape.composite(STRING, NUMBER))


@pytest.fixture
def timeline() -> OrderedAggregate:
    return OrderedAggregate("maintenance", KeyShape.number())


class TestRangeQueries:
    """Tests for sum and count over key ranges"""

    def test_prefix_bounded_sum(self, bookings):
        bookings.insert(AggregateEntry(("completed", T), 100))
        bookings.insert(AggregateEntry(("completed", T + DAY_MS), 50))

        assert bookings.sum(Bounds.between(("completed", T), ("completed", T))) == 100
        assert bookings.sum(Bounds.between(("completed", T), ("completed", T + DAY_MS))) == 150

    def test_wire_bounds(self, bookings):
        bookings.insert(AggregateEntry(("completed", T), 100))
        bookings.insert(AggregateEntry(("completed", T + DAY_MS), 50))

        bounds = Bounds.from_dict({
            "lower": {"key": ["completed", T]},
            "upper": {"key": ["completed", T]},
            "inclusive": True,
        })

        assert bookings.sum(bounds) == 100

    def test_prefix_excludes_other_statuses(self, bookings):
        bookings.insert(AggregateEntry(("active", T), 10))
        bookings.insert(AggregateEntry(("completed", T), 100))
        bookings.insert(AggregateEntry(("completed", T + 5), 20))
        bookings.insert(AggregateEntry(("confirmed", T), 1000))

        assert bookings.sum(Bounds.prefix(("completed",))) == 120
        assert bookings.count(Bounds.prefix(("completed",))) == 2
        assert bookings.count(Bounds.prefix(("confirmed",))) == 1

    def test_prefix_upper_bound(self, bookings):
        bookings.insert(AggregateEntry(("completed", T), 100))
        bookings.insert(AggregateEntry(("completed", T + 5), 20))
        bookings.insert(AggregateEntry(("confirmed", T), 1000))

        # Upper prefix covers every completed entry, none beyond
        assert bookings.sum(Bounds.between(("completed", T + 1), ("completed",))) == 20

    def test_exclusive_bounds(self, timeline):
        for key in (1, 2, 3):
            timeline.insert(AggregateEntry(key, key * 10))

        assert timeline.sum(Bounds.between(1, 3, lower_inclusive=False)) == 50
        assert timeline.sum(Bounds.between(1, 3, upper_inclusive=False)) == 30
        assert timeline.count(Bounds.between(1, 3, lower_inclusive=False, upper_inclusive=False)) == 1

    def test_exclusive_single_point_is_empty(self, timeline):
        timeline.insert(AggregateEntry(5, 10))

        assert timeline.count_and_sum(Bounds.between(5, 5, upper_inclusive=False)) == (0, 0.0)

    def test_unbounded(self, timeline):
        timeline.insert(AggregateEntry(1, 10))
        timeline.insert(AggregateEntry(2, 15))

        assert timeline.sum() == 25
        assert timeline.count(Bounds.between(None, 1)) == 1
        assert timeline.count(Bounds.between(2, None)) == 1

    def test_empty_aggregate(self, bookings):
        assert bookings.sum(Bounds.prefix(("completed",))) == 0
        assert bookings.count() == 0
        assert len(bookings) == 0
        assert bookings.min() is None

    def test_inverted_bounds_rejected(self, timeline):
        timeline.insert(AggregateEntry(1, 10))

        with pytest.raises(InvalidBounds):
            timeline.sum(Bounds.between(10, 1))

    def test_bound_with_wrong_component_type_rejected(self, bookings):
        with pytest.raises(InvalidBounds):
            bookings.sum(Bounds.prefix((T,)))


class TestWrites:
    """Tests for insert, remove and replace"""

    def test_duplicate_keys_retained(self, timeline):
        timeline.insert(AggregateEntry(T, 100))
        timeline.insert(AggregateEntry(T, 100))
        timeline.insert(AggregateEntry(T, 40))

        assert timeline.count(Bounds.between(T, T)) == 3
        assert timeline.sum(Bounds.between(T, T)) == 240

        timeline.remove(AggregateEntry(T, 100))

        assert timeline.count() == 2
        assert timeline.sum() == 140

    def test_remove_requires_matching_value(self, timeline):
        timeline.insert(AggregateEntry(T, 100))

        with pytest.raises(NotFound) as exc_info:
            timeline.remove(AggregateEntry(T, 99))

        assert exc_info.value.aggregate == "maintenance"
        assert timeline.sum() == 100

    def test_remove_missing_key(self, timeline):
        with pytest.raises(NotFound):
            timeline.remove(AggregateEntry(T, 100))

    def test_replace_moves_entry(self, bookings):
        bookings.insert(AggregateEntry(("confirmed", T), 300))

        bookings.replace(AggregateEntry(("confirmed", T), 300), AggregateEntry(("completed", T), 300))

        assert bookings.count(Bounds.prefix(("confirmed",))) == 0
        assert bookings.sum(Bounds.prefix(("completed",))) == 300

    def test_failed_replace_leaves_state_untouched(self, bookings):
        bookings.insert(AggregateEntry(("confirmed", T), 300))

        with pytest.raises(NotFound):
            bookings.replace(AggregateEntry(("confirmed", T), 1), AggregateEntry(("completed", T), 1))

        assert bookings.count() == 1
        assert bookings.count(Bounds.prefix(("completed",))) == 0

    def test_batch_is_all_or_nothing(self, timeline):
        timeline.insert(AggregateEntry(1, 10))

        with pytest.raises(NotFound):
            timeline.apply([
                AggregateOp(INSERT, AggregateEntry(2, 20)),
                AggregateOp(REMOVE, AggregateEntry(3, 30)),
            ])

        assert list(timeline) == [AggregateEntry(1, 10.0)]

    def test_inverse_undoes_batch(self, timeline):
        ops = [
            AggregateOp(INSERT, AggregateEntry(2, 20)),
            AggregateOp(INSERT, AggregateEntry(3, 30)),
        ]
        timeline.apply(ops)
        timeline.apply([op.inverse() for op in reversed(ops)])

        assert len(timeline) == 0

    def test_invalid_key_rejected(self, timeline):
        with pytest.raises(InvalidKey):
            timeline.insert(AggregateEntry("2024-01-01", 10))

    def test_invalid_value_rejected(self, timeline):
        with pytest.raises(InvalidKey):
            timeline.insert(AggregateEntry(T, float("nan")))

        with pytest.raises(InvalidKey):
            timeline.insert(AggregateEntry(T, "100"))

    def test_clear(self, timeline):
        timeline.insert(AggregateEntry(1, 10))
        timeline.clear()

        assert len(timeline) == 0
        assert timeline.sum() == 0


class TestPreparePublish:
    """Tests for computing a batch before making it visible"""

    def test_prepare_does_not_publish(self, timeline):
        timeline.insert(AggregateEntry(1, 10))

        batch = timeline.prepare([AggregateOp(INSERT, AggregateEntry(2, 20))])

        assert timeline.sum() == 10
        timeline.publish(batch)
        assert timeline.sum() == 30

    def test_prepare_rejects_missing_entry(self, timeline):
        with pytest.raises(NotFound):
            timeline.prepare([AggregateOp(REMOVE, AggregateEntry(1, 10))])

        assert len(timeline) == 0

    def test_publish_replays_when_contents_moved(self, timeline):
        timeline.insert(AggregateEntry(1, 10))
        batch = timeline.prepare([AggregateOp(REMOVE, AggregateEntry(1, 10))])

        timeline.insert(AggregateEntry(5, 50))
        timeline.publish(batch)

        assert [e.key for e in timeline] == [5]
        assert timeline.sum() == 50

    def test_replay_rejects_entry_removed_meanwhile(self, timeline):
        timeline.insert(AggregateEntry(1, 10))
        batch = timeline.prepare([AggregateOp(REMOVE, AggregateEntry(1, 10))])
        timeline.remove(AggregateEntry(1, 10))

        with pytest.raises(NotFound):
            timeline.publish(batch)

    def test_publish_to_other_aggregate_rejected(self, timeline):
        other = OrderedAggregate("other", KeyShape.number())
        batch = other.prepare([AggregateOp(INSERT, AggregateEntry(1, 10))])

        with pytest.raises(ValueError):
            timeline.publish(batch)


class TestRebuild:
    """Tests for wholesale rebuild"""

    def test_rebuild_discards_prior_state(self, timeline):
        timeline.insert(AggregateEntry(1, 999))

        loaded = timeline.rebuild([AggregateEntry(3, 30), AggregateEntry(2, 20)])

        assert loaded == 2
        assert timeline.sum() == 50
        assert [e.key for e in timeline] == [2, 3]

    def test_rebuild_is_repeatable(self, timeline):
        entries = [AggregateEntry(k, k) for k in range(100)]

        timeline.rebuild(entries)
        timeline.rebuild(entries)

        assert timeline.count() == 100
        assert timeline.sum() == sum(range(100))

    def test_rebuilt_tree_accepts_writes(self, timeline):
        timeline.rebuild([AggregateEntry(k, 1) for k in range(50)])

        timeline.insert(AggregateEntry(25, 1))
        timeline.remove(AggregateEntry(0, 1))

        assert timeline.count(Bounds.between(25, 25)) == 2
        assert timeline.min() == AggregateEntry(1, 1.0)


class TestOrdering:
    """Tests for positional access and iteration"""

    def test_iteration_in_key_order(self, bookings):
        bookings.insert(AggregateEntry(("confirmed", 1), 1))
        bookings.insert(AggregateEntry(("active", 5), 2))
        bookings.insert(AggregateEntry(("completed", 3), 3))

        assert [e.key for e in bookings] == [("active", 5), ("completed", 3), ("confirmed", 1)]

    def test_at_and_extremes(self, timeline):
        for key in (30, 10, 20):
            timeline.insert(AggregateEntry(key, key))

        assert timeline.at(1).key == 20
        assert timeline.at(-1).key == 30
        assert timeline.min().key == 10
        assert timeline.max().key == 30

        with pytest.raises(IndexError):
            timeline.at(3)

    def test_iterator_reads_one_snapshot(self, timeline):
        for key in range(5):
            timeline.insert(AggregateEntry(key, 1))

        iterator = iter(timeline)
        first = next(iterator)
        timeline.insert(AggregateEntry(100, 1))
        rest = list(iterator)

        assert first.key == 0
        assert [e.key for e in rest] == [1, 2, 3, 4]


class TestInvariants:
    """Randomized checks against a brute-force reference"""

    def test_matches_linear_scan(self, timeline):
        rng = random.Random(7)
        reference = []

        for _ in range(600):
            if reference and rng.random() < 0.3:
                key, value = reference.pop(rng.randrange(len(reference)))
                timeline.remove(AggregateEntry(key, value))
            else:
                key, value = rng.randint(0, 200), rng.randint(1, 500)
                reference.append((key, value))
                timeline.insert(AggregateEntry(key, value))

        assert len(timeline) == len(reference)
        assert timeline.sum() == sum(v for _, v in reference)

        for _ in range(100):
            low, high = sorted((rng.randint(0, 200), rng.randint(0, 200)))
            inside = [v for k, v in reference if low <= k <= high]
            bounds = Bounds.between(low, high)
            assert timeline.count(bounds) == len(inside)
            assert timeline.sum(bounds) == sum(inside)

        assert [e.key for e in timeline] == sorted(k for k, _ in reference)

    def test_adjacent_windows_partition(self, timeline):
        now_ms = T
        current, previous = current_and_previous_windows(now_ms, 30)
        rng = random.Random(11)

        keys = [now_ms - rng.randint(0, 60 * DAY_MS) for _ in range(300)]
        # Exact boundaries
        keys += [current.start, previous.start, now_ms]
        for key in keys:
            timeline.insert(AggregateEntry(key, 1))

        both = Bounds.between(previous.start, current.end)
        assert (
            timeline.sum(window_bounds(current)) + timeline.sum(window_bounds(previous))
            == timeline.sum(both)
        )
        assert timeline.count(Bounds.between(current.start, current.start)) >= 1
        assert timeline.count(window_bounds(previous)) == sum(1 for k in keys if previous.contains(k))

    def test_prefix_query_equals_filtered_scan(self, bookings):
        rng = random.Random(3)
        entries = []
        for _ in range(300):
            status = rng.choice(["active", "cancelled", "completed", "confirmed"])
            entry = AggregateEntry((status, rng.randint(0, 1000)), rng.randint(1, 100))
            entries.append(entry)
            bookings.insert(entry)

        expected = sum(e.value for e in entries if e.key[0] == "completed" and 200 <= e.key[1] <= 700)

        assert bookings.sum(Bounds.between(("completed", 200), ("completed", 700))) == expected

    def test_readers_never_see_partial_replace(self, bookings):
        bookings.insert(AggregateEntry(("confirmed", T), 100))
        for i in range(200):
            bookings.insert(AggregateEntry(("completed", T + i), 1))
        expected_count, expected_total = len(bookings), bookings.sum()

        stop = threading.Event()
        torn = []

        def writer():
            status = "confirmed"
            while not stop.is_set():
                new_status = "active" if status == "confirmed" else "confirmed"
                bookings.replace(
                    AggregateEntry((status, T), 100),
                    AggregateEntry((new_status, T), 100),
                )
                status = new_status

        thread = threading.Thread(target=writer)
        thread.start()
        try:
            for _ in range(2000):
                count, total = bookings.count_and_sum()
                if (count, total) != (expected_count, expected_total):
                    torn.append((count, total))
        finally:
            stop.set()
            thread.join()

        assert torn == []
