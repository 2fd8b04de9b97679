"""Tests for stolen slot allocation and queue assembly."""

import pytest

from aiojam.models import PlayStatus
from aiojam.queue import StolenAllocation, allocate_stolen_slots, assemble_queue, rebalance
from aiojam.queue.stolen import _find_free_slot

from .conftest import make_participant, make_song


@pytest.fixture
def participants():
    return [make_participant("alice", 100), make_participant("bob", 200)]


class TestAllocateStolenSlots:
    def test_keeps_previous_index(self):
        song = make_song("s3", "alice", 3, stolen=True)

        allocation = allocate_stolen_slots([song], ["s1", "s2", "s3", "s4"], total_slots=5)

        assert allocation.slots == {2: "s3"}
        assert allocation.unresolved == []

    def test_clamps_stale_index_to_last_slot(self):
        song = make_song("s", "alice", 1, stolen=True)
        previous = ["x0", "x1", "x2", "x3", "x4", "x5", "x6", "s"]

        allocation = allocate_stolen_slots([song], previous, total_slots=3)

        assert allocation.slots == {2: "s"}

    def test_missing_from_previous_order_is_unresolved(self):
        song = make_song("new", "alice", 1, stolen=True)

        allocation = allocate_stolen_slots([song], ["other"], total_slots=2)

        assert allocation.slots == {}
        assert allocation.unresolved == [song]

    def test_free_slot_search_prefers_later_slots(self):
        taken = {1: "a", 2: "b"}

        assert _find_free_slot(1, 5, taken) == 3
        assert _find_free_slot(1, 3, taken) == 0
        assert _find_free_slot(0, 1, {0: "a"}) is None

    def test_collision_after_clamping_moves_earlier(self):
        first = make_song("a", "alice", 1, stolen=True)
        second = make_song("b", "bob", 2, stolen=True)

        # Both clamp to slot 1 of 2
        allocation = allocate_stolen_slots([first, second], ["x", "a", "b"], total_slots=2)

        assert allocation.slots == {1: "a", 0: "b"}

    def test_collision_at_last_slot_probes_backward(self):
        songs = [make_song(sid, "alice", i, stolen=True) for i, sid in enumerate("abc")]
        previous = ["x", "y", "z", "w", "a", "b", "c"]

        allocation = allocate_stolen_slots(songs, previous, total_slots=3)

        assert allocation.slots == {2: "a", 1: "b", 0: "c"}
        assert allocation.overflow == []

    def test_saturated_queue_overflows(self):
        songs = [make_song(sid, "alice", i, stolen=True) for i, sid in enumerate("ab")]

        allocation = allocate_stolen_slots(songs, ["a", "b"], total_slots=1)

        assert allocation.slots == {0: "a"}
        assert allocation.overflow == ["b"]


class TestAssembleQueue:
    def test_fills_gaps_left_to_right(self):
        fair = [make_song(sid, "alice", i) for i, sid in enumerate("xyz")]

        order = assemble_queue(4, StolenAllocation(slots={1: "s"}), fair)

        assert order == ["x", "s", "y", "z"]

    def test_appends_leftover_fair_songs_and_overflow(self):
        fair = [make_song(sid, "alice", i) for i, sid in enumerate("xy")]
        allocation = StolenAllocation(slots={0: "s"}, overflow=["t"])

        order = assemble_queue(2, allocation, fair)

        assert order == ["s", "x", "y", "t"]

    def test_drops_unfilled_slots(self):
        order = assemble_queue(3, StolenAllocation(slots={2: "s"}), [])

        assert order == ["s"]


class TestRebalance:
    def test_round_fairness(self, participants):
        songs = [
            make_song("a1", "alice", 10),
            make_song("a2", "alice", 20),
            make_song("b1", "bob", 30),
            make_song("b2", "bob", 40),
        ]

        assert rebalance(songs, participants, []) == ["a1", "b1", "a2", "b2"]

    def test_stolen_song_keeps_slot_when_queue_grows(self, participants):
        songs = [
            make_song("s1", "alice", 1),
            make_song("s2", "bob", 2),
            make_song("s3", "alice", 3, stolen=True),
            make_song("s4", "bob", 4),
            make_song("s5", "alice", 5),
        ]

        order = rebalance(songs, participants, ["s1", "s2", "s3", "s4"])

        assert len(order) == 5
        assert order[2] == "s3"
        assert set(order) == {"s1", "s2", "s3", "s4", "s5"}

    def test_stolen_song_ignores_its_fair_position(self, participants):
        # Fairly b1 would come before a2, but a2 was dragged to the front
        songs = [
            make_song("a1", "alice", 1),
            make_song("a2", "alice", 2, stolen=True),
            make_song("b1", "bob", 3),
        ]

        assert rebalance(songs, participants, ["a2", "a1", "b1"]) == ["a2", "a1", "b1"]

    def test_clamping_into_shrunken_queue(self, participants):
        songs = [
            make_song("a1", "alice", 1),
            make_song("b1", "bob", 2),
            make_song("s", "alice", 3, stolen=True),
        ]
        previous = ["p0", "p1", "p2", "p3", "p4", "p5", "p6", "s"]

        assert rebalance(songs, participants, previous) == ["a1", "b1", "s"]

    def test_played_songs_excluded_but_count_for_rounds(self, participants):
        songs = [
            make_song("a1", "alice", 1, status=PlayStatus.PLAYED),
            make_song("a2", "alice", 2),
            make_song("b1", "bob", 3),
        ]

        # a2 is alice's second song, so bob's first song goes first
        assert rebalance(songs, participants, ["a1", "a2", "b1"]) == ["b1", "a2"]

    def test_unresolved_stolen_song_scheduled_fairly(self, participants):
        songs = [
            make_song("a1", "alice", 1),
            make_song("b1", "bob", 2, stolen=True),
            make_song("a2", "alice", 3),
        ]

        assert rebalance(songs, participants, []) == ["a1", "b1", "a2"]

    def test_duplicate_song_ids_appear_once(self, participants):
        song = make_song("a1", "alice", 1)

        assert rebalance([song, song], participants, ["a1", "a1"]) == ["a1"]

    def test_unknown_owner_does_not_fail(self, participants):
        songs = [make_song("g1", "ghost", 1), make_song("a1", "alice", 2)]

        assert rebalance(songs, participants, []) == ["a1", "g1"]

    def test_empty_inputs(self):
        assert rebalance([], [], ["stale"]) == []

    def test_deterministic(self, participants):
        songs = [
            make_song("a1", "alice", 1),
            make_song("b1", "bob", 1),
            make_song("b2", "bob", 2, stolen=True),
            make_song("a2", "alice", 5),
        ]
        previous = ["b2", "a1", "b1", "a2"]

        assert rebalance(songs, participants, previous) == rebalance(songs, participants, previous)

    def test_fixed_point_without_stolen_songs(self, participants):
        songs = [
            make_song("b1", "bob", 1),
            make_song("a1", "alice", 2),
            make_song("a2", "alice", 3),
        ]

        first = rebalance(songs, participants, [])

        assert rebalance(songs, participants, first) == first

    def test_totality_with_stale_and_conflicting_input(self, participants):
        songs = [
            make_song("a1", "alice", 1, stolen=True),
            make_song("a2", "alice", 2, stolen=True),
            make_song("b1", "bob", 3, stolen=True),
            make_song("b2", "bob", 4),
            make_song("done", "bob", 0, status=PlayStatus.PLAYED),
        ]
        previous = ["gone", "a1", "a1", "a2", "b1", "b1", "deleted"]

        order = rebalance(songs, participants, previous)

        assert sorted(order) == ["a1", "a2", "b1", "b2"]
