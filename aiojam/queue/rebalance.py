"""Recompute the queue order of a jam session."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from aiojam.models import Participant, Song

from .fairness import fair_order
from .stolen import StolenAllocation, allocate_stolen_slots

logger = logging.getLogger(__name__)


def _unique_songs(songs: Sequence[Song]) -> list[Song]:
    """Drop repeated song ids, keeping the first record."""
    seen: set[str] = set()
    unique: list[Song] = []
    for song in songs:
        if song.id in seen:
            continue
        seen.add(song.id)
        unique.append(song)
    return unique


def assemble_queue(
    total_slots: int,
    allocation: StolenAllocation,
    fair_songs: Sequence[Song],
) -> list[str]:
    """
    Merge stolen slot assignments with the fair order.

    Empty slots are filled left to right with the fair songs. Fair songs left
    over once every slot is filled are appended in order, followed by stolen
    songs that did not get a slot.
    """
    result: list[str | None] = [None] * total_slots
    for idx, song_id in allocation.slots.items():
        result[idx] = song_id

    fair_ids = iter(song.id for song in fair_songs)
    for idx in range(total_slots):
        if result[idx] is None:
            result[idx] = next(fair_ids, None)

    result.extend(fair_ids)
    result.extend(allocation.overflow)
    return [song_id for song_id in result if song_id is not None]


def rebalance(
    all_songs: Sequence[Song],
    participants: Sequence[Participant],
    previous_order_ids: Sequence[str],
) -> list[str]:
    """
    Compute the new queue order.

    Stolen songs stay close to their position in ``previous_order_ids``, all
    other songs that were not played yet are sorted by round, arrival rank and
    submission time.

    Args:
        all_songs: Every song of the session, played ones included for history.
        participants: The roster in any order.
        previous_order_ids: The queue order before this call, may be stale or empty.

    Returns:
        The ids of all songs that were not played, each exactly once.
    """
    all_songs = _unique_songs(all_songs)
    active = [song for song in all_songs if song.active]
    stolen = [song for song in active if song.is_stolen]
    total_slots = len(active)

    allocation = allocate_stolen_slots(stolen, previous_order_ids, total_slots)
    candidates = [song for song in active if not song.is_stolen] + allocation.unresolved
    fair_songs = fair_order(candidates, all_songs, participants)

    order = assemble_queue(total_slots, allocation, fair_songs)
    logger.debug(
        "Rebalanced %d active song(s), %d stolen, %d unresolved",
        total_slots,
        len(stolen),
        len(allocation.unresolved),
    )
    return order
