"""Slot allocation for stolen songs.

A stolen song was dragged to a position by hand. It keeps roughly that
position while songs around it are added, removed or played.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from aiojam.models import Song

logger = logging.getLogger(__name__)


@dataclass
class StolenAllocation:
    """Result of placing stolen songs into the slots of the next queue."""

    slots: dict[int, str] = field(default_factory=dict)
    """Mapping of slot index to the id of the stolen song occupying it."""
    unresolved: list[Song] = field(default_factory=list)
    """Stolen songs missing from the previous order, scheduled fairly instead."""
    overflow: list[str] = field(default_factory=list)
    """Ids of stolen songs that found no free slot, appended after all slots."""


def _find_free_slot(start: int, total_slots: int, taken: dict[int, str]) -> int | None:
    """Probe forward from start to the last slot, then backward toward 0."""
    for idx in range(start, total_slots):
        if idx not in taken:
            return idx
    for idx in range(start - 1, -1, -1):
        if idx not in taken:
            return idx
    return None


def allocate_stolen_slots(
    stolen_songs: Sequence[Song],
    previous_order_ids: Sequence[str],
    total_slots: int,
) -> StolenAllocation:
    """
    Assign each stolen song a slot close to its previous position.

    Args:
        stolen_songs: Active songs flagged as stolen, in a stable order.
        previous_order_ids: Queue order before this rebalance, may be stale.
        total_slots: Number of active songs, and so of slots in the new queue.

    Returns:
        StolenAllocation with the slot assignments, the unresolved songs and
        any overflow.
    """
    previous_index: dict[str, int] = {}
    for idx, song_id in enumerate(previous_order_ids):
        previous_index.setdefault(song_id, idx)

    allocation = StolenAllocation()
    for song in stolen_songs:
        idx = previous_index.get(song.id)
        if idx is None:
            logger.debug("Stolen song %s has no previous slot, scheduling fairly", song.id)
            allocation.unresolved.append(song)
            continue

        idx = max(0, min(idx, total_slots - 1))
        slot = _find_free_slot(idx, total_slots, allocation.slots)
        if slot is None:
            logger.debug("No free slot left for stolen song %s, appending", song.id)
            allocation.overflow.append(song.id)
            continue
        allocation.slots[slot] = song.id
    return allocation
