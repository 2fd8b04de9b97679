"""Fairness ranking for the jam queue.

Songs are scheduled in rounds: every participant's first song comes before
anyone's second song. Within a round, participants who arrived earlier go
first, and the submission time breaks any remaining tie.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import NamedTuple

from aiojam.models import Participant, Song

FALLBACK_PRIORITY = 999
"""Rank used for owners missing from the roster, sorts after every real rank."""


class FairScore(NamedTuple):
    """
    Ordering key of a song in the fair order.

    Compared lexicographically, so a lower component can never outweigh a
    higher one no matter how large it gets.
    """

    round_index: int
    """Position of the song in its owner's submission history."""
    arrival_rank: int
    """Position of the owner when participants are sorted by arrival time."""
    submission_time: int
    """Submission timestamp, only breaks ties."""


def compute_round_indices(songs: Iterable[Song]) -> dict[str, int]:
    """
    Compute the round index of every song.

    The round index is the 0-based position of a song within its owner's
    chronological history, counting played and active songs alike. Played
    songs are listed first so they win ties on identical submission times.

    Args:
        songs: All songs of the session, played ones included.

    Returns:
        Mapping of song id to round index.
    """
    songs = list(songs)
    history = [s for s in songs if not s.active] + [s for s in songs if s.active]
    # sorted() is stable, equal timestamps keep the order above
    history.sort(key=lambda s: s.submission_time)

    seen_per_owner: dict[str, int] = {}
    round_indices: dict[str, int] = {}
    for song in history:
        if song.id in round_indices:
            continue
        count = seen_per_owner.get(song.owner_user_id, 0)
        round_indices[song.id] = count
        seen_per_owner[song.owner_user_id] = count + 1
    return round_indices


def compute_arrival_ranks(participants: Iterable[Participant]) -> dict[str, int]:
    """
    Compute the arrival rank of every participant, keyed by user id.

    Ranks always come from sorting by arrival time; the order of the given
    collection is irrelevant apart from breaking exact ties. If a user id
    appears more than once, the later record wins.
    """
    ordered = sorted(participants, key=lambda p: p.arrival_time)
    return {participant.user_id: rank for rank, participant in enumerate(ordered)}


def fair_score(
    song: Song, round_indices: dict[str, int], arrival_ranks: dict[str, int]
) -> FairScore:
    """Build the ordering key for a single song."""
    return FairScore(
        round_index=round_indices.get(song.id, FALLBACK_PRIORITY),
        arrival_rank=arrival_ranks.get(song.owner_user_id, FALLBACK_PRIORITY),
        submission_time=song.submission_time,
    )


def fair_order(
    candidates: Sequence[Song],
    all_songs: Iterable[Song],
    participants: Iterable[Participant],
) -> list[Song]:
    """
    Sort songs into the fair order.

    Args:
        candidates: Songs to order, usually the active songs that are not stolen.
        all_songs: Full song history used to derive round indices.
        participants: Roster used to derive arrival ranks.

    Returns:
        The candidates sorted ascending by their FairScore.
    """
    round_indices = compute_round_indices(all_songs)
    arrival_ranks = compute_arrival_ranks(participants)
    return sorted(candidates, key=lambda s: fair_score(s, round_indices, arrival_ranks))
