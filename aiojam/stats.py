"""Statistics over the ratings of played songs."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from itertools import combinations

from aiojam.models import PlayStatus, Rating, RatingValue, Song

RATING_SCORES: dict[RatingValue, int] = {
    RatingValue.HIGHLIGHT: 100,
    RatingValue.SABABA: 75,
    RatingValue.NO_COMMENT: 50,
    RatingValue.NEEDS_WORK: 0,
}

MIN_COMMON_SONGS = 2
"""Songs two users must both have rated before their taste is compared."""


@dataclass
class ScoredSong:
    """Score of a song on a 0-100 scale."""

    song_id: str
    score: int
    total_votes: int
    breakdown: dict[RatingValue, int] = field(default_factory=dict)
    """Number of votes per rating value, empty for a single user's score."""
    song: Song | None = None


@dataclass
class UserSimilarity:
    """How close two users rate the songs they both rated."""

    user_a: str
    user_b: str
    score: int
    """0 for opposite taste, 100 for identical ratings."""
    common_songs: int


@dataclass
class OwnerScore:
    """Average score of the rated songs chosen for one owner."""

    user_id: str
    avg_score: int
    song_count: int


def _round(value: float) -> int:
    # Half up, matching how scores are displayed
    return int(value + 0.5)


def calculate_song_score(
    song_id: str, ratings: Iterable[Rating], user_id: str | None = None
) -> ScoredSong | None:
    """
    Calculate the score of one song.

    Args:
        song_id: The song to score.
        ratings: All ratings of the session.
        user_id: Only use this user's rating instead of the crowd average.

    Returns:
        The score, or None if nobody (or not the given user) rated the song.
    """
    song_ratings = [r for r in ratings if r.song_id == song_id]
    if not song_ratings:
        return None

    if user_id is not None:
        for rating in song_ratings:
            if rating.user_id == user_id:
                return ScoredSong(song_id=song_id, score=RATING_SCORES[rating.value], total_votes=1)
        return None

    breakdown = dict.fromkeys(RatingValue, 0)
    for rating in song_ratings:
        breakdown[rating.value] += 1
    total = sum(RATING_SCORES[r.value] for r in song_ratings)
    return ScoredSong(
        song_id=song_id,
        score=_round(total / len(song_ratings)),
        total_votes=len(song_ratings),
        breakdown=breakdown,
    )


def leaderboard(
    songs: Iterable[Song], ratings: Sequence[Rating], perspective_user_id: str | None = None
) -> list[ScoredSong]:
    """Rank the rated played songs by score, optionally as seen by one user."""
    results: list[ScoredSong] = []
    for song in songs:
        if song.play_status is not PlayStatus.PLAYED:
            continue
        scored = calculate_song_score(song.id, ratings, perspective_user_id)
        if scored is None:
            continue
        scored.song = song
        results.append(scored)
    return sorted(results, key=lambda s: s.score, reverse=True)


def taste_similarity(ratings: Sequence[Rating]) -> list[UserSimilarity]:
    """Compare every pair of users that rated at least two of the same songs."""
    by_user: dict[str, dict[str, RatingValue]] = {}
    for rating in ratings:
        by_user.setdefault(rating.user_id, {})[rating.song_id] = rating.value

    pairs: list[UserSimilarity] = []
    for user_a, user_b in combinations(by_user, 2):
        songs_a, songs_b = by_user[user_a], by_user[user_b]
        common = [song_id for song_id in songs_a if song_id in songs_b]
        if len(common) < MIN_COMMON_SONGS:
            continue
        total = sum(
            100 - abs(RATING_SCORES[songs_a[s]] - RATING_SCORES[songs_b[s]]) for s in common
        )
        pairs.append(
            UserSimilarity(
                user_a=user_a,
                user_b=user_b,
                score=_round(total / len(common)),
                common_songs=len(common),
            )
        )
    return sorted(pairs, key=lambda p: p.score, reverse=True)


def crowd_pleasers(songs: Iterable[Song], ratings: Sequence[Rating]) -> list[OwnerScore]:
    """Rank owners by the average crowd score of their played songs."""
    totals: dict[str, tuple[int, int]] = {}
    for song in songs:
        if song.play_status is not PlayStatus.PLAYED:
            continue
        scored = calculate_song_score(song.id, ratings)
        if scored is None:
            continue
        score_sum, count = totals.get(song.owner_user_id, (0, 0))
        totals[song.owner_user_id] = (score_sum + scored.score, count + 1)

    owners = [
        OwnerScore(user_id=user_id, avg_score=_round(score_sum / count), song_count=count)
        for user_id, (score_sum, count) in totals.items()
    ]
    return sorted(owners, key=lambda o: o.avg_score, reverse=True)
