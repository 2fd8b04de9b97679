"""Tests for rating statistics."""

from aiojam.models import PlayStatus, Rating, RatingValue
from aiojam.stats import calculate_song_score, crowd_pleasers, leaderboard, taste_similarity

from .conftest import make_song


def rating(song_id: str, user_id: str, value: RatingValue) -> Rating:
    return Rating(id=f"{song_id}-{user_id}", song_id=song_id, user_id=user_id, value=value)


RATINGS = [
    rating("s1", "alice", RatingValue.HIGHLIGHT),
    rating("s1", "bob", RatingValue.SABABA),
    rating("s2", "alice", RatingValue.NEEDS_WORK),
    rating("s2", "bob", RatingValue.NO_COMMENT),
    rating("s3", "carol", RatingValue.HIGHLIGHT),
]


class TestSongScore:
    def test_average_rounds_half_up(self):
        scored = calculate_song_score("s1", RATINGS)

        assert scored is not None
        # (100 + 75) / 2 = 87.5
        assert scored.score == 88
        assert scored.total_votes == 2
        assert scored.breakdown[RatingValue.HIGHLIGHT] == 1
        assert scored.breakdown[RatingValue.NEEDS_WORK] == 0

    def test_single_user_perspective(self):
        scored = calculate_song_score("s2", RATINGS, user_id="bob")

        assert scored is not None
        assert scored.score == 50
        assert scored.total_votes == 1

    def test_unrated_song(self):
        assert calculate_song_score("nope", RATINGS) is None
        assert calculate_song_score("s3", RATINGS, user_id="alice") is None


class TestLeaderboard:
    def test_only_rated_played_songs_sorted_by_score(self):
        songs = [
            make_song("s1", "alice", 1, status=PlayStatus.PLAYED),
            make_song("s2", "bob", 2, status=PlayStatus.PLAYED),
            make_song("s3", "carol", 3),
            make_song("s4", "carol", 4, status=PlayStatus.PLAYED),
        ]

        board = leaderboard(songs, RATINGS)

        assert [s.song_id for s in board] == ["s1", "s2"]
        assert board[0].song is songs[0]


class TestTasteSimilarity:
    def test_pairs_need_two_common_songs(self):
        pairs = taste_similarity(RATINGS)

        assert len(pairs) == 1
        pair = pairs[0]
        assert {pair.user_a, pair.user_b} == {"alice", "bob"}
        # 100 - 25 and 100 - 50
        assert pair.score == 63
        assert pair.common_songs == 2

    def test_identical_taste(self):
        ratings = [
            rating("s1", "a", RatingValue.SABABA),
            rating("s2", "a", RatingValue.HIGHLIGHT),
            rating("s1", "b", RatingValue.SABABA),
            rating("s2", "b", RatingValue.HIGHLIGHT),
        ]

        assert taste_similarity(ratings)[0].score == 100

    def test_latest_rating_of_a_song_counts(self):
        ratings = [
            rating("s1", "a", RatingValue.NEEDS_WORK),
            rating("s1", "a", RatingValue.SABABA),
            rating("s2", "a", RatingValue.HIGHLIGHT),
            rating("s1", "b", RatingValue.SABABA),
            rating("s2", "b", RatingValue.HIGHLIGHT),
        ]

        assert taste_similarity(ratings)[0].score == 100


class TestCrowdPleasers:
    def test_average_per_owner(self):
        songs = [
            make_song("s1", "alice", 1, status=PlayStatus.PLAYED),
            make_song("s2", "alice", 2, status=PlayStatus.PLAYED),
            make_song("s3", "carol", 3, status=PlayStatus.PLAYED),
        ]

        owners = crowd_pleasers(songs, RATINGS)

        assert [(o.user_id, o.avg_score, o.song_count) for o in owners] == [
            ("carol", 100, 1),
            ("alice", 57, 2),
        ]
