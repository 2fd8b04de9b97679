"""Test configuration and fixtures.

Provides reusable builders for:
- Songs and participants with predictable ids and timestamps
- A session state driven by a manual clock
"""

from __future__ import annotations

import itertools

import pytest

from aiojam.models import ChordSourceType, JamSession, Participant, PlayStatus, Song
from aiojam.session import JamSessionState


def make_participant(user_id: str, arrival_time: int, name: str | None = None) -> Participant:
    return Participant(
        id=f"p-{user_id}",
        session_id="session",
        user_id=user_id,
        name=name or user_id.title(),
        arrival_time=arrival_time,
    )


def make_song(
    song_id: str,
    owner: str,
    submission_time: int,
    *,
    status: PlayStatus = PlayStatus.NOT_PLAYED,
    stolen: bool = False,
) -> Song:
    return Song(
        id=song_id,
        session_id="session",
        chooser_user_id=owner,
        owner_user_id=owner,
        owner_name=owner.title(),
        title=f"Title {song_id}",
        artist="Artist",
        chord_source_type=ChordSourceType.LINK,
        submission_time=submission_time,
        play_status=status,
        is_stolen=stolen,
    )


class ManualClock:
    """Clock that advances by one second on every reading."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self._ticks = itertools.count(start, 1000)

    def __call__(self) -> int:
        return next(self._ticks)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def state(clock):
    """Session state without listeners, usable from synchronous tests."""
    return JamSessionState(JamSession(id="session", date="2024-05-01"), clock=clock)
