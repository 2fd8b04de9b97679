"""Records describing the state of a jam session.

All records are immutable. The session layer derives new records with
``dataclasses.replace`` and swaps in a whole new ``SessionSnapshot`` per
mutation, so a snapshot handed out to a listener never changes underneath it.
"""

from __future__ import annotations

from dataclasses import dataclass

from mashumaro.config import BaseConfig
from mashumaro.mixins.orjson import DataClassORJSONMixin

from .types import ChordSourceType, PlayStatus, RatingValue, SessionStatus


@dataclass(frozen=True)
class Participant(DataClassORJSONMixin):
    """A user that joined the jam session."""

    id: str
    """Unique identifier of this participant record."""
    session_id: str
    """Session this participant joined."""
    user_id: str
    """Identifier of the user, songs reference their owner by this id."""
    name: str
    """Display name of the user."""
    arrival_time: int
    """Time the user joined the session in milliseconds since the epoch."""


@dataclass(frozen=True)
class Song(DataClassORJSONMixin):
    """A song choice submitted to the session."""

    id: str
    """Unique identifier of the song."""
    session_id: str
    """Session the song was submitted to."""
    chooser_user_id: str
    """User who submitted the song."""
    owner_user_id: str
    """User the song is for, fairness is computed per owner."""
    owner_name: str
    """Display name of the owner."""
    title: str
    artist: str
    chord_source_type: ChordSourceType
    submission_time: int
    """Submission time in milliseconds since the epoch, unique within a session."""
    play_status: PlayStatus = PlayStatus.NOT_PLAYED
    is_stolen: bool = False
    """Whether the song was manually moved and keeps its slot."""
    chord_link: str | None = None
    chord_screenshot_url: str | None = None
    played_at: int | None = None
    """Time the song was marked played in milliseconds since the epoch."""

    class Config(BaseConfig):
        """Config for serializing records."""

        omit_none = True

    @property
    def active(self) -> bool:
        """Whether the song still belongs in the queue."""
        return self.play_status is not PlayStatus.PLAYED


@dataclass(frozen=True)
class Rating(DataClassORJSONMixin):
    """A user's rating of a played song."""

    id: str
    song_id: str
    user_id: str
    value: RatingValue


@dataclass(frozen=True)
class JamSession(DataClassORJSONMixin):
    """A single day of jamming."""

    id: str
    date: str
    """Local date of the session as YYYY-MM-DD."""
    status: SessionStatus = SessionStatus.ACTIVE


@dataclass(frozen=True)
class SessionSnapshot(DataClassORJSONMixin):
    """Complete state of a session at one point in time."""

    session: JamSession
    participants: tuple[Participant, ...] = ()
    songs: tuple[Song, ...] = ()
    ratings: tuple[Rating, ...] = ()
    queue_ids: tuple[str, ...] = ()
    """Ordered ids of all songs that were not played yet."""

    def get_song(self, song_id: str) -> Song | None:
        """Get the song with the given id."""
        for song in self.songs:
            if song.id == song_id:
                return song
        return None

    def get_participant(self, user_id: str) -> Participant | None:
        """Get the participant for the given user id."""
        for participant in self.participants:
            if participant.user_id == user_id:
                return participant
        return None

    def queue(self) -> list[Song]:
        """Get the queued songs in queue order."""
        songs = {song.id: song for song in self.songs}
        return [songs[song_id] for song_id in self.queue_ids if song_id in songs]

    def now_playing(self) -> Song | None:
        """Get the song that is currently playing, if any."""
        for song in self.songs:
            if song.play_status is PlayStatus.PLAYING:
                return song
        return None
