"""
Command messages for the aiojam protocol.

This module contains the messages a client sends to change the state of the
jam session. Every command that touches songs or participants leads to a
rebalanced queue being broadcast to all connected clients.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from mashumaro.config import BaseConfig
from mashumaro.mixins.orjson import DataClassORJSONMixin

from .types import ChordSourceType, ClientMessage, PlayStatus, RatingValue


# Client -> Server: participant/join
@dataclass
class ParticipantJoinPayload(DataClassORJSONMixin):
    """Join the session, either yourself or on behalf of someone else."""

    name: str
    """Display name of the joining user."""
    user_id: str | None = None
    """User id, derived from the name if not set."""
    arrival_time: int | None = None
    """Arrival time in milliseconds since the epoch, now if not set."""

    def __post_init__(self) -> None:
        """Validate field values."""
        if not self.name.strip():
            raise ValueError("Name must not be empty")

    class Config(BaseConfig):
        """Config for parsing json messages."""

        omit_none = True


@dataclass
class ParticipantJoinMessage(ClientMessage):
    """Message sent by the client to add a participant."""

    payload: ParticipantJoinPayload
    type: Literal["participant/join"] = "participant/join"


# Client -> Server: participant/update
@dataclass
class ParticipantUpdatePayload(DataClassORJSONMixin):
    """Correct the arrival time of a participant."""

    participant_id: str
    arrival_time: int
    """New arrival time in milliseconds since the epoch."""


@dataclass
class ParticipantUpdateMessage(ClientMessage):
    """Message sent by the client to edit a participant."""

    payload: ParticipantUpdatePayload
    type: Literal["participant/update"] = "participant/update"


# Client -> Server: song/submit
@dataclass
class SongSubmitPayload(DataClassORJSONMixin):
    """A new song choice."""

    owner_user_id: str
    """Participant the song is for."""
    title: str
    artist: str
    chord_source_type: ChordSourceType = ChordSourceType.LINK
    chord_link: str | None = None
    chord_screenshot_url: str | None = None

    class Config(BaseConfig):
        """Config for parsing json messages."""

        omit_none = True


@dataclass
class SongSubmitMessage(ClientMessage):
    """Message sent by the client to submit a song."""

    payload: SongSubmitPayload
    type: Literal["song/submit"] = "song/submit"


# Client -> Server: song/edit
@dataclass
class SongEditPayload(DataClassORJSONMixin):
    """Replace the editable fields of a song."""

    song_id: str
    owner_user_id: str
    title: str
    artist: str
    chord_source_type: ChordSourceType = ChordSourceType.LINK
    chord_link: str | None = None
    chord_screenshot_url: str | None = None

    class Config(BaseConfig):
        """Config for parsing json messages."""

        omit_none = True


@dataclass
class SongEditMessage(ClientMessage):
    """Message sent by the client to edit a song."""

    payload: SongEditPayload
    type: Literal["song/edit"] = "song/edit"


@dataclass
class SongRefPayload(DataClassORJSONMixin):
    """Reference to a single song."""

    song_id: str


# Client -> Server: song/delete
@dataclass
class SongDeleteMessage(ClientMessage):
    """Message sent by the client to delete a song."""

    payload: SongRefPayload
    type: Literal["song/delete"] = "song/delete"


# Client -> Server: song/status
@dataclass
class SongStatusPayload(DataClassORJSONMixin):
    """Mark a song as playing or played."""

    song_id: str
    status: PlayStatus
    """Either playing or played, use song/revive to put a played song back."""

    def __post_init__(self) -> None:
        """Validate the requested status."""
        if self.status is PlayStatus.NOT_PLAYED:
            raise ValueError("Status must be 'playing' or 'played', use song/revive instead")


@dataclass
class SongStatusMessage(ClientMessage):
    """Message sent by the client to change the play status of a song."""

    payload: SongStatusPayload
    type: Literal["song/status"] = "song/status"


# Client -> Server: song/revive
@dataclass
class SongReviveMessage(ClientMessage):
    """Message sent by the client to put a played song back in the queue."""

    payload: SongRefPayload
    type: Literal["song/revive"] = "song/revive"


# Client -> Server: song/move
@dataclass
class SongMovePayload(DataClassORJSONMixin):
    """Drag a song to a new position in the queue."""

    song_id: str
    index: int
    """Target 0-based position in the current queue."""

    def __post_init__(self) -> None:
        """Validate the target index."""
        if self.index < 0:
            raise ValueError(f"Index must not be negative, got {self.index}")


@dataclass
class SongMoveMessage(ClientMessage):
    """Message sent by the client to steal a slot for a song."""

    payload: SongMovePayload
    type: Literal["song/move"] = "song/move"


# Client -> Server: song/unsteal
@dataclass
class SongUnstealMessage(ClientMessage):
    """Message sent by the client to return a stolen song to its fair slot."""

    payload: SongRefPayload
    type: Literal["song/unsteal"] = "song/unsteal"


# Client -> Server: rating/submit
@dataclass
class RatingSubmitPayload(DataClassORJSONMixin):
    """Rate a played song as the user of this connection."""

    song_id: str
    value: RatingValue


@dataclass
class RatingSubmitMessage(ClientMessage):
    """Message sent by the client to rate a song."""

    payload: RatingSubmitPayload
    type: Literal["rating/submit"] = "rating/submit"
