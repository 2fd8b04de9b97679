"""Models for enum types used by aiojam."""

from dataclasses import dataclass
from enum import Enum

from mashumaro.config import BaseConfig
from mashumaro.mixins.orjson import DataClassORJSONMixin
from mashumaro.types import Discriminator


# Base message classes
@dataclass
class ClientMessage(DataClassORJSONMixin):
    """Base class for client messages."""

    class Config(BaseConfig):
        """Config for parsing json messages."""

        discriminator = Discriminator(field="type", include_subtypes=True)


@dataclass
class ServerMessage(DataClassORJSONMixin):
    """Base class for server messages."""

    class Config(BaseConfig):
        """Config for parsing json messages."""

        discriminator = Discriminator(field="type", include_subtypes=True)


# Enums


class PlayStatus(Enum):
    """Play status of a submitted song."""

    NOT_PLAYED = "not_played"
    """Waiting in the queue."""
    PLAYING = "playing"
    """
    Currently being played.

    At most one song of a session is in this state.
    """
    PLAYED = "played"
    """Finished, excluded from the queue but kept in history."""


class ChordSourceType(Enum):
    """Where the chords for a song come from."""

    LINK = "link"
    SCREENSHOT = "screenshot"
    AUTO_SEARCH = "auto_search"


class RatingValue(Enum):
    """Rating a participant can give to a played song."""

    HIGHLIGHT = "Highlight"
    SABABA = "Sababa"
    NO_COMMENT = "No comment"
    NEEDS_WORK = "Needs work"


class SessionStatus(Enum):
    """Lifecycle of a jam session."""

    ACTIVE = "active"
    ENDED = "ended"
