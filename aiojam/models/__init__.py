"""Models for the aiojam protocol and session state."""

from __future__ import annotations

from . import commands, core, records, types
from .records import JamSession, Participant, Rating, SessionSnapshot, Song
from .types import (
    ChordSourceType,
    ClientMessage,
    PlayStatus,
    RatingValue,
    ServerMessage,
    SessionStatus,
)

__all__ = [
    "ChordSourceType",
    "ClientMessage",
    "JamSession",
    "Participant",
    "PROTOCOL_VERSION",
    "PlayStatus",
    "Rating",
    "RatingValue",
    "ServerMessage",
    "SessionSnapshot",
    "SessionStatus",
    "Song",
    "commands",
    "core",
    "records",
    "types",
]

PROTOCOL_VERSION = 1
"""Version of the aiojam protocol implemented by this package."""
