"""Owns the state of a jam session and applies mutations to it."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, replace
from datetime import date, datetime

from aiojam.models import (
    ChordSourceType,
    JamSession,
    Participant,
    PlayStatus,
    Rating,
    RatingValue,
    SessionSnapshot,
    Song,
)
from aiojam.queue import rebalance

logger = logging.getLogger(__name__)


class JamEvent:
    """Base event type used by JamSessionState.add_event_listener()."""


@dataclass
class ParticipantJoinedEvent(JamEvent):
    """A participant joined the session."""

    participant: Participant


@dataclass
class ParticipantUpdatedEvent(JamEvent):
    """The arrival time of a participant was changed."""

    participant: Participant


@dataclass
class SongAddedEvent(JamEvent):
    """A song was submitted."""

    song: Song


@dataclass
class SongUpdatedEvent(JamEvent):
    """A song was edited, changed its status or was stolen or unstolen."""

    song: Song


@dataclass
class SongRemovedEvent(JamEvent):
    """A song was deleted."""

    song_id: str


@dataclass
class RatingAddedEvent(JamEvent):
    """A participant rated a song."""

    rating: Rating


@dataclass
class StateChangedEvent(JamEvent):
    """The snapshot was replaced, fired once after every mutation."""

    snapshot: SessionSnapshot
    """The new state of the session."""


def now_ms() -> int:
    """Return the current time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def user_id_for(name: str) -> str:
    """Derive a user id from a display name."""
    return name.strip().lower().replace(" ", "_")


def parse_arrival_time(session_date: str, wall_time: str) -> int:
    """
    Convert a local wall clock time on the session date to epoch milliseconds.

    Args:
        session_date: Date of the session as YYYY-MM-DD.
        wall_time: Local time as HH:MM or HH:MM:SS.

    Returns:
        The time in milliseconds since the epoch.
    """
    if wall_time.count(":") == 1:
        wall_time += ":00"
    moment = datetime.fromisoformat(f"{session_date}T{wall_time}")
    return int(moment.timestamp() * 1000)


def _generate_id() -> str:
    return uuid.uuid4().hex


class JamSessionState:
    """
    The single source of truth for one jam session.

    Every mutation builds a new SessionSnapshot, including a freshly
    rebalanced queue, and replaces the current one in a single assignment.
    Mutations raise ValueError for unknown ids and leave the state untouched.
    """

    _snapshot: SessionSnapshot
    """Current state of the session."""
    _clock: Callable[[], int]
    """Source of timestamps in milliseconds since the epoch."""
    _loop: asyncio.AbstractEventLoop | None
    """Loop used to run event callbacks, the running loop if None."""
    _event_cbs: list[Callable[[JamEvent], Coroutine[None, None, None]]]
    """List of event callbacks for this session."""

    def __init__(
        self,
        session: JamSession | None = None,
        *,
        snapshot: SessionSnapshot | None = None,
        clock: Callable[[], int] = now_ms,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        """
        Initialize the session state.

        Args:
            session: Session to start empty, a new session for today if neither
                this nor snapshot is given.
            snapshot: Existing state to resume from.
            clock: Source of timestamps, mainly for tests.
            loop: Event loop for listener callbacks.
        """
        if snapshot is None:
            if session is None:
                session = JamSession(id=_generate_id(), date=date.today().isoformat())
            snapshot = SessionSnapshot(session=session)
        self._snapshot = snapshot
        self._clock = clock
        self._loop = loop
        self._event_cbs = []
        logger.debug("JamSessionState initialized for session %s", snapshot.session.id)

    @property
    def snapshot(self) -> SessionSnapshot:
        """The current state of the session."""
        return self._snapshot

    @property
    def session(self) -> JamSession:
        """The session this state belongs to."""
        return self._snapshot.session

    def add_event_listener(
        self, callback: Callable[[JamEvent], Coroutine[None, None, None]]
    ) -> Callable[[], None]:
        """Register a callback to listen for state changes of the session.

        State changes include:
        - A participant joined or changed their arrival time
        - A song was added, edited, deleted, played, stolen or unstolen
        - A rating was added
        - The queue was recomputed (StateChangedEvent after every mutation)

        Returns a function to remove the listener.
        """
        self._event_cbs.append(callback)
        return lambda: self._event_cbs.remove(callback)

    def _signal_event(self, event: JamEvent) -> None:
        if not self._event_cbs:
            return
        loop = self._loop or asyncio.get_running_loop()
        for cb in self._event_cbs:
            _ = loop.create_task(cb(event))  # Fire and forget event callback

    def _commit(
        self,
        *events: JamEvent,
        participants: tuple[Participant, ...] | None = None,
        songs: tuple[Song, ...] | None = None,
        ratings: tuple[Rating, ...] | None = None,
        previous_order: list[str] | tuple[str, ...] | None = None,
        reorder: bool = True,
    ) -> SessionSnapshot:
        """Swap in a new snapshot and notify listeners."""
        current = self._snapshot
        participants = current.participants if participants is None else participants
        songs = current.songs if songs is None else songs
        ratings = current.ratings if ratings is None else ratings
        queue_ids = current.queue_ids
        if reorder:
            if previous_order is None:
                previous_order = current.queue_ids
            queue_ids = tuple(rebalance(songs, participants, previous_order))
        self._snapshot = replace(
            current,
            participants=participants,
            songs=songs,
            ratings=ratings,
            queue_ids=queue_ids,
        )
        for event in events:
            self._signal_event(event)
        self._signal_event(StateChangedEvent(self._snapshot))
        return self._snapshot

    def _require_song(self, song_id: str) -> Song:
        song = self._snapshot.get_song(song_id)
        if song is None:
            raise ValueError(f"Unknown song: {song_id}")
        return song

    def _require_participant(self, user_id: str) -> Participant:
        participant = self._snapshot.get_participant(user_id)
        if participant is None:
            raise ValueError(f"User {user_id} has not joined the session")
        return participant

    def _replace_song(self, updated: Song) -> tuple[Song, ...]:
        return tuple(updated if s.id == updated.id else s for s in self._snapshot.songs)

    # Participants

    def join(
        self, name: str, *, user_id: str | None = None, arrival_time: int | None = None
    ) -> Participant:
        """
        Add a participant to the session.

        Joining twice is a no-op that returns the existing participant. Passing
        an explicit arrival time adds a participant on someone else's behalf.
        """
        user_id = user_id or user_id_for(name)
        existing = self._snapshot.get_participant(user_id)
        if existing is not None:
            logger.debug("User %s already joined, ignoring", user_id)
            return existing

        participant = Participant(
            id=_generate_id(),
            session_id=self.session.id,
            user_id=user_id,
            name=name,
            arrival_time=self._clock() if arrival_time is None else arrival_time,
        )
        logger.info("%s joined the session", name)
        self._commit(
            ParticipantJoinedEvent(participant),
            participants=(*self._snapshot.participants, participant),
        )
        return participant

    def update_arrival(self, participant_id: str, arrival_time: int) -> Participant:
        """Correct the arrival time of a participant."""
        for participant in self._snapshot.participants:
            if participant.id == participant_id:
                break
        else:
            raise ValueError(f"Unknown participant: {participant_id}")

        updated = replace(participant, arrival_time=arrival_time)
        self._commit(
            ParticipantUpdatedEvent(updated),
            participants=tuple(
                updated if p.id == participant_id else p for p in self._snapshot.participants
            ),
        )
        return updated

    # Songs

    def _next_submission_time(self) -> int:
        # Submission times break ties, keep them strictly increasing
        latest = max((s.submission_time for s in self._snapshot.songs), default=-1)
        return max(self._clock(), latest + 1)

    def submit_song(  # noqa: PLR0913
        self,
        chooser_user_id: str,
        owner_user_id: str,
        title: str,
        artist: str,
        *,
        chord_source_type: ChordSourceType = ChordSourceType.LINK,
        chord_link: str | None = None,
        chord_screenshot_url: str | None = None,
    ) -> Song:
        """Submit a song for a participant that joined the session."""
        owner = self._require_participant(owner_user_id)
        song = Song(
            id=_generate_id(),
            session_id=self.session.id,
            chooser_user_id=chooser_user_id,
            owner_user_id=owner.user_id,
            owner_name=owner.name,
            title=title,
            artist=artist,
            chord_source_type=chord_source_type,
            chord_link=chord_link,
            chord_screenshot_url=chord_screenshot_url,
            submission_time=self._next_submission_time(),
        )
        logger.info("%s submitted '%s' for %s", chooser_user_id, title, owner.name)
        self._commit(SongAddedEvent(song), songs=(*self._snapshot.songs, song))
        return song

    def edit_song(  # noqa: PLR0913
        self,
        song_id: str,
        *,
        owner_user_id: str,
        title: str,
        artist: str,
        chord_source_type: ChordSourceType = ChordSourceType.LINK,
        chord_link: str | None = None,
        chord_screenshot_url: str | None = None,
    ) -> Song:
        """Replace the editable fields of a song, the owner may change too."""
        song = self._require_song(song_id)
        owner = self._require_participant(owner_user_id)
        updated = replace(
            song,
            owner_user_id=owner.user_id,
            owner_name=owner.name,
            title=title,
            artist=artist,
            chord_source_type=chord_source_type,
            chord_link=chord_link,
            chord_screenshot_url=chord_screenshot_url,
        )
        self._commit(SongUpdatedEvent(updated), songs=self._replace_song(updated))
        return updated

    def delete_song(self, song_id: str) -> None:
        """Delete a song together with its ratings."""
        self._require_song(song_id)
        logger.info("Deleting song %s", song_id)
        self._commit(
            SongRemovedEvent(song_id),
            songs=tuple(s for s in self._snapshot.songs if s.id != song_id),
            ratings=tuple(r for r in self._snapshot.ratings if r.song_id != song_id),
        )

    def set_status(self, song_id: str, status: PlayStatus) -> Song:
        """
        Mark a song as playing or played.

        Only one song plays at a time: starting a song puts the previously
        playing one back to not played.
        """
        song = self._require_song(song_id)
        events: list[JamEvent] = []
        if status is PlayStatus.PLAYING:
            if song.play_status is not PlayStatus.NOT_PLAYED:
                raise ValueError(f"Song {song_id} is already {song.play_status.value}")
            updated = replace(song, play_status=PlayStatus.PLAYING)
        elif status is PlayStatus.PLAYED:
            if song.play_status is PlayStatus.PLAYED:
                raise ValueError(f"Song {song_id} is already played")
            updated = replace(song, play_status=PlayStatus.PLAYED, played_at=self._clock())
        else:
            raise ValueError("Use revive() to put a song back in the queue")

        songs: list[Song] = []
        for current in self._snapshot.songs:
            if current.id == song_id:
                songs.append(updated)
            elif status is PlayStatus.PLAYING and current.play_status is PlayStatus.PLAYING:
                demoted = replace(current, play_status=PlayStatus.NOT_PLAYED)
                events.append(SongUpdatedEvent(demoted))
                songs.append(demoted)
            else:
                songs.append(current)

        logger.info("Song '%s' is now %s", song.title, status.value)
        self._commit(SongUpdatedEvent(updated), *events, songs=tuple(songs))
        return updated

    def revive(self, song_id: str) -> Song:
        """Put a played song back in the queue, discarding its ratings."""
        song = self._require_song(song_id)
        if song.play_status is not PlayStatus.PLAYED:
            raise ValueError(f"Song {song_id} has not been played yet")
        updated = replace(song, play_status=PlayStatus.NOT_PLAYED, is_stolen=False, played_at=None)
        self._commit(
            SongUpdatedEvent(updated),
            songs=self._replace_song(updated),
            ratings=tuple(r for r in self._snapshot.ratings if r.song_id != song_id),
        )
        return updated

    def move_song(self, song_id: str, index: int) -> Song:
        """
        Drag a song to a new position in the queue.

        The song is marked stolen so it keeps the position through later
        rebalances, until it is unstolen.
        """
        song = self._require_song(song_id)
        order = list(self._snapshot.queue_ids)
        if song_id not in order:
            raise ValueError(f"Song {song_id} is not in the queue")
        order.remove(song_id)
        order.insert(min(index, len(order)), song_id)

        updated = replace(song, is_stolen=True)
        logger.debug("Moving song %s to index %d", song_id, index)
        self._commit(
            SongUpdatedEvent(updated),
            songs=self._replace_song(updated),
            previous_order=order,
        )
        return updated

    def unsteal(self, song_id: str) -> Song:
        """Return a stolen song to its fair position."""
        song = self._require_song(song_id)
        updated = replace(song, is_stolen=False)
        self._commit(SongUpdatedEvent(updated), songs=self._replace_song(updated))
        return updated

    # Ratings

    def rate(self, song_id: str, user_id: str, value: RatingValue) -> Rating:
        """Rate a played song, replacing an earlier rating by the same user."""
        song = self._require_song(song_id)
        if song.play_status is not PlayStatus.PLAYED:
            raise ValueError(f"Song {song_id} has not been played yet")
        rating = Rating(id=_generate_id(), song_id=song_id, user_id=user_id, value=value)
        ratings = tuple(
            r for r in self._snapshot.ratings if not (r.song_id == song_id and r.user_id == user_id)
        )
        self._commit(RatingAddedEvent(rating), ratings=(*ratings, rating), reorder=False)
        return rating
