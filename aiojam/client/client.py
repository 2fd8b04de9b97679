"""Jam client implementation to connect to a jam server."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Self

from aiohttp import ClientSession, ClientWebSocketResponse, WSMessage, WSMsgType

from aiojam.models import PROTOCOL_VERSION, ChordSourceType, PlayStatus, RatingValue
from aiojam.models.commands import (
    ParticipantJoinMessage,
    ParticipantJoinPayload,
    ParticipantUpdateMessage,
    ParticipantUpdatePayload,
    RatingSubmitMessage,
    RatingSubmitPayload,
    SongDeleteMessage,
    SongEditMessage,
    SongEditPayload,
    SongMoveMessage,
    SongMovePayload,
    SongRefPayload,
    SongReviveMessage,
    SongStatusMessage,
    SongStatusPayload,
    SongSubmitMessage,
    SongSubmitPayload,
    SongUnstealMessage,
)
from aiojam.models.core import (
    ClientHelloMessage,
    ClientHelloPayload,
    ServerErrorMessage,
    ServerErrorPayload,
    ServerHelloMessage,
    ServerHelloPayload,
    SessionGetStateMessage,
    SessionStateMessage,
)
from aiojam.models.records import SessionSnapshot
from aiojam.models.types import ClientMessage, ServerMessage

logger = logging.getLogger(__name__)

StateCallback = Callable[[SessionSnapshot], Awaitable[None] | None]
ErrorCallback = Callable[[ServerErrorPayload], Awaitable[None] | None]


@dataclass(slots=True)
class ServerInfo:
    """Information about the connected server."""

    server_id: str
    name: str
    version: int


class JamClient:
    """Async jam client that mirrors the session state of a server."""

    def __init__(
        self,
        client_id: str,
        client_name: str,
        *,
        user_id: str | None = None,
        session: ClientSession | None = None,
    ) -> None:
        """Create a new jam client instance."""
        self._client_id = client_id
        self._client_name = client_name
        self._user_id = user_id
        self._session = session
        self._owns_session = session is None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._ws: ClientWebSocketResponse | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._send_lock = asyncio.Lock()
        self._server_info: ServerInfo | None = None
        self._server_hello_event: asyncio.Event | None = None
        self._state_callbacks: list[StateCallback] = []
        self._error_callbacks: list[ErrorCallback] = []
        self._snapshot: SessionSnapshot | None = None
        self._connected = False

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------
    @property
    def server_info(self) -> ServerInfo | None:
        """Return information about the connected server, if available."""
        return self._server_info

    @property
    def connected(self) -> bool:
        """Return True if the client currently has an active connection."""
        return self._connected and self._ws is not None and not self._ws.closed

    @property
    def snapshot(self) -> SessionSnapshot | None:
        """Return the latest session state received from the server."""
        return self._snapshot

    @property
    def user_id(self) -> str | None:
        """Return the user this client acts as."""
        return self._user_id

    async def connect(self, url: str) -> None:
        """Connect to a jam server via WebSocket."""
        if self.connected:
            logger.debug("Already connected")
            return

        self._loop = asyncio.get_running_loop()
        if self._session is None:
            self._session = ClientSession()
        self._server_hello_event = asyncio.Event()

        logger.info("Connecting to jam server at %s", url)
        self._ws = await self._session.ws_connect(url, heartbeat=30)
        self._connected = True

        self._reader_task = self._loop.create_task(self._reader_loop())
        await self._send_json(
            ClientHelloMessage(
                payload=ClientHelloPayload(
                    client_id=self._client_id,
                    name=self._client_name,
                    version=PROTOCOL_VERSION,
                    user_id=self._user_id,
                )
            )
        )

        try:
            await asyncio.wait_for(self._server_hello_event.wait(), timeout=10)
        except TimeoutError as err:
            await self.disconnect()
            raise TimeoutError("Timed out waiting for server/hello response") from err
        logger.info("Handshake with server complete")

    async def disconnect(self) -> None:
        """Disconnect from the server and release resources."""
        self._connected = False
        current_task = asyncio.current_task(loop=self._loop) if self._loop else None

        if self._reader_task is not None:
            if self._reader_task is not current_task:
                self._reader_task.cancel()
                with suppress(asyncio.CancelledError):
                    await self._reader_task
            self._reader_task = None
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
        self._server_info = None

    def add_state_listener(self, callback: StateCallback) -> None:
        """Register a callback invoked on every session/state message."""
        self._state_callbacks.append(callback)

    def add_error_listener(self, callback: ErrorCallback) -> None:
        """Register a callback invoked when the server rejects a command."""
        self._error_callbacks.append(callback)

    async def request_state(self) -> None:
        """Ask the server to resend the full session state."""
        await self._send_command(SessionGetStateMessage())

    async def join(
        self, name: str, *, user_id: str | None = None, arrival_time: int | None = None
    ) -> None:
        """Join the session, or add someone else when passing their user id."""
        payload = ParticipantJoinPayload(name=name, user_id=user_id, arrival_time=arrival_time)
        await self._send_command(ParticipantJoinMessage(payload=payload))

    async def update_arrival(self, participant_id: str, arrival_time: int) -> None:
        """Correct the arrival time of a participant."""
        payload = ParticipantUpdatePayload(
            participant_id=participant_id, arrival_time=arrival_time
        )
        await self._send_command(ParticipantUpdateMessage(payload=payload))

    async def submit_song(
        self,
        owner_user_id: str,
        title: str,
        artist: str,
        *,
        chord_source_type: ChordSourceType = ChordSourceType.LINK,
        chord_link: str | None = None,
        chord_screenshot_url: str | None = None,
    ) -> None:
        """Submit a song for a participant."""
        payload = SongSubmitPayload(
            owner_user_id=owner_user_id,
            title=title,
            artist=artist,
            chord_source_type=chord_source_type,
            chord_link=chord_link,
            chord_screenshot_url=chord_screenshot_url,
        )
        await self._send_command(SongSubmitMessage(payload=payload))

    async def edit_song(  # noqa: PLR0913
        self,
        song_id: str,
        owner_user_id: str,
        title: str,
        artist: str,
        *,
        chord_source_type: ChordSourceType = ChordSourceType.LINK,
        chord_link: str | None = None,
        chord_screenshot_url: str | None = None,
    ) -> None:
        """Replace the editable fields of a song."""
        payload = SongEditPayload(
            song_id=song_id,
            owner_user_id=owner_user_id,
            title=title,
            artist=artist,
            chord_source_type=chord_source_type,
            chord_link=chord_link,
            chord_screenshot_url=chord_screenshot_url,
        )
        await self._send_command(SongEditMessage(payload=payload))

    async def delete_song(self, song_id: str) -> None:
        """Delete a song."""
        await self._send_command(SongDeleteMessage(payload=SongRefPayload(song_id)))

    async def set_status(self, song_id: str, status: PlayStatus) -> None:
        """Mark a song as playing or played."""
        payload = SongStatusPayload(song_id=song_id, status=status)
        await self._send_command(SongStatusMessage(payload=payload))

    async def revive(self, song_id: str) -> None:
        """Put a played song back in the queue."""
        await self._send_command(SongReviveMessage(payload=SongRefPayload(song_id)))

    async def move_song(self, song_id: str, index: int) -> None:
        """Steal a slot by moving a song to a new queue position."""
        payload = SongMovePayload(song_id=song_id, index=index)
        await self._send_command(SongMoveMessage(payload=payload))

    async def unsteal(self, song_id: str) -> None:
        """Return a stolen song to its fair position."""
        await self._send_command(SongUnstealMessage(payload=SongRefPayload(song_id)))

    async def rate(self, song_id: str, value: RatingValue) -> None:
        """Rate a played song as this client's user."""
        payload = RatingSubmitPayload(song_id=song_id, value=value)
        await self._send_command(RatingSubmitMessage(payload=payload))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _send_command(self, message: ClientMessage) -> None:
        if not self.connected:
            raise RuntimeError("Client is not connected")
        await self._send_json(message)

    async def _send_json(self, message: ClientMessage) -> None:
        if not self._ws:
            raise RuntimeError("WebSocket is not connected")
        async with self._send_lock:
            await self._ws.send_str(message.to_json())

    async def _reader_loop(self) -> None:
        assert self._ws is not None
        try:
            async for msg in self._ws:
                await self._handle_ws_message(msg)
        except asyncio.CancelledError:  # pragma: no cover - cancellation path
            pass
        except Exception:
            logger.exception("WebSocket reader encountered an error")
        finally:
            if self._connected:
                await self.disconnect()

    async def _handle_ws_message(self, msg: WSMessage) -> None:
        if msg.type is WSMsgType.TEXT:
            await self._handle_json_message(msg.data)
        elif msg.type in (WSMsgType.CLOSE, WSMsgType.CLOSING, WSMsgType.CLOSED):
            logger.info("WebSocket closed by server")
            await self.disconnect()
        elif msg.type is WSMsgType.ERROR:
            logger.error("WebSocket error: %s", self._ws.exception() if self._ws else "unknown")
            await self.disconnect()

    async def _handle_json_message(self, data: str) -> None:
        try:
            message = ServerMessage.from_json(data)
        except Exception:
            logger.exception("Failed to parse server message: %s", data)
            return

        match message:
            case ServerHelloMessage(payload=payload):
                self._handle_server_hello(payload)
            case SessionStateMessage(payload=snapshot):
                self._snapshot = snapshot
                await self._notify_callbacks(self._state_callbacks, snapshot)
            case ServerErrorMessage(payload=payload):
                logger.warning("Server rejected command: %s", payload.message)
                await self._notify_callbacks(self._error_callbacks, payload)
            case _:
                logger.debug("Unhandled server message type: %s", type(message).__name__)

    def _handle_server_hello(self, payload: ServerHelloPayload) -> None:
        self._server_info = ServerInfo(
            server_id=payload.server_id,
            name=payload.name,
            version=payload.version,
        )
        if self._server_hello_event:
            self._server_hello_event.set()
        logger.info(
            "Connected to server '%s' (%s) version %s",
            payload.name,
            payload.server_id,
            payload.version,
        )

    async def _notify_callbacks(
        self,
        callbacks: list[Callable[[Any], Awaitable[None] | None]],
        payload: Any,
    ) -> None:
        for callback in callbacks:
            try:
                result = callback(payload)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("Error in client callback %s", callback)

    async def __aenter__(self) -> Self:
        """Enter the async context manager returning this instance."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        """Disconnect when leaving the async context manager."""
        await self.disconnect()
