"""Represents a single client connected to the jam server."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import TYPE_CHECKING, cast

from aiohttp import WSMessage, WSMsgType, web

from aiojam.models import PROTOCOL_VERSION
from aiojam.models.commands import (
    ParticipantJoinMessage,
    ParticipantUpdateMessage,
    RatingSubmitMessage,
    SongDeleteMessage,
    SongEditMessage,
    SongMoveMessage,
    SongReviveMessage,
    SongStatusMessage,
    SongSubmitMessage,
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
from aiojam.models.types import ClientMessage, ServerMessage

# The cyclic import is not an issue during runtime, so hide it
# pyright: reportImportCycles=none
if TYPE_CHECKING:
    from .server import JamServer

MAX_PENDING_MSG = 512

logger = logging.getLogger(__name__)


class JamConnection:
    """
    A client connected to a JamServer over a WebSocket.

    Commands are applied to the server's session in the order they arrive.
    """

    _server: JamServer
    """Reference to the JamServer instance this connection belongs to."""
    _request: web.Request
    """Web Request that opened the WebSocket."""
    _wsock: web.WebSocketResponse
    """WebSocket connection from the client to the server."""
    _client_info: ClientHelloPayload | None = None
    _writer_task: asyncio.Task[None] | None = None
    """Task responsible for sending JSON data."""
    _to_write: asyncio.Queue[ServerMessage]
    """Queue for messages to be sent to the client through the WebSocket."""
    _closing: bool = False
    _logger: logging.Logger

    def __init__(self, server: JamServer, request: web.Request) -> None:
        """
        DO NOT CALL THIS CONSTRUCTOR. INTERNAL USE ONLY.

        Use JamServer.on_client_connect instead.
        """
        self._server = server
        self._request = request
        self._wsock = web.WebSocketResponse(heartbeat=55)
        self._to_write = asyncio.Queue(maxsize=MAX_PENDING_MSG)
        self._closing = False
        self._logger = logger.getChild(f"unknown-{request.remote}")
        self._logger.debug("Connection initialized")

    @property
    def client_id(self) -> str:
        """The unique identifier of this client."""
        # This should only be called once the client was correctly initialized
        assert self._client_info
        return self._client_info.client_id

    @property
    def name(self) -> str:
        """The human-readable name of this client."""
        assert self._client_info
        return self._client_info.name

    @property
    def user_id(self) -> str | None:
        """The user acting through this client, if announced."""
        return self._client_info.user_id if self._client_info else None

    @property
    def ready(self) -> bool:
        """Whether the client completed the handshake."""
        return self._client_info is not None and not self._closing

    async def handle_client(self) -> web.WebSocketResponse:
        """
        Handle the complete websocket connection lifecycle.

        Should only be called by JamServer during client connection handling.
        """
        try:
            await self._setup_connection()
            await self._run_message_loop()
        finally:
            await self._cleanup_connection()
        return self._wsock

    async def disconnect(self) -> None:
        """Disconnect this client from the server."""
        self._closing = True
        self._logger.debug("Disconnecting client")

        if self._writer_task and not self._writer_task.done():
            self._logger.debug("Cancelling writer task")
            _ = self._writer_task.cancel()  # Don't care about cancellation result
            with suppress(asyncio.CancelledError):
                await self._writer_task

        if not self._wsock.closed:
            _ = await self._wsock.close()  # Don't care about close result

        if self._client_info is not None:
            self._server._on_client_remove(self)  # noqa: SLF001
        self._logger.info("Client disconnected")

    async def _setup_connection(self) -> None:
        """Establish WebSocket connection."""
        try:
            async with asyncio.timeout(10):
                _ = await self._wsock.prepare(self._request)
        except TimeoutError:
            self._logger.warning("Timeout preparing request")
            raise

        self._logger.info("Connection established")
        self._writer_task = self._server.loop.create_task(self._writer())
        # server/hello will be sent after receiving client/hello

    async def _run_message_loop(self) -> None:
        """Run the main message processing loop."""
        try:
            async for msg in self._wsock:
                if msg.type in (WSMsgType.CLOSE, WSMsgType.CLOSING, WSMsgType.CLOSED):
                    break
                if msg.type == WSMsgType.ERROR:
                    self._logger.error("WebSocket error: %s", self._wsock.exception())
                    break
                if msg.type != WSMsgType.TEXT:
                    continue
                await self._process_text(msg)
            self._logger.debug("wsock was closed")
        except asyncio.CancelledError:
            self._logger.debug("Connection closed by client")
        except Exception:
            self._logger.exception("Unexpected error inside websocket API")

    async def _process_text(self, msg: WSMessage) -> None:
        """Parse and apply a single text frame, reporting failures to the client."""
        try:
            message = ClientMessage.from_json(cast("str", msg.data))
        except Exception as err:
            self._logger.warning("Error parsing message: %s", err)
            self.send_message(ServerErrorMessage(ServerErrorPayload(message=str(err))))
            return

        try:
            await self._handle_message(message)
        except ValueError as err:
            self._logger.info("Rejected %s: %s", type(message).__name__, err)
            self.send_message(
                ServerErrorMessage(
                    ServerErrorPayload(message=str(err), request_type=getattr(message, "type", None))
                )
            )

    async def _cleanup_connection(self) -> None:
        """Clean up WebSocket connection and tasks."""
        try:
            if not self._wsock.closed:
                _ = await self._wsock.close()  # Don't care about close result
        except Exception:
            self._logger.exception("Failed to close websocket")
        await self.disconnect()

    def _require_user(self) -> str:
        if self.user_id is None:
            raise ValueError("This client did not announce a user_id in client/hello")
        return self.user_id

    async def _handle_message(self, message: ClientMessage) -> None:  # noqa: PLR0912
        """Handle incoming commands from the client."""
        if self._client_info is None and not isinstance(message, ClientHelloMessage):
            raise ValueError("First message must be client/hello")
        state = self._server.state
        match message:
            case ClientHelloMessage(client_info):
                self._logger.info("Received client/hello")
                self._client_info = client_info
                self._logger = logger.getChild(client_info.client_id)
                self._server._on_client_add(self)  # noqa: SLF001
                self.send_message(
                    ServerHelloMessage(
                        payload=ServerHelloPayload(
                            server_id=self._server.id,
                            name=self._server.name,
                            version=PROTOCOL_VERSION,
                        )
                    )
                )
                self.send_message(SessionStateMessage(state.snapshot))
            case SessionGetStateMessage():
                self.send_message(SessionStateMessage(state.snapshot))
            case ParticipantJoinMessage(payload):
                state.join(payload.name, user_id=payload.user_id, arrival_time=payload.arrival_time)
            case ParticipantUpdateMessage(payload):
                state.update_arrival(payload.participant_id, payload.arrival_time)
            case SongSubmitMessage(payload):
                state.submit_song(
                    self._require_user(),
                    payload.owner_user_id,
                    payload.title,
                    payload.artist,
                    chord_source_type=payload.chord_source_type,
                    chord_link=payload.chord_link,
                    chord_screenshot_url=payload.chord_screenshot_url,
                )
            case SongEditMessage(payload):
                state.edit_song(
                    payload.song_id,
                    owner_user_id=payload.owner_user_id,
                    title=payload.title,
                    artist=payload.artist,
                    chord_source_type=payload.chord_source_type,
                    chord_link=payload.chord_link,
                    chord_screenshot_url=payload.chord_screenshot_url,
                )
            case SongDeleteMessage(payload):
                state.delete_song(payload.song_id)
            case SongStatusMessage(payload):
                state.set_status(payload.song_id, payload.status)
            case SongReviveMessage(payload):
                state.revive(payload.song_id)
            case SongMoveMessage(payload):
                state.move_song(payload.song_id, payload.index)
            case SongUnstealMessage(payload):
                state.unsteal(payload.song_id)
            case RatingSubmitMessage(payload):
                state.rate(payload.song_id, self._require_user(), payload.value)
            case _:
                self._logger.debug("Unhandled client message type: %s", type(message).__name__)

    async def _writer(self) -> None:
        """Write outgoing messages from the queue."""
        # Exceptions if socket disconnected or cancelled by connection handler
        try:
            while not self._wsock.closed and not self._closing:
                item = await self._to_write.get()
                try:
                    await self._wsock.send_str(item.to_json())
                except ConnectionError:
                    self._logger.warning("Connection error sending JSON data, ending writer task")
                    break
            self._logger.debug("WebSocket Connection was closed for the client, ending writer task")
        except Exception:
            self._logger.exception("Error in writer task for client")

    def send_message(self, message: ServerMessage) -> None:
        """Enqueue a message to be sent to the client."""
        self._logger.debug("Enqueueing message: %s", type(message).__name__)
        try:
            self._to_write.put_nowait(message)
        except asyncio.QueueFull:
            self._logger.warning("Outgoing queue full, dropping %s", type(message).__name__)
