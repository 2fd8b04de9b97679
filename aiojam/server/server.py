"""Jam server hosting one session for many connected clients."""

from __future__ import annotations

import asyncio
import logging
import socket
from collections.abc import Callable, Coroutine
from dataclasses import dataclass

from aiohttp import web
from zeroconf import IPVersion, ServiceInfo
from zeroconf.asyncio import AsyncZeroconf

from aiojam.models.core import SessionStateMessage
from aiojam.session import JamEvent, JamSessionState, StateChangedEvent

from .connection import JamConnection

logger = logging.getLogger(__name__)

SERVICE_TYPE = "_aiojam._tcp.local."
DEFAULT_PORT = 8927
DEFAULT_PATH = "/jam"


class ServerEvent:
    """Base event type used by JamServer.add_event_listener()."""


@dataclass
class ClientAddedEvent(ServerEvent):
    """A new client completed the handshake."""

    client_id: str


@dataclass
class ClientRemovedEvent(ServerEvent):
    """A client disconnected from the server."""

    client_id: str


class JamServer:
    """Jam server that applies client commands to a session and broadcasts its state."""

    _connections: set[JamConnection]
    """Connections that completed the handshake."""
    _state: JamSessionState
    loop: asyncio.AbstractEventLoop
    _event_cbs: list[Callable[[ServerEvent], Coroutine[None, None, None]]]
    _id: str
    _name: str
    _runner: web.AppRunner | None
    _zeroconf: AsyncZeroconf | None
    _service_info: ServiceInfo | None

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        server_id: str,
        server_name: str,
        state: JamSessionState | None = None,
    ) -> None:
        """Initialize a new Jam Server."""
        self._connections = set()
        self.loop = loop
        self._event_cbs = []
        self._id = server_id
        self._name = server_name
        self._state = state or JamSessionState(loop=loop)
        self._remove_state_listener = self._state.add_event_listener(self._on_state_event)
        self._runner = None
        self._zeroconf = None
        self._service_info = None
        logger.debug("JamServer initialized: id=%s, name=%s", server_id, server_name)

    def create_app(self, path: str = DEFAULT_PATH) -> web.Application:
        """Create the aiohttp application serving the WebSocket endpoint."""
        app = web.Application()
        app.router.add_get(path, self.on_client_connect)
        return app

    async def start(
        self,
        host: str = "0.0.0.0",  # noqa: S104
        port: int = DEFAULT_PORT,
        path: str = DEFAULT_PATH,
        *,
        advertise: bool = True,
    ) -> None:
        """Start listening for clients, optionally announcing the server via mDNS."""
        self._runner = web.AppRunner(self.create_app(path))
        await self._runner.setup()
        site = web.TCPSite(self._runner, host, port)
        await site.start()
        logger.info("Jam server listening on %s:%d%s", host, port, path)
        if advertise:
            await self._advertise(port, path)

    async def close(self) -> None:
        """Stop the server and disconnect every client."""
        if self._zeroconf is not None:
            if self._service_info is not None:
                await self._zeroconf.async_unregister_service(self._service_info)
            await self._zeroconf.async_close()
            self._zeroconf = None
            self._service_info = None
        for connection in list(self._connections):
            await connection.disconnect()
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        self._remove_state_listener()

    async def _advertise(self, port: int, path: str) -> None:
        """Register the server as an mDNS service."""
        address = socket.gethostbyname(socket.gethostname())
        self._service_info = ServiceInfo(
            SERVICE_TYPE,
            f"{self._id}.{SERVICE_TYPE}",
            addresses=[socket.inet_aton(address)],
            port=port,
            properties={"path": path, "name": self._name},
        )
        self._zeroconf = AsyncZeroconf(ip_version=IPVersion.V4Only)
        await self._zeroconf.async_register_service(self._service_info)
        logger.info("Advertising %s via mDNS at %s:%d", self._name, address, port)

    async def on_client_connect(self, request: web.Request) -> web.WebSocketResponse:
        """Handle an incoming WebSocket connection from a jam client."""
        logger.debug("Incoming client connection from %s", request.remote)
        connection = JamConnection(self, request)
        return await connection.handle_client()

    async def _on_state_event(self, event: JamEvent) -> None:
        if isinstance(event, StateChangedEvent):
            self.broadcast(SessionStateMessage(event.snapshot))

    def broadcast(self, message: SessionStateMessage) -> None:
        """Send a message to every connected client."""
        for connection in self._connections:
            if connection.ready:
                connection.send_message(message)

    def add_event_listener(
        self, callback: Callable[[ServerEvent], Coroutine[None, None, None]]
    ) -> Callable[[], None]:
        """Register a callback to listen for state changes of the server.

        State changes include:
        - A new client was connected
        - A client disconnected

        Returns a function to remove the listener.
        """
        self._event_cbs.append(callback)
        return lambda: self._event_cbs.remove(callback)

    def _signal_event(self, event: ServerEvent) -> None:
        for cb in self._event_cbs:
            _ = self.loop.create_task(cb(event))

    def _on_client_add(self, connection: JamConnection) -> None:
        """
        Register the client and notify that it connected.

        Should only be called once the client sent client/hello.
        """
        if connection in self._connections:
            return

        logger.debug("Adding client %s (%s) to server", connection.client_id, connection.name)
        self._connections.add(connection)
        self._signal_event(ClientAddedEvent(connection.client_id))

    def _on_client_remove(self, connection: JamConnection) -> None:
        if connection not in self._connections:
            return

        logger.debug("Removing client %s from server", connection.client_id)
        self._connections.remove(connection)
        self._signal_event(ClientRemovedEvent(connection.client_id))

    @property
    def connections(self) -> set[JamConnection]:
        """Get the set of all connected clients."""
        return self._connections

    @property
    def state(self) -> JamSessionState:
        """Get the session hosted by this server."""
        return self._state

    @property
    def id(self) -> str:
        """Get the unique identifier of this server."""
        return self._id

    @property
    def name(self) -> str:
        """Get the name of this server."""
        return self._name
