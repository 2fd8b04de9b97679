"""Core messages for the aiojam protocol.

This module contains the fundamental messages that establish communication
between clients and the server: the initial handshake, full session state
updates and error reports.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from mashumaro.config import BaseConfig
from mashumaro.mixins.orjson import DataClassORJSONMixin

from .records import SessionSnapshot
from .types import ClientMessage, ServerMessage


# Client -> Server: client/hello
@dataclass
class ClientHelloPayload(DataClassORJSONMixin):
    """Information about a connected client."""

    client_id: str
    """Uniquely identifies the client connection."""
    name: str
    """Friendly name of the client."""
    version: int
    """Version of the protocol the client implements."""
    user_id: str | None = None
    """User acting through this client, required for submitting songs and ratings."""

    class Config(BaseConfig):
        """Config for parsing json messages."""

        omit_none = True


@dataclass
class ClientHelloMessage(ClientMessage):
    """Message sent by the client to identify itself."""

    payload: ClientHelloPayload
    type: Literal["client/hello"] = "client/hello"


# Client -> Server: session/get-state
@dataclass
class SessionGetStateMessage(ClientMessage):
    """Message sent by the client to request the current session state."""

    type: Literal["session/get-state"] = "session/get-state"


# Server -> Client: server/hello
@dataclass
class ServerHelloPayload(DataClassORJSONMixin):
    """Information about the server."""

    server_id: str
    """Identifier of the server."""
    name: str
    """Friendly name of the server."""
    version: int
    """Latest supported protocol version."""


@dataclass
class ServerHelloMessage(ServerMessage):
    """Message sent by the server to identify itself."""

    payload: ServerHelloPayload
    type: Literal["server/hello"] = "server/hello"


# Server -> Client: session/state
@dataclass
class SessionStateMessage(ServerMessage):
    """Message sent by the server with the complete session state."""

    payload: SessionSnapshot
    type: Literal["session/state"] = "session/state"


# Server -> Client: server/error
@dataclass
class ServerErrorPayload(DataClassORJSONMixin):
    """Why a client message was rejected."""

    message: str
    """Human readable error description."""
    request_type: str | None = None
    """Type of the rejected client message, if it could be parsed."""

    class Config(BaseConfig):
        """Config for parsing json messages."""

        omit_none = True


@dataclass
class ServerErrorMessage(ServerMessage):
    """Message sent by the server when a client message could not be applied."""

    payload: ServerErrorPayload
    type: Literal["server/error"] = "server/error"
