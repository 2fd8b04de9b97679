"""
Jam server implementation hosting a session for many clients.

JamServer is the shared point of a jam session, responsible for:
- Managing connected clients
- Applying their commands to the session in arrival order
- Broadcasting the rebalanced queue after every change
"""

__all__ = [
    "DEFAULT_PATH",
    "DEFAULT_PORT",
    "SERVICE_TYPE",
    "ClientAddedEvent",
    "ClientRemovedEvent",
    "JamConnection",
    "JamServer",
    "ServerEvent",
]

from .connection import JamConnection
from .server import (
    DEFAULT_PATH,
    DEFAULT_PORT,
    SERVICE_TYPE,
    ClientAddedEvent,
    ClientRemovedEvent,
    JamServer,
    ServerEvent,
)
