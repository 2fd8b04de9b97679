"""aiojam: fair, live-updated song queues for group jam sessions."""

from __future__ import annotations

# Re-export the main entry points for easy import
from aiojam.client import ErrorCallback, JamClient, ServerInfo, StateCallback
from aiojam.queue import rebalance
from aiojam.session import JamEvent, JamSessionState

__all__ = [
    "ErrorCallback",
    "JamClient",
    "JamEvent",
    "JamSessionState",
    "ServerInfo",
    "StateCallback",
    "rebalance",
]
