"""Public interface for the jam client package."""

from .client import ErrorCallback, JamClient, ServerInfo, StateCallback

__all__ = [
    "ErrorCallback",
    "JamClient",
    "ServerInfo",
    "StateCallback",
]
