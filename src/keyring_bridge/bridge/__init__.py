"""Client side of the store command channel."""

from keyring_bridge.bridge.commands import CommandBridge, StoreSelectionError, StoreSession
from keyring_bridge.bridge.transport import (
    LocalTransport,
    Transport,
    TransportError,
    UnixSocketTransport,
)

__all__ = [
    "CommandBridge",
    "LocalTransport",
    "StoreSelectionError",
    "StoreSession",
    "Transport",
    "TransportError",
    "UnixSocketTransport",
]
