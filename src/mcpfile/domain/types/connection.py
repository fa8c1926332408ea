"""Connection-related domain types."""

from enum import Enum
from typing import Literal

__all__ = ["ConnectionState", "TransportType", "SESSION_TRANSPORTS", "is_session_based"]


class ConnectionState(str, Enum):
    """State of a single managed MCP connection.

    Exactly one value applies to a server at any instant. FAILED is terminal
    until the manager's failed-server sweep (or the caller) connects again.
    """

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


TransportType = Literal["http", "sse", "stdio"]

# Transports that keep a resumable identity across reconnects
SESSION_TRANSPORTS: frozenset[str] = frozenset({"sse", "stdio"})


def is_session_based(transport_type: str) -> bool:
    """Return True for transports that carry a session identity (sse, stdio)."""
    return transport_type in SESSION_TRANSPORTS
