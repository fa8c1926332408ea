"""Shared domain types."""

from mcpfile.domain.types.connection import (
    SESSION_TRANSPORTS,
    ConnectionState,
    TransportType,
    is_session_based,
)
from mcpfile.domain.types.state import (
    ErrorInfo,
    ManagerSnapshot,
    SerializableServerState,
    ServerState,
    ServerStateMetadata,
    now_ms,
)

__all__ = [
    "ConnectionState",
    "TransportType",
    "SESSION_TRANSPORTS",
    "is_session_based",
    "ErrorInfo",
    "ManagerSnapshot",
    "SerializableServerState",
    "ServerState",
    "ServerStateMetadata",
    "now_ms",
]
