"""Server and manager state models.

`ServerState` is the manager's live per-server view. `SerializableServerState`
and `ManagerSnapshot` are the persisted projection written by
`ClientManager.to_json()` and read back by `ClientManager.from_json()`.
Field names serialize in camelCase to keep the snapshot format stable.
"""

import time
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from mcpfile.domain.types.connection import ConnectionState, TransportType

__all__ = [
    "ErrorInfo",
    "ServerStateMetadata",
    "ServerState",
    "SerializableServerState",
    "ManagerSnapshot",
    "now_ms",
]


def now_ms() -> int:
    """Current time as integer milliseconds since the Unix epoch."""
    return int(time.time() * 1000)


class _StateModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class ErrorInfo(_StateModel):
    """Last error recorded for a server."""

    message: str
    timestamp: int = Field(default_factory=now_ms)


class ServerStateMetadata(_StateModel):
    """Config-derived metadata carried alongside the live state."""

    server_name: str
    transport_type: TransportType
    disabled: bool = False
    allowed: Optional[dict[str, list[str]]] = None


class ServerState(_StateModel):
    """Aggregate view of one server, replaced whole on every change."""

    server_id: str
    connection_state: ConnectionState
    metadata: ServerStateMetadata
    session_id: Optional[str] = None
    capabilities: Optional[dict[str, Any]] = None
    version: Optional[dict[str, Any]] = None
    instructions: Optional[str] = None
    error: Optional[ErrorInfo] = None
    reconnect_attempts: int = 0
    last_connected_at: Optional[int] = None

    @property
    def was_connected(self) -> bool:
        """Connected now, or connected successfully at some point."""
        return self.connection_state == ConnectionState.CONNECTED or self.last_connected_at is not None

    def to_serializable(self) -> "SerializableServerState":
        return SerializableServerState(
            server_id=self.server_id,
            connection_state=self.connection_state,
            session_id=self.session_id,
            was_connected=self.was_connected,
            reconnect_attempts=self.reconnect_attempts,
            last_connected_at=self.last_connected_at,
            error=self.error,
        )


class SerializableServerState(_StateModel):
    """Persisted projection of a ServerState."""

    server_id: str
    connection_state: ConnectionState
    session_id: Optional[str] = None
    was_connected: bool = False
    reconnect_attempts: int = 0
    last_connected_at: Optional[int] = None
    error: Optional[ErrorInfo] = None


class ManagerSnapshot(_StateModel):
    """Persisted manager state: every known server plus the source config path."""

    servers: dict[str, SerializableServerState] = Field(default_factory=dict)
    timestamp: int = Field(default_factory=now_ms)
    config_path: Optional[str] = None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)
