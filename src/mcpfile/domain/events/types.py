"""Event types published by the client manager."""

import time
from collections.abc import Mapping
from dataclasses import dataclass, field

from mcpfile.domain.types import ServerState


@dataclass
class Event:
    """Base class for all events.

    The timestamp field is set automatically when the event is created.
    """

    timestamp: float = field(default_factory=time.time, init=False)
    """Timestamp when the event was created (Unix timestamp)."""


@dataclass
class ServerStatesChanged(Event):
    """Published after any server state changes.

    Carries the complete state mapping, never a per-field delta, so handlers
    always observe a consistent view of every server.
    """

    states: Mapping[str, ServerState]
    """Read-only snapshot of every server's state."""
    server_id: str | None = None
    """Server whose change triggered the event, if a single one did."""


@dataclass
class ServerErrorOccurred(Event):
    """Published when a server fails to connect or its transport reports an error."""

    server_id: str
    error: Exception


@dataclass
class ReconnectProgress(Event):
    """Published while a server waits out a reconnection backoff."""

    server_id: str
    attempts: int
    """Current reconnection attempt number (1-based)."""
    max_attempts: int
    next_retry_delay: float
    """Seconds until the next retry attempt."""
