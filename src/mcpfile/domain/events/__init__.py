"""Event system used by the client manager.

Example:
    ```python
    from mcpfile.domain.events import EventBus, ServerStatesChanged

    event_bus = EventBus()

    def handle_states(event: ServerStatesChanged):
        for server_id, state in event.states.items():
            print(f"{server_id}: {state.connection_state.value}")

    event_bus.subscribe(ServerStatesChanged, handle_states)
    ```
"""

from .bus import EventBus
from .types import (
    Event,
    ReconnectProgress,
    ServerErrorOccurred,
    ServerStatesChanged,
)

__all__ = [
    "EventBus",
    "Event",
    "ReconnectProgress",
    "ServerErrorOccurred",
    "ServerStatesChanged",
]
