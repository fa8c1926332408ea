"""Transport protocol consumed by the connection state machine."""

from typing import Any, Callable, Optional, Protocol

__all__ = ["CloseListener", "ErrorListener", "McpTransport"]

CloseListener = Callable[[], None]
ErrorListener = Callable[[Exception], None]


class McpTransport(Protocol):
    """One RPC session with an MCP server, treated as a black box.

    The state machine subscribes once at construction and unsubscribes on
    teardown. `on_close` fires only when an established session ends without
    `close()` having been called; `on_error` fires for errors reported by an
    established session. Both are invoked on the event loop thread.
    """

    @property
    def session_id(self) -> Optional[str]:
        """Identity of the current session; None for stateless transports."""
        ...

    @property
    def server_capabilities(self) -> Optional[dict[str, Any]]:
        ...

    @property
    def server_version(self) -> Optional[dict[str, Any]]:
        ...

    @property
    def instructions(self) -> Optional[str]:
        ...

    def subscribe(self, on_close: CloseListener, on_error: ErrorListener) -> Callable[[], None]:
        """Register notification listeners and return a callable that removes them."""
        ...

    async def connect(self) -> None:
        """Open the session and complete the handshake, raising on failure."""
        ...

    async def close(self) -> None:
        """Close the session. Safe to call more than once."""
        ...

    async def list_tools(self) -> list[Any]:
        ...

    async def call_tool(self, name: str, arguments: Optional[dict[str, Any]] = None) -> Any:
        ...

    async def list_prompts(self) -> list[Any]:
        ...

    async def get_prompt(self, name: str, arguments: Optional[dict[str, str]] = None) -> Any:
        ...

    async def list_resources(self) -> list[Any]:
        ...

    async def read_resource(self, uri: str) -> Any:
        ...
