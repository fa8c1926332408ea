"""Managed MCP client: one server connection with state tracking and reconnection."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

from mcp import types

from mcpfile.config import ServerConnectParams
from mcpfile.domain.protocols import McpTransport
from mcpfile.domain.types import (
    ConnectionState,
    ErrorInfo,
    ServerState,
    ServerStateMetadata,
    now_ms,
)
from mcpfile.errors import ClientError, NotConnectedError, ServerConnectionError
from mcpfile.infrastructure.mcp.allowed import CapabilityFilter
from mcpfile.infrastructure.mcp.connection import (
    ConnectionLifecycle,
    ExponentialBackoffStrategy,
    ReconnectionStrategy,
)
from mcpfile.infrastructure.mcp.transport import TransportFactory, create_transport
from mcpfile.logger import get_logger

logger = get_logger("mcp.client")

T = TypeVar("T")

StateChangeCallback = Callable[["ManagedClient"], None]
ErrorCallback = Callable[["ManagedClient", Exception], None]
ReconnectProgressCallback = Callable[["ManagedClient", int, int, float], None]


class ManagedClient:
    """
    Connection state machine for a single MCP server.

    Owns the transport handle, the ConnectionState, the reconnect-attempt
    counter and the capability allow-lists. Unexpected transport closes are
    answered with exponential-backoff reconnection until the strategy gives up,
    at which point the client is FAILED until `connect()` is called again.

    Example:
        ```python
        async with ManagedClient(params) as client:
            tools = await client.list_tools()
        ```
    """

    def __init__(
        self,
        params: ServerConnectParams,
        *,
        transport: Optional[McpTransport] = None,
        transport_factory: Optional[TransportFactory] = None,
        client_info: Optional[types.Implementation] = None,
        reconnection_strategy: Optional[ReconnectionStrategy] = None,
        on_state_change: Optional[StateChangeCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_reconnect_progress: Optional[ReconnectProgressCallback] = None,
    ):
        """
        Args:
            params: Resolved connection parameters for the server
            transport: Transport to use; built with `transport_factory` when omitted
            transport_factory: Factory for the transport (defaults to the MCP SDK transport)
            client_info: Client name/version sent during the MCP handshake
            reconnection_strategy: Backoff policy (defaults to ExponentialBackoffStrategy())
            on_state_change: Called after any change to the client's observable state
            on_error: Called for transport errors and exhausted reconnection
            on_reconnect_progress: Called while waiting out a backoff delay
        """
        self._params = params
        if transport is None:
            factory = transport_factory or create_transport
            transport = factory(params, client_info)
        self._transport = transport
        self._strategy = reconnection_strategy or ExponentialBackoffStrategy()
        self._filter = CapabilityFilter(params.server_id, params.allowed)

        self._on_state_change = on_state_change
        self._on_error = on_error
        self._on_reconnect_progress = on_reconnect_progress

        self._lifecycle = ConnectionLifecycle(on_status_change=lambda _status: self._notify())
        self._connect_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._reconnect_task: Optional[asyncio.Task] = None

        self._reconnect_attempts = 0
        self._session_id: Optional[str] = None
        self._last_error: Optional[Exception] = None
        self._last_error_at: Optional[int] = None
        self._last_connected_at: Optional[int] = None

        self._unsubscribe: Optional[Callable[[], None]] = self._transport.subscribe(
            self._handle_close, self._handle_error
        )

    # --------------------------------------------------------------------- #
    # Properties
    # --------------------------------------------------------------------- #

    @property
    def server_id(self) -> str:
        return self._params.server_id

    @property
    def params(self) -> ServerConnectParams:
        return self._params

    @property
    def state(self) -> ConnectionState:
        return self._lifecycle.status

    @property
    def is_connected(self) -> bool:
        return self._lifecycle.is_connected

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def last_error(self) -> Optional[Exception]:
        return self._last_error

    @property
    def last_error_at(self) -> Optional[int]:
        """Milliseconds since the epoch when last_error was recorded."""
        return self._last_error_at

    @property
    def last_connected_at(self) -> Optional[int]:
        """Milliseconds since the epoch of the last successful connect."""
        return self._last_connected_at

    @property
    def server_capabilities(self) -> Optional[dict[str, Any]]:
        return self._transport.server_capabilities

    @property
    def server_version(self) -> Optional[dict[str, Any]]:
        return self._transport.server_version

    @property
    def instructions(self) -> Optional[str]:
        return self._transport.instructions

    @property
    def reconnect_info(self) -> dict[str, Any]:
        """
        Reconnection progress information.

        Returns:
            Dictionary with attempts, max_attempts, next_retry_delay (seconds,
            only while reconnecting) and error_message (only when failed)
        """
        info: dict[str, Any] = {
            "attempts": self._reconnect_attempts,
            "max_attempts": self._strategy.max_attempts,
            "next_retry_delay": None,
            "error_message": self._lifecycle.error_message,
        }
        if self.state == ConnectionState.RECONNECTING and self._reconnect_attempts > 0:
            info["next_retry_delay"] = self._strategy.calculate_delay(self._reconnect_attempts)
        return info

    def to_server_state(self) -> ServerState:
        """Build the aggregate ServerState view of this client."""
        metadata = self._params.metadata
        error = None
        if self._last_error is not None:
            error = ErrorInfo(message=str(self._last_error), timestamp=self._last_error_at or now_ms())
        return ServerState(
            server_id=self.server_id,
            connection_state=self.state,
            metadata=ServerStateMetadata(
                server_name=metadata.server_name,
                transport_type=metadata.transport_type,
                disabled=metadata.disabled,
                allowed=metadata.allowed.as_dict() if metadata.allowed else None,
            ),
            session_id=self._session_id,
            capabilities=self.server_capabilities if self.is_connected else None,
            version=self.server_version if self.is_connected else None,
            instructions=self.instructions if self.is_connected else None,
            error=error,
            reconnect_attempts=self._reconnect_attempts,
            last_connected_at=self._last_connected_at,
        )

    # --------------------------------------------------------------------- #
    # Lifecycle
    # --------------------------------------------------------------------- #

    async def connect(self) -> None:
        """
        Connect to the server.

        No-op when already connected. Attempts are serialized per client.

        Raises:
            ServerConnectionError: If the transport handshake fails; the client is then FAILED
        """
        async with self._connect_lock:
            if self._lifecycle.is_connected:
                logger.debug(f"[{self.server_id}] Already connected")
                return
            self._stop_event.clear()
            await self._attempt_connect(reconnecting=False)

    async def disconnect(self) -> None:
        """Disconnect and stop any pending reconnection."""
        logger.info(f"[{self.server_id}] Disconnecting")
        self._stop_event.set()
        self._reconnect_attempts = 0
        self._session_id = None
        if not self._lifecycle.set_status(ConnectionState.DISCONNECTED):
            self._notify()

        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        try:
            await self._transport.close()
        except Exception as e:
            logger.warning(f"[{self.server_id}] Error closing transport: {e}")

    async def aclose(self) -> None:
        """Disconnect and stop listening to transport notifications. Idempotent."""
        await self.disconnect()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def __aenter__(self) -> "ManagedClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def _attempt_connect(self, reconnecting: bool) -> None:
        """Run one transport handshake. Caller holds the connect lock."""
        if not reconnecting:
            self._lifecycle.set_status(ConnectionState.CONNECTING)

        logger.info(f"[{self.server_id}] Connecting via {self._params.transport_type}")
        try:
            await self._transport.connect()
        except Exception as e:
            error = ServerConnectionError(self.server_id, "Failed to connect", cause=e)
            self._record_error(error)
            if self._stop_event.is_set():
                logger.debug(f"[{self.server_id}] Connect failed after disconnect was requested")
            elif reconnecting:
                self._notify()
            else:
                logger.error(str(error))
                self._lifecycle.set_status(ConnectionState.FAILED, str(error))
            raise error from e

        if self._stop_event.is_set():
            logger.info(f"[{self.server_id}] Disconnect requested during connect; closing session")
            await self._transport.close()
            return

        self._reconnect_attempts = 0
        self._last_error = None
        self._last_error_at = None
        self._last_connected_at = now_ms()
        self._session_id = self._transport.session_id
        if not self._lifecycle.set_status(ConnectionState.CONNECTED):
            self._notify()
        logger.info(f"[{self.server_id}] Connected")

    # --------------------------------------------------------------------- #
    # Transport notifications
    # --------------------------------------------------------------------- #

    def _handle_close(self) -> None:
        if self._lifecycle.is_disconnected or self._stop_event.is_set():
            logger.debug(f"[{self.server_id}] Transport closed after disconnect; ignoring")
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return

        logger.warning(f"[{self.server_id}] Connection closed unexpectedly")
        self._session_id = None
        self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    def _handle_error(self, error: Exception) -> None:
        wrapped = ServerConnectionError(self.server_id, "Transport error", cause=error)
        self._record_error(wrapped)
        self._notify()
        self._report_error(wrapped)

    async def _reconnect_loop(self) -> None:
        max_attempts = self._strategy.max_attempts
        while True:
            self._reconnect_attempts += 1
            attempt = self._reconnect_attempts

            if not self._strategy.should_retry(attempt):
                error = ServerConnectionError(
                    self.server_id,
                    f"Reconnection failed after {max_attempts} attempts",
                    cause=self._last_error,
                )
                logger.error(str(error))
                self._record_error(error)
                self._lifecycle.set_status(ConnectionState.FAILED, str(error))
                self._report_error(error)
                return

            if not self._lifecycle.set_status(ConnectionState.RECONNECTING):
                self._notify()

            proceed = await self._strategy.wait_before_retry(
                attempt,
                on_progress=self._report_progress,
                stop_event=self._stop_event,
            )
            if not proceed or self.state != ConnectionState.RECONNECTING:
                logger.debug(f"[{self.server_id}] Reconnection abandoned")
                return

            async with self._connect_lock:
                if self.state != ConnectionState.RECONNECTING:
                    return
                logger.info(f"[{self.server_id}] Reconnection attempt {attempt}/{max_attempts}")
                try:
                    await self._attempt_connect(reconnecting=True)
                    return
                except ServerConnectionError as e:
                    logger.warning(f"Reconnection attempt {attempt} failed: {e}")
                    if self._stop_event.is_set():
                        return

    # --------------------------------------------------------------------- #
    # Callbacks
    # --------------------------------------------------------------------- #

    def _record_error(self, error: Exception) -> None:
        self._last_error = error
        self._last_error_at = now_ms()

    def _notify(self) -> None:
        if self._on_state_change is None:
            return
        try:
            self._on_state_change(self)
        except Exception as e:
            logger.opt(exception=e).error(f"Error in state change callback: {e}")

    def _report_error(self, error: Exception) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(self, error)
        except Exception as e:
            logger.opt(exception=e).error(f"Error in error callback: {e}")

    def _report_progress(self, attempt: int, max_attempts: int, remaining: float) -> None:
        if self._on_reconnect_progress is not None:
            self._on_reconnect_progress(self, attempt, max_attempts, remaining)

    # --------------------------------------------------------------------- #
    # Capability operations
    # --------------------------------------------------------------------- #

    def _ensure_connected(self, operation: str) -> None:
        if not self._lifecycle.is_connected:
            raise NotConnectedError(self.server_id, operation, self.state.value)

    async def _request(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        self._ensure_connected(operation)
        try:
            return await call()
        except ClientError:
            raise
        except Exception as e:
            logger.error(f"[{self.server_id}] Failed to {operation}: {e}")
            raise ServerConnectionError(self.server_id, f"Failed to {operation}", cause=e) from e

    async def list_tools(self) -> list[types.Tool]:
        tools = await self._request("list tools", self._transport.list_tools)
        return self._filter.filter("tools", tools)

    async def call_tool(self, name: str, arguments: Optional[dict[str, Any]] = None) -> types.CallToolResult:
        self._ensure_connected("call tool")
        self._filter.check("tools", name)
        return await self._request("call tool", lambda: self._transport.call_tool(name, arguments))

    async def list_prompts(self) -> list[types.Prompt]:
        prompts = await self._request("list prompts", self._transport.list_prompts)
        return self._filter.filter("prompts", prompts)

    async def get_prompt(self, name: str, arguments: Optional[dict[str, str]] = None) -> types.GetPromptResult:
        self._ensure_connected("get prompt")
        self._filter.check("prompts", name)
        return await self._request("get prompt", lambda: self._transport.get_prompt(name, arguments))

    async def list_resources(self) -> list[types.Resource]:
        resources = await self._request("list resources", self._transport.list_resources)
        return self._filter.filter("resources", resources)

    async def read_resource(self, uri: str) -> types.ReadResourceResult:
        self._ensure_connected("read resource")
        self._filter.check("resources", uri)
        return await self._request("read resource", lambda: self._transport.read_resource(uri))
