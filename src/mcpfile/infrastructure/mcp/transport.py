"""MCP SDK backed transport.

`SdkTransport` keeps one `mcp.ClientSession` open inside a dedicated task
(the SDK's stream contexts must be entered and exited by the same task) and
turns the end of that task into close/error notifications.
"""

from __future__ import annotations

import asyncio
import uuid
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any, AsyncIterator, Callable, Optional

from mcp import ClientSession, StdioServerParameters, types
from mcp.client.sse import sse_client
from mcp.client.stdio import stdio_client
from mcp.client.streamable_http import streamablehttp_client
from pydantic import AnyUrl

from mcpfile.config import (
    HttpTransportConfig,
    ServerConnectParams,
    SseTransportConfig,
    StdioTransportConfig,
)
from mcpfile.domain.protocols import CloseListener, ErrorListener, McpTransport
from mcpfile.errors import NotConnectedError
from mcpfile.infrastructure.mcp.connection import HealthChecker
from mcpfile.logger import get_logger

logger = get_logger("mcp.transport")

__all__ = ["SdkTransport", "TransportFactory", "create_transport"]

TransportFactory = Callable[[ServerConnectParams, Optional[types.Implementation]], McpTransport]


def _unwrap_group(error: BaseException) -> BaseException:
    """Return the single leaf of nested one-member exception groups raised by the SDK's task groups."""
    while isinstance(error, BaseExceptionGroup) and len(error.exceptions) == 1:
        error = error.exceptions[0]
    return error


class SdkTransport:
    """McpTransport implementation on top of the official MCP Python SDK."""

    def __init__(
        self,
        params: ServerConnectParams,
        client_info: Optional[types.Implementation] = None,
        *,
        timeout: float = 60.0,
        close_timeout: float = 5.0,
        health_checker: Optional[HealthChecker] = None,
    ):
        self._params = params
        self._client_info = client_info
        self._timeout = timeout
        self._close_timeout = close_timeout
        self._health_checker = health_checker or HealthChecker()

        self._listeners: list[tuple[CloseListener, ErrorListener]] = []
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._ready_event: Optional[asyncio.Event] = None
        self._session: Optional[ClientSession] = None

        self._session_id: Optional[str] = None
        self._capabilities: Optional[dict[str, Any]] = None
        self._server_version: Optional[dict[str, Any]] = None
        self._instructions: Optional[str] = None

    # --------------------------------------------------------------------- #
    # Properties
    # --------------------------------------------------------------------- #

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def server_capabilities(self) -> Optional[dict[str, Any]]:
        return self._capabilities

    @property
    def server_version(self) -> Optional[dict[str, Any]]:
        return self._server_version

    @property
    def instructions(self) -> Optional[str]:
        return self._instructions

    @property
    def is_open(self) -> bool:
        return self._session is not None

    # --------------------------------------------------------------------- #
    # Notifications
    # --------------------------------------------------------------------- #

    def subscribe(self, on_close: CloseListener, on_error: ErrorListener) -> Callable[[], None]:
        entry = (on_close, on_error)
        self._listeners.append(entry)

        def unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    def _emit_close(self) -> None:
        for on_close, _ in list(self._listeners):
            try:
                on_close()
            except Exception as e:
                logger.opt(exception=e).error(f"Error in close listener: {e}")

    def _emit_error(self, error: Exception) -> None:
        for _, on_error in list(self._listeners):
            try:
                on_error(error)
            except Exception as e:
                logger.opt(exception=e).error(f"Error in error listener: {e}")

    # --------------------------------------------------------------------- #
    # Lifecycle
    # --------------------------------------------------------------------- #

    async def connect(self) -> None:
        """
        Open the session and wait for the MCP handshake to complete.

        Raises:
            ConnectionError: If the session ended during the handshake or close() was called
            TimeoutError: If the handshake did not complete in time
        """
        if self._task is not None and not self._task.done():
            await self.close()

        stop_event = asyncio.Event()
        ready_event = asyncio.Event()
        task = asyncio.create_task(self._run(stop_event, ready_event))
        self._stop_event = stop_event
        self._ready_event = ready_event
        self._task = task

        ready_waiter = asyncio.create_task(ready_event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, ready_waiter},
                timeout=self._timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            if not ready_waiter.done():
                ready_waiter.cancel()

        # close() owns the teardown once it has requested a stop
        if stop_event.is_set():
            raise ConnectionError(f"Connect to {self._params.server_id} cancelled by close()")
        if ready_event.is_set():
            return

        if self._task is task:
            self._task = None
        if task in done:
            error = None if task.cancelled() else task.exception()
            if error is not None:
                raise _unwrap_group(error)
            raise ConnectionError("Session closed during handshake")

        task.cancel()
        try:
            await task
        except (asyncio.CancelledError, Exception):
            pass
        raise TimeoutError(f"MCP handshake did not complete within {self._timeout}s")

    async def close(self) -> None:
        """Stop the session task. Idempotent."""
        task = self._task
        self._task = None
        if task is None:
            return

        if self._stop_event is not None:
            self._stop_event.set()

        if not task.done():
            if self._ready_event is not None and not self._ready_event.is_set():
                # Handshake still in flight; nothing to shut down gracefully
                task.cancel()
                try:
                    await task
                except (asyncio.CancelledError, Exception):
                    pass
            else:
                try:
                    await asyncio.wait_for(asyncio.shield(task), timeout=self._close_timeout)
                except asyncio.TimeoutError:
                    logger.warning(f"Session for {self._params.server_id} did not stop in time; cancelling")
                    task.cancel()
                    try:
                        await task
                    except asyncio.CancelledError:
                        pass
                except Exception as e:
                    logger.debug(f"Session task for {self._params.server_id} ended with error: {e}")
        elif not task.cancelled() and task.exception() is not None:
            logger.debug(f"Session task for {self._params.server_id} had failed: {task.exception()}")

        self._session = None

    async def _run(self, stop_event: asyncio.Event, ready_event: asyncio.Event) -> None:
        server_id = self._params.server_id
        established = False
        try:
            async with self._open_streams() as streams:
                read_stream, write_stream = streams[0], streams[1]
                async with ClientSession(read_stream, write_stream, client_info=self._client_info) as session:
                    logger.debug(f"Initializing MCP session for {server_id}")
                    result = await session.initialize()
                    self._adopt(session, result)
                    if len(streams) > 2 and streams[2] is not None:
                        remote_id = streams[2]()
                        if remote_id:
                            logger.debug(f"{server_id} assigned HTTP session id {remote_id}")
                    established = True
                    ready_event.set()
                    logger.info(f"Session initialization completed for {server_id}")

                    unhealthy = await self._health_checker.watch(session.send_ping, stop_event)
                    if unhealthy:
                        logger.warning(f"Session for {server_id} stopped responding")
        except Exception as e:
            if not established:
                raise
            if not stop_event.is_set():
                logger.error(f"Session for {server_id} failed: {e}")
                self._emit_error(_unwrap_group(e))
        finally:
            self._session = None

        if established and not stop_event.is_set():
            logger.warning(f"Session for {server_id} closed unexpectedly")
            self._emit_close()

    def _adopt(self, session: ClientSession, result: types.InitializeResult) -> None:
        self._session = session
        self._capabilities = result.capabilities.model_dump(exclude_none=True)
        self._server_version = result.serverInfo.model_dump(exclude_none=True)
        self._instructions = result.instructions
        # Stateless HTTP has no resumable identity
        self._session_id = uuid.uuid4().hex if self._params.is_session_based else None

    @asynccontextmanager
    async def _open_streams(self) -> AsyncIterator[tuple[Any, ...]]:
        config = self._params.transport_config

        if isinstance(config, HttpTransportConfig):
            async with streamablehttp_client(
                url=config.url,
                headers=config.headers or None,
                timeout=timedelta(seconds=self._timeout),
            ) as streams:
                yield streams

        elif isinstance(config, SseTransportConfig):
            async with sse_client(
                url=config.url,
                headers=config.headers or None,
                timeout=self._timeout,
            ) as streams:
                yield streams

        elif isinstance(config, StdioTransportConfig):
            server = StdioServerParameters(
                command=config.command,
                args=list(config.args),
                env=dict(config.env),
                cwd=config.cwd,
            )
            async with stdio_client(server) as streams:
                yield streams

        else:
            raise ValueError(f"Unsupported transport config: {config!r}")

    # --------------------------------------------------------------------- #
    # MCP operations
    # --------------------------------------------------------------------- #

    def _require_session(self, operation: str) -> ClientSession:
        if self._session is None:
            raise NotConnectedError(self._params.server_id, operation, "closed")
        return self._session

    async def list_tools(self) -> list[types.Tool]:
        result = await self._require_session("list tools").list_tools()
        return list(result.tools)

    async def call_tool(self, name: str, arguments: Optional[dict[str, Any]] = None) -> types.CallToolResult:
        return await self._require_session("call tool").call_tool(name, arguments or {})

    async def list_prompts(self) -> list[types.Prompt]:
        result = await self._require_session("list prompts").list_prompts()
        return list(result.prompts)

    async def get_prompt(self, name: str, arguments: Optional[dict[str, str]] = None) -> types.GetPromptResult:
        return await self._require_session("get prompt").get_prompt(name, arguments)

    async def list_resources(self) -> list[types.Resource]:
        result = await self._require_session("list resources").list_resources()
        return list(result.resources)

    async def read_resource(self, uri: str) -> types.ReadResourceResult:
        return await self._require_session("read resource").read_resource(AnyUrl(uri))


def create_transport(
    params: ServerConnectParams,
    client_info: Optional[types.Implementation] = None,
) -> McpTransport:
    """Default TransportFactory: one SdkTransport per server."""
    return SdkTransport(params, client_info)
