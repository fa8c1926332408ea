"""ClientManager - supervises one ManagedClient per configured MCP server."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional, Union

from mcp import types
from pydantic import ValidationError

from mcpfile.application.registry import ServerRegistry
from mcpfile.config import McpFile, ParseOptions, ServerConnectParams
from mcpfile.domain.events import (
    EventBus,
    ReconnectProgress,
    ServerErrorOccurred,
    ServerStatesChanged,
)
from mcpfile.domain.types import ConnectionState, ManagerSnapshot, ServerState
from mcpfile.errors import ClientError, ManagerError
from mcpfile.infrastructure.mcp import ManagedClient, TransportFactory
from mcpfile.infrastructure.mcp.connection import ExponentialBackoffStrategy
from mcpfile.logger import get_logger

logger = get_logger("client_manager")

ChangeHook = Callable[[Mapping[str, ServerState]], None]
ErrorHook = Callable[[str, Exception], None]


@dataclass
class ManagerHooks:
    """Synchronous callbacks fed from the manager's event bus.

    Attributes:
        on_change: Receives the complete state mapping after every change
        on_error: Receives (server_id, error) for connection failures and transport errors
    """

    on_change: Optional[ChangeHook] = None
    on_error: Optional[ErrorHook] = None


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    return raw.lower() in ("1", "true", "yes", "on")


def _env_number(env: Mapping[str, str], name: str, default: float, cast: Callable[[str], Any] = float) -> Any:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise ManagerError(f"Invalid value for {name}: {raw!r}") from e


@dataclass
class ManagerConfig:
    """Configuration for a ClientManager.

    Attributes:
        client_info: Client name/version sent in every MCP handshake
        hooks: Change and error callbacks
        max_reconnect_attempts: Reconnection attempts before a server is FAILED
        initial_reconnect_delay: Backoff delay before the first reconnection attempt (seconds)
        max_reconnect_delay: Upper bound for any backoff delay (seconds)
        failed_retry_interval: Seconds between failed-server sweeps; 0 disables the sweep
        transport_factory: Builds the transport for each server (MCP SDK transport by default)
        connect_stateless_on_restore: Connect HTTP servers fresh when restoring a snapshot
    """

    client_info: Optional[types.Implementation] = None
    hooks: ManagerHooks = field(default_factory=ManagerHooks)
    max_reconnect_attempts: int = 5
    initial_reconnect_delay: float = 1.0
    max_reconnect_delay: float = 30.0
    failed_retry_interval: float = 60.0
    transport_factory: Optional[TransportFactory] = None
    connect_stateless_on_restore: bool = True

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None, **overrides: Any) -> "ManagerConfig":
        """
        Build a config from `MCPFILE_*` environment variables.

        Recognized variables: MCPFILE_CLIENT_NAME, MCPFILE_CLIENT_VERSION,
        MCPFILE_MAX_RECONNECT_ATTEMPTS, MCPFILE_INITIAL_RECONNECT_DELAY,
        MCPFILE_MAX_RECONNECT_DELAY, MCPFILE_FAILED_RETRY_INTERVAL and
        MCPFILE_CONNECT_STATELESS_ON_RESTORE. Keyword overrides win over the
        environment.

        Raises:
            ManagerError: If a numeric variable cannot be parsed
        """
        env = os.environ if env is None else env

        client_info = None
        client_name = env.get("MCPFILE_CLIENT_NAME")
        if client_name:
            client_info = types.Implementation(
                name=client_name,
                version=env.get("MCPFILE_CLIENT_VERSION", "0.0.0"),
            )

        values: dict[str, Any] = {
            "client_info": client_info,
            "max_reconnect_attempts": _env_number(env, "MCPFILE_MAX_RECONNECT_ATTEMPTS", 5, int),
            "initial_reconnect_delay": _env_number(env, "MCPFILE_INITIAL_RECONNECT_DELAY", 1.0),
            "max_reconnect_delay": _env_number(env, "MCPFILE_MAX_RECONNECT_DELAY", 30.0),
            "failed_retry_interval": _env_number(env, "MCPFILE_FAILED_RETRY_INTERVAL", 60.0),
            "connect_stateless_on_restore": _env_bool(env, "MCPFILE_CONNECT_STATELESS_ON_RESTORE", True),
        }
        values.update(overrides)
        return cls(**values)


@dataclass
class ReloadResult:
    """Outcome of ClientManager.reload_config().

    Attributes:
        added: Servers new to the file, now connected (or failed)
        removed: Servers no longer in the file, now disconnected
        changed: Servers whose metadata changed, disconnected and reconnected
        unchanged: Servers left untouched
        states: Resulting state of every added or changed server
    """

    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    changed: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    states: dict[str, ServerState] = field(default_factory=dict)


class ClientManager:
    """
    Owns one ManagedClient per server and the aggregate state of all of them.

    Responsibilities:
    - Connect servers concurrently, isolating failures per server
    - Publish the full state mapping on every change (ServerStatesChanged)
    - Report connection failures and transport errors (ServerErrorOccurred)
    - Retry FAILED servers periodically
    - Reload a config file and apply the difference
    - Serialize and restore aggregate state

    Example:
        ```python
        async with ClientManager(ManagerConfig(hooks=ManagerHooks(on_change=print))) as manager:
            await manager.connect_from_file(".mcp.json")
            client = manager.get_client("github")
        ```
    """

    def __init__(self, config: Optional[ManagerConfig] = None, event_bus: Optional[EventBus] = None):
        """
        Args:
            config: Manager configuration (defaults to ManagerConfig())
            event_bus: Event bus for publishing manager events (created if None)
        """
        self._config = config or ManagerConfig()
        self.event_bus = event_bus or EventBus()

        self._clients: ServerRegistry[ManagedClient] = ServerRegistry()
        self._states: ServerRegistry[ServerState] = ServerRegistry()
        self._retry_tasks: dict[str, asyncio.Task] = {}
        self._sweep_task: Optional[asyncio.Task] = None
        self._config_path: Optional[str] = None
        self._parse_options: Optional[ParseOptions] = None

        hooks = self._config.hooks
        if hooks.on_change is not None:
            self.event_bus.subscribe(ServerStatesChanged, self._dispatch_change)
        if hooks.on_error is not None:
            self.event_bus.subscribe(ServerErrorOccurred, self._dispatch_error)

    @classmethod
    async def create(
        cls,
        config: Optional[ManagerConfig] = None,
        event_bus: Optional[EventBus] = None,
    ) -> "ClientManager":
        """Construct a manager and start its failed-server sweep."""
        manager = cls(config, event_bus)
        manager.start()
        return manager

    @property
    def config(self) -> ManagerConfig:
        return self._config

    @property
    def config_path(self) -> Optional[str]:
        """Path of the config file last loaded with connect_from_file()."""
        return self._config_path

    # --------------------------------------------------------------------- #
    # Lifecycle
    # --------------------------------------------------------------------- #

    def start(self) -> None:
        """Start the failed-server sweep. No-op if it is running or disabled."""
        if self._config.failed_retry_interval <= 0:
            return
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        logger.debug(f"Failed-server sweep started (every {self._config.failed_retry_interval}s)")

    async def close(self) -> None:
        """Stop the sweep, disconnect every client concurrently and clear the registries."""
        await self._stop_sweep()

        retries = list(self._retry_tasks.values())
        self._retry_tasks = {}
        for task in retries:
            task.cancel()
        if retries:
            await asyncio.gather(*retries, return_exceptions=True)

        clients = self._clients.snapshot()
        if clients:
            logger.info(f"Closing {len(clients)} MCP client(s)")
            await asyncio.gather(
                *(self._close_client(server_id, client) for server_id, client in clients.items()),
                return_exceptions=True,
            )

        self._clients.clear()
        self._states.clear()
        self._publish(self._states.snapshot())
        logger.info("ClientManager closed")

    async def __aenter__(self) -> "ClientManager":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _stop_sweep(self) -> None:
        task = self._sweep_task
        self._sweep_task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _close_client(self, server_id: str, client: ManagedClient) -> None:
        try:
            await client.aclose()
        except Exception as err:
            logger.error(f"Error disconnecting from {server_id}: {err}")

    # --------------------------------------------------------------------- #
    # Connecting
    # --------------------------------------------------------------------- #

    async def connect_from_file(
        self,
        path: Union[str, Path],
        options: Optional[ParseOptions] = None,
    ) -> dict[str, ServerState]:
        """
        Parse a config file and connect every server it declares.

        The path and options are remembered for reload_config().

        Raises:
            ConfigError: If the file cannot be loaded
        """
        mcp_file = McpFile.from_path(path, options)
        self._config_path = mcp_file.path
        self._parse_options = options
        return await self.connect_to_servers(mcp_file.get_connect_params())

    async def connect_to_servers(self, params: Mapping[str, ServerConnectParams]) -> dict[str, ServerState]:
        """
        Connect to many servers concurrently.

        A failure for one server never prevents or delays the others.

        Returns:
            Resulting state of each server attempted
        """
        server_ids = list(params.keys())
        if not server_ids:
            return {}

        logger.info(f"Connecting to {len(server_ids)} MCP server(s)")
        results = await asyncio.gather(
            *(self.connect_to_server(server_id, params[server_id]) for server_id in server_ids),
            return_exceptions=True,
        )

        outcome: dict[str, ServerState] = {}
        for server_id, result in zip(server_ids, results):
            if isinstance(result, ServerState):
                outcome[server_id] = result
                continue
            logger.opt(exception=result).error(f"Unexpected error connecting to {server_id}: {result}")
            state = self._states.get(server_id)
            if state is not None:
                outcome[server_id] = state

        connected = sum(1 for state in outcome.values() if state.connection_state == ConnectionState.CONNECTED)
        logger.info(f"Connected {connected}/{len(server_ids)} MCP server(s)")
        return outcome

    async def connect_to_server(self, server_id: str, params: ServerConnectParams) -> ServerState:
        """
        Register a server and connect to it.

        An existing client for the same id is disconnected and replaced.
        Disabled servers are registered but not connected. A connection
        failure is recorded in the server's state and reported once through
        the error hook.

        Returns:
            The server's state after the attempt
        """
        if params.server_id != server_id:
            raise ManagerError(f"Server id mismatch: '{server_id}' != '{params.server_id}'")

        if server_id in self._clients:
            await self.disconnect_server(server_id)

        client = self._register(params)

        if params.disabled:
            logger.info(f"Server {server_id} is disabled; not connecting")
            return self._states.get(server_id) or client.to_server_state()

        try:
            await client.connect()
            logger.info(f"Successfully connected to {server_id}")
        except ClientError as err:
            logger.error(f"Failed to connect to {server_id}: {err}")
            if self._clients.get(server_id) is client:
                self._report_error(server_id, err)

        return client.to_server_state()

    async def disconnect_server(self, server_id: str) -> bool:
        """
        Disconnect a server and forget it.

        Returns:
            True if the server was known
        """
        client = self._clients.remove(server_id)
        self._cancel_retry(server_id)
        if client is None:
            return False

        self._states.remove(server_id)
        self._publish(self._states.snapshot(), server_id)
        await self._close_client(server_id, client)
        logger.info(f"Disconnected from {server_id}")
        return True

    def _register(self, params: ServerConnectParams) -> ManagedClient:
        client = self._create_client(params)
        self._clients.put(params.server_id, client)
        self._handle_client_change(client)
        return client

    def _create_client(self, params: ServerConnectParams) -> ManagedClient:
        strategy = ExponentialBackoffStrategy(
            max_attempts=self._config.max_reconnect_attempts,
            initial_delay=self._config.initial_reconnect_delay,
            max_delay=self._config.max_reconnect_delay,
        )
        return ManagedClient(
            params,
            transport_factory=self._config.transport_factory,
            client_info=self._config.client_info,
            reconnection_strategy=strategy,
            on_state_change=self._handle_client_change,
            on_error=self._handle_client_error,
            on_reconnect_progress=self._handle_reconnect_progress,
        )

    # --------------------------------------------------------------------- #
    # Reload and retry
    # --------------------------------------------------------------------- #

    async def reload_config(self, options: Optional[ParseOptions] = None) -> ReloadResult:
        """
        Re-parse the last loaded config file and apply the difference.

        Removed servers are disconnected, servers with changed metadata are
        reconnected, new servers are connected and the rest are left alone.

        Args:
            options: Parse options (defaults to those used for the original load)

        Raises:
            ManagerError: If no config file was loaded before
            ConfigError: If the file cannot be loaded
        """
        if self._config_path is None:
            raise ManagerError("No configuration loaded; call connect_from_file() first")

        if options is not None:
            self._parse_options = options
        mcp_file = McpFile.from_path(self._config_path, self._parse_options)
        declared = mcp_file.get_connect_params()
        current = self._clients.snapshot()

        result = ReloadResult()
        for server_id, client in current.items():
            if server_id not in declared:
                result.removed.append(server_id)
            elif client.params.metadata != declared[server_id].metadata:
                result.changed.append(server_id)
            else:
                result.unchanged.append(server_id)
        result.added = [server_id for server_id in declared if server_id not in current]

        logger.info(
            f"Reloading {self._config_path}: {len(result.added)} added, "
            f"{len(result.removed)} removed, {len(result.changed)} changed"
        )

        if result.removed:
            await asyncio.gather(*(self.disconnect_server(server_id) for server_id in result.removed))

        to_connect = {server_id: declared[server_id] for server_id in result.changed + result.added}
        result.states = await self.connect_to_servers(to_connect)
        return result

    async def retry_failed_servers(self) -> dict[str, ServerState]:
        """
        Retry every FAILED server now and wait for the attempts to finish.

        Returns:
            Resulting state of each server retried
        """
        self._schedule_retries()
        pending = dict(self._retry_tasks)
        if pending:
            await asyncio.gather(*pending.values(), return_exceptions=True)

        outcome: dict[str, ServerState] = {}
        for server_id in pending:
            state = self._states.get(server_id)
            if state is not None:
                outcome[server_id] = state
        return outcome

    def _schedule_retries(self) -> list[str]:
        scheduled: list[str] = []
        for server_id, client in self._clients.snapshot().items():
            if client.state != ConnectionState.FAILED:
                continue
            task = self._retry_tasks.get(server_id)
            if task is not None and not task.done():
                continue
            self._retry_tasks[server_id] = asyncio.create_task(self._retry_server(server_id, client))
            scheduled.append(server_id)
        return scheduled

    async def _retry_server(self, server_id: str, client: ManagedClient) -> None:
        logger.info(f"Retrying failed server {server_id}")
        try:
            await client.connect()
            logger.info(f"Reconnected failed server {server_id}")
        except ClientError as err:
            logger.warning(f"Retry of {server_id} failed: {err}")
            if self._clients.get(server_id) is client:
                self._report_error(server_id, err)
        finally:
            task = self._retry_tasks.get(server_id)
            if task is asyncio.current_task():
                del self._retry_tasks[server_id]

    def _cancel_retry(self, server_id: str) -> None:
        task = self._retry_tasks.pop(server_id, None)
        if task is not None and not task.done():
            task.cancel()

    async def _sweep_loop(self) -> None:
        interval = self._config.failed_retry_interval
        while True:
            await asyncio.sleep(interval)
            try:
                scheduled = self._schedule_retries()
                if scheduled:
                    logger.info(f"Failed-server sweep retrying: {', '.join(scheduled)}")
            except Exception as err:
                logger.opt(exception=err).error(f"Error in failed-server sweep: {err}")

    # --------------------------------------------------------------------- #
    # Queries
    # --------------------------------------------------------------------- #

    def get_state(self) -> Mapping[str, ServerState]:
        """Read-only snapshot of every server's state."""
        return self._states.snapshot()

    def get_server_state(self, server_id: str) -> Optional[ServerState]:
        return self._states.get(server_id)

    def get_client(self, server_id: str) -> Optional[ManagedClient]:
        return self._clients.get(server_id)

    def get_server_ids(self) -> list[str]:
        return self._clients.ids()

    @property
    def clients(self) -> Mapping[str, ManagedClient]:
        """Read-only mapping of server id to ManagedClient."""
        return self._clients.snapshot()

    # --------------------------------------------------------------------- #
    # Serialization
    # --------------------------------------------------------------------- #

    def to_snapshot(self) -> ManagerSnapshot:
        servers = {server_id: state.to_serializable() for server_id, state in self._states.snapshot().items()}
        return ManagerSnapshot(servers=servers, config_path=self._config_path)

    def to_json(self) -> str:
        """Serialize aggregate state (camelCase JSON)."""
        return self.to_snapshot().to_json()

    @classmethod
    async def from_json(
        cls,
        data: Union[str, bytes, Mapping[str, Any]],
        config: Optional[ManagerConfig] = None,
        options: Optional[ParseOptions] = None,
        *,
        event_bus: Optional[EventBus] = None,
    ) -> "ClientManager":
        """
        Restore a manager from a snapshot produced by to_json().

        The snapshot's config file is parsed again. A server is connected when
        it is absent from the snapshot, when it is session based (sse, stdio)
        and was connected, or when it is stateless (http) and
        `connect_stateless_on_restore` is set; an http server never resumes
        its previous session. Other servers are registered disconnected.

        Raises:
            ManagerError: If the snapshot is malformed or has no config path
            ConfigError: If the config file cannot be loaded
        """
        try:
            if isinstance(data, (str, bytes)):
                snapshot = ManagerSnapshot.model_validate_json(data)
            else:
                snapshot = ManagerSnapshot.model_validate(data)
        except ValidationError as e:
            raise ManagerError(f"Invalid manager snapshot: {e}") from e

        if not snapshot.config_path:
            raise ManagerError("Snapshot has no configPath; cannot restore")

        mcp_file = McpFile.from_path(snapshot.config_path, options)

        manager = cls(config, event_bus)
        manager._config_path = mcp_file.path
        manager._parse_options = options
        manager.start()

        try:
            to_connect: dict[str, ServerConnectParams] = {}
            for server_id, params in mcp_file.get_connect_params().items():
                previous = snapshot.servers.get(server_id)
                if previous is None:
                    to_connect[server_id] = params
                elif params.is_session_based:
                    if previous.was_connected:
                        to_connect[server_id] = params
                    else:
                        manager._register(params)
                elif manager._config.connect_stateless_on_restore:
                    to_connect[server_id] = params
                else:
                    logger.info(f"Not restoring stateless server {server_id}")
                    manager._register(params)

            logger.info(f"Restoring {len(to_connect)} MCP server(s) from snapshot")
            await manager.connect_to_servers(to_connect)
        except BaseException:
            await manager.close()
            raise
        return manager

    # --------------------------------------------------------------------- #
    # Client callbacks and publishing
    # --------------------------------------------------------------------- #

    def _handle_client_change(self, client: ManagedClient) -> None:
        if self._clients.get(client.server_id) is not client:
            return
        states = self._states.put(client.server_id, client.to_server_state())
        self._publish(states, client.server_id)

    def _handle_client_error(self, client: ManagedClient, error: Exception) -> None:
        if self._clients.get(client.server_id) is not client:
            return
        self._report_error(client.server_id, error)

    def _handle_reconnect_progress(
        self,
        client: ManagedClient,
        attempts: int,
        max_attempts: int,
        next_retry_delay: float,
    ) -> None:
        if self._clients.get(client.server_id) is not client:
            return
        self.event_bus.publish(
            ReconnectProgress(
                server_id=client.server_id,
                attempts=attempts,
                max_attempts=max_attempts,
                next_retry_delay=next_retry_delay,
            )
        )

    def _publish(self, states: Mapping[str, ServerState], server_id: Optional[str] = None) -> None:
        self.event_bus.publish(ServerStatesChanged(states=states, server_id=server_id))

    def _report_error(self, server_id: str, error: Exception) -> None:
        self.event_bus.publish(ServerErrorOccurred(server_id=server_id, error=error))

    def _dispatch_change(self, event: ServerStatesChanged) -> None:
        hook = self._config.hooks.on_change
        if hook is not None:
            hook(event.states)

    def _dispatch_error(self, event: ServerErrorOccurred) -> None:
        hook = self._config.hooks.on_error
        if hook is not None:
            hook(event.server_id, event.error)
