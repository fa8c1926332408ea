"""mcpfile - declarative MCP server configuration and resilient client connections."""

__version__ = "0.1.0"

from mcpfile.application import ClientManager, ManagerConfig, ManagerHooks, ReloadResult
from mcpfile.config import McpFile, ParseOptions, ServerConnectParams
from mcpfile.domain.events import EventBus, ReconnectProgress, ServerErrorOccurred, ServerStatesChanged
from mcpfile.domain.types import ConnectionState, ManagerSnapshot, ServerState
from mcpfile.errors import (
    ClientError,
    ConfigError,
    ConfigFileNotFoundError,
    ConfigParseError,
    ConfigValidationError,
    FilteredError,
    InterpolationError,
    ManagerError,
    McpFileError,
    NotConnectedError,
    ServerConnectionError,
)
from mcpfile.infrastructure.mcp import ManagedClient, SdkTransport

__all__ = [
    "__version__",
    "ClientManager",
    "ManagerConfig",
    "ManagerHooks",
    "ReloadResult",
    "McpFile",
    "ParseOptions",
    "ServerConnectParams",
    "EventBus",
    "ServerStatesChanged",
    "ServerErrorOccurred",
    "ReconnectProgress",
    "ConnectionState",
    "ServerState",
    "ManagerSnapshot",
    "ManagedClient",
    "SdkTransport",
    "McpFileError",
    "ConfigError",
    "ConfigFileNotFoundError",
    "ConfigParseError",
    "ConfigValidationError",
    "InterpolationError",
    "ClientError",
    "ServerConnectionError",
    "NotConnectedError",
    "FilteredError",
    "ManagerError",
]
