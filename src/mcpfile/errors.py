"""Exception hierarchy for mcpfile.

Config errors are raised while loading and resolving a `.mcp.json` file.
Client errors are raised by a single managed connection. Manager errors are
raised by `ClientManager` operations that cannot run in the current state.
"""

from typing import Optional, Sequence


class McpFileError(Exception):
    """Base class for every error raised by mcpfile."""


# --------------------------------------------------------------------- #
# Configuration
# --------------------------------------------------------------------- #


class ConfigError(McpFileError):
    """Base class for errors raised while parsing a config file."""


class ConfigFileNotFoundError(ConfigError):
    """The config file does not exist."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"MCP configuration file not found: {path}")


class ConfigParseError(ConfigError):
    """The config file could not be read or is not valid JSON."""

    def __init__(self, path: str, message: str):
        self.path = path
        self.message = message
        super().__init__(f"Failed to parse MCP configuration {path}: {message}")


class ConfigValidationError(ConfigError):
    """A server entry (or the whole file) does not match the config schema."""

    ROOT = "<root>"

    def __init__(self, server_id: str, errors: Sequence[str], message: str = "Server configuration validation failed"):
        self.server_id = server_id
        self.errors = list(errors)
        self.message = message
        details = "; ".join(self.errors)
        super().__init__(f"{message} for '{server_id}': {details}" if details else f"{message} for '{server_id}'")


class InterpolationError(ConfigError):
    """A `${...}` placeholder could not be resolved."""

    def __init__(self, variable: str, message: str, server_id: Optional[str] = None):
        self.variable = variable
        self.message = message
        self.server_id = server_id
        prefix = f"[{server_id}] " if server_id else ""
        super().__init__(f"{prefix}{message}")

    def for_server(self, server_id: str) -> "InterpolationError":
        """Return a copy of this error tagged with the server it belongs to."""
        return InterpolationError(self.variable, self.message, server_id=server_id)


# --------------------------------------------------------------------- #
# Client
# --------------------------------------------------------------------- #


class ClientError(McpFileError):
    """Base class for errors raised by a managed MCP client."""

    def __init__(self, server_id: str, message: str):
        self.server_id = server_id
        self.message = message
        super().__init__(f"[{server_id}] {message}")


class ServerConnectionError(ClientError):
    """The transport handshake or a request to the server failed."""

    def __init__(self, server_id: str, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(server_id, message)


class NotConnectedError(ClientError):
    """A capability operation was issued while the client is not connected."""

    def __init__(self, server_id: str, operation: str, state: str):
        self.operation = operation
        self.state = state
        super().__init__(server_id, f"Cannot {operation}: client is {state}, not connected")


class FilteredError(ClientError):
    """A tool, prompt or resource is not in the server's allowed set."""

    def __init__(self, server_id: str, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(server_id, f"{kind} '{name}' is not allowed by configuration")


# --------------------------------------------------------------------- #
# Manager
# --------------------------------------------------------------------- #


class ManagerError(McpFileError):
    """A ClientManager operation cannot run in the manager's current state."""
