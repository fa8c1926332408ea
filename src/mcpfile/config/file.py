"""MCP configuration file parser.

Turns a `.mcp.json` document into transport-ready connection parameters,
one `ServerConnectParams` per declared server.

Example:
    ```python
    file = McpFile.from_path("./.mcp.json")
    for server_id, params in file.get_connect_params().items():
        print(server_id, params.transport_type)
    ```
"""

import copy
import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Literal, Optional, Union

from dotenv import dotenv_values

from mcpfile.config.interpolation import InterpolationContext, interpolate_fields
from mcpfile.config.schema import (
    AllowedConfig,
    HttpServerConfig,
    ServerConfig,
    SseServerConfig,
    StdioServerConfig,
    validate_file_config,
    validate_server_config,
)
from mcpfile.domain.types import TransportType, is_session_based
from mcpfile.errors import (
    ConfigError,
    ConfigFileNotFoundError,
    ConfigParseError,
    ConfigValidationError,
    InterpolationError,
)
from mcpfile.logger import get_logger

logger = get_logger("config.file")

__all__ = [
    "METADATA_VERSION",
    "ParseOptions",
    "HttpTransportConfig",
    "SseTransportConfig",
    "StdioTransportConfig",
    "TransportConfig",
    "ServerMetadata",
    "ServerConnectParams",
    "McpFile",
]

METADATA_VERSION = "0.0.1"


@dataclass(frozen=True)
class ParseOptions:
    """Options controlling how a config document is resolved."""

    include_disabled: bool = False
    """Keep disabled servers (flagged in metadata) instead of dropping them."""
    workspace_folder: Optional[str] = None
    """Value for ${workspaceFolder}; `from_path` defaults it to the file's directory."""
    env: Optional[Mapping[str, str]] = None
    """Environment for ${env:NAME}; the process environment when None."""
    strict: bool = False
    """Raise the first per-server error instead of skipping that server."""


@dataclass(frozen=True)
class HttpTransportConfig:
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    transport_type: Literal["http"] = field(default="http", init=False)


@dataclass(frozen=True)
class SseTransportConfig:
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    transport_type: Literal["sse"] = field(default="sse", init=False)


@dataclass(frozen=True)
class StdioTransportConfig:
    command: str
    args: tuple[str, ...] = ()
    env: dict[str, str] = field(default_factory=dict)
    cwd: Optional[str] = None
    transport_type: Literal["stdio"] = field(default="stdio", init=False)


TransportConfig = Union[HttpTransportConfig, SseTransportConfig, StdioTransportConfig]


@dataclass(frozen=True)
class ServerMetadata:
    """Config-derived data kept next to the transport config.

    Two metadata values compare equal exactly when the declared server did not
    change, which is what config reload relies on.
    """

    server_name: str
    transport_type: TransportType
    raw_config: dict[str, Any]
    disabled: bool = False
    allowed: Optional[AllowedConfig] = None
    version: str = METADATA_VERSION


@dataclass(frozen=True)
class ServerConnectParams:
    """Immutable, fully resolved description of one server."""

    transport_config: TransportConfig
    metadata: ServerMetadata

    @property
    def server_id(self) -> str:
        return self.metadata.server_name

    @property
    def transport_type(self) -> TransportType:
        return self.metadata.transport_type

    @property
    def is_session_based(self) -> bool:
        return is_session_based(self.metadata.transport_type)

    @property
    def disabled(self) -> bool:
        return self.metadata.disabled

    @property
    def allowed(self) -> Optional[AllowedConfig]:
        return self.metadata.allowed


def _resolve_path(path: str, workspace_folder: Optional[str]) -> str:
    if os.path.isabs(path) or not workspace_folder:
        return path
    return os.path.normpath(os.path.join(workspace_folder, path))


def _load_env_file(server_id: str, env_file: str, workspace_folder: Optional[str]) -> dict[str, str]:
    path = _resolve_path(env_file, workspace_folder)
    if not os.path.isfile(path):
        raise ConfigValidationError(server_id, [f"envFile: file not found: {path}"])
    values = dotenv_values(path)
    logger.debug(f"Loaded {len(values)} variable(s) from {path} for {server_id}")
    return {key: value for key, value in values.items() if value is not None}


def _build_transport(
    server_id: str,
    config: ServerConfig,
    workspace_folder: Optional[str],
) -> TransportConfig:
    if isinstance(config, HttpServerConfig):
        return HttpTransportConfig(url=config.url, headers=dict(config.headers or {}))

    if isinstance(config, SseServerConfig):
        return SseTransportConfig(url=config.url, headers=dict(config.headers or {}))

    if isinstance(config, StdioServerConfig):
        env = dict(os.environ)
        if config.env_file:
            env.update(_load_env_file(server_id, config.env_file, workspace_folder))
        if config.env:
            env.update(config.env)
        cwd = _resolve_path(config.cwd, workspace_folder) if config.cwd else None
        return StdioTransportConfig(
            command=config.command,
            args=tuple(config.args),
            env=env,
            cwd=cwd,
        )

    raise ConfigValidationError(server_id, [f"type: unsupported transport {config!r}"])


def _resolve_server(
    server_id: str,
    raw: Any,
    options: ParseOptions,
    context: InterpolationContext,
) -> Optional[ServerConnectParams]:
    config = validate_server_config(server_id, raw)

    if config.disabled and not options.include_disabled:
        logger.debug(f"Skipping disabled server {server_id}")
        return None

    try:
        resolved = interpolate_fields(config.model_dump(), context)
    except InterpolationError as exc:
        raise exc.for_server(server_id) from exc

    # Re-validate so interpolated URLs are checked too
    interpolated = validate_server_config(server_id, resolved)
    transport_config = _build_transport(server_id, interpolated, options.workspace_folder)

    metadata = ServerMetadata(
        server_name=server_id,
        transport_type=interpolated.type,
        raw_config=copy.deepcopy(dict(raw)),
        disabled=config.disabled,
        allowed=config.allowed,
    )
    return ServerConnectParams(transport_config=transport_config, metadata=metadata)


class McpFile:
    """A parsed `.mcp.json` configuration."""

    def __init__(
        self,
        params: Mapping[str, ServerConnectParams],
        errors: Optional[Mapping[str, ConfigError]] = None,
        path: Optional[str] = None,
    ):
        self._params = MappingProxyType(dict(params))
        self._errors = MappingProxyType(dict(errors or {}))
        self.path = path

    @classmethod
    def from_path(cls, path: Union[str, Path], options: Optional[ParseOptions] = None) -> "McpFile":
        """
        Load and parse a config file.

        Args:
            path: Path to the JSON config file
            options: Parse options; `workspace_folder` defaults to the file's directory

        Raises:
            ConfigFileNotFoundError: If the file does not exist
            ConfigParseError: If the file cannot be read or is not valid JSON
            ConfigValidationError: If the top-level structure is invalid
        """
        options = options or ParseOptions()
        absolute_path = os.path.abspath(os.fspath(path))

        if not os.path.exists(absolute_path):
            logger.error(f"MCP configuration file not found: {absolute_path}")
            raise ConfigFileNotFoundError(absolute_path)

        logger.info(f"Loading MCP configuration from: {absolute_path}")

        try:
            with open(absolute_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON in configuration file {absolute_path}: {e}")
            raise ConfigParseError(absolute_path, str(e)) from e
        except OSError as e:
            logger.error(f"Failed to read configuration file {absolute_path}: {e}")
            raise ConfigParseError(absolute_path, f"Failed to read file: {e}") from e

        if options.workspace_folder is None:
            options = ParseOptions(
                include_disabled=options.include_disabled,
                workspace_folder=os.path.dirname(absolute_path),
                env=options.env,
                strict=options.strict,
            )

        return cls.from_json(data, options, path=absolute_path)

    @classmethod
    def from_json(
        cls,
        data: Any,
        options: Optional[ParseOptions] = None,
        *,
        path: Optional[str] = None,
    ) -> "McpFile":
        """
        Parse an already-decoded config document.

        Invalid servers are logged and reported through `errors` unless
        `options.strict` is set, in which case the first error is raised.

        Raises:
            ConfigValidationError: If `mcpServers` is missing or not an object
        """
        options = options or ParseOptions()
        file_config = validate_file_config(data)

        context = InterpolationContext(
            env=options.env if options.env is not None else dict(os.environ),
            workspace_folder=options.workspace_folder,
        )

        params: dict[str, ServerConnectParams] = {}
        errors: dict[str, ConfigError] = {}

        for server_id, raw in file_config.mcp_servers.items():
            try:
                resolved = _resolve_server(server_id, raw, options, context)
            except (ConfigValidationError, InterpolationError) as exc:
                if options.strict:
                    raise
                logger.warning(f"Skipping server {server_id}: {exc}")
                errors[server_id] = exc
                continue

            if resolved is not None:
                params[server_id] = resolved

        logger.info(f"Loaded {len(params)} MCP server(s)")
        for server_id, server in params.items():
            logger.debug(f"  - {server_id}: {server.transport_type}")

        return cls(params, errors=errors, path=path)

    def get_connect_params(self) -> Mapping[str, ServerConnectParams]:
        """Connection parameters for every server, keyed by server id."""
        return self._params

    def get_server(self, server_id: str) -> Optional[ServerConnectParams]:
        return self._params.get(server_id)

    def get_server_ids(self) -> list[str]:
        return list(self._params.keys())

    @property
    def errors(self) -> Mapping[str, ConfigError]:
        """Per-server errors that excluded a server from the result."""
        return self._errors

    def __len__(self) -> int:
        return len(self._params)

    def __contains__(self, server_id: object) -> bool:
        return server_id in self._params
