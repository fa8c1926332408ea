"""Loading, validating and resolving `.mcp.json` configuration files."""

from mcpfile.config.file import (
    HttpTransportConfig,
    McpFile,
    ParseOptions,
    ServerConnectParams,
    ServerMetadata,
    SseTransportConfig,
    StdioTransportConfig,
    TransportConfig,
)
from mcpfile.config.interpolation import InterpolationContext, interpolate, interpolate_string
from mcpfile.config.schema import (
    AllowedConfig,
    CapabilityKind,
    HttpServerConfig,
    McpFileConfig,
    ServerConfig,
    SseServerConfig,
    StdioServerConfig,
)

__all__ = [
    "McpFile",
    "ParseOptions",
    "ServerConnectParams",
    "ServerMetadata",
    "TransportConfig",
    "HttpTransportConfig",
    "SseTransportConfig",
    "StdioTransportConfig",
    "InterpolationContext",
    "interpolate",
    "interpolate_string",
    "AllowedConfig",
    "CapabilityKind",
    "HttpServerConfig",
    "SseServerConfig",
    "StdioServerConfig",
    "ServerConfig",
    "McpFileConfig",
]
