"""Pydantic schema for `.mcp.json` files.

A server entry is a tagged variant keyed by `type`. When `type` is missing
it is inferred once, here: `url` means `http`, `command` means `stdio`.
Everything downstream matches on the tag instead of probing fields.
"""

import re
from collections.abc import Mapping
from typing import Annotated, Any, Literal, Optional, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from mcpfile.errors import ConfigValidationError

__all__ = [
    "SERVER_ID_PATTERN",
    "CapabilityKind",
    "AllowedConfig",
    "HttpServerConfig",
    "SseServerConfig",
    "StdioServerConfig",
    "ServerConfig",
    "McpFileConfig",
    "infer_server_type",
    "validate_server_config",
    "validate_file_config",
]

SERVER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

CapabilityKind = Literal["tools", "prompts", "resources"]


class AllowedConfig(BaseModel):
    """Allow-lists for tools, prompts and resources.

    A missing list means every item of that kind is allowed. A present list is
    the exact permitted set; matching is by exact name (URI for resources).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    tools: Optional[list[str]] = None
    prompts: Optional[list[str]] = None
    resources: Optional[list[str]] = None

    def for_kind(self, kind: CapabilityKind) -> Optional[list[str]]:
        return getattr(self, kind)

    def as_dict(self) -> dict[str, list[str]]:
        return self.model_dump(exclude_none=True)


class _BaseServerConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    disabled: bool = False
    allowed: Optional[AllowedConfig] = None
    env: Optional[dict[str, str]] = None
    env_file: Optional[str] = Field(default=None, alias="envFile")


class _RemoteServerConfig(_BaseServerConfig):
    url: str = Field(..., min_length=1, description="Server endpoint URL")
    headers: Optional[dict[str, str]] = None

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        # Templated URLs are checked once interpolated
        if "${" in value:
            return value
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("must be an absolute http(s) URL")
        return value


class HttpServerConfig(_RemoteServerConfig):
    """Streamable HTTP server (stateless)."""

    type: Literal["http"] = "http"


class SseServerConfig(_RemoteServerConfig):
    """Server-sent events server (session-based)."""

    type: Literal["sse"]


class StdioServerConfig(_BaseServerConfig):
    """Local server spawned as a subprocess speaking over stdio."""

    type: Literal["stdio"] = "stdio"
    command: str = Field(..., min_length=1, description="Command to execute the MCP server")
    args: list[str] = Field(default_factory=list, description="Arguments for the command")
    cwd: Optional[str] = None


ServerConfig = Annotated[
    Union[HttpServerConfig, SseServerConfig, StdioServerConfig],
    Field(discriminator="type"),
]

_server_config_adapter: TypeAdapter[ServerConfig] = TypeAdapter(ServerConfig)


class McpFileConfig(BaseModel):
    """Top-level structure of a `.mcp.json` file.

    Server entries stay raw here; each one is validated on its own so a bad
    entry never hides its siblings.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    mcp_servers: dict[str, Any] = Field(..., alias="mcpServers")


def infer_server_type(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of a raw server entry with `type` filled in when inferable."""
    config = dict(raw)
    if config.get("type"):
        return config
    if "url" in config:
        config["type"] = "http"
    elif "command" in config:
        config["type"] = "stdio"
    return config


def _format_errors(exc: ValidationError, tag: Any) -> list[str]:
    messages = []
    for error in exc.errors():
        loc = list(error.get("loc", ()))
        if loc and loc[0] == tag:
            loc = loc[1:]
        path = ".".join(str(part) for part in loc)
        messages.append(f"{path}: {error['msg']}" if path else error["msg"])
    return messages


def validate_server_config(server_id: str, raw: Any) -> ServerConfig:
    """
    Validate one server entry and apply defaults.

    Raises:
        ConfigValidationError: With every field-level violation found
    """
    errors: list[str] = []
    if not SERVER_ID_PATTERN.match(server_id):
        errors.append("server id must contain only letters, digits, '-' and '_'")

    if not isinstance(raw, Mapping):
        errors.append("server entry must be an object")
        raise ConfigValidationError(server_id, errors)

    prepared = infer_server_type(raw)
    if not prepared.get("type"):
        errors.append("type: cannot infer transport type; expected 'url' or 'command'")
        raise ConfigValidationError(server_id, errors)

    try:
        config = _server_config_adapter.validate_python(prepared)
    except ValidationError as exc:
        errors.extend(_format_errors(exc, prepared.get("type")))
        raise ConfigValidationError(server_id, errors) from exc

    if errors:
        raise ConfigValidationError(server_id, errors)
    return config


def validate_file_config(data: Any) -> McpFileConfig:
    """
    Validate the top-level structure of a config document.

    Raises:
        ConfigValidationError: If `mcpServers` is missing or not an object
    """
    if not isinstance(data, Mapping):
        raise ConfigValidationError(
            ConfigValidationError.ROOT,
            ["config must be a JSON object"],
            message="Invalid config structure",
        )
    try:
        return McpFileConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigValidationError(
            ConfigValidationError.ROOT,
            ["mcpServers field is required and must be an object"],
            message="Invalid config structure",
        ) from exc
