"""Typer-based operator CLI: inspect a `.mcp.json` file and connect its servers."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from mcp import types
from rich.console import Console
from rich.table import Table

from mcpfile import __version__
from mcpfile.application import ClientManager, ManagerConfig
from mcpfile.config import (
    HttpTransportConfig,
    McpFile,
    ParseOptions,
    SseTransportConfig,
    StdioTransportConfig,
    TransportConfig,
)
from mcpfile.domain.types import ConnectionState, ServerState
from mcpfile.errors import McpFileError
from mcpfile.logger import get_logger, setup_logger

load_dotenv()

logger = get_logger("cli")
console = Console()

cli = typer.Typer(
    name="mcpfile",
    help="Inspect MCP configuration files and manage connections to their servers",
    epilog="""
    Examples:
    $ mcpfile servers .mcp.json --include-disabled
    $ mcpfile connect .mcp.json --state-file .mcp-state.json
    """,
    add_completion=False,
)

_STATE_STYLES = {
    ConnectionState.CONNECTED: "green",
    ConnectionState.CONNECTING: "yellow",
    ConnectionState.RECONNECTING: "yellow",
    ConnectionState.DISCONNECTED: "dim",
    ConnectionState.FAILED: "red",
}


def _describe_target(config: TransportConfig) -> str:
    if isinstance(config, (HttpTransportConfig, SseTransportConfig)):
        return config.url
    if isinstance(config, StdioTransportConfig):
        return " ".join([config.command, *config.args])
    return repr(config)


def _setup_logging(debug: bool) -> None:
    setup_logger(log_level="DEBUG" if debug else "WARNING")


def _render_states(states: dict[str, ServerState]) -> Table:
    table = Table(title="MCP servers")
    table.add_column("Server", style="bold")
    table.add_column("Transport")
    table.add_column("State")
    table.add_column("Session")
    table.add_column("Error", overflow="fold")

    for server_id, state in sorted(states.items()):
        style = _STATE_STYLES.get(state.connection_state, "")
        table.add_row(
            server_id,
            state.metadata.transport_type,
            f"[{style}]{state.connection_state.value}[/{style}]" if style else state.connection_state.value,
            state.session_id or "-",
            state.error.message if state.error else "",
        )
    return table


@cli.command()
def servers(
    config_file: Path = typer.Argument(Path(".mcp.json"), help="Path to the MCP configuration file"),
    include_disabled: bool = typer.Option(False, "--include-disabled", help="List disabled servers too"),
    workspace: Optional[Path] = typer.Option(None, "--workspace", help="Value for ${workspaceFolder}"),
    strict: bool = typer.Option(False, "--strict", help="Fail on the first invalid server"),
    debug: bool = typer.Option(os.getenv("DEBUG", "false").lower() == "true", "--debug", help="Enable debug logging"),
) -> None:
    """Parse a configuration file and list the servers it declares."""
    _setup_logging(debug)

    options = ParseOptions(
        include_disabled=include_disabled,
        workspace_folder=str(workspace) if workspace else None,
        strict=strict,
    )
    try:
        mcp_file = McpFile.from_path(config_file, options)
    except McpFileError as exc:
        console.print(f"[red]❌ {exc}[/red]")
        raise typer.Exit(code=1)

    table = Table(title=f"Servers in {mcp_file.path}")
    table.add_column("Server", style="bold")
    table.add_column("Transport")
    table.add_column("Target", overflow="fold")
    table.add_column("Disabled")
    table.add_column("Allowed")

    for server_id, params in mcp_file.get_connect_params().items():
        allowed = params.allowed.as_dict() if params.allowed else {}
        table.add_row(
            server_id,
            params.transport_type,
            _describe_target(params.transport_config),
            "yes" if params.disabled else "",
            ", ".join(f"{kind}: {len(names)}" for kind, names in allowed.items()),
        )
    console.print(table)

    for server_id, error in mcp_file.errors.items():
        console.print(f"[yellow]⚠ {server_id}: {error}[/yellow]")

    if mcp_file.errors:
        raise typer.Exit(code=1)


@cli.command()
def connect(
    config_file: Path = typer.Argument(Path(".mcp.json"), help="Path to the MCP configuration file"),
    state_file: Optional[Path] = typer.Option(
        None,
        "--state-file",
        help="Write the manager snapshot here after connecting",
    ),
    restore: bool = typer.Option(
        False,
        "--restore",
        help="Restore from --state-file instead of connecting every server",
    ),
    list_tools: bool = typer.Option(False, "--tools", help="List the tools of every connected server"),
    debug: bool = typer.Option(os.getenv("DEBUG", "false").lower() == "true", "--debug", help="Enable debug logging"),
) -> None:
    """Connect to every server in a configuration file and report their states."""
    _setup_logging(debug)

    if restore and (state_file is None or not state_file.exists()):
        console.print("[red]❌ --restore needs an existing --state-file[/red]")
        raise typer.Exit(code=1)

    config = ManagerConfig.from_env(
        client_info=types.Implementation(name="mcpfile", version=__version__),
        failed_retry_interval=0,
    )

    async def runner() -> int:
        if restore and state_file is not None:
            manager = await ClientManager.from_json(state_file.read_text(encoding="utf-8"), config)
        else:
            manager = await ClientManager.create(config)
            await manager.connect_from_file(config_file)

        try:
            states = dict(manager.get_state())
            console.print(_render_states(states))

            if list_tools:
                for server_id in manager.get_server_ids():
                    client = manager.get_client(server_id)
                    if client is None or not client.is_connected:
                        continue
                    tools = await client.list_tools()
                    console.print(f"[bold]{server_id}[/bold]: {', '.join(tool.name for tool in tools) or '(none)'}")

            if state_file is not None:
                state_file.write_text(manager.to_json(), encoding="utf-8")
                console.print(f"Saved state to {state_file}")

            failed = [s for s in states.values() if s.connection_state == ConnectionState.FAILED]
            return 1 if failed else 0
        finally:
            await manager.close()

    try:
        code = asyncio.run(runner())
    except McpFileError as exc:
        console.print(f"[red]❌ {exc}[/red]")
        logger.debug(f"CLI error: {exc!r}")
        raise typer.Exit(code=1)

    raise typer.Exit(code=code)


@cli.command()
def version() -> None:
    """Print the mcpfile version."""
    typer.echo(__version__)


if __name__ == "__main__":
    cli()
