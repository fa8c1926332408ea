"""Shared fixtures and fakes for mcpfile tests."""

import asyncio
import json
import uuid
from pathlib import Path
from typing import Any, Callable, Optional

import pytest
from mcp import types

from mcpfile.config import McpFile, ParseOptions, ServerConnectParams


class FakeTransport:
    """In-memory McpTransport for deterministic tests.

    `drop()` simulates the server going away and `emit_error()` simulates a
    transport-level error, both delivered to subscribers like the SDK
    transport would.
    """

    def __init__(
        self,
        params: ServerConnectParams,
        client_info: Optional[types.Implementation] = None,
        *,
        fail_connect: bool = False,
        tools: Optional[list[str]] = None,
        prompts: Optional[list[str]] = None,
        resources: Optional[list[str]] = None,
    ):
        self.params = params
        self.client_info = client_info
        self.fail_connect = fail_connect
        self.connect_delay = 0.0
        self.tools = tools if tools is not None else ["a", "b"]
        self.prompts = prompts if prompts is not None else ["greet", "summarize"]
        self.resources = resources if resources is not None else ["file:///docs/readme.md", "file:///docs/secret.md"]
        self.request_error: Optional[Exception] = None

        self.connect_calls = 0
        self.close_calls = 0
        self.calls: list[tuple[str, Any]] = []
        self.connected = False
        self._listeners: list[tuple[Callable[[], None], Callable[[Exception], None]]] = []
        self._session_id: Optional[str] = None

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def server_capabilities(self) -> Optional[dict[str, Any]]:
        return {"tools": {"listChanged": False}} if self.connected else None

    @property
    def server_version(self) -> Optional[dict[str, Any]]:
        return {"name": f"{self.params.server_id}-server", "version": "1.0.0"} if self.connected else None

    @property
    def instructions(self) -> Optional[str]:
        return "Use responsibly" if self.connected else None

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, on_close, on_error):
        entry = (on_close, on_error)
        self._listeners.append(entry)

        def unsubscribe():
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    async def connect(self) -> None:
        self.connect_calls += 1
        await asyncio.sleep(self.connect_delay)
        if self.fail_connect:
            raise ConnectionError(f"{self.params.server_id} is unreachable")
        self.connected = True
        self._session_id = uuid.uuid4().hex if self.params.is_session_based else None

    async def close(self) -> None:
        self.close_calls += 1
        self.connected = False

    def drop(self) -> None:
        """Simulate an unexpected close of an established session."""
        self.connected = False
        for on_close, _ in list(self._listeners):
            on_close()

    def emit_error(self, error: Exception) -> None:
        for _, on_error in list(self._listeners):
            on_error(error)

    def _check(self) -> None:
        if self.request_error is not None:
            raise self.request_error

    async def list_tools(self) -> list[types.Tool]:
        self._check()
        return [types.Tool(name=name, inputSchema={"type": "object"}) for name in self.tools]

    async def call_tool(self, name: str, arguments: Optional[dict[str, Any]] = None) -> types.CallToolResult:
        self._check()
        self.calls.append(("call_tool", name))
        return types.CallToolResult(content=[types.TextContent(type="text", text=f"called {name}")])

    async def list_prompts(self) -> list[types.Prompt]:
        self._check()
        return [types.Prompt(name=name) for name in self.prompts]

    async def get_prompt(self, name: str, arguments: Optional[dict[str, str]] = None) -> types.GetPromptResult:
        self._check()
        self.calls.append(("get_prompt", name))
        return types.GetPromptResult(messages=[])

    async def list_resources(self) -> list[types.Resource]:
        self._check()
        return [types.Resource(uri=uri, name=uri.rsplit("/", 1)[-1]) for uri in self.resources]

    async def read_resource(self, uri: str) -> types.ReadResourceResult:
        self._check()
        self.calls.append(("read_resource", uri))
        return types.ReadResourceResult(contents=[])


class FakeTransportFactory:
    """TransportFactory that builds FakeTransports and remembers them."""

    def __init__(self, failing: tuple[str, ...] = ()):
        self.failing = set(failing)
        self.created: dict[str, list[FakeTransport]] = {}

    def __call__(self, params: ServerConnectParams, client_info: Optional[types.Implementation] = None) -> FakeTransport:
        transport = FakeTransport(params, client_info, fail_connect=params.server_id in self.failing)
        self.created.setdefault(params.server_id, []).append(transport)
        return transport

    def last(self, server_id: str) -> FakeTransport:
        return self.created[server_id][-1]


def make_params(server_id: str = "srv", **entry: Any) -> ServerConnectParams:
    """Build ServerConnectParams for one server entry (stdio by default)."""
    if "url" not in entry and "command" not in entry:
        entry["command"] = "python"
    parsed = McpFile.from_json({"mcpServers": {server_id: entry}}, ParseOptions(include_disabled=True, strict=True))
    return parsed.get_connect_params()[server_id]


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until predicate() is true, failing the test on timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


@pytest.fixture
def transport_factory() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def write_config(tmp_path: Path) -> Callable[[dict[str, Any]], Path]:
    """Write a config document to <tmp_path>/.mcp.json and return the path."""

    def _write(servers: dict[str, Any]) -> Path:
        path = tmp_path / ".mcp.json"
        path.write_text(json.dumps({"mcpServers": servers}), encoding="utf-8")
        return path

    return _write
