"""Tests for SdkTransport, mostly against a real stdio MCP server."""

import asyncio
import sys
import textwrap
import time

import pytest

from mcpfile.domain.types import ConnectionState
from mcpfile.errors import NotConnectedError, ServerConnectionError
from mcpfile.infrastructure.mcp import ManagedClient, SdkTransport
from mcpfile.infrastructure.mcp.connection import HealthChecker
from mcpfile.infrastructure.mcp.transport import _unwrap_group
from tests.conftest import make_params

SERVER_SOURCE = textwrap.dedent(
    '''
    from mcp.server.fastmcp import FastMCP

    mcp = FastMCP("echo", instructions="Echo server for tests")


    @mcp.tool()
    def echo(text: str) -> str:
        """Return the input text."""
        return text


    @mcp.prompt()
    def greet(name: str) -> str:
        return f"Hello {name}"


    @mcp.resource("docs://readme")
    def readme() -> str:
        return "read me"


    if __name__ == "__main__":
        mcp.run()
    '''
)


@pytest.fixture
def server_script(tmp_path):
    path = tmp_path / "echo_server.py"
    path.write_text(SERVER_SOURCE, encoding="utf-8")
    return path


class TestSdkTransport:
    """Tests for SdkTransport over stdio."""

    @pytest.mark.asyncio
    async def test_session_roundtrip(self, server_script):
        params = make_params("echo", command=sys.executable, args=[str(server_script)])
        transport = SdkTransport(params, health_checker=HealthChecker(check_interval=0.2))
        closed = []
        transport.subscribe(lambda: closed.append(True), lambda error: None)

        await transport.connect()
        try:
            assert transport.session_id
            assert transport.server_version["name"] == "echo"
            assert transport.instructions == "Echo server for tests"
            assert "tools" in transport.server_capabilities

            tools = await transport.list_tools()
            assert [tool.name for tool in tools] == ["echo"]

            result = await transport.call_tool("echo", {"text": "hi"})
            assert result.content[0].text == "hi"

            prompts = await transport.list_prompts()
            assert [prompt.name for prompt in prompts] == ["greet"]

            resources = await transport.list_resources()
            assert [str(resource.uri) for resource in resources] == ["docs://readme"]
            contents = await transport.read_resource("docs://readme")
            assert contents.contents[0].text == "read me"
        finally:
            await transport.close()
            await transport.close()

        assert closed == []
        with pytest.raises(NotConnectedError):
            await transport.list_tools()

    @pytest.mark.asyncio
    async def test_connect_failure_raises(self, tmp_path):
        params = make_params("missing", command=str(tmp_path / "does-not-exist"))
        transport = SdkTransport(params, timeout=5.0)

        with pytest.raises(Exception):
            await transport.connect()

        await transport.close()
        assert not transport.is_open

    @pytest.mark.asyncio
    async def test_handshake_timeout(self):
        params = make_params("silent", command=sys.executable, args=["-c", "import time; time.sleep(30)"])
        transport = SdkTransport(params, timeout=0.5)

        with pytest.raises(TimeoutError):
            await transport.connect()

        await transport.close()

    @pytest.mark.asyncio
    async def test_close_during_handshake_aborts_connect(self):
        params = make_params("silent", command=sys.executable, args=["-c", "import time; time.sleep(30)"])
        transport = SdkTransport(params, timeout=10.0)

        connecting = asyncio.create_task(transport.connect())
        await asyncio.sleep(0.5)
        started = time.monotonic()
        await transport.close()

        with pytest.raises(ConnectionError):
            await connecting
        assert time.monotonic() - started < 3.0
        assert not transport.is_open

    @pytest.mark.asyncio
    async def test_disconnect_during_handshake_leaves_client_disconnected(self):
        params = make_params("silent", command=sys.executable, args=["-c", "import time; time.sleep(30)"])
        client = ManagedClient(params, transport=SdkTransport(params, timeout=10.0))

        connecting = asyncio.create_task(client.connect())
        await asyncio.sleep(0.5)
        await client.disconnect()

        with pytest.raises(ServerConnectionError) as exc_info:
            await connecting
        assert isinstance(exc_info.value.cause, ConnectionError)
        assert client.state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_unreachable_http_server_reports_leaf_error(self):
        params = make_params("down", url="http://127.0.0.1:1/mcp")
        transport = SdkTransport(params, timeout=5.0)

        with pytest.raises(Exception) as exc_info:
            await transport.connect()

        assert not isinstance(exc_info.value, BaseExceptionGroup)
        assert "TaskGroup" not in str(exc_info.value)
        await transport.close()


class TestUnwrapGroup:
    """Tests for flattening single-member exception groups."""

    def test_nested_single_leaf(self):
        leaf = OSError("connection refused")
        group = ExceptionGroup("outer", [ExceptionGroup("inner", [leaf])])

        assert _unwrap_group(group) is leaf

    def test_multiple_leaves_kept(self):
        group = ExceptionGroup("many", [OSError("a"), ValueError("b")])

        assert _unwrap_group(group) is group

    def test_plain_exception_unchanged(self):
        error = RuntimeError("x")

        assert _unwrap_group(error) is error
