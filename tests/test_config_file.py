"""Tests for .mcp.json parsing."""

import os

import pytest

from mcpfile.config import (
    HttpTransportConfig,
    McpFile,
    ParseOptions,
    SseTransportConfig,
    StdioTransportConfig,
)
from mcpfile.errors import (
    ConfigFileNotFoundError,
    ConfigParseError,
    ConfigValidationError,
    InterpolationError,
)


class TestServerSelection:
    """Tests for which servers end up in the result."""

    def test_end_to_end_example(self):
        """Disabled servers are dropped by default."""
        mcp_file = McpFile.from_json(
            {
                "mcpServers": {
                    "a": {"url": "https://x/mcp"},
                    "b": {"url": "https://y/mcp", "disabled": True},
                }
            }
        )

        assert mcp_file.get_server_ids() == ["a"]

    def test_disabled_count(self):
        """N declared servers with D disabled yield N-D descriptors, or N with include_disabled."""
        data = {
            "mcpServers": {
                "one": {"url": "https://one.example.com/mcp"},
                "two": {"command": "node", "args": ["server.js"], "disabled": True},
                "three": {"command": "python"},
                "four": {"type": "sse", "url": "https://four.example.com/sse", "disabled": True},
            }
        }

        default = McpFile.from_json(data)
        assert len(default) == 2
        assert set(default.get_server_ids()) == {"one", "three"}

        everything = McpFile.from_json(data, ParseOptions(include_disabled=True))
        assert len(everything) == 4
        assert everything.get_server("two").disabled is True
        assert everything.get_server("four").metadata.disabled is True
        assert everything.get_server("one").disabled is False


class TestTransportConstruction:
    """Tests for transport type inference and transport configs."""

    def test_type_inference(self):
        """url implies http, command implies stdio, sse must be explicit."""
        mcp_file = McpFile.from_json(
            {
                "mcpServers": {
                    "remote": {"url": "https://example.com/mcp", "headers": {"X-Key": "1"}},
                    "events": {"type": "sse", "url": "https://example.com/sse"},
                    "local": {"command": "python", "args": ["-m", "server"]},
                }
            }
        )

        remote = mcp_file.get_server("remote")
        assert isinstance(remote.transport_config, HttpTransportConfig)
        assert remote.transport_config.headers == {"X-Key": "1"}
        assert remote.transport_type == "http"
        assert remote.is_session_based is False

        events = mcp_file.get_server("events")
        assert isinstance(events.transport_config, SseTransportConfig)
        assert events.is_session_based is True

        local = mcp_file.get_server("local")
        assert isinstance(local.transport_config, StdioTransportConfig)
        assert local.transport_config.args == ("-m", "server")
        assert local.is_session_based is True

    def test_stdio_env_overlays_process_env(self, monkeypatch):
        """Declared env overrides the process environment."""
        monkeypatch.setenv("MCPFILE_TEST_INHERITED", "inherited")
        monkeypatch.setenv("MCPFILE_TEST_OVERRIDDEN", "process")

        mcp_file = McpFile.from_json(
            {"mcpServers": {"local": {"command": "python", "env": {"MCPFILE_TEST_OVERRIDDEN": "declared"}}}}
        )

        env = mcp_file.get_server("local").transport_config.env
        assert env["MCPFILE_TEST_INHERITED"] == "inherited"
        assert env["MCPFILE_TEST_OVERRIDDEN"] == "declared"

    def test_env_file_between_process_and_declared(self, tmp_path, write_config):
        """envFile values override the process env and are overridden by env."""
        (tmp_path / "server.env").write_text("FROM_FILE=file\nSHARED=file\n", encoding="utf-8")
        path = write_config({"local": {"command": "python", "envFile": "server.env", "env": {"SHARED": "declared"}}})

        mcp_file = McpFile.from_path(path)

        env = mcp_file.get_server("local").transport_config.env
        assert env["FROM_FILE"] == "file"
        assert env["SHARED"] == "declared"

    def test_missing_env_file_is_server_error(self, write_config):
        """A missing envFile excludes only that server."""
        path = write_config(
            {
                "local": {"command": "python", "envFile": "missing.env"},
                "remote": {"url": "https://example.com/mcp"},
            }
        )

        mcp_file = McpFile.from_path(path)

        assert mcp_file.get_server_ids() == ["remote"]
        assert isinstance(mcp_file.errors["local"], ConfigValidationError)

    def test_relative_cwd_resolves_against_workspace(self, tmp_path, write_config):
        """Relative cwd is resolved against the config file's directory."""
        path = write_config({"local": {"command": "python", "cwd": "servers/local"}})

        mcp_file = McpFile.from_path(path)

        assert mcp_file.get_server("local").transport_config.cwd == os.path.join(str(tmp_path), "servers", "local")

    def test_metadata_keeps_raw_config(self):
        """Metadata carries the pre-interpolation entry and allowed lists."""
        mcp_file = McpFile.from_json(
            {
                "mcpServers": {
                    "remote": {
                        "url": "https://example.com/${env:API_PATH}",
                        "allowed": {"tools": ["search"]},
                    }
                }
            },
            ParseOptions(env={"API_PATH": "mcp"}),
        )

        params = mcp_file.get_server("remote")
        assert params.transport_config.url == "https://example.com/mcp"
        assert params.metadata.raw_config["url"] == "https://example.com/${env:API_PATH}"
        assert params.metadata.server_name == "remote"
        assert params.allowed.tools == ["search"]
        assert params.allowed.prompts is None


class TestInterpolationInFile:
    """Tests for placeholder resolution during parsing."""

    def test_env_substitution(self):
        """${env:NAME} is resolved from the supplied environment."""
        mcp_file = McpFile.from_json(
            {
                "mcpServers": {
                    "remote": {
                        "url": "https://${env:HOST}/mcp",
                        "headers": {"Authorization": "Bearer ${env:TOKEN}"},
                    }
                }
            },
            ParseOptions(env={"HOST": "api.example.com", "TOKEN": "secret"}),
        )

        config = mcp_file.get_server("remote").transport_config
        assert config.url == "https://api.example.com/mcp"
        assert config.headers == {"Authorization": "Bearer secret"}

    def test_missing_env_variable_excludes_server(self):
        """A missing variable is an interpolation error for that server only."""
        data = {
            "mcpServers": {
                "remote": {"url": "https://example.com/mcp", "headers": {"Authorization": "${env:MISSING_TOKEN}"}},
                "local": {"command": "python"},
            }
        }

        mcp_file = McpFile.from_json(data, ParseOptions(env={}))

        assert mcp_file.get_server_ids() == ["local"]
        error = mcp_file.errors["remote"]
        assert isinstance(error, InterpolationError)
        assert error.variable == "MISSING_TOKEN"
        assert error.server_id == "remote"

    def test_workspace_folder_defaults_to_config_dir(self, tmp_path, write_config):
        """${workspaceFolder} defaults to the directory holding the config file."""
        path = write_config(
            {"local": {"command": "${workspaceFolder}${/}bin${/}server", "args": ["${workspaceFolderBasename}"]}}
        )

        mcp_file = McpFile.from_path(path)

        config = mcp_file.get_server("local").transport_config
        assert config.command == os.path.join(str(tmp_path), "bin", "server")
        assert config.args == (tmp_path.name,)

    def test_workspace_folder_missing(self):
        """${workspaceFolder} without a workspace folder is an error."""
        with pytest.raises(InterpolationError):
            McpFile.from_json(
                {"mcpServers": {"local": {"command": "${workspaceFolder}/server"}}},
                ParseOptions(strict=True),
            )

    def test_disabled_server_is_not_interpolated(self):
        """Dropped disabled servers never fail interpolation."""
        mcp_file = McpFile.from_json(
            {"mcpServers": {"off": {"command": "${env:NOPE}", "disabled": True}}},
            ParseOptions(env={}),
        )

        assert len(mcp_file) == 0
        assert not mcp_file.errors


class TestValidation:
    """Tests for schema validation and error isolation."""

    def test_invalid_server_does_not_abort_siblings(self):
        """A bad entry is reported while the others parse."""
        mcp_file = McpFile.from_json(
            {
                "mcpServers": {
                    "good": {"url": "https://example.com/mcp"},
                    "bad": {"url": "not a url"},
                    "empty": {},
                }
            }
        )

        assert mcp_file.get_server_ids() == ["good"]
        assert set(mcp_file.errors) == {"bad", "empty"}
        bad = mcp_file.errors["bad"]
        assert isinstance(bad, ConfigValidationError)
        assert bad.server_id == "bad"
        assert any(message.startswith("url") for message in bad.errors)

    def test_strict_raises_first_error(self):
        with pytest.raises(ConfigValidationError) as exc_info:
            McpFile.from_json(
                {"mcpServers": {"bad": {"type": "stdio"}}},
                ParseOptions(strict=True),
            )

        assert exc_info.value.server_id == "bad"

    def test_invalid_server_id(self):
        mcp_file = McpFile.from_json({"mcpServers": {"has space": {"command": "python"}}})

        assert len(mcp_file) == 0
        assert "has space" in mcp_file.errors

    def test_sse_requires_url(self):
        mcp_file = McpFile.from_json({"mcpServers": {"events": {"type": "sse", "command": "python"}}})

        assert "events" in mcp_file.errors

    @pytest.mark.parametrize("data", [{}, {"mcpServers": []}, ["not", "an", "object"]])
    def test_invalid_root(self, data):
        """A missing or non-object mcpServers fails the whole parse."""
        with pytest.raises(ConfigValidationError) as exc_info:
            McpFile.from_json(data)

        assert exc_info.value.server_id == ConfigValidationError.ROOT


class TestFromPath:
    """Tests for file loading errors."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigFileNotFoundError):
            McpFile.from_path(tmp_path / "nope.json")

    def test_malformed_json(self, tmp_path):
        path = tmp_path / ".mcp.json"
        path.write_text("{ not json", encoding="utf-8")

        with pytest.raises(ConfigParseError):
            McpFile.from_path(path)

    def test_path_is_recorded(self, write_config):
        path = write_config({"local": {"command": "python"}})

        mcp_file = McpFile.from_path(path)

        assert mcp_file.path == os.path.abspath(path)
        assert "local" in mcp_file
