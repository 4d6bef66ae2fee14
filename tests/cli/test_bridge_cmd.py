"""Tests for bridge CLI commands."""

import json
import os
import sys
from pathlib import Path

import pytest
from typer.testing import CliRunner

from pybridge.cli.bridge import build_launch_config, parse_call_args
from pybridge.cli.exit_codes import ExitCode
from pybridge.config import clear_config_cache
from pybridge.main import app

runner = CliRunner()

FIXTURE = str(Path(__file__).parent.parent / "fixtures" / "sample_module.py")


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point configuration at an empty directory and the test interpreter."""
    for name in list(os.environ):
        if name.startswith("PYBRIDGE_"):
            monkeypatch.delenv(name)
    monkeypatch.setenv("PYBRIDGE_CONFIG_DIR", str(tmp_path))
    monkeypatch.setenv("PYBRIDGE_USE_VENV", "false")
    clear_config_cache()
    yield
    clear_config_cache()


def invoke(*args: str):
    return runner.invoke(app, ["bridge", *args, "--python", sys.executable])


class TestParseCallArgs:
    """Tests for parse_call_args."""

    def test_json_values(self):
        """Values are parsed as JSON."""
        assert parse_call_args(["1", "2.5", "true", "null", '{"a": [1]}']) == [1, 2.5, True, None, {"a": [1]}]

    def test_string_fallback(self):
        """Values that are not JSON stay strings."""
        assert parse_call_args(["hello", "1"]) == ["hello", 1]

    def test_raw(self):
        """raw keeps every value as a string."""
        assert parse_call_args(["1", "true"], raw=True) == ["1", "true"]

    def test_none(self):
        """No arguments gives an empty list."""
        assert parse_call_args(None) == []


class TestBuildLaunchConfig:
    """Tests for build_launch_config."""

    def test_overrides(self, tmp_path):
        """Command-line options win over configuration."""
        launch, timeout = build_launch_config(None, "python3.12", tmp_path)
        assert launch.python == "python3.12"
        assert launch.cwd == tmp_path
        assert launch.use_venv is False
        assert timeout is None

    def test_config_file(self, tmp_path):
        """An explicit config file is used instead of the default."""
        config_file = tmp_path / "custom.toml"
        config_file.write_text('[interpreter]\npython = "python3.11"\n\n[bridge]\nrequest_timeout = 3.0\n')

        launch, timeout = build_launch_config(config_file, None, None)

        assert launch.python == "python3.11"
        assert timeout == 3.0


class TestBridgeCommands:
    """Tests running commands against a real interpreter."""

    def test_help(self):
        """Test bridge help output."""
        result = runner.invoke(app, ["bridge", "--help"])
        assert result.exit_code == 0
        assert "call" in result.output
        assert "stream" in result.output

    def test_call(self):
        """Test calling a function prints its JSON result."""
        result = invoke("call", FIXTURE, "add", "1", "2")
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout) == 3

    def test_call_raw(self):
        """Test --raw passes strings."""
        result = invoke("call", FIXTURE, "echo", "--raw", "5")
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout) == "5"

    def test_call_inline_code(self):
        """Test inline source targets."""
        result = invoke("call", "def hi(name): return 'hi ' + name", "hi", "world")
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout) == "hi world"

    def test_stream(self):
        """Test streaming prints one JSON value per line."""
        result = invoke("stream", FIXTURE, "count_to", "3")
        assert result.exit_code == 0, result.output
        assert [json.loads(line) for line in result.stdout.splitlines()] == [1, 2, 3]

    def test_remote_error(self):
        """Test a raising function exits with REMOTE_ERROR."""
        result = invoke("call", FIXTURE, "fail", "broken")
        assert result.exit_code == ExitCode.REMOTE_ERROR

    def test_missing_interpreter(self, tmp_path):
        """Test a missing interpreter exits with SPAWN_ERROR."""
        result = runner.invoke(
            app,
            ["bridge", "call", FIXTURE, "add", "1", "2", "--python", str(tmp_path / "nope")],
        )
        assert result.exit_code == ExitCode.SPAWN_ERROR

    def test_timeout(self):
        """Test --timeout exits with TIMEOUT."""
        result = invoke("call", FIXTURE, "slow_echo", "x", "5", "--timeout", "0.2")
        assert result.exit_code == ExitCode.TIMEOUT

    def test_ping(self):
        """Test ping reports a ready worker."""
        result = invoke("ping", FIXTURE)
        assert result.exit_code == 0, result.output
        assert "Worker ready" in result.stdout
