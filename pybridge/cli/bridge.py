"""PyBridge bridge commands - Call functions in a python subprocess."""

import asyncio
import json
import time
from pathlib import Path
from typing import Any, List, Optional

import typer
from rich.console import Console

from pybridge.cli.error_handler import handle_errors
from pybridge.cli.output import format_duration, print_json, print_json_line, print_result

app = typer.Typer(
    help="Call functions of a python module, script or code snippet.",
    no_args_is_help=True,
)
console = Console()


def parse_call_args(values: Optional[List[str]], raw: bool = False) -> list[Any]:
    """Turn command-line arguments into call arguments.

    Each value is parsed as JSON; values that are not valid JSON (and all
    values when ``raw`` is set) are passed as plain strings.
    """
    parsed: list[Any] = []
    for value in values or []:
        if raw:
            parsed.append(value)
            continue
        try:
            parsed.append(json.loads(value))
        except json.JSONDecodeError:
            parsed.append(value)
    return parsed


def build_launch_config(
    config_file: Optional[Path],
    python: Optional[str],
    cwd: Optional[Path],
):
    """Launch settings from the config file with command-line overrides.

    Returns:
        Tuple of (LaunchConfig, request timeout from config)
    """
    from pybridge.bridge.launch import LaunchConfig
    from pybridge.config import get_config, load_config

    config = load_config(config_file) if config_file else get_config()
    launch = LaunchConfig.from_config(config)
    if python:
        launch.python = python
    if cwd:
        launch.cwd = cwd
    return launch, config.bridge.request_timeout


async def run_call(
    target: str,
    method: str,
    args: list[Any],
    launch,
    timeout: Optional[float] = None,
    stream: bool = False,
) -> None:
    """Open a session, run one call, print its output and close the session."""
    from pybridge.bridge.session import Session

    session = await Session.open(target, launch)
    try:
        call = await session.send(method, args)
        if stream:
            async def consume() -> None:
                async for value in call:
                    print_json_line(value, console)
            if timeout:
                await asyncio.wait_for(consume(), timeout=timeout)
            else:
                await consume()
        else:
            print_json(await call.result(timeout), console)
    finally:
        await session.close()


_TARGET_HELP = "Module name, path to a .py script, or inline python source."
_METHOD_HELP = "Function to call."
_ARGS_HELP = "Arguments, each parsed as JSON (falls back to a string)."


@app.command("call")
@handle_errors
def call_command(
    target: str = typer.Argument(..., help=_TARGET_HELP),
    method: str = typer.Argument(..., help=_METHOD_HELP),
    args: Optional[List[str]] = typer.Argument(None, help=_ARGS_HELP),
    raw: bool = typer.Option(False, "--raw", help="Pass every argument as a string."),
    python: Optional[str] = typer.Option(None, "--python", "-p", help="Interpreter to run."),
    cwd: Optional[Path] = typer.Option(None, "--cwd", help="Working directory of the interpreter."),
    timeout: Optional[float] = typer.Option(None, "--timeout", "-t", help="Seconds to wait for the result."),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to configuration file."),
) -> None:
    """Call a function and print its return value as JSON.

    Example:
        pybridge bridge call json dumps '{"a": 1}'
        pybridge bridge call tools.py add 1 2
        pybridge bridge call "def hi(n): return 'hi ' + n" hi --raw world
    """
    launch, default_timeout = build_launch_config(config_file, python, cwd)
    asyncio.run(run_call(
        target,
        method,
        parse_call_args(args, raw),
        launch,
        timeout=timeout if timeout is not None else default_timeout,
    ))


@app.command("stream")
@handle_errors
def stream_command(
    target: str = typer.Argument(..., help=_TARGET_HELP),
    method: str = typer.Argument(..., help=_METHOD_HELP),
    args: Optional[List[str]] = typer.Argument(None, help=_ARGS_HELP),
    raw: bool = typer.Option(False, "--raw", help="Pass every argument as a string."),
    python: Optional[str] = typer.Option(None, "--python", "-p", help="Interpreter to run."),
    cwd: Optional[Path] = typer.Option(None, "--cwd", help="Working directory of the interpreter."),
    timeout: Optional[float] = typer.Option(None, "--timeout", "-t", help="Seconds to wait for the whole stream."),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to configuration file."),
) -> None:
    """Call a generator function and print each yielded value on its own line.

    Example:
        pybridge bridge stream tools.py count_to 5
    """
    launch, default_timeout = build_launch_config(config_file, python, cwd)
    asyncio.run(run_call(
        target,
        method,
        parse_call_args(args, raw),
        launch,
        timeout=timeout if timeout is not None else default_timeout,
        stream=True,
    ))


@app.command("ping")
@handle_errors
def ping_command(
    target: str = typer.Argument(..., help=_TARGET_HELP),
    python: Optional[str] = typer.Option(None, "--python", "-p", help="Interpreter to run."),
    cwd: Optional[Path] = typer.Option(None, "--cwd", help="Working directory of the interpreter."),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to configuration file."),
) -> None:
    """Start a worker for TARGET and report once it has loaded.

    Example:
        pybridge bridge ping tools.py
    """
    from pybridge.bridge.session import Session

    launch, _ = build_launch_config(config_file, python, cwd)

    async def ping() -> dict[str, Any]:
        started = time.monotonic()
        session = await Session.open(target, launch)
        try:
            await session.wait_ready(launch.startup_timeout)
            return {
                "pid": session.pid,
                "startup": format_duration(time.monotonic() - started),
            }
        finally:
            await session.close()

    details = asyncio.run(ping())
    print_result(True, f"Worker ready for {target}", details, console)
