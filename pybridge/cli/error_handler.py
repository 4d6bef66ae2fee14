"""Global exception handling for PyBridge CLI.

This module provides the CLI error classes and decorators that turn both CLI
and bridge errors into consistent messages and exit codes.
"""

from functools import wraps
from typing import Callable, TypeVar, Any
import asyncio
import logging

import typer
from rich.console import Console

from pybridge.bridge.errors import (
    AbandonedCallError,
    BridgeError,
    ProtocolParseError,
    RemoteExecutionError,
    SessionClosedError,
    SpawnError,
    ValidationError,
)
from pybridge.cli.exit_codes import ExitCode

# Console for error output (stderr)
console = Console(stderr=True)

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

# Exit codes for bridge errors, most specific first
BRIDGE_EXIT_CODES: list[tuple[type, int]] = [
    (SpawnError, ExitCode.SPAWN_ERROR),
    (RemoteExecutionError, ExitCode.REMOTE_ERROR),
    (ValidationError, ExitCode.VALIDATION_ERROR),
    (ProtocolParseError, ExitCode.PROTOCOL_ERROR),
    (AbandonedCallError, ExitCode.ABANDONED),
    (SessionClosedError, ExitCode.ABANDONED),
]


class PyBridgeError(Exception):
    """Base exception for PyBridge CLI.

    Attributes:
        message: Error message
        exit_code: Exit code to use when exiting
        details: Optional dictionary of additional error details
    """

    exit_code: int = ExitCode.GENERAL_ERROR

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if exit_code is not None:
            self.exit_code = exit_code
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ConfigurationError(PyBridgeError):
    """Configuration-related error.

    Examples:
        - Invalid configuration file
        - Unknown configuration key
    """

    exit_code = ExitCode.CONFIGURATION_ERROR


class InvalidArgumentError(PyBridgeError):
    """Invalid command-line input.

    Examples:
        - Malformed section.key
        - Mutually exclusive options
    """

    exit_code = ExitCode.INVALID_ARGUMENT


def bridge_exit_code(error: BridgeError) -> int:
    """Exit code for a bridge error."""
    for error_type, code in BRIDGE_EXIT_CODES:
        if isinstance(error, error_type):
            return code
    return ExitCode.GENERAL_ERROR


def _report_bridge_error(e: BridgeError) -> int:
    code = bridge_exit_code(e)
    logger.error(f"{type(e).__name__}: {e.message}", extra={"exit_code": code})
    console.print(f"[red]Error:[/red] {e.message}")
    for key, value in e.details.items():
        console.print(f"  [dim]{key}:[/dim] {value}")
    if isinstance(e, RemoteExecutionError) and e.trace:
        console.print(e.trace.rstrip(), style="dim", markup=False, highlight=False)
    return code


def _report_cli_error(e: PyBridgeError) -> int:
    logger.error(
        f"PyBridgeError: {e.message}",
        extra={"exit_code": e.exit_code, "details": e.details},
    )
    console.print(f"[red]Error:[/red] {e.message}")
    for key, value in e.details.items():
        console.print(f"  [dim]{key}:[/dim] {value}")
    return e.exit_code


def handle_errors(func: F) -> F:
    """Decorator for consistent error handling across CLI commands.

    Handles:

    - PyBridgeError subclasses: message and the error's exit code
    - BridgeError subclasses: message (and remote trace) with a mapped exit code
    - TimeoutError: exit code 8
    - KeyboardInterrupt: cancellation message with exit code 130
    - Other exceptions: generic error with exit code 1

    Example:
        @app.command()
        @handle_errors
        def my_command():
            raise ConfigurationError("Invalid config")
    """
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except PyBridgeError as e:
            raise typer.Exit(code=_report_cli_error(e))

        except BridgeError as e:
            raise typer.Exit(code=_report_bridge_error(e))

        except (TimeoutError, asyncio.TimeoutError):
            console.print("[red]Error:[/red] Call timed out")
            logger.error("Call timed out")
            raise typer.Exit(code=ExitCode.TIMEOUT)

        except KeyboardInterrupt:
            console.print("\n[yellow]Operation cancelled by user.[/yellow]")
            logger.info("Operation cancelled by user (KeyboardInterrupt)")
            raise typer.Exit(code=ExitCode.CANCELLED)

        except typer.Exit:
            raise

        except Exception as e:
            logger.exception("Unexpected error occurred")
            console.print(f"[red]Unexpected error:[/red] {e}")
            console.print("[dim]Run with --verbose for more details[/dim]")
            raise typer.Exit(code=ExitCode.GENERAL_ERROR)

    return wrapper  # type: ignore[return-value]


def handle_errors_async(func: F) -> F:
    """Variant of handle_errors for coroutine functions."""
    @wraps(func)
    async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return await func(*args, **kwargs)
        except PyBridgeError as e:
            raise typer.Exit(code=_report_cli_error(e))

        except BridgeError as e:
            raise typer.Exit(code=_report_bridge_error(e))

        except (TimeoutError, asyncio.TimeoutError):
            console.print("[red]Error:[/red] Call timed out")
            logger.error("Call timed out")
            raise typer.Exit(code=ExitCode.TIMEOUT)

        except KeyboardInterrupt:
            console.print("\n[yellow]Operation cancelled by user.[/yellow]")
            logger.info("Operation cancelled by user (KeyboardInterrupt)")
            raise typer.Exit(code=ExitCode.CANCELLED)

        except typer.Exit:
            raise

        except Exception as e:
            logger.exception("Unexpected error occurred")
            console.print(f"[red]Unexpected error:[/red] {e}")
            console.print("[dim]Run with --verbose for more details[/dim]")
            raise typer.Exit(code=ExitCode.GENERAL_ERROR)

    return async_wrapper  # type: ignore[return-value]
