"""CLI command modules for PyBridge.

This package contains the CLI command implementations and supporting
utilities for error handling and output.
"""

from pybridge.cli import bridge, config

from pybridge.cli.exit_codes import ExitCode
from pybridge.cli.error_handler import (
    PyBridgeError,
    ConfigurationError,
    InvalidArgumentError,
    bridge_exit_code,
    handle_errors,
    handle_errors_async,
)
from pybridge.cli.output import (
    print_json,
    print_json_line,
    print_table,
    print_result,
    format_duration,
)

__all__ = [
    # Command modules
    "bridge",
    "config",
    # Exit codes
    "ExitCode",
    # Error handling
    "PyBridgeError",
    "ConfigurationError",
    "InvalidArgumentError",
    "bridge_exit_code",
    "handle_errors",
    "handle_errors_async",
    # Output
    "print_json",
    "print_json_line",
    "print_table",
    "print_result",
    "format_duration",
]
