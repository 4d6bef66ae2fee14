"""Standard exit codes for PyBridge CLI.

This module defines the exit codes used across the PyBridge CLI
for consistent error reporting and scripting support.
"""


class ExitCode:
    """Standard exit codes for PyBridge CLI.

    These codes follow common Unix conventions where possible:
    - 0: Success
    - 1: General error
    - 130: Script terminated by Ctrl+C (SIGINT)

    Bridge-specific codes:
    - 2: Configuration error
    - 3: Interpreter could not be started
    - 4: Remote method raised
    - 5: Returned value failed validation
    - 6: Protocol error
    - 7: Invalid argument
    - 8: Timed out
    - 9: Call abandoned (session closed or subprocess exited)
    """

    # Standard success
    SUCCESS = 0

    # General errors
    GENERAL_ERROR = 1

    # Bridge-specific errors (2-9)
    CONFIGURATION_ERROR = 2
    SPAWN_ERROR = 3
    REMOTE_ERROR = 4
    VALIDATION_ERROR = 5
    PROTOCOL_ERROR = 6
    INVALID_ARGUMENT = 7
    TIMEOUT = 8
    ABANDONED = 9

    # Signal-based exits (128 + signal number)
    CANCELLED = 130  # Ctrl+C (SIGINT = 2)

    @classmethod
    def get_name(cls, code: int) -> str:
        """Get the name of an exit code.

        Args:
            code: The exit code value

        Returns:
            Human-readable name for the exit code
        """
        names = {
            cls.SUCCESS: "SUCCESS",
            cls.GENERAL_ERROR: "GENERAL_ERROR",
            cls.CONFIGURATION_ERROR: "CONFIGURATION_ERROR",
            cls.SPAWN_ERROR: "SPAWN_ERROR",
            cls.REMOTE_ERROR: "REMOTE_ERROR",
            cls.VALIDATION_ERROR: "VALIDATION_ERROR",
            cls.PROTOCOL_ERROR: "PROTOCOL_ERROR",
            cls.INVALID_ARGUMENT: "INVALID_ARGUMENT",
            cls.TIMEOUT: "TIMEOUT",
            cls.ABANDONED: "ABANDONED",
            cls.CANCELLED: "CANCELLED",
        }
        return names.get(code, f"UNKNOWN({code})")

    @classmethod
    def get_description(cls, code: int) -> str:
        """Get the description of an exit code."""
        descriptions = {
            cls.SUCCESS: "Operation completed successfully",
            cls.GENERAL_ERROR: "An unexpected error occurred",
            cls.CONFIGURATION_ERROR: "Configuration error or invalid config file",
            cls.SPAWN_ERROR: "Python interpreter could not be started",
            cls.REMOTE_ERROR: "The remote method raised an exception",
            cls.VALIDATION_ERROR: "Returned value does not match the expected shape",
            cls.PROTOCOL_ERROR: "Malformed message from the interpreter",
            cls.INVALID_ARGUMENT: "Invalid command-line argument",
            cls.TIMEOUT: "The call did not finish in time",
            cls.ABANDONED: "The interpreter went away before the call finished",
            cls.CANCELLED: "Operation cancelled by user",
        }
        return descriptions.get(code, f"Unknown exit code: {code}")
