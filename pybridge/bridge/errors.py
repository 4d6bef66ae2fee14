"""Error taxonomy for the interpreter bridge.

Decode-level errors (ProtocolParseError) are recovered inside the session and
only logged. Call-level errors are delivered to the one call they belong to.
"""

from __future__ import annotations

from typing import Any, Optional


class BridgeError(Exception):
    """Base exception for all bridge errors.

    Attributes:
        message: Error message
        details: Optional dictionary of additional error details
    """

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class SpawnError(BridgeError):
    """The interpreter subprocess could not be started."""


class ProtocolParseError(BridgeError):
    """A line from the subprocess could not be decoded into an event."""

    def __init__(self, message: str, line: str = "") -> None:
        super().__init__(message)
        self.line = line


class ValidationError(BridgeError):
    """A yielded value did not match the shape expected by its call."""

    def __init__(self, message: str, call_id: int, value: Any = None) -> None:
        super().__init__(message, {"call_id": call_id})
        self.call_id = call_id
        self.value = value


class RemoteExecutionError(BridgeError):
    """The remote method raised.

    The formatted traceback printed by the subprocess is kept verbatim in
    ``trace``; ``str()`` of the error is the last line of it.
    """

    def __init__(self, trace: str, call_id: int, method: str = "") -> None:
        lines = [line for line in trace.strip().splitlines() if line.strip()]
        summary = lines[-1] if lines else "Remote call failed"
        super().__init__(summary)
        self.trace = trace
        self.call_id = call_id
        self.method = method


class AbandonedCallError(BridgeError):
    """The session went away before the call reached a terminal event."""

    def __init__(self, message: str, call_id: Optional[int] = None) -> None:
        super().__init__(message, {"call_id": call_id} if call_id is not None else None)
        self.call_id = call_id


class SessionClosedError(BridgeError):
    """A call was attempted on a session that is no longer running."""


class DuplicateCallError(BridgeError):
    """A correlation id was registered twice."""


class ContractError(BridgeError, AttributeError):
    """A module contract is malformed or an undeclared method was requested."""
