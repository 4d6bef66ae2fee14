"""
Line-delimited JSON protocol.

Host to subprocess, one object per line:
    {"id": 3, "method": "tokenize", "args": ["some text"]}

Subprocess to host, one object per line, variant decided by field presence:
    {"id": 0, "ready": true}
    {"id": 3, "yield": <value>}
    {"id": 3, "error": "<formatted traceback>"}
    {"id": 3}
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Optional

from .errors import ProtocolParseError


class EventKind(Enum):
    """Variants of a message coming back from the subprocess."""

    READY = auto()
    YIELD = auto()
    ERROR = auto()
    COMPLETION = auto()


@dataclass(frozen=True)
class CallRequest:
    """A single method invocation sent to the subprocess."""

    id: int
    method: str
    args: tuple[Any, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire object."""
        return {"id": self.id, "method": self.method, "args": list(self.args)}

    def to_json(self) -> str:
        """Serialize to a single line of JSON (no terminator)."""
        return json.dumps(self.to_dict())

    def to_line(self) -> bytes:
        """Encoded request followed by the newline terminator."""
        return (self.to_json() + "\n").encode("utf-8")


@dataclass(frozen=True)
class RpcEvent:
    """A decoded message from the subprocess."""

    kind: EventKind
    id: int
    value: Any = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        """Error and Completion end a call's lifecycle."""
        return self.kind in (EventKind.ERROR, EventKind.COMPLETION)

    @classmethod
    def ready(cls, id: int = 0) -> "RpcEvent":
        return cls(EventKind.READY, id)

    @classmethod
    def yielded(cls, id: int, value: Any) -> "RpcEvent":
        return cls(EventKind.YIELD, id, value=value)

    @classmethod
    def failed(cls, id: int, error: str) -> "RpcEvent":
        return cls(EventKind.ERROR, id, error=error)

    @classmethod
    def completed(cls, id: int) -> "RpcEvent":
        return cls(EventKind.COMPLETION, id)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RpcEvent":
        """
        Build an event from a decoded wire object.

        Priority: ready, then yield, then error, otherwise completion.

        Raises:
            ProtocolParseError: If the correlation id is missing or not an integer
        """
        if "ready" in data:
            raw_id = data.get("id", 0)
            return cls.ready(_require_id(raw_id if raw_id is not None else 0))

        call_id = _require_id(data.get("id"))

        if "yield" in data:
            return cls.yielded(call_id, data["yield"])
        if "error" in data:
            return cls.failed(call_id, _error_text(data["error"]))
        return cls.completed(call_id)


def _require_id(value: Any) -> int:
    # bool is an int subclass but never a valid id
    if isinstance(value, bool) or not isinstance(value, int):
        raise ProtocolParseError(f"Invalid correlation id: {value!r}")
    return value


def _error_text(error: Any) -> str:
    if isinstance(error, str):
        return error
    # some workers send traceback.format_exception() output as a list
    if isinstance(error, list):
        return "".join(str(part) for part in error)
    return json.dumps(error)


def encode_request(call_id: int, method: str, args: Any = ()) -> bytes:
    """Encode a call request as one terminated line."""
    return CallRequest(call_id, method, tuple(args)).to_line()


def decode_message(record: str) -> RpcEvent:
    """
    Decode one JSON text record into an event.

    Args:
        record: A single line produced by the framer

    Returns:
        The decoded event

    Raises:
        ProtocolParseError: If the record is not a JSON object with a valid id
    """
    try:
        data = json.loads(record)
    except (ValueError, RecursionError) as e:
        # RecursionError: nesting deeper than the json scanner can follow
        raise ProtocolParseError(f"Invalid JSON: {e}", line=record) from e

    if not isinstance(data, dict):
        raise ProtocolParseError("Message is not a JSON object", line=record)

    try:
        return RpcEvent.from_dict(data)
    except ProtocolParseError as e:
        raise ProtocolParseError(e.message, line=record) from None
