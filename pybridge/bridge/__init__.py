"""Interpreter bridge for calling python code in a long-lived subprocess.

Calls are multiplexed over the subprocess's stdin/stdout as newline-delimited
JSON and correlated by integer id. Generator functions become streams.
"""

from pybridge.bridge.errors import (
    AbandonedCallError,
    BridgeError,
    ContractError,
    DuplicateCallError,
    ProtocolParseError,
    RemoteExecutionError,
    SessionClosedError,
    SpawnError,
    ValidationError,
)
from pybridge.bridge.facade import Contract, Method, RemoteModule
from pybridge.bridge.framing import LineFramer
from pybridge.bridge.launch import LaunchConfig, TargetKind, classify_target, resolve_python
from pybridge.bridge.manager import (
    BridgeRegistry,
    close_all,
    configure_bridge,
    get_session,
    remote_module,
)
from pybridge.bridge.protocol import (
    CallRequest,
    EventKind,
    RpcEvent,
    decode_message,
    encode_request,
)
from pybridge.bridge.registry import CallRegistry
from pybridge.bridge.session import Session, SessionState
from pybridge.bridge.stream import CallState, CallStream

__all__ = [
    # Errors
    "AbandonedCallError",
    "BridgeError",
    "ContractError",
    "DuplicateCallError",
    "ProtocolParseError",
    "RemoteExecutionError",
    "SessionClosedError",
    "SpawnError",
    "ValidationError",
    # Protocol
    "CallRequest",
    "EventKind",
    "RpcEvent",
    "decode_message",
    "encode_request",
    "LineFramer",
    # Calls
    "CallRegistry",
    "CallState",
    "CallStream",
    # Session
    "LaunchConfig",
    "TargetKind",
    "classify_target",
    "resolve_python",
    "Session",
    "SessionState",
    # Facade
    "Contract",
    "Method",
    "RemoteModule",
    # Registry
    "BridgeRegistry",
    "close_all",
    "configure_bridge",
    "get_session",
    "remote_module",
]
