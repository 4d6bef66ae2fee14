"""PyBridge - call python code running in a long-lived subprocess."""

__app_name__ = "pybridge"
__version__ = "0.1.0"

from pybridge.bridge import (
    AbandonedCallError,
    BridgeError,
    BridgeRegistry,
    CallStream,
    Contract,
    ContractError,
    LaunchConfig,
    Method,
    RemoteExecutionError,
    RemoteModule,
    Session,
    SpawnError,
    ValidationError,
)

__all__ = [
    "__app_name__",
    "__version__",
    "AbandonedCallError",
    "BridgeError",
    "BridgeRegistry",
    "CallStream",
    "Contract",
    "ContractError",
    "LaunchConfig",
    "Method",
    "RemoteExecutionError",
    "RemoteModule",
    "Session",
    "SpawnError",
    "ValidationError",
]
