"""Bridge Registry.

Keeps one warm Session per bridged module or script so repeated calls reuse
the same subprocess. Sessions live until close_all() or host exit.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Union

from .facade import Contract, RemoteModule
from .launch import LaunchConfig, describe_target
from .session import Session

logger = logging.getLogger(__name__)


class BridgeRegistry:
    """Process-wide cache of sessions keyed by module/script name.

    Example:
        registry = BridgeRegistry.get_instance()
        registry.configure(LaunchConfig(python="python3", cwd=Path("scripts")))

        nlp = await registry.module("nlp_tools", Contract({"tokenize": Method(list[str])}))
        tokens = await nlp.tokenize("hello world")

        await registry.close_all()
    """

    _instance: Optional["BridgeRegistry"] = None

    def __init__(self, config: Optional[LaunchConfig] = None, request_timeout: Optional[float] = None):
        self._config = config or LaunchConfig()
        self._request_timeout = request_timeout
        self._sessions: dict[str, Session] = {}
        self._modules: dict[str, RemoteModule] = {}
        self._lock = asyncio.Lock()
        self._spawn_count = 0

    @classmethod
    def get_instance(cls) -> "BridgeRegistry":
        """Get the shared registry instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Forget the shared instance (mainly for testing).

        Sessions owned by the previous instance are not closed.
        """
        cls._instance = None

    @property
    def config(self) -> LaunchConfig:
        return self._config

    def configure(self, config: LaunchConfig, request_timeout: Optional[float] = None) -> None:
        """Set launch settings used for sessions created from now on.

        Raises:
            RuntimeError: If sessions are already running
        """
        if any(session.is_running for session in self._sessions.values()):
            raise RuntimeError("Cannot configure while sessions are running. Call close_all() first.")
        self._config = config
        self._request_timeout = request_timeout
        logger.debug(f"BridgeRegistry configured with python={config.python} cwd={config.cwd}")

    async def get_or_create(self, name: str) -> Session:
        """Return the running session for ``name``, spawning one if needed.

        Raises:
            SpawnError: If a new session cannot be started
        """
        async with self._lock:
            session = self._sessions.get(name)
            if session is not None and session.is_running:
                return session

            if session is not None:
                logger.info(f"Session for {describe_target(name)} is closed, starting a new one")
                self._modules.pop(name, None)

            session = await Session.open(name, self._config)
            self._sessions[name] = session
            self._spawn_count += 1
            return session

    async def module(self, name: str, contract: Union[Contract, type]) -> RemoteModule:
        """Typed facade for ``name``, reusing the cached session.

        Args:
            name: Module name, script path or inline source
            contract: A Contract, or an annotated interface class
        """
        if not isinstance(contract, Contract):
            contract = Contract.from_class(contract)

        session = await self.get_or_create(name)
        remote = self._modules.get(name)
        if remote is None or remote.session is not session or remote.contract is not contract:
            remote = RemoteModule(session, contract, timeout=self._request_timeout)
            self._modules[name] = remote
        return remote

    def get(self, name: str) -> Optional[Session]:
        """Cached session for ``name`` without spawning."""
        return self._sessions.get(name)

    async def close(self, name: str) -> None:
        """Close and forget the session for ``name``."""
        async with self._lock:
            session = self._sessions.pop(name, None)
            self._modules.pop(name, None)
        if session is not None:
            await session.close()

    async def close_all(self) -> None:
        """Terminate every owned subprocess."""
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
            self._modules.clear()

        for session in sessions:
            try:
                await session.close()
            except Exception as e:
                logger.warning(f"Error closing session for {describe_target(session.target)}: {e}")

        if sessions:
            logger.info(f"Closed {len(sessions)} bridge session(s)")

    def kill_all(self) -> None:
        """Kill every owned subprocess without awaiting (usable outside a loop)."""
        for session in self._sessions.values():
            session.kill()
        self._sessions.clear()
        self._modules.clear()

    def get_status(self) -> dict[str, Any]:
        """Summary of the registry and its sessions."""
        return {
            "session_count": len(self._sessions),
            "spawn_count": self._spawn_count,
            "sessions": {
                name: {
                    "state": session.state.name,
                    "pid": session.pid,
                    "ready": session.ready,
                    "pending_calls": session.pending_count,
                }
                for name, session in self._sessions.items()
            },
        }

    def __contains__(self, name: str) -> bool:
        return name in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    async def __aenter__(self) -> "BridgeRegistry":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close_all()


# Convenience functions for simple use cases

def configure_bridge(config: LaunchConfig, request_timeout: Optional[float] = None) -> None:
    """Configure the shared registry before it is first used."""
    BridgeRegistry.get_instance().configure(config, request_timeout)


async def get_session(name: str) -> Session:
    """Shared-registry session for ``name``."""
    return await BridgeRegistry.get_instance().get_or_create(name)


async def remote_module(name: str, contract: Union[Contract, type]) -> RemoteModule:
    """Shared-registry typed facade for ``name``."""
    return await BridgeRegistry.get_instance().module(name, contract)


async def close_all() -> None:
    """Close every session of the shared registry."""
    await BridgeRegistry.get_instance().close_all()
