"""
Interpreter Session.

Owns one python subprocess running the bridge worker, multiplexes calls over
its stdin/stdout pipes and dispatches response events by correlation id.
"""

from __future__ import annotations

import asyncio
import atexit
import logging
from enum import Enum, auto
from typing import Any, Optional, Sequence

from pydantic import TypeAdapter

from .errors import (
    AbandonedCallError,
    BridgeError,
    ProtocolParseError,
    SessionClosedError,
    SpawnError,
)
from .framing import LineFramer
from .launch import LaunchConfig, build_command, describe_target, resolve_python
from .protocol import EventKind, decode_message, encode_request
from .registry import CallRegistry
from .stream import CallStream

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024


class SessionState(Enum):
    """State of the interpreter subprocess."""

    SPAWNING = auto()
    RUNNING = auto()
    CLOSED = auto()


class Session:
    """
    One live interpreter subprocess plus its in-flight calls.

    Calls may be issued concurrently; the worker processes them in arrival
    order but responses are matched purely by correlation id.

    Example:
        async with await Session.open("my_module") as session:
            total = await session.call("add", [1, 2], int).result()
            async for line in session.call("read_lines", ["a.txt"], str):
                print(line)
    """

    def __init__(self, target: str, config: Optional[LaunchConfig] = None):
        self.target = target
        self._config = config or LaunchConfig()
        self._state = SessionState.SPAWNING
        self._process: Optional[asyncio.subprocess.Process] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._framer = LineFramer()
        self._calls = CallRegistry()
        self._next_id = 0
        self._ready_event = asyncio.Event()
        self._closed_event = asyncio.Event()
        self._exit_hook_registered = False
        self.returncode: Optional[int] = None
        self.parse_errors = 0

    @classmethod
    async def open(cls, target: str, config: Optional[LaunchConfig] = None) -> "Session":
        """
        Spawn a session for a module name, script path or inline source.

        Raises:
            SpawnError: If the interpreter cannot be started
        """
        session = cls(target, config)
        await session.start()
        return session

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == SessionState.RUNNING

    @property
    def ready(self) -> bool:
        """True once the worker reported it finished loading the target."""
        return self._ready_event.is_set()

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def pending_count(self) -> int:
        """Number of calls still waiting for a terminal event."""
        return len(self._calls)

    @property
    def config(self) -> LaunchConfig:
        return self._config

    async def start(self) -> None:
        """
        Start the interpreter subprocess.

        Raises:
            SpawnError: If the interpreter fails to start (or to become ready
                when ``wait_for_ready`` is set)
        """
        if self._state != SessionState.SPAWNING:
            raise SpawnError(f"Cannot start session in state: {self._state.name}")

        try:
            python = resolve_python(self._config)
        except SpawnError:
            self._state = SessionState.CLOSED
            raise

        cwd = self._config.working_dir
        logger.info(f"Start python via {python} in {cwd} for {describe_target(self.target)}")

        try:
            self._process = await asyncio.create_subprocess_exec(
                *build_command(python, self.target),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=None,
                cwd=str(cwd),
                env=self._config.build_env(),
            )
        except OSError as e:
            self._state = SessionState.CLOSED
            raise SpawnError(
                f"Failed to start python interpreter: {e}",
                {"python": python, "cwd": str(cwd)},
            ) from e

        atexit.register(self._kill_at_exit)
        self._exit_hook_registered = True
        self._state = SessionState.RUNNING
        self._reader_task = asyncio.create_task(
            self._read_loop(),
            name=f"pybridge-reader-{self._process.pid}",
        )

        if self._config.wait_for_ready:
            try:
                await self.wait_ready(self._config.startup_timeout)
            except (SessionClosedError, asyncio.TimeoutError) as e:
                await self.close()
                raise SpawnError(
                    f"Bridge worker for {describe_target(self.target)} did not become ready: {e}"
                ) from e

    async def wait_ready(self, timeout: Optional[float] = None) -> None:
        """
        Wait for the worker's ready message.

        Raises:
            SessionClosedError: If the subprocess exits first
            TimeoutError: If ``timeout`` elapses
        """
        if self.ready:
            return
        if self._state == SessionState.CLOSED:
            raise SessionClosedError(f"Session exited before ready (code {self.returncode})")

        ready = asyncio.ensure_future(self._ready_event.wait())
        closed = asyncio.ensure_future(self._closed_event.wait())
        try:
            done, _ = await asyncio.wait(
                {ready, closed},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            ready.cancel()
            closed.cancel()

        if self.ready:
            return
        if closed in done:
            raise SessionClosedError(f"Session exited before ready (code {self.returncode})")
        raise asyncio.TimeoutError(f"Worker not ready after {timeout}s")

    def call(
        self,
        method: str,
        args: Sequence[Any] = (),
        shape: Any = None,
        adapter: Optional[TypeAdapter] = None,
    ) -> CallStream:
        """
        Send a call and return its event stream immediately.

        The request line is written with a single write, so concurrent calls
        never interleave on the pipe.

        Args:
            method: Name of the function in the bridged module
            args: Positional arguments (JSON serializable)
            shape: Expected type of each yielded value, or None to skip validation
            adapter: Prebuilt validator for ``shape``

        Raises:
            SessionClosedError: If the session is not running
            TypeError: If the arguments are not JSON serializable
        """
        if self._state != SessionState.RUNNING or self._process is None:
            raise SessionClosedError(
                f"Session for {describe_target(self.target)} is not running "
                f"(state: {self._state.name})"
            )

        call_id = self._next_id
        self._next_id += 1

        line = encode_request(call_id, method, args)
        stream = CallStream(call_id, method, shape=shape, adapter=adapter)
        self._calls.register(call_id, stream)

        try:
            self._process.stdin.write(line)
        except (ConnectionError, RuntimeError) as e:
            self._calls.unregister(call_id)
            raise SessionClosedError(f"Could not write to subprocess: {e}") from e

        logger.debug(f"Sent call {call_id}: {method}")
        return stream

    async def send(
        self,
        method: str,
        args: Sequence[Any] = (),
        shape: Any = None,
        adapter: Optional[TypeAdapter] = None,
    ) -> CallStream:
        """Like call(), but also wait for the request to be flushed to the pipe."""
        stream = self.call(method, args, shape, adapter)
        try:
            await self._process.stdin.drain()
        except ConnectionError as e:
            # the reader sees EOF and abandons the call
            logger.debug(f"Drain failed for call {stream.call_id}: {e}")
        return stream

    async def close(self) -> None:
        """Terminate the subprocess and fail every pending call."""
        if self._state == SessionState.CLOSED and self._process is None:
            return

        self._state = SessionState.CLOSED
        abandoned = self._abandon_pending("closed")

        process = self._process
        if process is not None and process.returncode is None:
            try:
                if process.stdin is not None:
                    process.stdin.close()
                process.terminate()
                try:
                    await asyncio.wait_for(process.wait(), timeout=self._config.shutdown_timeout)
                except asyncio.TimeoutError:
                    process.kill()
                    await process.wait()
            except ProcessLookupError:
                pass
        if process is not None:
            self.returncode = process.returncode
        self._process = None

        if self._reader_task is not None:
            if not self._reader_task.done():
                self._reader_task.cancel()
                try:
                    await self._reader_task
                except asyncio.CancelledError:
                    pass
            self._reader_task = None

        self._unregister_exit_hook()
        self._closed_event.set()
        logger.info(
            f"Closed session for {describe_target(self.target)}"
            f" ({abandoned} pending call(s) abandoned)"
        )

    def kill(self) -> None:
        """Kill the subprocess immediately, without waiting."""
        self._state = SessionState.CLOSED
        self._abandon_pending("killed")
        self._kill_at_exit()
        self._unregister_exit_hook()
        if self._reader_task is not None and not self._reader_task.done():
            try:
                self._reader_task.cancel()
            except RuntimeError as e:
                # event loop already closed
                logger.debug(f"Could not cancel reader task: {e}")
        self._closed_event.set()

    async def __aenter__(self) -> "Session":
        if self._state == SessionState.SPAWNING:
            await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return (
            f"<Session target={describe_target(self.target, 30)!r} "
            f"state={self._state.name} pid={self.pid} pending={self.pending_count}>"
        )

    # Private methods

    async def _read_loop(self) -> None:
        """Read raw output chunks until the subprocess closes stdout."""
        process = self._process
        if process is None or process.stdout is None:
            return

        try:
            while True:
                chunk = await process.stdout.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                self._handle_chunk(chunk)
        except asyncio.CancelledError:
            return
        except Exception as e:
            # without a reader no call can finish, so the session goes down
            logger.error(f"Reader for {describe_target(self.target)} failed: {e}", exc_info=True)
            self._kill_at_exit()

        self.returncode = await process.wait()
        self._on_exit()

    def _handle_chunk(self, chunk: bytes) -> None:
        for record in self._framer.feed(chunk):
            try:
                self._handle_record(record)
            except Exception:
                logger.exception(f"Failed to handle record: {record[:200]}")

    def _handle_record(self, record: str) -> None:
        try:
            event = decode_message(record)
        except ProtocolParseError as e:
            self.parse_errors += 1
            logger.warning(f"Could not parse: {record[:200]} ({e.message})")
            return

        if event.kind is EventKind.READY:
            if self._ready_event.is_set():
                logger.debug("Ignoring repeated ready message")
            self._ready_event.set()
            return

        sink = self._calls.get(event.id)
        try:
            self._calls.dispatch(event)
        except Exception as e:
            # fail the one call whose sink broke, keep dispatching the rest
            self._calls.unregister(event.id)
            if sink is not None:
                sink.abandon(BridgeError(
                    f"Could not deliver {event.kind.name} to call {event.id}: {e}",
                    {"call_id": event.id},
                ))
            raise

    def _on_exit(self) -> None:
        if self._state != SessionState.RUNNING:
            return
        self._state = SessionState.CLOSED
        abandoned = self._abandon_pending(f"exited with code {self.returncode}")
        self._unregister_exit_hook()
        self._closed_event.set()
        logger.warning(
            f"Python process for {describe_target(self.target)} exited with code "
            f"{self.returncode} ({abandoned} pending call(s) abandoned)"
        )

    def _abandon_pending(self, reason: str) -> int:
        target = describe_target(self.target)
        return self._calls.abandon_all(
            lambda call_id: AbandonedCallError(
                f"Session for {target} {reason} before call {call_id} finished",
                call_id,
            )
        )

    def _kill_at_exit(self) -> None:
        process = self._process
        if process is None or process.returncode is not None:
            return
        try:
            process.kill()
        except (ProcessLookupError, RuntimeError):
            pass

    def _unregister_exit_hook(self) -> None:
        if self._exit_hook_registered:
            atexit.unregister(self._kill_at_exit)
            self._exit_hook_registered = False
