"""
Per-call event stream.

Each call moves through PENDING -> (yield)* -> COMPLETED | FAILED. Values are
validated against the call's expected shape as they arrive; a value that does
not match fails only that call.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum, auto
from typing import Any, AsyncIterator, Optional

import pydantic
from pydantic import TypeAdapter

from .errors import BridgeError, RemoteExecutionError, ValidationError
from .protocol import EventKind, RpcEvent

logger = logging.getLogger(__name__)

_END = object()
_MISSING = object()


class CallState(Enum):
    """Lifecycle of a single call."""

    PENDING = auto()
    COMPLETED = auto()
    FAILED = auto()


def shape_adapter(shape: Any) -> Optional[TypeAdapter]:
    """
    Build a validator for an expected value shape.

    ``None`` and ``typing.Any`` mean the value is passed through unchecked.

    Raises:
        pydantic.PydanticSchemaGenerationError: If pydantic cannot handle the shape
    """
    if shape is None or shape is Any:
        return None
    return TypeAdapter(shape)


class CallStream:
    """
    The events of one call, exposed as an async iterator of values.

    Example:
        stream = session.call("count_to", [3], int)
        async for n in stream:
            print(n)

        value = await session.call("add", [1, 2], int).result()
    """

    def __init__(
        self,
        call_id: int,
        method: str,
        shape: Any = None,
        adapter: Optional[TypeAdapter] = None,
    ):
        self.call_id = call_id
        self.method = method
        self._adapter = adapter if adapter is not None else shape_adapter(shape)
        self._queue: asyncio.Queue = asyncio.Queue()
        self._state = CallState.PENDING
        self._error: Optional[BridgeError] = None
        self._received = 0

    @property
    def state(self) -> CallState:
        return self._state

    @property
    def done(self) -> bool:
        """True once a terminal event (or abandonment) was observed."""
        return self._state is not CallState.PENDING

    @property
    def error(self) -> Optional[BridgeError]:
        return self._error

    @property
    def received(self) -> int:
        """Number of values accepted so far."""
        return self._received

    # Sink interface used by the call registry

    def deliver(self, event: RpcEvent) -> None:
        """Apply one event addressed to this call."""
        if self.done:
            # already failed locally (validation) or abandoned
            return

        if event.kind is EventKind.YIELD:
            self._accept(event.value)
        elif event.kind is EventKind.ERROR:
            logger.debug(f"Call {self.call_id} ({self.method}) failed remotely")
            self._fail(RemoteExecutionError(event.error or "", self.call_id, self.method))
        elif event.kind is EventKind.COMPLETION:
            self._state = CallState.COMPLETED
            self._queue.put_nowait(_END)

    def abandon(self, error: BridgeError) -> None:
        """Fail the call without a terminal event from the subprocess."""
        if not self.done:
            self._fail(error)

    def _accept(self, value: Any) -> None:
        if self._adapter is not None:
            try:
                value = self._adapter.validate_python(value)
            except pydantic.ValidationError as e:
                self._fail(ValidationError(
                    f"Value from '{self.method}' does not match expected shape: {e}",
                    self.call_id,
                    value,
                ))
                return
            except Exception as e:
                # custom validators may raise anything besides ValueError
                logger.debug(f"Validator for call {self.call_id} raised {type(e).__name__}: {e}")
                self._fail(ValidationError(
                    f"Validating value from '{self.method}' raised {type(e).__name__}: {e}",
                    self.call_id,
                    value,
                ))
                return
        self._received += 1
        self._queue.put_nowait(value)

    def _fail(self, error: BridgeError) -> None:
        self._state = CallState.FAILED
        self._error = error
        self._queue.put_nowait(_END)

    # Consumer interface

    def __aiter__(self) -> AsyncIterator[Any]:
        return self

    async def __anext__(self) -> Any:
        item = await self._queue.get()
        if item is _END:
            # keep the end marker so repeated reads finish the same way
            self._queue.put_nowait(_END)
            if self._error is not None:
                raise self._error
            raise StopAsyncIteration
        return item

    async def result(self, timeout: Optional[float] = None) -> Any:
        """
        Wait for the call to finish and return its value.

        Returns:
            The first yielded value, or None if the call completed without one

        Raises:
            RemoteExecutionError: If the remote method raised
            ValidationError: If the value does not match the expected shape
            AbandonedCallError: If the session closed first
            TimeoutError: If ``timeout`` elapsed
        """
        return await _wait(self._first(), timeout)

    async def collect(self, timeout: Optional[float] = None) -> list[Any]:
        """Wait for the call to finish and return every yielded value."""
        return await _wait(self._all(), timeout)

    async def _first(self) -> Any:
        first = _MISSING
        async for value in self:
            if first is _MISSING:
                first = value
        return None if first is _MISSING else first

    async def _all(self) -> list[Any]:
        return [value async for value in self]

    def __repr__(self) -> str:
        return f"<CallStream id={self.call_id} method={self.method!r} state={self._state.name}>"


async def _wait(coro, timeout: Optional[float]):
    if timeout is None:
        return await coro
    return await asyncio.wait_for(coro, timeout=timeout)
