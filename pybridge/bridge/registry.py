"""Correlation of in-flight calls to their event sinks."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from .errors import BridgeError, DuplicateCallError
from .protocol import RpcEvent

logger = logging.getLogger(__name__)


class EventSink(Protocol):
    """Receiver of the events addressed to one call."""

    def deliver(self, event: RpcEvent) -> None: ...

    def abandon(self, error: BridgeError) -> None: ...


class CallRegistry:
    """
    Maps correlation ids to the sink of the pending call.

    Registration and dispatch are expected to run on the session's event
    loop thread, so the mapping is not locked.
    """

    def __init__(self):
        self._sinks: dict[int, EventSink] = {}

    def register(self, call_id: int, sink: EventSink) -> None:
        """
        Register the sink for a new call.

        Raises:
            DuplicateCallError: If the id already has a pending call
        """
        if call_id in self._sinks:
            raise DuplicateCallError(f"Call id {call_id} is already pending")
        self._sinks[call_id] = sink

    def dispatch(self, event: RpcEvent) -> bool:
        """
        Forward an event to the sink registered for its id.

        Terminal events unregister the sink after forwarding.

        Returns:
            True if a sink received the event, False if it was dropped
        """
        if event.is_terminal:
            sink = self._sinks.pop(event.id, None)
        else:
            sink = self._sinks.get(event.id)

        if sink is None:
            logger.debug(f"Dropping {event.kind.name} for unknown call id {event.id}")
            return False

        sink.deliver(event)
        return True

    def get(self, call_id: int) -> Optional[EventSink]:
        """Sink of a pending call, or None."""
        return self._sinks.get(call_id)

    def unregister(self, call_id: int) -> Optional[EventSink]:
        """Remove a pending call without delivering anything."""
        return self._sinks.pop(call_id, None)

    def abandon_all(self, error_factory) -> int:
        """
        Fail every pending call and clear the registry.

        Args:
            error_factory: Called with a call id, returns the error for that call

        Returns:
            Number of abandoned calls
        """
        sinks = list(self._sinks.items())
        self._sinks.clear()
        for call_id, sink in sinks:
            sink.abandon(error_factory(call_id))
        return len(sinks)

    def __contains__(self, call_id: int) -> bool:
        return call_id in self._sinks

    def __len__(self) -> int:
        return len(self._sinks)

    @property
    def pending_ids(self) -> list[int]:
        """Ids of all pending calls."""
        return list(self._sinks.keys())
