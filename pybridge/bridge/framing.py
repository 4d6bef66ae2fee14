"""Newline framing for the subprocess output stream."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

NEWLINE = b"\n"


class LineFramer:
    """
    Accumulates raw chunks and splits them into JSON text records.

    Only complete lines are ever returned; whatever follows the last newline
    stays buffered until a later chunk terminates it. Lines that do not open
    a JSON object are treated as noise and dropped.

    Example:
        framer = LineFramer()
        framer.feed(b'{"id":1,"yie')      # -> []
        framer.feed(b'ld":1}\\n')          # -> ['{"id":1,"yield":1}']
    """

    def __init__(self, encoding: str = "utf-8"):
        self._buffer = bytearray()
        self._encoding = encoding
        self.discarded = 0

    @property
    def pending(self) -> bytes:
        """Bytes received after the last newline."""
        return bytes(self._buffer)

    def feed(self, chunk: bytes) -> list[str]:
        """
        Add a chunk and extract every complete record.

        Args:
            chunk: Raw bytes in arrival order

        Returns:
            The protocol records completed by this chunk, in order
        """
        if not chunk:
            return []

        self._buffer.extend(chunk)
        if NEWLINE not in chunk:
            return []

        cut = self._buffer.rfind(NEWLINE)
        complete = bytes(self._buffer[:cut])
        del self._buffer[:cut + 1]

        records = []
        for raw in complete.split(NEWLINE):
            line = raw.decode(self._encoding, errors="replace").rstrip()
            if not line:
                continue
            if not line.startswith("{"):
                self.discarded += 1
                logger.debug(f"Ignoring non-protocol output: {line[:80]!r}")
                continue
            records.append(line)

        return records

    def reset(self) -> None:
        """Drop any buffered partial line."""
        self._buffer.clear()
