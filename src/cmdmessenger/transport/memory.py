"""In-memory channel for loopback links and tests."""

from __future__ import annotations

from collections import deque


class MemoryChannel:
    """A channel backed by an inbound FIFO and an outbound log.

    ``inject`` queues bytes for the messenger to read; everything the
    messenger writes lands in ``written``. Two channels created with
    :meth:`pair` are cross-wired so that one side's writes become the
    other side's input.
    """

    def __init__(self) -> None:
        self._inbound: deque[int] = deque()
        self.written = bytearray()
        self.peer: MemoryChannel | None = None

    @classmethod
    def pair(cls) -> tuple[MemoryChannel, MemoryChannel]:
        a, b = cls(), cls()
        a.peer, b.peer = b, a
        return a, b

    def inject(self, data: bytes) -> None:
        self._inbound.extend(data)

    def available(self) -> bool:
        return bool(self._inbound)

    def read_byte(self) -> int | None:
        if not self._inbound:
            return None
        return self._inbound.popleft()

    def write(self, data: bytes) -> int:
        self.written.extend(data)
        if self.peer is not None:
            self.peer.inject(data)
        return len(data)

    def write_byte(self, byte: int) -> int:
        return self.write(bytes([byte]))

    def take_written(self) -> bytes:
        """Return and clear everything written so far."""
        data = bytes(self.written)
        self.written.clear()
        return data
