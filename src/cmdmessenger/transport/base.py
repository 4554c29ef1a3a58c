"""Byte channel interface consumed by the messenger."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class Channel(Protocol):
    """A byte stream with a non-blocking "data waiting" check."""

    def available(self) -> bool:
        """Whether at least one byte can be read without blocking."""
        ...

    def read_byte(self) -> int | None:
        """Read one byte, or ``None`` if nothing arrived."""
        ...

    def write(self, data: bytes) -> int:
        """Write ``data`` and return the number of bytes written."""
        ...

    def write_byte(self, byte: int) -> int:
        ...
