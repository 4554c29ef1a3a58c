"""Escape codec for binary-safe fields.

Any byte equal to the field separator, the command separator or the
escape character is preceded by the escape character on the wire. With
the defaults (``,`` ``;`` ``/``)::

    raw:     a , b / c
    wire:    a / , b / / c

Decoding removes each unescaped escape character and copies the byte
after it verbatim. A dangling escape character at the very end of a
field is kept as a literal.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..config import MessengerConfig


@dataclass(frozen=True)
class EscapeCodec:
    """Reserved byte set plus the escape/unescape transforms."""

    field_separator: int = ord(",")
    command_separator: int = ord(";")
    escape_character: int = ord("/")

    @classmethod
    def from_config(cls, config: MessengerConfig) -> EscapeCodec:
        return cls(
            field_separator=config.field_separator_byte,
            command_separator=config.command_separator_byte,
            escape_character=config.escape_byte,
        )

    def is_reserved(self, byte: int) -> bool:
        return byte in (
            self.field_separator,
            self.command_separator,
            self.escape_character,
        )

    def escape(self, data: bytes) -> bytes:
        """Return ``data`` with every reserved byte prefixed by the escape character."""
        out = bytearray()
        for byte in data:
            if self.is_reserved(byte):
                out.append(self.escape_character)
            out.append(byte)
        return bytes(out)

    def unescape(self, data: bytes) -> bytes:
        """Reverse :meth:`escape`."""
        out = bytearray()
        literal = False
        for byte in data:
            if literal:
                out.append(byte)
                literal = False
            elif byte == self.escape_character:
                literal = True
            else:
                out.append(byte)
        if literal:
            # Dangling escape at the field boundary
            out.append(self.escape_character)
        return bytes(out)

    def unescape_in_place(self, buffer: bytearray, start: int, end: int) -> int:
        """Decode ``buffer[start:end]`` inside ``buffer``, compacting it.

        Returns:
            The new end offset of the decoded range. Bytes after ``end``
            shift left by the number of escape characters removed.
        """
        decoded = self.unescape(bytes(buffer[start:end]))
        buffer[start:end] = decoded
        return start + len(decoded)

    def find_unescaped(self, data: bytes | bytearray, target: int, start: int = 0, end: int | None = None) -> int:
        """Offset of the first unescaped ``target`` in ``data[start:end]``, or -1."""
        if end is None:
            end = len(data)
        literal = False
        for index in range(start, end):
            byte = data[index]
            if literal:
                literal = False
            elif byte == self.escape_character:
                literal = True
            elif byte == target:
                return index
        return -1
